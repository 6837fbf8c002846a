"""Tests for the Repository pattern."""

from __future__ import annotations

import pytest

from memindex.db.models import Chunk, MemoryFile
from memindex.db.repository import MODEL_KEY, Repository, fts_match_expression
from memindex.db.vectors import ensure_vec_table, get_dimensions, vec_table_exists

DIMS = 4


@pytest.fixture
def repo(tmp_db):
    ensure_vec_table(tmp_db, DIMS)
    return Repository(tmp_db)


def _file(path="MEMORY.md", hash="h1"):
    return MemoryFile(path=path, content_hash=hash, mtime=1000, size=10)


def _chunk(path="MEMORY.md", start=1, end=2, text="hello world", embedding=None):
    return Chunk(
        id=f"{path}:{start}-{end}",
        path=path,
        start_line=start,
        end_line=end,
        text=text,
        hash=f"hash-{text}",
        embedding=embedding or [1.0, 0.0, 0.0, 0.0],
        model="fake/embed",
    )


def _fts_count(repo):
    return repo.conn.execute("SELECT COUNT(*) FROM chunks_fts").fetchone()[0]


def _vec_count(repo):
    return repo.conn.execute("SELECT COUNT(*) FROM vec_chunks").fetchone()[0]


# ------------------------------------------------------------------
# Files + chunks
# ------------------------------------------------------------------


def test_get_file_not_found(repo):
    assert repo.get_file("missing.md") is None


def test_replace_file_stores_record_and_chunks(repo):
    n = repo.replace_file(_file(), [_chunk(), _chunk(start=3, end=4, text="second part")])
    assert n == 2
    stored = repo.get_file("MEMORY.md")
    assert stored is not None
    assert stored.content_hash == "h1"
    assert stored.indexed_at is not None
    chunks = repo.get_chunks_by_path("MEMORY.md")
    assert [c.id for c in chunks] == ["MEMORY.md:1-2", "MEMORY.md:3-4"]
    assert chunks[0].embedding == [1.0, 0.0, 0.0, 0.0]
    assert chunks[0].rowid is not None


def test_replace_file_swaps_chunk_set(repo):
    repo.replace_file(_file(), [_chunk(), _chunk(start=3, end=4, text="old")])
    repo.replace_file(_file(hash="h2"), [_chunk(text="new text")])
    chunks = repo.get_chunks_by_path("MEMORY.md")
    assert len(chunks) == 1
    assert chunks[0].text == "new text"
    assert repo.get_file("MEMORY.md").content_hash == "h2"
    assert _fts_count(repo) == 1
    assert _vec_count(repo) == 1


def test_replace_file_requires_embeddings(repo):
    chunk = _chunk()
    chunk.embedding = None
    with pytest.raises(ValueError):
        repo.replace_file(_file(), [chunk])
    # Transaction rolled back: no file record either
    assert repo.get_file("MEMORY.md") is None


def test_failed_replace_keeps_previous_chunks(repo):
    repo.replace_file(_file(), [_chunk(text="original")])
    broken = _chunk(text="replacement")
    broken.embedding = None
    with pytest.raises(ValueError):
        repo.replace_file(_file(hash="h2"), [broken])
    chunks = repo.get_chunks_by_path("MEMORY.md")
    assert [c.text for c in chunks] == ["original"]
    assert repo.get_file("MEMORY.md").content_hash == "h1"


def test_replace_file_with_no_chunks(repo):
    repo.replace_file(_file(), [])
    assert repo.get_file("MEMORY.md") is not None
    assert repo.count_chunks_by_path("MEMORY.md") == 0


def test_delete_file_removes_everything(repo):
    repo.replace_file(_file(), [_chunk(), _chunk(start=3, end=4, text="more")])
    deleted = repo.delete_file("MEMORY.md")
    assert deleted == 2
    assert repo.get_file("MEMORY.md") is None
    assert repo.count_chunks_by_path("MEMORY.md") == 0
    assert _fts_count(repo) == 0
    assert _vec_count(repo) == 0


def test_list_files_sorted(repo):
    repo.replace_file(_file(path="sessions/b.md"), [])
    repo.replace_file(_file(path="MEMORY.md"), [])
    assert repo.list_file_paths() == ["MEMORY.md", "sessions/b.md"]
    assert [f.path for f in repo.list_files()] == ["MEMORY.md", "sessions/b.md"]


def test_get_chunk_by_rowid(repo):
    repo.replace_file(_file(), [_chunk()])
    rowid = repo.get_chunks_by_path("MEMORY.md")[0].rowid
    assert repo.get_chunk_by_rowid(rowid).id == "MEMORY.md:1-2"
    assert repo.get_chunk_by_rowid(9999) is None


# ------------------------------------------------------------------
# Search primitives
# ------------------------------------------------------------------


def test_search_vec_orders_by_distance(repo):
    repo.replace_file(
        _file(),
        [
            _chunk(start=1, end=1, text="near", embedding=[1.0, 0.0, 0.0, 0.0]),
            _chunk(start=2, end=2, text="far", embedding=[0.0, 1.0, 0.0, 0.0]),
        ],
    )
    results = repo.search_vec([1.0, 0.0, 0.0, 0.0], limit=2)
    assert [c.text for c, _ in results] == ["near", "far"]
    assert results[0][1] == pytest.approx(0.0, abs=1e-6)
    assert results[1][1] == pytest.approx(1.0, abs=1e-6)


def test_search_vec_without_table_returns_empty(tmp_db):
    assert Repository(tmp_db).search_vec([1.0, 0.0], limit=5) == []


def test_search_fts_positive_relevance(repo):
    repo.replace_file(
        _file(),
        [
            _chunk(start=1, end=1, text="sqlite locking bug fixed with WAL"),
            _chunk(start=2, end=2, text="unrelated gardening notes"),
        ],
    )
    results = repo.search_fts("sqlite locking", limit=5)
    assert len(results) == 1
    chunk, score = results[0]
    assert "sqlite" in chunk.text
    assert score > 0


def test_search_fts_tolerates_punctuation(repo):
    repo.replace_file(_file(), [_chunk(text="pnpm, not npm")])
    assert len(repo.search_fts("pnpm, npm?", limit=5)) == 1


def test_search_fts_empty_query(repo):
    repo.replace_file(_file(), [_chunk()])
    assert repo.search_fts("?!", limit=5) == []


def test_fts_match_expression_quotes_tokens():
    assert fts_match_expression("use AND pnpm") == '"use" OR "AND" OR "pnpm"'
    assert fts_match_expression("...") == ""


# ------------------------------------------------------------------
# Cache + metadata
# ------------------------------------------------------------------


def test_cache_miss_then_hit(repo):
    assert repo.get_cached_embedding("abc", "m") is None
    repo.put_cached_embedding("abc", "m", [0.5, 0.5])
    assert repo.get_cached_embedding("abc", "m") == [0.5, 0.5]


def test_cache_is_keyed_by_model(repo):
    repo.put_cached_embedding("abc", "m1", [1.0])
    assert repo.get_cached_embedding("abc", "m2") is None


def test_cache_put_replaces(repo):
    repo.put_cached_embedding("abc", "m", [1.0])
    repo.put_cached_embedding("abc", "m", [2.0])
    assert repo.get_cached_embedding("abc", "m") == [2.0]
    assert repo.stats().cache_entries == 1


def test_meta_roundtrip(repo):
    assert repo.get_meta("x") is None
    repo.set_meta("x", "1")
    repo.set_meta("x", "2")
    assert repo.get_meta("x") == "2"


# ------------------------------------------------------------------
# Stats + reset
# ------------------------------------------------------------------


def test_stats(repo):
    repo.replace_file(_file(), [_chunk(), _chunk(start=3, end=4, text="b")])
    repo.put_cached_embedding("abc", "fake/embed", [1.0, 0.0, 0.0, 0.0])
    repo.set_meta(MODEL_KEY, "fake/embed")
    stats = repo.stats()
    assert stats.files == 1
    assert stats.chunks == 2
    assert stats.cache_entries == 1
    assert stats.model == "fake/embed"
    assert stats.dimensions == DIMS


def test_reset_index(repo):
    repo.replace_file(_file(), [_chunk()])
    repo.put_cached_embedding("abc", "fake/embed", [1.0, 0.0, 0.0, 0.0])
    repo.set_meta(MODEL_KEY, "fake/embed")
    repo.reset_index()
    stats = repo.stats()
    assert (stats.files, stats.chunks, stats.cache_entries) == (0, 0, 0)
    assert stats.model is None
    assert not vec_table_exists(repo.conn)
    assert get_dimensions(repo.conn) is None
    assert not repo.vector_index_ready()
