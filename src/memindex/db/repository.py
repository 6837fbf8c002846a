"""Repository pattern for the index side of the memindex store.

Single interface for: memory files, chunks, FTS5 search, vec embeddings, the
content-addressed embedding cache and global metadata. Beliefs live in
memindex.beliefs, which shares the same connection.

A file's rows (file record, chunks, FTS5 postings, vector rows) are always
written or removed in one transaction so a reader never observes a file with a
partial chunk set.
"""

from __future__ import annotations

import json
import re
import sqlite3

from memindex.db.models import Chunk, IndexStats, MemoryFile, utc_now
from memindex.db.vectors import (
    VEC_TABLE,
    drop_vec_table,
    get_dimensions,
    vec_table_exists,
)

MODEL_KEY = "provider_model"

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)

_CHUNK_COLUMNS = (
    "seq, id, path, source, start_line, end_line, text, hash, embedding, model, updated_at"
)


class Repository:
    """Data access layer for files, chunks, the embedding cache and metadata.

    Wraps an open sqlite3.Connection. The connection is owned by the caller and
    must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see memindex.db.schema.initialize).
        """
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def get_file(self, path: str) -> MemoryFile | None:
        """Return the stored record for *path*, or None if it was never indexed."""
        row = self._conn.execute(
            "SELECT path, source, content_hash, mtime, size, indexed_at FROM files WHERE path = ?",
            (path,),
        ).fetchone()
        return _row_to_file(row) if row else None

    def list_files(self) -> list[MemoryFile]:
        """Return all file records ordered by path."""
        rows = self._conn.execute(
            "SELECT path, source, content_hash, mtime, size, indexed_at FROM files ORDER BY path"
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def list_file_paths(self) -> list[str]:
        return [r[0] for r in self._conn.execute("SELECT path FROM files ORDER BY path")]

    def replace_file(self, record: MemoryFile, chunks: list[Chunk]) -> int:
        """Atomically upsert *record* and swap its chunk set for *chunks*.

        Every chunk must carry its embedding; the vector table must already
        exist when *chunks* is non-empty (see ensure_vec_table()).

        Returns:
            Number of chunks inserted.
        """
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO files (path, source, content_hash, mtime, size, indexed_at)
                VALUES (?, ?, ?, ?, ?, datetime('now'))
                ON CONFLICT(path) DO UPDATE SET
                    source = excluded.source,
                    content_hash = excluded.content_hash,
                    mtime = excluded.mtime,
                    size = excluded.size,
                    indexed_at = excluded.indexed_at
                """,
                (record.path, record.source, record.content_hash, record.mtime, record.size),
            )
            self._delete_chunks(record.path)
            for chunk in chunks:
                self._insert_chunk(chunk)
        return len(chunks)

    def delete_file(self, path: str) -> int:
        """Atomically delete a file record with its chunks, postings and vectors.

        Returns:
            Number of chunks deleted.
        """
        with self._conn:
            deleted = self._delete_chunks(path)
            self._conn.execute("DELETE FROM files WHERE path = ?", (path,))
        return deleted

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def get_chunks_by_path(self, path: str) -> list[Chunk]:
        """Return the chunks of *path* ordered by start line."""
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE path = ? ORDER BY start_line, seq",
            (path,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def get_chunk_by_rowid(self, rowid: int) -> Chunk | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE seq = ?", (rowid,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def count_chunks_by_path(self, path: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE path = ?", (path,)
        ).fetchone()[0]

    def _insert_chunk(self, chunk: Chunk) -> int:
        """Insert chunk + FTS5 posting + vector row (caller owns the transaction)."""
        if chunk.embedding is None:
            raise ValueError(f"Chunk '{chunk.id}' has no embedding")
        embedding_json = json.dumps(chunk.embedding)
        cur = self._conn.execute(
            """
            INSERT INTO chunks
                (id, path, source, start_line, end_line, text, hash, embedding, model, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.id,
                chunk.path,
                chunk.source,
                chunk.start_line,
                chunk.end_line,
                chunk.text,
                chunk.hash,
                embedding_json,
                chunk.model,
                chunk.updated_at or utc_now(),
            ),
        )
        rowid = cur.lastrowid
        # Keep FTS5 and the vector table in sync with explicit rowid mapping
        self._conn.execute(
            "INSERT INTO chunks_fts(rowid, text) VALUES (?, ?)", (rowid, chunk.text)
        )
        self._conn.execute(
            f"INSERT INTO {VEC_TABLE}(rowid, embedding) VALUES (?, ?)",
            (rowid, embedding_json),
        )
        chunk.rowid = rowid
        return rowid

    def _delete_chunks(self, path: str) -> int:
        """Delete chunks + FTS5 + vector rows for *path* (caller owns the transaction)."""
        rowids = [
            r[0]
            for r in self._conn.execute(
                "SELECT seq FROM chunks WHERE path = ?", (path,)
            ).fetchall()
        ]
        if not rowids:
            return 0
        placeholders = ",".join("?" * len(rowids))
        self._conn.execute(
            f"DELETE FROM chunks_fts WHERE rowid IN ({placeholders})", rowids
        )
        if vec_table_exists(self._conn):
            self._conn.executemany(
                f"DELETE FROM {VEC_TABLE} WHERE rowid = ?", [(r,) for r in rowids]
            )
        self._conn.execute("DELETE FROM chunks WHERE path = ?", (path,))
        return len(rowids)

    # ------------------------------------------------------------------
    # Embedding cache
    # ------------------------------------------------------------------

    def get_cached_embedding(self, text_hash: str, model: str) -> list[float] | None:
        """Return the cached vector for (*text_hash*, *model*), or None on a miss."""
        row = self._conn.execute(
            "SELECT embedding FROM embedding_cache WHERE hash = ? AND model = ?",
            (text_hash, model),
        ).fetchone()
        return json.loads(row["embedding"]) if row else None

    def put_cached_embedding(self, text_hash: str, model: str, embedding: list[float]) -> None:
        """Store a vector under (*text_hash*, *model*). Existing entries are replaced."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO embedding_cache (hash, model, embedding, dims, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(hash, model) DO UPDATE SET
                    embedding = excluded.embedding,
                    dims = excluded.dims,
                    updated_at = excluded.updated_at
                """,
                (text_hash, model, json.dumps(embedding), len(embedding), utc_now()),
            )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def get_meta(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO meta (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def vector_index_ready(self) -> bool:
        """True once the first embedding has initialized the vector table."""
        return get_dimensions(self._conn) is not None and vec_table_exists(self._conn)

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def search_vec(self, embedding: list[float], limit: int = 10) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search. Returns (chunk, cosine distance) sorted by distance."""
        if not vec_table_exists(self._conn):
            return []
        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {VEC_TABLE} WHERE embedding MATCH ? AND k = ? "
            "ORDER BY distance",
            (json.dumps(embedding), limit),
        ).fetchall()
        chunks = self._chunks_by_rowids([r["rowid"] for r in vec_rows])
        return [
            (chunks[r["rowid"]], float(r["distance"]))
            for r in vec_rows
            if r["rowid"] in chunks
        ]

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def search_fts(self, query: str, limit: int = 10) -> list[tuple[Chunk, float]]:
        """Keyword search. Returns (chunk, relevance) sorted best-first.

        bm25() returns negative values (lower = better); the sign is flipped so
        relevance is positive and higher is better.

        Raises:
            sqlite3.OperationalError: If FTS5 rejects the query.
        """
        fts_query = fts_match_expression(query)
        if not fts_query:
            return []
        fts_rows = self._conn.execute(
            "SELECT rowid, bm25(chunks_fts) AS score FROM chunks_fts "
            "WHERE chunks_fts MATCH ? ORDER BY score LIMIT ?",
            (fts_query, limit),
        ).fetchall()
        chunks = self._chunks_by_rowids([r["rowid"] for r in fts_rows])
        return [
            (chunks[r["rowid"]], -float(r["score"]))
            for r in fts_rows
            if r["rowid"] in chunks
        ]

    def _chunks_by_rowids(self, rowids: list[int]) -> dict[int, Chunk]:
        if not rowids:
            return {}
        placeholders = ",".join("?" * len(rowids))
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE seq IN ({placeholders})", rowids
        ).fetchall()
        return {r["seq"]: _row_to_chunk(r) for r in rows}

    # ------------------------------------------------------------------
    # Status + maintenance
    # ------------------------------------------------------------------

    def stats(self) -> IndexStats:
        """Counts of files, chunks and cache entries plus the recorded model."""
        return IndexStats(
            files=self._count("files"),
            chunks=self._count("chunks"),
            cache_entries=self._count("embedding_cache"),
            model=self.get_meta(MODEL_KEY),
            dimensions=get_dimensions(self._conn),
        )

    def _count(self, table: str) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def reset_index(self) -> None:
        """Drop every indexed file, chunk, cache entry and the vector table.

        This is the explicit migration path after an embedding model change.
        Beliefs, projects and sessions are untouched.
        """
        with self._conn:
            self._conn.execute("DELETE FROM chunks_fts")
            self._conn.execute("DELETE FROM chunks")
            self._conn.execute("DELETE FROM files")
            self._conn.execute("DELETE FROM embedding_cache")
            self._conn.execute("DELETE FROM meta WHERE key = ?", (MODEL_KEY,))
        drop_vec_table(self._conn)


# ------------------------------------------------------------------
# Query helpers
# ------------------------------------------------------------------


def fts_match_expression(query: str) -> str:
    """Turn free text into an FTS5 MATCH expression.

    FTS5 rejects punctuation like commas as syntax errors, so the query is
    reduced to word tokens, each quoted (which also neutralises AND/OR/NOT),
    and OR-joined so ranking is left to bm25.
    """
    tokens = _TOKEN_RE.findall(query)
    return " OR ".join(f'"{t}"' for t in tokens)


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_file(row: sqlite3.Row) -> MemoryFile:
    return MemoryFile(
        path=row["path"],
        source=row["source"],
        content_hash=row["content_hash"],
        mtime=row["mtime"],
        size=row["size"],
        indexed_at=row["indexed_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["seq"],
        id=row["id"],
        path=row["path"],
        source=row["source"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        text=row["text"],
        hash=row["hash"],
        embedding=json.loads(row["embedding"]),
        model=row["model"],
        updated_at=row["updated_at"],
    )
