"""Delta indexer — keeps the store in step with the memory directory.

Pipeline per run:
  1. Discover the top-level index file plus every text file under the logs
     subtree (symlinks skipped, duplicates collapsed by resolved path).
  2. Skip files whose content hash matches the stored record.
  3. Chunk and embed a changed file completely (embedding cache first), then
     commit its file record and chunk set in one transaction.
  4. Prune records of files no longer on disk and record the model id.

A provider failure leaves the file's previous rows untouched; the file is
retried on the next run because its stored hash was never updated.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path

from memindex.db.models import Chunk, MemoryFile, utc_now
from memindex.db.repository import MODEL_KEY, Repository
from memindex.db.vectors import ensure_vec_table, get_dimensions, vec_table_exists
from memindex.exceptions import (
    DimensionMismatchError,
    DiscoveryError,
    ProviderError,
    StorageError,
)
from memindex.ingest.base import DEFAULT_MAX_CHARS, BaseChunker
from memindex.ingest.embedding_cache import EmbeddingCache
from memindex.ingest.embeddings import EmbeddingProvider
from memindex.ingest.hashing import hash_text
from memindex.ingest.markdown import MarkdownChunker
from memindex.ingest.plaintext import PlainTextChunker

logger = logging.getLogger(__name__)


@dataclass
class IndexerConfig:
    index_file: str = "MEMORY.md"
    logs_dir: str = "sessions"
    extensions: tuple[str, ...] = (".md", ".markdown", ".txt")
    max_chars: int = DEFAULT_MAX_CHARS
    include_breadcrumbs: bool = True
    source: str = "memory"


@dataclass
class IndexResult:
    files_scanned: int = 0
    files_changed: int = 0
    chunks_indexed: int = 0
    embeddings_generated: int = 0
    embeddings_cached: int = 0
    files_removed: int = 0
    files_failed: list[str] = field(default_factory=list)


class DeltaIndexer:
    """Re-index only what changed under a memory directory.

    Args:
        repo: Open Repository on an initialized store.
        provider: Embedding provider; its ``model_id`` keys the cache.
        config: Discovery and chunking options.
    """

    def __init__(
        self,
        repo: Repository,
        provider: EmbeddingProvider,
        config: IndexerConfig | None = None,
    ) -> None:
        self._repo = repo
        self._provider = provider
        self._config = config or IndexerConfig()
        self._cache = EmbeddingCache(repo)
        self._markdown = MarkdownChunker(
            self._config.max_chars, include_breadcrumbs=self._config.include_breadcrumbs
        )
        self._plaintext = PlainTextChunker(self._config.max_chars)
        self._dimensions: int | None = None

    def reindex(self, root_dir: str | Path) -> IndexResult:
        """Bring the store in line with the files under *root_dir*.

        Raises:
            DiscoveryError: If *root_dir* is not a readable directory.
            ProviderError: If embedding fails before any chunk was ever stored.
            DimensionMismatchError: If the provider's vector size changed.
            StorageError: If SQLite rejects a commit.
        """
        root = Path(root_dir).expanduser()
        if not root.is_dir():
            raise DiscoveryError(str(root), "not a directory")

        model = self._provider.model_id
        previous_model = self._repo.get_meta(MODEL_KEY)
        if previous_model and previous_model != model:
            logger.warning(
                "Embedding model changed from '%s' to '%s'; "
                "run 'memindex index --rebuild' if vector sizes differ",
                previous_model,
                model,
            )

        conn = self._repo.conn
        self._dimensions = get_dimensions(conn)
        if self._dimensions is not None and not vec_table_exists(conn):
            try:
                ensure_vec_table(conn, self._dimensions)
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to create the vector index: {exc}") from exc

        result = IndexResult()
        files = self.discover(root)
        result.files_scanned = len(files)
        seen: set[str] = set()

        for abs_path in files:
            rel_path = abs_path.relative_to(root).as_posix()
            seen.add(rel_path)
            try:
                self._index_file(abs_path, rel_path, result)
            except ProviderError as exc:
                if self._repo.stats().chunks == 0:
                    raise
                logger.warning("Skipping %s: %s", rel_path, exc)
                result.files_failed.append(rel_path)
            except OSError as exc:
                logger.warning("Cannot read %s: %s", rel_path, exc)
                result.files_failed.append(rel_path)

        for stale in sorted(set(self._repo.list_file_paths()) - seen):
            try:
                self._repo.delete_file(stale)
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to remove '{stale}': {exc}") from exc
            logger.info("Removed %s", stale)
            result.files_removed += 1

        try:
            self._repo.set_meta(MODEL_KEY, model)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to record the embedding model: {exc}") from exc
        logger.info(
            "Indexed %d/%d files: %d chunks (%d embedded, %d cached), %d removed",
            result.files_changed,
            result.files_scanned,
            result.chunks_indexed,
            result.embeddings_generated,
            result.embeddings_cached,
            result.files_removed,
        )
        return result

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def discover(self, root: Path) -> list[Path]:
        """Return the files to index under *root*, index file first."""
        candidates: list[Path] = []
        index_file = self._find_index_file(root)
        if index_file is not None:
            candidates.append(index_file)

        logs = root / self._config.logs_dir
        if logs.is_dir() and not logs.is_symlink():
            self._walk(logs, candidates)

        unique: list[Path] = []
        keys: set[str] = set()
        for path in candidates:
            key = os.path.realpath(path).lower()
            if key in keys:
                continue
            keys.add(key)
            unique.append(path)
        return unique

    def _find_index_file(self, root: Path) -> Path | None:
        canonical = root / self._config.index_file
        if canonical.is_file():
            return canonical
        wanted = self._config.index_file.lower()
        for entry in self._list_dir(root):
            if entry.name.lower() == wanted and entry.is_file():
                return entry
        return None

    def _walk(self, directory: Path, out: list[Path]) -> None:
        extensions = {e.lower() for e in self._config.extensions}
        for entry in self._list_dir(directory):
            if entry.is_symlink():
                continue
            if entry.is_dir():
                self._walk(entry, out)
            elif entry.is_file() and entry.suffix.lower() in extensions:
                out.append(entry)

    @staticmethod
    def _list_dir(directory: Path) -> list[Path]:
        try:
            return sorted(directory.iterdir())
        except OSError as exc:
            error = DiscoveryError(str(directory), exc.strerror or str(exc))
            logger.warning("%s; treating it as empty", error)
            return []

    # ------------------------------------------------------------------
    # Per-file indexing
    # ------------------------------------------------------------------

    def _index_file(self, abs_path: Path, rel_path: str, result: IndexResult) -> None:
        stat = abs_path.stat()
        content = abs_path.read_bytes().decode("utf-8", errors="replace")
        content_hash = hash_text(content)

        stored = self._repo.get_file(rel_path)
        if stored is not None and stored.content_hash == content_hash:
            logger.debug("Unchanged: %s", rel_path)
            return

        chunks = self._chunker_for(abs_path).chunk(content, rel_path)
        generated, cached = self._embed_chunks(chunks)

        record = MemoryFile(
            path=rel_path,
            content_hash=content_hash,
            mtime=int(stat.st_mtime * 1000),
            size=stat.st_size,
            source=self._config.source,
        )
        try:
            self._repo.replace_file(record, chunks)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to commit '{rel_path}': {exc}") from exc

        logger.debug("Indexed %s: %d chunks", rel_path, len(chunks))
        result.files_changed += 1
        result.chunks_indexed += len(chunks)
        result.embeddings_generated += generated
        result.embeddings_cached += cached

    def _embed_chunks(self, chunks: list[Chunk]) -> tuple[int, int]:
        """Attach a vector to every chunk. Returns (generated, cached) counts."""
        model = self._provider.model_id
        generated = cached = 0
        now = utc_now()
        for chunk in chunks:
            vector = self._cache.get(chunk.hash, model)
            if vector is None:
                vector = self._provider.embed(chunk.text)
                self._check_dimensions(len(vector))
                try:
                    self._cache.put(chunk.hash, model, vector)
                except sqlite3.Error as exc:
                    raise StorageError(f"Failed to cache an embedding: {exc}") from exc
                generated += 1
            else:
                self._check_dimensions(len(vector))
                cached += 1
            chunk.embedding = vector
            chunk.model = model
            chunk.source = self._config.source
            chunk.updated_at = now
        return generated, cached

    def _check_dimensions(self, size: int) -> None:
        if self._dimensions is None:
            try:
                ensure_vec_table(self._repo.conn, size)
            except sqlite3.Error as exc:
                raise StorageError(f"Failed to create the vector index: {exc}") from exc
            self._dimensions = size
            logger.info("Initialized vector index with %d dimensions", size)
        elif size != self._dimensions:
            raise DimensionMismatchError(self._dimensions, size, self._provider.model_id)

    def _chunker_for(self, path: Path) -> BaseChunker:
        if path.suffix.lower() == ".txt":
            return self._plaintext
        return self._markdown


def reindex(
    repo: Repository,
    provider: EmbeddingProvider,
    root_dir: str | Path,
    config: IndexerConfig | None = None,
) -> IndexResult:
    """Convenience wrapper: ``DeltaIndexer(repo, provider, config).reindex(root_dir)``."""
    return DeltaIndexer(repo, provider, config).reindex(root_dir)
