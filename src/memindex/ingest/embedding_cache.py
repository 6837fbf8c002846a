"""Content-addressed embedding cache keyed by (text hash, model id).

Entries never expire: identical text under the same model always produces the
same vector, whichever file or chunk it came from.
"""

from __future__ import annotations

from memindex.db.repository import Repository


class EmbeddingCache:
    """Thin counting wrapper over the repository's ``embedding_cache`` table."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo
        self.hits = 0
        self.misses = 0

    def get(self, text_hash: str, model: str) -> list[float] | None:
        vector = self._repo.get_cached_embedding(text_hash, model)
        if vector is None:
            self.misses += 1
        else:
            self.hits += 1
        return vector

    def put(self, text_hash: str, model: str, vector: list[float]) -> None:
        self._repo.put_cached_embedding(text_hash, model, vector)
