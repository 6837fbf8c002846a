"""Tests for EmbeddingCache."""

from __future__ import annotations

from memindex.db.repository import Repository
from memindex.ingest.embedding_cache import EmbeddingCache


def test_counts_hits_and_misses(tmp_db):
    cache = EmbeddingCache(Repository(tmp_db))
    assert cache.get("h", "m") is None
    cache.put("h", "m", [1.0, 0.0])
    assert cache.get("h", "m") == [1.0, 0.0]
    assert (cache.hits, cache.misses) == (1, 1)


def test_entries_survive_new_instance(tmp_db):
    EmbeddingCache(Repository(tmp_db)).put("h", "m", [0.5])
    assert EmbeddingCache(Repository(tmp_db)).get("h", "m") == [0.5]
