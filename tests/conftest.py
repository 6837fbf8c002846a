"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
import re

import pytest

from memindex.db.connection import Database
from memindex.db.schema import initialize
from memindex.exceptions import ProviderError
from memindex.ingest.embeddings import EmbeddingProvider, normalize_embedding


class FakeProvider(EmbeddingProvider):
    """Deterministic bag-of-words embeddings; texts sharing words point the same way.

    Args:
        dims: Vector size.
        fail_on: Raise ProviderError for any text containing this substring.
    """

    def __init__(self, model: str = "fake/embed-16", dims: int = 16, fail_on: str | None = None):
        self._model = model
        self._dims = dims
        self.fail_on = fail_on
        self.calls = 0
        self.disposed = False

    @property
    def model_id(self) -> str:
        return self._model

    @property
    def dimensions(self) -> int | None:
        return self._dims

    def embed(self, text: str) -> list[float]:
        self.calls += 1
        if self.fail_on is not None and self.fail_on in text:
            raise ProviderError(f"fake provider refused {self.fail_on!r}")
        vec = [0.0] * self._dims
        for token in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % self._dims
            vec[bucket] += 1.0
        if not any(vec):
            vec[0] = 1.0
        return normalize_embedding(vec)

    def dispose(self) -> None:
        self.disposed = True


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".search-index.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def memory_dir(tmp_path):
    """Memory directory with an index file and two session logs."""
    root = tmp_path / "memory"
    sessions = root / "sessions"
    sessions.mkdir(parents=True)
    (root / "MEMORY.md").write_text(
        "# Preferences\n\nUse pnpm for node projects.\n\n"
        "## Testing\n\nRun pytest with -x before committing.\n",
        encoding="utf-8",
    )
    (sessions / "2024-05-01.md").write_text(
        "# Session\n\nFixed the sqlite locking bug by enabling WAL mode.\n",
        encoding="utf-8",
    )
    (sessions / "notes.txt").write_text(
        "Deployment uses docker compose on the staging host.\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def make_provider():
    """Factory for FakeProvider instances with custom model, size or failure text."""
    return FakeProvider


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from the real ~/.memindex and MEMINDEX_* variables."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    home = tmp_path / "home" / ".memindex"
    monkeypatch.setattr("memindex.config._GLOBAL_CONFIG_PATH", home / "config.yaml")
    monkeypatch.setattr("memindex.config._DEFAULT_MEMORY_DIR", home / "memory")
    for var in ("MEMINDEX_EMBEDDING_MODEL", "MEMINDEX_MEMORY_DIR", "MEMINDEX_DB"):
        monkeypatch.delenv(var, raising=False)
    return home
