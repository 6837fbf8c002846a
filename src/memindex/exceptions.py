"""Exception hierarchy shared by the indexer, retriever and belief store.

Recovery rules:
  DiscoveryError         — recovered locally; the directory is treated as empty.
  ProviderError          — recovered per file during indexing (file left untouched);
                           fatal when no vector dimensionality has been established yet.
  DimensionMismatchError — always fatal; requires ``memindex index --rebuild``.
  StorageError           — fatal for the current operation; no partial commit.
  MalformedInputError    — recovered locally (frontmatter) or rejected without
                           mutating the store (belief payloads).
"""

from __future__ import annotations


class MemIndexError(Exception):
    """Base class for all memindex errors."""


class DiscoveryError(MemIndexError):
    """A directory under the memory root could not be listed."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot list directory '{path}': {reason}")
        self.path = path


class ProviderError(MemIndexError):
    """The embedding provider failed or is unavailable."""


class DimensionMismatchError(MemIndexError):
    """An embedding's dimensionality disagrees with the initialized vector index."""

    def __init__(self, expected: int, actual: int, model: str = "") -> None:
        detail = f" (model '{model}')" if model else ""
        super().__init__(
            f"Embedding has {actual} dimensions{detail} but the index was built with "
            f"{expected}. Rebuild the index to switch embedding models."
        )
        self.expected = expected
        self.actual = actual


class StorageError(MemIndexError):
    """The underlying SQLite store rejected a read or write."""


class MalformedInputError(MemIndexError, ValueError):
    """Frontmatter or a belief payload could not be parsed."""
