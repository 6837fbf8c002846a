"""Content fingerprints used for change detection, chunk identity and cache keys."""

from __future__ import annotations

import hashlib


def hash_text(text: str) -> str:
    """SHA-256 hex digest of *text* (UTF-8). Stable across processes and platforms."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def stable_id(*parts: str | None) -> str:
    """Deterministic id for a tuple of identity fields.

    Fields are joined positionally (None becomes an empty field, so
    ``("a", None, "b")`` and ``("a", "b", None)`` never collide), then
    lower-cased and trimmed before hashing.
    """
    raw = ":".join((p or "").strip() for p in parts)
    return hash_text(raw.lower().strip())
