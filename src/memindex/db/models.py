"""Domain models for the memindex store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass
class MemoryFile:
    path: str  # relative, forward-slash normalized
    content_hash: str
    mtime: int = 0
    size: int = 0
    source: str = "memory"
    indexed_at: str | None = None


@dataclass
class Chunk:
    id: str
    path: str
    start_line: int  # 1-indexed, inclusive
    end_line: int
    text: str
    hash: str
    embedding: list[float] | None = None
    model: str = ""
    source: str = "memory"
    updated_at: str | None = None
    breadcrumb: str = ""  # not persisted; the prefix is already part of text
    rowid: int | None = None  # set after insert; None for unsaved chunks


@dataclass
class BeliefNode:
    id: str
    subject: str
    predicate: str
    object: str
    confidence: float
    strength: str
    first_observed: str
    last_confirmed: str
    times_confirmed: int = 1
    contradicted: bool = False
    superseded_by: str | None = None  # id only; never resolved into an object graph
    context: str | None = None
    project_scope: str | None = None  # None = global
    provenance: list[str] = field(default_factory=list)

    @property
    def scope_label(self) -> str:
        return self.project_scope or "global"


@dataclass
class ProjectNode:
    name: str
    first_seen: str
    last_seen: str
    session_count: int = 0


@dataclass
class SessionNode:
    id: str
    started_at: str
    project: str | None = None
    summary: str | None = None
    success: bool | None = None


@dataclass
class IndexStats:
    files: int = 0
    chunks: int = 0
    cache_entries: int = 0
    model: str | None = None
    dimensions: int | None = None


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string (lexical order == chronological)."""
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_timestamp(value: datetime | str | None) -> str:
    """Normalize an optional datetime/ISO string to the stored timestamp format."""
    if value is None:
        return utc_now()
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
