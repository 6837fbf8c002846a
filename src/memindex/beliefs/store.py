"""Belief store — (subject, predicate, object) triples with monotonic confidence.

A belief's id is a pure function of subject, predicate, object, context and
project scope, so observing the same belief again always lands on the same row:
confidence becomes the max of old and new, ``times_confirmed`` is incremented
and the source reference joins the provenance list. Rows are never deleted;
contradiction flips a flag and may point at a newer belief.

Projects and sessions are thin metadata used to scope beliefs and provenance.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from memindex.db.models import BeliefNode, ProjectNode, SessionNode, to_timestamp
from memindex.db.repository import fts_match_expression
from memindex.exceptions import MalformedInputError, StorageError
from memindex.ingest.hashing import stable_id

logger = logging.getLogger(__name__)

PREDICATES: tuple[str, ...] = (
    "prefers",
    "avoids",
    "uses",
    "workflow",
    "believes",
    "dislikes",
    "pattern",
)

DEFAULT_SUBJECT = "developer"

_BELIEF_COLUMNS = (
    "id, subject, predicate, object, confidence, strength, first_observed, last_confirmed, "
    "times_confirmed, contradicted, superseded_by, context, project_scope, provenance"
)


@dataclass
class BeliefObservation:
    """One observed triple, before it is merged into the store."""

    predicate: str
    object: str
    confidence: float
    subject: str = DEFAULT_SUBJECT
    context: str | None = None
    project_scope: str | None = None

    def __post_init__(self) -> None:
        self.predicate = (self.predicate or "").strip().lower()
        self.subject = (self.subject or "").strip() or DEFAULT_SUBJECT
        self.object = (self.object or "").strip()
        self.context = _clean_optional(self.context)
        self.project_scope = _clean_optional(self.project_scope)

    def validate(self) -> None:
        """Raise MalformedInputError unless the observation can be stored."""
        if self.predicate not in PREDICATES:
            raise MalformedInputError(
                f"Unknown predicate '{self.predicate}'. Expected one of: {', '.join(PREDICATES)}"
            )
        if not self.object:
            raise MalformedInputError("Belief object must not be empty")
        if isinstance(self.confidence, bool) or not isinstance(self.confidence, (int, float)):
            raise MalformedInputError(f"Confidence must be a number, got {self.confidence!r}")
        if not 0.0 <= float(self.confidence) <= 1.0:
            raise MalformedInputError(f"Confidence must be within [0, 1], got {self.confidence}")

    @property
    def id(self) -> str:
        return belief_id(
            self.subject, self.predicate, self.object, self.context, self.project_scope
        )


def belief_id(
    subject: str,
    predicate: str,
    obj: str,
    context: str | None = None,
    project_scope: str | None = None,
) -> str:
    """Deterministic belief id over the lower-cased, trimmed triple and scope."""
    return stable_id(subject, predicate, obj, context, project_scope)


def strength_for(confidence: float) -> str:
    """Display banding of *confidence*: strong, moderate or mild."""
    if confidence >= 0.8:
        return "strong"
    if confidence >= 0.5:
        return "moderate"
    return "mild"


class BeliefStore:
    """Persisted belief graph sharing the index's SQLite connection.

    Args:
        conn: Open connection with the schema initialized.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_belief(
        self,
        predicate: str,
        obj: str,
        confidence: float,
        source_ref: str | None = None,
        timestamp=None,
        *,
        subject: str = DEFAULT_SUBJECT,
        context: str | None = None,
        project_scope: str | None = None,
    ) -> str:
        """Record one observation of a belief and return its id.

        Raises:
            MalformedInputError: If the predicate, object or confidence is invalid.
            StorageError: If SQLite rejects the write.
        """
        observation = BeliefObservation(
            predicate=predicate,
            object=obj,
            confidence=confidence,
            subject=subject,
            context=context,
            project_scope=project_scope,
        )
        return self.upsert_beliefs([observation], source_ref, timestamp)[0]

    def upsert_beliefs(
        self,
        observations: Sequence[BeliefObservation],
        source_ref: str | None = None,
        timestamp=None,
    ) -> list[str]:
        """Validate every observation, then merge them all in one transaction.

        A single invalid observation rejects the whole batch before anything
        is written.
        """
        for observation in observations:
            observation.validate()
        when = to_timestamp(timestamp)
        ids: list[str] = []
        try:
            with self._conn:
                for observation in observations:
                    ids.append(self._merge(observation, source_ref, when))
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to write beliefs: {exc}") from exc
        return ids

    def _merge(self, obs: BeliefObservation, source_ref: str | None, when: str) -> str:
        """Insert or update one belief (caller owns the transaction)."""
        bid = obs.id
        confidence = float(obs.confidence)
        row = self._conn.execute(
            "SELECT confidence, provenance FROM beliefs WHERE id = ?", (bid,)
        ).fetchone()

        if row is None:
            provenance = [source_ref] if source_ref else []
            cur = self._conn.execute(
                """
                INSERT INTO beliefs
                    (id, subject, predicate, object, confidence, strength,
                     first_observed, last_confirmed, times_confirmed, contradicted,
                     superseded_by, context, project_scope, provenance)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, 0, NULL, ?, ?, ?)
                """,
                (
                    bid,
                    obs.subject,
                    obs.predicate,
                    obs.object,
                    confidence,
                    strength_for(confidence),
                    when,
                    when,
                    obs.context,
                    obs.project_scope,
                    json.dumps(provenance),
                ),
            )
            self._conn.execute(
                "INSERT INTO beliefs_fts(rowid, object) VALUES (?, ?)",
                (cur.lastrowid, obs.object),
            )
            logger.debug("New belief %s: %s %s", bid[:12], obs.predicate, obs.object)
            return bid

        merged = max(float(row["confidence"]), confidence)
        provenance = json.loads(row["provenance"] or "[]")
        if source_ref and source_ref not in provenance:
            provenance.append(source_ref)
        self._conn.execute(
            """
            UPDATE beliefs
            SET confidence = ?, strength = ?, last_confirmed = ?,
                times_confirmed = times_confirmed + 1, provenance = ?
            WHERE id = ?
            """,
            (merged, strength_for(merged), when, json.dumps(provenance), bid),
        )
        return bid

    def contradict_belief(self, belief_id: str, superseded_by: str | None = None) -> bool:
        """Mark a belief contradicted, optionally naming its successor.

        The row is kept. Returns False if no belief has *belief_id*.

        Raises:
            MalformedInputError: If *superseded_by* would make the chain cyclic.
        """
        if superseded_by is not None:
            self._check_successor(belief_id, superseded_by)
        try:
            with self._conn:
                cur = self._conn.execute(
                    "UPDATE beliefs SET contradicted = 1, "
                    "superseded_by = COALESCE(?, superseded_by) WHERE id = ?",
                    (superseded_by, belief_id),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to contradict belief '{belief_id}': {exc}") from exc
        return cur.rowcount > 0

    def _check_successor(self, belief_id: str, successor: str) -> None:
        seen = {belief_id}
        current: str | None = successor
        while current is not None:
            if current in seen:
                raise MalformedInputError(
                    f"Belief '{successor}' cannot supersede '{belief_id}': the chain would loop"
                )
            seen.add(current)
            row = self._conn.execute(
                "SELECT superseded_by FROM beliefs WHERE id = ?", (current,)
            ).fetchone()
            current = row["superseded_by"] if row else None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_belief(self, belief_id: str) -> BeliefNode | None:
        row = self._conn.execute(
            f"SELECT {_BELIEF_COLUMNS} FROM beliefs WHERE id = ?", (belief_id,)
        ).fetchone()
        return _row_to_belief(row) if row else None

    def query_beliefs(
        self,
        predicate: str | Iterable[str] | None = None,
        subject: str | None = None,
        project_scope: str | None = None,
        global_only: bool = False,
        include_contradicted: bool = False,
        limit: int = 50,
        project_only: bool = False,
    ) -> list[BeliefNode]:
        """Return beliefs ordered by confidence, then recency.

        Scoping:
          - ``global_only``: only global (unscoped) beliefs.
          - ``project_scope``: global beliefs plus those of exactly that project
            (only the project's own with ``project_only``).
          - neither: every scope.
        """
        clauses: list[str] = []
        params: list = []
        if predicate is not None:
            predicates = [predicate] if isinstance(predicate, str) else list(predicate)
            if not predicates:
                return []
            clauses.append(f"predicate IN ({','.join('?' * len(predicates))})")
            params.extend(p.strip().lower() for p in predicates)
        if subject is not None:
            clauses.append("subject = ?")
            params.append(subject)
        if global_only:
            clauses.append("project_scope IS NULL")
        elif project_scope is not None and project_only:
            clauses.append("project_scope = ?")
            params.append(project_scope)
        elif project_scope is not None:
            clauses.append("(project_scope IS NULL OR project_scope = ?)")
            params.append(project_scope)
        if not include_contradicted:
            clauses.append("contradicted = 0")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._conn.execute(
            f"SELECT {_BELIEF_COLUMNS} FROM beliefs {where} "
            "ORDER BY confidence DESC, last_confirmed DESC LIMIT ?",
            (*params, limit),
        ).fetchall()
        return [_row_to_belief(r) for r in rows]

    def search_beliefs(self, query: str, limit: int = 10) -> list[tuple[BeliefNode, float]]:
        """Keyword search over belief objects; contradicted beliefs are excluded.

        Returns (belief, relevance) pairs, most relevant first.
        """
        expression = fts_match_expression(query)
        if not expression:
            return []
        columns = ", ".join(f"b.{c.strip()}" for c in _BELIEF_COLUMNS.split(","))
        rows = self._conn.execute(
            f"SELECT {columns}, bm25(beliefs_fts) AS score FROM beliefs_fts "
            "JOIN beliefs b ON b.seq = beliefs_fts.rowid "
            "WHERE beliefs_fts MATCH ? AND b.contradicted = 0 "
            "ORDER BY score LIMIT ?",
            (expression, limit),
        ).fetchall()
        return [(_row_to_belief(r), -float(r["score"])) for r in rows]

    # ------------------------------------------------------------------
    # Projects and sessions
    # ------------------------------------------------------------------

    def touch_project(self, name: str, timestamp=None) -> None:
        """Create *name* or extend its last-seen time."""
        when = to_timestamp(timestamp)
        try:
            with self._conn:
                self._touch_project(name, when)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to update project '{name}': {exc}") from exc

    def _touch_project(self, name: str, when: str) -> None:
        self._conn.execute(
            """
            INSERT INTO projects (name, first_seen, last_seen, session_count)
            VALUES (?, ?, ?, 0)
            ON CONFLICT(name) DO UPDATE SET
                first_seen = MIN(first_seen, excluded.first_seen),
                last_seen = MAX(last_seen, excluded.last_seen)
            """,
            (name, when, when),
        )

    def record_session(
        self,
        session_id: str,
        project: str | None = None,
        started_at=None,
        summary: str | None = None,
        success: bool | None = None,
    ) -> bool:
        """Record a session; a new one bumps its project's session count.

        Returns True if the session was new.
        """
        when = to_timestamp(started_at)
        success_value = None if success is None else int(success)
        try:
            with self._conn:
                exists = self._conn.execute(
                    "SELECT 1 FROM sessions WHERE id = ?", (session_id,)
                ).fetchone()
                if exists:
                    self._conn.execute(
                        "UPDATE sessions SET summary = COALESCE(?, summary), "
                        "success = COALESCE(?, success) WHERE id = ?",
                        (summary, success_value, session_id),
                    )
                    return False
                self._conn.execute(
                    "INSERT INTO sessions (id, project, started_at, summary, success) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (session_id, project, when, summary, success_value),
                )
                if project:
                    self._touch_project(project, when)
                    self._conn.execute(
                        "UPDATE projects SET session_count = session_count + 1 WHERE name = ?",
                        (project,),
                    )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to record session '{session_id}': {exc}") from exc
        return True

    def get_project(self, name: str) -> ProjectNode | None:
        row = self._conn.execute(
            "SELECT name, first_seen, last_seen, session_count FROM projects WHERE name = ?",
            (name,),
        ).fetchone()
        if row is None:
            return None
        return ProjectNode(
            name=row["name"],
            first_seen=row["first_seen"],
            last_seen=row["last_seen"],
            session_count=row["session_count"],
        )

    def get_session(self, session_id: str) -> SessionNode | None:
        row = self._conn.execute(
            "SELECT id, project, started_at, summary, success FROM sessions WHERE id = ?",
            (session_id,),
        ).fetchone()
        if row is None:
            return None
        return SessionNode(
            id=row["id"],
            project=row["project"],
            started_at=row["started_at"],
            summary=row["summary"],
            success=None if row["success"] is None else bool(row["success"]),
        )

    def stats(self) -> dict[str, int]:
        """Belief, project, session and error/solution counts."""
        def count(sql: str) -> int:
            return self._conn.execute(sql).fetchone()[0]

        return {
            "beliefs": count("SELECT COUNT(*) FROM beliefs WHERE contradicted = 0"),
            "contradicted": count("SELECT COUNT(*) FROM beliefs WHERE contradicted = 1"),
            "projects": count("SELECT COUNT(*) FROM projects"),
            "sessions": count("SELECT COUNT(*) FROM sessions"),
            "errors": count("SELECT COUNT(*) FROM error_nodes"),
            "solutions": count("SELECT COUNT(*) FROM solution_nodes"),
        }


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def detect_project(cwd: str | Path | None = None) -> str | None:
    """Name of the git repository containing *cwd*, or None outside a repository."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=cwd,
            shell=False,
            capture_output=True,
            text=True,
            check=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    top = result.stdout.strip()
    if not top:
        return None
    return Path(top).name or None


def _clean_optional(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _row_to_belief(row: sqlite3.Row) -> BeliefNode:
    return BeliefNode(
        id=row["id"],
        subject=row["subject"],
        predicate=row["predicate"],
        object=row["object"],
        confidence=row["confidence"],
        strength=row["strength"],
        first_observed=row["first_observed"],
        last_confirmed=row["last_confirmed"],
        times_confirmed=row["times_confirmed"],
        contradicted=bool(row["contradicted"]),
        superseded_by=row["superseded_by"],
        context=row["context"],
        project_scope=row["project_scope"],
        provenance=json.loads(row["provenance"] or "[]"),
    )
