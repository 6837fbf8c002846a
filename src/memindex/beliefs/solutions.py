"""Error → solution log with running success counters.

Errors and solutions are nodes with deterministic ids; every (error, solution)
pair is a ``solved_by`` edge counting how often the solution was applied to
that error and how often it worked.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from memindex.db.models import to_timestamp
from memindex.db.repository import fts_match_expression
from memindex.exceptions import MalformedInputError, StorageError
from memindex.ingest.hashing import stable_id


@dataclass
class ErrorRecord:
    id: str
    name: str
    context: str | None
    times_encountered: int
    times_solved: int
    success_rate: float
    last_encountered: str


@dataclass
class KnownSolution:
    error: str
    solution: str
    context: str | None
    times_applied: int
    times_worked: int

    @property
    def success_rate(self) -> float:
        return self.times_worked / self.times_applied if self.times_applied else 0.0


def error_id(name: str, context: str | None = None) -> str:
    return stable_id("error", name, context)


def solution_id(name: str) -> str:
    return stable_id("solution", name)


class SolutionLog:
    """Records which solutions fixed which errors."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def record(
        self,
        error: str,
        solution: str,
        worked: bool,
        context: str | None = None,
        timestamp=None,
    ) -> tuple[str, str]:
        """Count one application of *solution* to *error*.

        Returns:
            (error id, solution id)

        Raises:
            MalformedInputError: If either name is blank.
            StorageError: If SQLite rejects the write.
        """
        error = (error or "").strip()
        solution = (solution or "").strip()
        if not error or not solution:
            raise MalformedInputError("Both an error and a solution are required")
        context = (context or "").strip() or None
        when = to_timestamp(timestamp)
        solved = 1 if worked else 0
        eid = error_id(error, context)
        sid = solution_id(solution)

        try:
            with self._conn:
                self._upsert_error(eid, error, context, solved, when)
                self._conn.execute(
                    """
                    INSERT INTO solution_nodes
                        (id, name, times_used, times_successful, success_rate, first_used, last_used)
                    VALUES (?, ?, 1, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        times_used = times_used + 1,
                        times_successful = times_successful + excluded.times_successful,
                        success_rate = CAST(times_successful + excluded.times_successful AS REAL)
                                       / (times_used + 1),
                        last_used = excluded.last_used
                    """,
                    (sid, solution, solved, float(solved), when, when),
                )
                self._conn.execute(
                    """
                    INSERT INTO solved_by
                        (error_id, solution_id, times_applied, times_worked, last_applied)
                    VALUES (?, ?, 1, ?, ?)
                    ON CONFLICT(error_id, solution_id) DO UPDATE SET
                        times_applied = times_applied + 1,
                        times_worked = times_worked + excluded.times_worked,
                        last_applied = excluded.last_applied
                    """,
                    (eid, sid, solved, when),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to record solution for '{error}': {exc}") from exc
        return eid, sid

    def _upsert_error(
        self, eid: str, name: str, context: str | None, solved: int, when: str
    ) -> None:
        row = self._conn.execute(
            "SELECT times_encountered, times_solved FROM error_nodes WHERE id = ?", (eid,)
        ).fetchone()
        if row is None:
            cur = self._conn.execute(
                """
                INSERT INTO error_nodes
                    (id, name, context, times_encountered, times_solved, success_rate,
                     first_encountered, last_encountered)
                VALUES (?, ?, ?, 1, ?, ?, ?, ?)
                """,
                (eid, name, context, solved, float(solved), when, when),
            )
            self._conn.execute(
                "INSERT INTO errors_fts(rowid, name) VALUES (?, ?)", (cur.lastrowid, name)
            )
            return
        encountered = row["times_encountered"] + 1
        times_solved = row["times_solved"] + solved
        self._conn.execute(
            """
            UPDATE error_nodes
            SET times_encountered = ?, times_solved = ?, success_rate = ?, last_encountered = ?
            WHERE id = ?
            """,
            (encountered, times_solved, times_solved / encountered, when, eid),
        )

    def known_solutions(self, limit: int = 10) -> list[KnownSolution]:
        """Error/solution pairs, most reliable first, then most used."""
        rows = self._conn.execute(
            """
            SELECT e.name AS error, s.name AS solution, e.context AS context,
                   sb.times_applied, sb.times_worked
            FROM solved_by sb
            JOIN error_nodes e ON e.id = sb.error_id
            JOIN solution_nodes s ON s.id = sb.solution_id
            ORDER BY CAST(sb.times_worked AS REAL) / sb.times_applied DESC,
                     sb.times_applied DESC, sb.last_applied DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [
            KnownSolution(
                error=r["error"],
                solution=r["solution"],
                context=r["context"],
                times_applied=r["times_applied"],
                times_worked=r["times_worked"],
            )
            for r in rows
        ]

    def search_errors(self, query: str, limit: int = 10) -> list[ErrorRecord]:
        """Keyword search over error names, most relevant first."""
        expression = fts_match_expression(query)
        if not expression:
            return []
        rows = self._conn.execute(
            """
            SELECT e.id, e.name, e.context, e.times_encountered, e.times_solved,
                   e.success_rate, e.last_encountered, bm25(errors_fts) AS score
            FROM errors_fts
            JOIN error_nodes e ON e.seq = errors_fts.rowid
            WHERE errors_fts MATCH ?
            ORDER BY score
            LIMIT ?
            """,
            (expression, limit),
        ).fetchall()
        return [
            ErrorRecord(
                id=r["id"],
                name=r["name"],
                context=r["context"],
                times_encountered=r["times_encountered"],
                times_solved=r["times_solved"],
                success_rate=r["success_rate"],
                last_encountered=r["last_encountered"],
            )
            for r in rows
        ]
