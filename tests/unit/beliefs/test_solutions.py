"""Tests for the error → solution log."""

from __future__ import annotations

import pytest

from memindex.beliefs.solutions import KnownSolution, SolutionLog, error_id
from memindex.exceptions import MalformedInputError


@pytest.fixture
def log(tmp_db):
    return SolutionLog(tmp_db)


def test_record_returns_stable_ids(log):
    eid, sid = log.record("ModuleNotFoundError: foo", "pip install -e .", worked=True)
    again = log.record("modulenotfounderror: FOO", "pip install -e .", worked=True)
    assert (eid, sid) == again
    assert eid == error_id("ModuleNotFoundError: foo")


def test_context_separates_errors(log):
    eid_a, _ = log.record("timeout", "raise limit", worked=True, context="ci")
    eid_b, _ = log.record("timeout", "raise limit", worked=True, context="local")
    assert eid_a != eid_b


def test_known_solutions_counts(log):
    log.record("ImportError", "reinstall", worked=True)
    log.record("ImportError", "reinstall", worked=False)
    log.record("ImportError", "restart shell", worked=True)

    known = log.known_solutions()
    assert [(k.solution, k.times_applied, k.times_worked) for k in known] == [
        ("restart shell", 1, 1),
        ("reinstall", 2, 1),
    ]
    assert known[1].success_rate == pytest.approx(0.5)


def test_success_rate_zero_when_unused():
    assert KnownSolution("e", "s", None, 0, 0).success_rate == 0.0


def test_known_solutions_limit(log):
    for i in range(4):
        log.record(f"error {i}", "fix", worked=True)
    assert len(log.known_solutions(limit=2)) == 2


def test_error_counters(tmp_db, log):
    log.record("Segfault", "rebuild", worked=False)
    log.record("Segfault", "rebuild", worked=True)
    row = tmp_db.execute(
        "SELECT times_encountered, times_solved, success_rate FROM error_nodes"
    ).fetchone()
    assert (row[0], row[1]) == (2, 1)
    assert row[2] == pytest.approx(0.5)


def test_solution_counters_span_errors(tmp_db, log):
    log.record("error a", "clear cache", worked=True)
    log.record("error b", "clear cache", worked=False)
    row = tmp_db.execute(
        "SELECT times_used, times_successful, success_rate FROM solution_nodes"
    ).fetchone()
    assert (row[0], row[1]) == (2, 1)
    assert row[2] == pytest.approx(0.5)


@pytest.mark.parametrize(("error", "solution"), [("", "fix"), ("err", "  "), (None, "fix")])
def test_blank_input_rejected(log, error, solution):
    with pytest.raises(MalformedInputError):
        log.record(error, solution, worked=True)


def test_search_errors(log):
    log.record("sqlite database is locked", "enable WAL", worked=True)
    log.record("npm ERR! peer dependency", "use pnpm", worked=True)
    hits = log.search_errors("database locked")
    assert [h.name for h in hits] == ["sqlite database is locked"]
    assert hits[0].times_encountered == 1
    assert hits[0].success_rate == pytest.approx(1.0)
    assert log.search_errors("...") == []
