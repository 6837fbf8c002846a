"""Tests for memindex beliefs / lessons commands."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from memindex.beliefs.store import BeliefStore, belief_id
from memindex.cli.main import app
from memindex.db.connection import Database
from memindex.db.schema import initialize

runner = CliRunner()


@pytest.fixture
def mem(tmp_path):
    root = tmp_path / "mem"
    root.mkdir()
    return root


def _run(mem, *args: str, **kwargs):
    return runner.invoke(app, [*args, "--memory-dir", str(mem)], **kwargs)


def _store(mem):
    conn = Database(mem / ".search-index.db").connect()
    initialize(conn)
    return conn, BeliefStore(conn)


# ---------------------------------------------------------------------------
# beliefs add / list / search
# ---------------------------------------------------------------------------


def test_add_and_list(mem):
    result = _run(mem, "beliefs", "add", "prefers", "pnpm", "-c", "0.9")
    assert result.exit_code == 0, result.output
    assert "✓" in result.output
    assert "confirmed 1x" in result.output

    listing = _run(mem, "beliefs", "list")
    assert listing.exit_code == 0
    assert "pnpm" in listing.output
    assert "global" in listing.output


def test_add_twice_confirms(mem):
    _run(mem, "beliefs", "add", "prefers", "pnpm", "-c", "0.6")
    result = _run(mem, "beliefs", "add", "prefers", "pnpm", "-c", "0.9")
    assert "confirmed 2x" in result.output


def test_add_project_scoped(mem):
    _run(mem, "beliefs", "add", "uses", "poetry", "--project", "demo")
    _run(mem, "beliefs", "add", "uses", "cargo", "--project", "other")
    result = _run(mem, "beliefs", "list", "--project", "demo")
    assert "poetry" in result.output
    assert "cargo" not in result.output


def test_add_unknown_predicate_exits_1(mem):
    result = _run(mem, "beliefs", "add", "likes", "pnpm")
    assert result.exit_code == 1
    assert "Unknown predicate" in result.output


def test_confidence_out_of_range_rejected(mem):
    result = _run(mem, "beliefs", "add", "prefers", "pnpm", "-c", "1.5")
    assert result.exit_code != 0


def test_list_empty(mem):
    result = _run(mem, "beliefs", "list")
    assert result.exit_code == 0
    assert "No beliefs found." in result.output


def test_search(mem):
    _run(mem, "beliefs", "add", "prefers", "pnpm over npm")
    _run(mem, "beliefs", "add", "uses", "ruff")
    result = _run(mem, "beliefs", "search", "npm")
    assert result.exit_code == 0
    assert "pnpm over npm" in result.output
    assert "ruff" not in result.output
    assert "No matching beliefs." in _run(mem, "beliefs", "search", "zsh").output


# ---------------------------------------------------------------------------
# beliefs import
# ---------------------------------------------------------------------------


def test_import_file(mem, tmp_path):
    payload = tmp_path / "beliefs.json"
    payload.write_text(
        json.dumps(
            {
                "beliefs": [
                    {"predicate": "prefers", "object": "pnpm", "confidence": 0.9},
                    {"predicate": "avoids", "object": "sudo pip", "confidence": 0.8},
                ]
            }
        ),
        encoding="utf-8",
    )
    result = _run(mem, "beliefs", "import", str(payload), "--project", "demo")
    assert result.exit_code == 0, result.output
    assert "Imported 2 belief(s) from beliefs.json" in result.output

    conn, store = _store(mem)
    try:
        belief = store.get_belief(belief_id("developer", "prefers", "pnpm"))
        assert belief.provenance == ["beliefs.json"]
        assert store.get_project("demo") is not None
    finally:
        conn.close()


def test_import_stdin(mem):
    raw = '[{"predicate": "uses", "object": "ruff", "confidence": 0.7}]'
    result = _run(mem, "beliefs", "import", "-", input=raw)
    assert result.exit_code == 0, result.output
    assert "from stdin" in result.output


def test_import_malformed_writes_nothing(mem, tmp_path):
    payload = tmp_path / "bad.json"
    payload.write_text(
        '[{"predicate": "prefers", "object": "pnpm", "confidence": 0.9},'
        ' {"predicate": "prefers", "object": "yarn", "confidence": 7}]',
        encoding="utf-8",
    )
    result = _run(mem, "beliefs", "import", str(payload))
    assert result.exit_code == 1
    conn, store = _store(mem)
    try:
        assert store.stats()["beliefs"] == 0
    finally:
        conn.close()


def test_import_missing_file(mem, tmp_path):
    result = _run(mem, "beliefs", "import", str(tmp_path / "nope.json"))
    assert result.exit_code == 1
    assert "File not found" in result.output


# ---------------------------------------------------------------------------
# beliefs contradict
# ---------------------------------------------------------------------------


def test_contradict(mem):
    _run(mem, "beliefs", "add", "prefers", "npm")
    _run(mem, "beliefs", "add", "prefers", "pnpm")
    old = belief_id("developer", "prefers", "npm")
    new = belief_id("developer", "prefers", "pnpm")

    result = _run(mem, "beliefs", "contradict", old, "--superseded-by", new)
    assert result.exit_code == 0, result.output
    assert "Contradicted" in result.output

    listing = _run(mem, "beliefs", "list")
    assert "npm" not in listing.output.replace("pnpm", "")
    assert "npm" in _run(mem, "beliefs", "list", "--include-contradicted").output.replace(
        "pnpm", ""
    )


def test_contradict_unknown_exits_1(mem):
    result = _run(mem, "beliefs", "contradict", "deadbeef")
    assert result.exit_code == 1
    assert "No belief with id" in result.output


def test_contradict_cycle_exits_1(mem):
    _run(mem, "beliefs", "add", "prefers", "a")
    a = belief_id("developer", "prefers", "a")
    result = _run(mem, "beliefs", "contradict", a, "--superseded-by", a)
    assert result.exit_code == 1


# ---------------------------------------------------------------------------
# lessons
# ---------------------------------------------------------------------------


def test_lessons_record_and_list(mem):
    assert _run(mem, "lessons", "record", "ImportError", "reinstall").exit_code == 0
    result = _run(mem, "lessons", "record", "ImportError", "reinstall", "--failed")
    assert result.exit_code == 0
    assert "failed" in result.output

    listing = _run(mem, "lessons", "list")
    assert listing.exit_code == 0
    assert "ImportError" in listing.output
    assert "50%" in listing.output


def test_lessons_list_empty(mem):
    assert "No lessons recorded yet." in _run(mem, "lessons", "list").output


def test_lessons_blank_error_exits_1(mem):
    result = _run(mem, "lessons", "record", " ", "reinstall")
    assert result.exit_code == 1
