"""Tests for memindex rich error messages."""

from __future__ import annotations

import pytest

from memindex.cli.errors import (
    err_belief_not_found,
    err_config,
    err_dimension_mismatch,
    err_invalid_input,
    err_memory_dir_missing,
    err_no_index,
    err_provider,
    err_storage,
)


def _has_action(msg: str) -> bool:
    """Every error must say how to fix it."""
    lower = msg.lower()
    return any(kw in lower for kw in ["run:", "fix ", "create it", "rebuild", "retry", "check "])


@pytest.mark.parametrize(
    "msg",
    [
        err_provider("openai/text-embedding-3-small", "timeout"),
        err_config("bad key"),
        err_memory_dir_missing("/tmp/mem"),
        err_no_index("/tmp/mem/.search-index.db"),
        err_dimension_mismatch("768 vs 1536"),
        err_storage("disk full"),
        err_belief_not_found("abc123"),
    ],
)
def test_errors_are_actionable(msg):
    assert msg.startswith("[red]Error:[/]")
    assert _has_action(msg)


def test_dimension_mismatch_points_at_rebuild():
    assert "memindex index --rebuild" in err_dimension_mismatch("x")


def test_no_index_points_at_index():
    msg = err_no_index("/data/.search-index.db")
    assert "/data/.search-index.db" in msg
    assert "memindex index" in msg


def test_markup_in_detail_is_escaped():
    msg = err_invalid_input("bad [bold]value[/bold]")
    assert "\\[bold]" in msg


def test_belief_not_found_mentions_id():
    assert "abc123" in err_belief_not_found("abc123")
