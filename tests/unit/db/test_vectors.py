"""Tests for the sqlite-vec table management."""

from __future__ import annotations

import pytest

from memindex.db.vectors import (
    VEC_TABLE,
    drop_vec_table,
    ensure_vec_table,
    get_dimensions,
    vec_table_exists,
)
from memindex.exceptions import DimensionMismatchError


def test_cold_store_has_no_dimensions(tmp_db):
    assert get_dimensions(tmp_db) is None
    assert not vec_table_exists(tmp_db)


def test_ensure_vec_table_creates_table_and_records_dims(tmp_db):
    name = ensure_vec_table(tmp_db, 8)
    assert name == VEC_TABLE
    assert vec_table_exists(tmp_db)
    assert get_dimensions(tmp_db) == 8


def test_ensure_vec_table_idempotent(tmp_db):
    ensure_vec_table(tmp_db, 8)
    ensure_vec_table(tmp_db, 8)
    assert get_dimensions(tmp_db) == 8


def test_ensure_vec_table_rejects_other_dimensions(tmp_db):
    ensure_vec_table(tmp_db, 8)
    with pytest.raises(DimensionMismatchError) as exc_info:
        ensure_vec_table(tmp_db, 16)
    assert exc_info.value.expected == 8
    assert exc_info.value.actual == 16


def test_ensure_vec_table_rejects_zero(tmp_db):
    with pytest.raises(ValueError):
        ensure_vec_table(tmp_db, 0)


def test_drop_vec_table_resets_dimensions(tmp_db):
    ensure_vec_table(tmp_db, 8)
    drop_vec_table(tmp_db)
    assert not vec_table_exists(tmp_db)
    assert get_dimensions(tmp_db) is None
    ensure_vec_table(tmp_db, 4)
    assert get_dimensions(tmp_db) == 4
