"""sqlite-vec virtual table management for chunk embeddings.

There is exactly one vector table. Its dimensionality is fixed by the first
embedding ever stored and recorded in ``meta.embedding_dimensions``; a later
embedding with a different size is a configuration error, never coerced.
"""

from __future__ import annotations

import sqlite3

from memindex.exceptions import DimensionMismatchError

VEC_TABLE = "vec_chunks"

_DIMENSIONS_KEY = "embedding_dimensions"


def vec_table_exists(conn: sqlite3.Connection) -> bool:
    """Return True if the vector table has been created."""
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (VEC_TABLE,)
    ).fetchone()
    return row is not None


def get_dimensions(conn: sqlite3.Connection) -> int | None:
    """Return the recorded embedding dimensionality, or None for a cold store."""
    row = conn.execute("SELECT value FROM meta WHERE key = ?", (_DIMENSIONS_KEY,)).fetchone()
    if row is None:
        return None
    try:
        dims = int(row["value"])
    except (TypeError, ValueError):
        return None
    return dims if dims > 0 else None


def ensure_vec_table(conn: sqlite3.Connection, dimensions: int) -> str:
    """Create the vector table for *dimensions* if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name.

    Raises:
        ValueError: If *dimensions* < 1.
        DimensionMismatchError: If the store was initialized with another size.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    existing_dims = get_dimensions(conn)
    if existing_dims is not None and existing_dims != dimensions:
        raise DimensionMismatchError(existing_dims, dimensions)

    if not vec_table_exists(conn):
        conn.execute(
            f"CREATE VIRTUAL TABLE {VEC_TABLE} USING vec0("
            f"embedding float[{dimensions}] distance_metric=cosine)"
        )

    if existing_dims is None:
        conn.execute(
            "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
            (_DIMENSIONS_KEY, str(dimensions)),
        )
    conn.commit()
    return VEC_TABLE


def drop_vec_table(conn: sqlite3.Connection) -> None:
    """Drop the vector table and forget the recorded dimensionality."""
    conn.execute(f"DROP TABLE IF EXISTS {VEC_TABLE}")
    conn.execute("DELETE FROM meta WHERE key = ?", (_DIMENSIONS_KEY,))
    conn.commit()
