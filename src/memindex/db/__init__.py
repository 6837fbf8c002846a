"""memindex database layer."""

from memindex.db.connection import Database
from memindex.db.migrations import MIGRATIONS, run_migrations
from memindex.db.repository import Repository
from memindex.db.schema import initialize
from memindex.db.vectors import VEC_TABLE, ensure_vec_table, get_dimensions

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "VEC_TABLE",
    "ensure_vec_table",
    "get_dimensions",
]
