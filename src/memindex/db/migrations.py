"""Forward-only migration runner for the memindex store.

The vector table (vec_chunks) is NOT migration-managed: its dimensionality is only
known after the first embedding, so it is created lazily by ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

# Index side: files, chunks (+ FTS5 postings), content-addressed embedding cache.
_V1_SQL = """
CREATE TABLE IF NOT EXISTS meta (
    key     TEXT PRIMARY KEY,
    value   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS files (
    path            TEXT PRIMARY KEY,
    source          TEXT NOT NULL DEFAULT 'memory',
    content_hash    TEXT NOT NULL,
    mtime           INTEGER NOT NULL DEFAULT 0,
    size            INTEGER NOT NULL DEFAULT 0,
    indexed_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS chunks (
    seq         INTEGER PRIMARY KEY,
    id          TEXT NOT NULL UNIQUE,
    path        TEXT NOT NULL REFERENCES files(path) ON DELETE CASCADE,
    source      TEXT NOT NULL DEFAULT 'memory',
    start_line  INTEGER NOT NULL,
    end_line    INTEGER NOT NULL,
    text        TEXT NOT NULL,
    hash        TEXT NOT NULL,
    embedding   TEXT NOT NULL,
    model       TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chunks_path ON chunks(path);

CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(text, tokenize='porter ascii');

CREATE TABLE IF NOT EXISTS embedding_cache (
    hash        TEXT NOT NULL,
    model       TEXT NOT NULL,
    embedding   TEXT NOT NULL,
    dims        INTEGER NOT NULL,
    updated_at  TEXT NOT NULL,
    PRIMARY KEY (hash, model)
);
"""

# Belief side: belief triples (+ FTS5 over object), projects, sessions,
# error -> solution log.
_V2_SQL = """
CREATE TABLE IF NOT EXISTS beliefs (
    seq             INTEGER PRIMARY KEY,
    id              TEXT NOT NULL UNIQUE,
    subject         TEXT NOT NULL,
    predicate       TEXT NOT NULL CHECK (predicate IN
                        ('prefers','avoids','uses','workflow','believes','dislikes','pattern')),
    object          TEXT NOT NULL,
    confidence      REAL NOT NULL CHECK (confidence >= 0.0 AND confidence <= 1.0),
    strength        TEXT NOT NULL CHECK (strength IN ('strong','moderate','mild')),
    first_observed  TEXT NOT NULL,
    last_confirmed  TEXT NOT NULL,
    times_confirmed INTEGER NOT NULL DEFAULT 1,
    contradicted    INTEGER NOT NULL DEFAULT 0,
    superseded_by   TEXT,
    context         TEXT,
    project_scope   TEXT,
    provenance      TEXT NOT NULL DEFAULT '[]'
);

CREATE INDEX IF NOT EXISTS idx_beliefs_scope ON beliefs(project_scope);
CREATE INDEX IF NOT EXISTS idx_beliefs_predicate ON beliefs(predicate);

CREATE VIRTUAL TABLE IF NOT EXISTS beliefs_fts USING fts5(object, tokenize='porter ascii');

CREATE TABLE IF NOT EXISTS projects (
    name            TEXT PRIMARY KEY,
    first_seen      TEXT NOT NULL,
    last_seen       TEXT NOT NULL,
    session_count   INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS sessions (
    id          TEXT PRIMARY KEY,
    project     TEXT,
    started_at  TEXT NOT NULL,
    summary     TEXT,
    success     INTEGER
);

CREATE TABLE IF NOT EXISTS error_nodes (
    seq                 INTEGER PRIMARY KEY,
    id                  TEXT NOT NULL UNIQUE,
    name                TEXT NOT NULL,
    context             TEXT,
    times_encountered   INTEGER NOT NULL DEFAULT 0,
    times_solved        INTEGER NOT NULL DEFAULT 0,
    success_rate        REAL NOT NULL DEFAULT 0.0,
    first_encountered   TEXT NOT NULL,
    last_encountered    TEXT NOT NULL
);

CREATE VIRTUAL TABLE IF NOT EXISTS errors_fts USING fts5(name, tokenize='porter ascii');

CREATE TABLE IF NOT EXISTS solution_nodes (
    id                  TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    times_used          INTEGER NOT NULL DEFAULT 0,
    times_successful    INTEGER NOT NULL DEFAULT 0,
    success_rate        REAL NOT NULL DEFAULT 0.0,
    first_used          TEXT NOT NULL,
    last_used           TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS solved_by (
    error_id        TEXT NOT NULL REFERENCES error_nodes(id) ON DELETE CASCADE,
    solution_id     TEXT NOT NULL REFERENCES solution_nodes(id) ON DELETE CASCADE,
    times_applied   INTEGER NOT NULL DEFAULT 0,
    times_worked    INTEGER NOT NULL DEFAULT 0,
    last_applied    TEXT NOT NULL,
    PRIMARY KEY (error_id, solution_id)
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
    (2, _V2_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    The vector table is NOT managed here — use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
