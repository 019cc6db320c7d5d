"""Database schema initialization."""

from __future__ import annotations

import sqlite3

from vaultrag.db.migrations import MIGRATIONS, run_migrations

CURRENT_VERSION = MIGRATIONS[-1][0]


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    run_migrations(conn)


def drop_all(conn: sqlite3.Connection) -> None:
    """Drop every vaultrag table, including vec tables and schema_version.

    reconcile_lease is kept so a pass running in another process keeps its claim.
    """
    names = [
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND (name LIKE 'vec_documents_%' OR name LIKE 'vec_chunks_%')"
        ).fetchall()
    ]
    # vec0 shadow tables disappear with their virtual table.
    vec_tables = [n for n in names if _is_vec_root(conn, n)]
    for table in vec_tables:
        conn.execute(f"DROP TABLE IF EXISTS [{table}]")  # noqa: S608
    for table in ("chunks", "documents", "schema_version"):
        conn.execute(f"DROP TABLE IF EXISTS {table}")
    conn.commit()


def _is_vec_root(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT sql FROM sqlite_master WHERE type='table' AND name = ?", (name,)
    ).fetchone()
    return row is not None and row[0] is not None and "USING vec0" in row[0]
