"""Database schema initialization."""

from __future__ import annotations

import sqlite3

# Bumped when the persisted snapshot layout changes incompatibly;
# snapshots written with another format are discarded on load.
SNAPSHOT_FORMAT = 1


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    from vaultrag.db.migrations import run_migrations

    run_migrations(conn)
