"""Tests for the Database connection layer."""

from __future__ import annotations

from pathlib import Path

import pytest

from vaultrag.db.connection import Database


def test_connect_creates_file_and_parents(tmp_path):
    db_path = tmp_path / "nested" / "dir" / ".vaultrag.db"
    conn = Database(db_path).connect()
    conn.close()
    assert db_path.exists()


def test_sqlite_vec_loads(tmp_path):
    with Database(tmp_path / ".vaultrag.db") as conn:
        version = conn.execute("SELECT vec_version()").fetchone()[0]
    assert version.startswith("v")


def test_foreign_keys_enabled(tmp_path):
    with Database(tmp_path / ".vaultrag.db") as conn:
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1


def test_wal_journal_mode(tmp_path):
    with Database(tmp_path / ".vaultrag.db") as conn:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"


def test_row_factory_set(tmp_path):
    with Database(tmp_path / ".vaultrag.db") as conn:
        conn.execute("CREATE TABLE t (x INTEGER)")
        conn.execute("INSERT INTO t VALUES (42)")
        assert conn.execute("SELECT x FROM t").fetchone()["x"] == 42


def test_context_manager_closes_connection(tmp_path):
    db = Database(tmp_path / ".vaultrag.db")
    with db as conn:
        conn.execute("SELECT 1")
    with pytest.raises(Exception):
        conn.execute("SELECT 1")


def test_accepts_str_path(tmp_path):
    db = Database(str(tmp_path / ".vaultrag.db"))
    assert isinstance(db.db_path, Path)
