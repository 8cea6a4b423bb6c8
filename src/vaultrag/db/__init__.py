"""vaultrag persistence layer."""

from vaultrag.db.connection import Database
from vaultrag.db.migrations import MIGRATIONS, run_migrations
from vaultrag.db.repository import SnapshotRepository
from vaultrag.db.schema import SNAPSHOT_FORMAT, initialize
from vaultrag.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "SnapshotRepository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "SNAPSHOT_FORMAT",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
