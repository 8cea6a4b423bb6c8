"""Per-backend sqlite-vec virtual table management + float32 vector codec."""

from __future__ import annotations

import re
import sqlite3
import struct
from typing import Sequence

import sqlite_vec


def model_to_slug(model: str) -> str:
    """Convert a backend identifier to a valid table name suffix.

    Examples:
        "litellm:openai/text-embedding-3-small" -> "litellm_openai_text_embedding_3_small"
        "http:nomic-embed-text"                  -> "http_nomic_embed_text"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a backend slug."""
    return f"vec_chunks_{model_slug}"


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create vec_chunks_{model_slug} virtual table if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized backend identifier (use model_to_slug() to generate).
        dimensions: Embedding vector dimensions (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name (vec_chunks_{model_slug}).
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}' — use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    existing = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()

    if existing is None:
        conn.execute(
            f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])"
        )

    return table


def list_vec_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the vec0 tables in the database (their shadow tables excluded)."""
    return [
        r[0]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' "
            "AND name LIKE 'vec_chunks_%' AND sql LIKE 'CREATE VIRTUAL TABLE%' ORDER BY name"
        ).fetchall()
    ]


def drop_vec_tables(conn: sqlite3.Connection) -> None:
    """Drop every vec_chunks_* virtual table (their shadow tables go with them)."""
    for table in list_vec_tables(conn):
        conn.execute(f"DROP TABLE IF EXISTS [{table}]")


# ------------------------------------------------------------------
# float32 codec
# ------------------------------------------------------------------


def serialize(vector: Sequence[float]) -> bytes:
    """Pack *vector* into sqlite-vec's compact float32 BLOB format."""
    return sqlite_vec.serialize_float32(list(vector))


def deserialize(blob: bytes) -> tuple[float, ...]:
    """Unpack a float32 BLOB produced by serialize() / stored in a vec0 table."""
    return struct.unpack(f"{len(blob) // 4}f", blob)


def to_float32(vector: Sequence[float]) -> tuple[float, ...]:
    """Round *vector* to float32 precision.

    Vectors are held in memory at the precision they are persisted with, so a
    snapshot reloaded from disk scores queries exactly like the live index.
    """
    return deserialize(serialize(vector))
