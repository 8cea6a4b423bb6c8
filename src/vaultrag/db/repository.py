"""Repository for the persisted index snapshot.

One snapshot per database: a meta row (format, backend id, dimensions, build
time), the indexed documents with their fingerprints, the chunk rows, and the
vectors in a per-backend sqlite-vec table keyed by chunk rowid.
"""

from __future__ import annotations

import sqlite3
import time

from vaultrag.db.models import Chunk, EmbeddingRecord, IndexSnapshot
from vaultrag.db.schema import SNAPSHOT_FORMAT
from vaultrag.db.vectors import (
    deserialize,
    drop_vec_tables,
    ensure_vec_table,
    model_to_slug,
    serialize,
    vec_table_name,
)


class SnapshotRepository:
    """Data access layer for the persisted index snapshot.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see vaultrag.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def save(self, snapshot: IndexSnapshot) -> None:
        """Replace the persisted snapshot with *snapshot* in one transaction."""
        if snapshot.records and (not snapshot.backend_id or not snapshot.dimensions):
            raise ValueError("snapshot with records needs backend_id and dimensions")
        conn = self._conn
        try:
            conn.execute("BEGIN")
            self._delete_all()
            conn.execute(
                """
                INSERT INTO snapshot_meta (id, format_version, backend_id, dimensions, built_at)
                VALUES (1, ?, ?, ?, ?)
                """,
                (
                    SNAPSHOT_FORMAT,
                    snapshot.backend_id,
                    snapshot.dimensions,
                    snapshot.built_at if snapshot.built_at is not None else time.time(),
                ),
            )
            conn.executemany(
                "INSERT INTO documents (id, fingerprint) VALUES (?, ?)",
                sorted(snapshot.fingerprints.items()),
            )

            if snapshot.records:
                table = ensure_vec_table(
                    conn, model_to_slug(snapshot.backend_id), snapshot.dimensions
                )
                for record in snapshot.records:
                    rowid = self._insert_chunk(record.chunk)
                    conn.execute(
                        f"INSERT INTO {table}(rowid, embedding) VALUES (?, ?)",
                        (rowid, serialize(record.vector)),
                    )
            conn.commit()
        except BaseException:
            conn.rollback()
            raise

    def clear(self) -> None:
        """Delete the persisted snapshot."""
        try:
            self._conn.execute("BEGIN")
            self._delete_all()
            self._conn.commit()
        except BaseException:
            self._conn.rollback()
            raise

    def _delete_all(self) -> None:
        drop_vec_tables(self._conn)
        self._conn.execute("DELETE FROM chunks")
        self._conn.execute("DELETE FROM documents")
        self._conn.execute("DELETE FROM snapshot_meta")

    def _insert_chunk(self, chunk: Chunk) -> int:
        cur = self._conn.execute(
            """
            INSERT INTO chunks
                (chunk_id, document_id, chunk_index, start_token, end_token, text, fingerprint)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.chunk_id,
                chunk.document_id,
                chunk.chunk_index,
                chunk.start_token,
                chunk.end_token,
                chunk.text,
                chunk.fingerprint,
            ),
        )
        return cur.lastrowid

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load_meta(self) -> sqlite3.Row | None:
        """Return the snapshot meta row, or None if nothing was ever saved."""
        return self._conn.execute(
            "SELECT format_version, backend_id, dimensions, built_at FROM snapshot_meta WHERE id = 1"
        ).fetchone()

    def load(self) -> IndexSnapshot | None:
        """Return the persisted snapshot, or None if nothing was saved.

        Compatibility with the configured backend is checked by the caller.
        """
        meta = self.load_meta()
        if meta is None:
            return None

        fingerprints = {
            r["id"]: r["fingerprint"]
            for r in self._conn.execute("SELECT id, fingerprint FROM documents").fetchall()
        }

        backend_id = meta["backend_id"]
        dimensions = meta["dimensions"]
        records: list[EmbeddingRecord] = []
        if backend_id and dimensions:
            table = vec_table_name(model_to_slug(backend_id))
            exists = self._conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
            ).fetchone()
            if exists is not None:
                records = self._load_records(table, backend_id, dimensions)

        return IndexSnapshot(
            records=tuple(records),
            backend_id=backend_id,
            dimensions=dimensions,
            built_at=meta["built_at"],
            fingerprints=fingerprints,
        )

    def _load_records(self, table: str, backend_id: str, dimensions: int) -> list[EmbeddingRecord]:
        vectors = {
            r["rowid"]: r["embedding"]
            for r in self._conn.execute(f"SELECT rowid, embedding FROM {table}").fetchall()
        }
        rows = self._conn.execute(
            """
            SELECT rowid, document_id, chunk_index, start_token, end_token, text, fingerprint
            FROM chunks ORDER BY document_id, chunk_index
            """
        ).fetchall()

        records: list[EmbeddingRecord] = []
        for row in rows:
            blob = vectors.get(row["rowid"])
            if blob is None:
                continue
            records.append(
                EmbeddingRecord(
                    chunk=_row_to_chunk(row),
                    vector=deserialize(blob),
                    backend_id=backend_id,
                    dimensions=dimensions,
                )
            )
        return records


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        text=row["text"],
        start_token=row["start_token"],
        end_token=row["end_token"],
        fingerprint=row["fingerprint"],
    )
