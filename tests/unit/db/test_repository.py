"""Tests for SnapshotRepository save / load."""

from __future__ import annotations

import pytest

from vaultrag.db.models import Chunk, EmbeddingRecord, IndexSnapshot
from vaultrag.db.repository import SnapshotRepository
from vaultrag.db.schema import SNAPSHOT_FORMAT
from vaultrag.db.vectors import list_vec_tables, to_float32

_BACKEND = "http:bge-small"


def _record(doc: str, idx: int, vector: tuple[float, ...], backend: str = _BACKEND) -> EmbeddingRecord:
    chunk = Chunk(doc, idx, f"{doc} text {idx}", start_token=idx * 4, end_token=idx * 4 + 5, fingerprint=f"fp-{doc}")
    return EmbeddingRecord(chunk, to_float32(vector), backend, len(vector))


def _snapshot(*records: EmbeddingRecord, fingerprints: dict | None = None, backend=_BACKEND) -> IndexSnapshot:
    fps = fingerprints if fingerprints is not None else {r.document_id: f"fp-{r.document_id}" for r in records}
    dims = records[0].dimensions if records else None
    return IndexSnapshot(records=records, backend_id=backend, dimensions=dims, built_at=1000.0, fingerprints=fps)


def test_load_without_save_returns_none(tmp_db):
    repo = SnapshotRepository(tmp_db)
    assert repo.load_meta() is None
    assert repo.load() is None


def test_save_then_load_round_trips_everything(tmp_db):
    repo = SnapshotRepository(tmp_db)
    original = _snapshot(
        _record("a.md", 0, (0.1, 0.2, 0.3)),
        _record("a.md", 1, (0.4, 0.5, 0.6)),
        _record("b.md", 0, (0.7, 0.8, 0.9)),
        fingerprints={"a.md": "fp-a.md", "b.md": "fp-b.md", "empty.md": "fp-e"},
    )
    repo.save(original)
    loaded = repo.load()

    assert loaded is not None
    assert loaded.records == original.records
    assert loaded.backend_id == _BACKEND
    assert loaded.dimensions == 3
    assert loaded.built_at == 1000.0
    assert loaded.fingerprints == original.fingerprints
    assert loaded.document_count == 3  # empty.md has no chunks but is indexed
    assert loaded.chunk_count == 3


def test_meta_records_format_version(tmp_db):
    repo = SnapshotRepository(tmp_db)
    repo.save(_snapshot(_record("a", 0, (1.0, 0.0))))
    meta = repo.load_meta()
    assert meta["format_version"] == SNAPSHOT_FORMAT
    assert meta["backend_id"] == _BACKEND
    assert meta["dimensions"] == 2


def test_save_replaces_previous_snapshot(tmp_db):
    repo = SnapshotRepository(tmp_db)
    repo.save(_snapshot(_record("a", 0, (1.0, 0.0)), _record("b", 0, (0.0, 1.0))))
    repo.save(_snapshot(_record("c", 0, (1.0, 1.0))))
    loaded = repo.load()
    assert [r.chunk_id for r in loaded.records] == ["c#0"]
    assert set(loaded.fingerprints) == {"c"}


def test_save_after_backend_change_drops_old_vec_table(tmp_db):
    repo = SnapshotRepository(tmp_db)
    repo.save(_snapshot(_record("a", 0, (1.0, 0.0))))
    repo.save(_snapshot(_record("a", 0, (1.0, 0.0, 0.0), backend="http:other"), backend="http:other"))
    assert list_vec_tables(tmp_db) == ["vec_chunks_http_other"]
    assert repo.load().dimensions == 3


def test_empty_snapshot_round_trips(tmp_db):
    repo = SnapshotRepository(tmp_db)
    repo.save(IndexSnapshot(records=(), backend_id=None, dimensions=None, built_at=5.0, fingerprints={"e": "f"}))
    loaded = repo.load()
    assert loaded.records == ()
    assert loaded.fingerprints == {"e": "f"}


def test_failed_save_rolls_back(tmp_db):
    repo = SnapshotRepository(tmp_db)
    repo.save(_snapshot(_record("a", 0, (1.0, 0.0))))
    broken = IndexSnapshot(
        records=(_record("b", 0, (1.0, 0.0)),),
        backend_id=None,
        dimensions=None,
        built_at=1.0,
        fingerprints={"b": "fp"},
    )
    with pytest.raises(ValueError):
        repo.save(broken)
    loaded = repo.load()
    assert [r.chunk_id for r in loaded.records] == ["a#0"]


def test_clear_removes_snapshot(tmp_db):
    repo = SnapshotRepository(tmp_db)
    repo.save(_snapshot(_record("a", 0, (1.0, 0.0))))
    repo.clear()
    assert repo.load() is None
    assert list_vec_tables(tmp_db) == []
