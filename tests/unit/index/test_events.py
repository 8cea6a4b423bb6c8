"""Tests for document change events and the EventPump."""

from __future__ import annotations

import queue
from unittest.mock import MagicMock

import pytest

from vaultrag.index.events import DocumentEvent, EventKind, EventPump, EventQueue
from vaultrag.index.manager import UpdateOutcome

_WAIT = 5


@pytest.fixture
def pump(make_manager):
    manager = make_manager()
    manager.build_index()
    pump = EventPump(manager)
    pump.start()
    yield pump
    pump.stop(_WAIT)


# --- DocumentEvent / EventQueue ---

def test_rename_event_requires_old_id():
    with pytest.raises(ValueError):
        DocumentEvent(EventKind.RENAMED, "new.md")


def test_queue_helpers_build_events_in_order():
    events = EventQueue()
    events.created("a.md")
    events.modified("a.md")
    events.renamed("a.md", "b.md")
    events.deleted("b.md")

    assert len(events) == 4
    got = [events.get(timeout=0) for _ in range(4)]
    assert [e.kind for e in got] == [
        EventKind.CREATED,
        EventKind.MODIFIED,
        EventKind.RENAMED,
        EventKind.DELETED,
    ]
    assert (got[2].old_id, got[2].document_id) == ("a.md", "b.md")


def test_get_times_out_on_empty_queue():
    with pytest.raises(queue.Empty):
        EventQueue().get(timeout=0.01)


# --- dispatch ---

def test_dispatch_routes_to_manager_operations():
    manager = MagicMock()
    pump = EventPump(manager)

    pump.dispatch(DocumentEvent(EventKind.CREATED, "a.md"))
    pump.dispatch(DocumentEvent(EventKind.MODIFIED, "a.md"))
    assert pump.dispatch(DocumentEvent(EventKind.DELETED, "a.md")) is None
    pump.dispatch(DocumentEvent(EventKind.RENAMED, "b.md", old_id="a.md"))

    assert manager.update_document.call_count == 2
    manager.remove_document.assert_called_once_with("a.md")
    manager.rename_document.assert_called_once_with("a.md", "b.md", None)


# --- pump against a real manager ---

def test_modified_event_reindexes_document(pump, vault):
    new = vault.put("work/meetings.md", "Offsite agenda and travel plans")
    pump.events.modified("work/meetings.md")
    pump.drain(_WAIT)

    assert pump.manager.store.fingerprint("work/meetings.md") == new.fingerprint


def test_created_event_with_inline_document(pump):
    from vaultrag.db.models import Document
    from vaultrag.vault import compute_fingerprint

    text = "A brand new note about hiking"
    doc = Document("outdoors/hiking.md", text, compute_fingerprint(text))
    pump.events.created(doc.id, doc)
    pump.drain(_WAIT)

    assert pump.manager.store.fingerprint(doc.id) == doc.fingerprint


def test_deleted_event_removes_document(pump):
    pump.events.deleted("garden/tomatoes.md")
    pump.drain(_WAIT)

    assert "garden/tomatoes.md" not in pump.manager.store.document_ids()


def test_renamed_event_moves_document(pump, vault):
    text = vault.read("cooking/bread.md").text
    vault.delete("cooking/bread.md")
    vault.put("baking/bread.md", text)

    pump.events.renamed("cooking/bread.md", "baking/bread.md")
    pump.drain(_WAIT)

    ids = pump.manager.store.document_ids()
    assert "baking/bread.md" in ids
    assert "cooking/bread.md" not in ids


def test_event_burst_ends_with_latest_content(pump, vault):
    for i in range(10):
        vault.put("work/meetings.md", f"revision {i} of the notes")
        pump.events.modified("work/meetings.md")
    pump.drain(_WAIT)

    latest = vault.read("work/meetings.md")
    assert pump.manager.store.fingerprint("work/meetings.md") == latest.fingerprint


def test_pump_survives_dispatch_errors():
    manager = MagicMock()
    manager.update_document.side_effect = [RuntimeError("boom"), MagicMock()]
    pump = EventPump(manager)
    pump.start()
    try:
        pump.events.modified("a.md")
        pump.events.modified("b.md")
        pump.events.join()
    finally:
        pump.stop(_WAIT)

    assert manager.update_document.call_count == 2


def test_stop_without_start_is_noop(make_manager):
    EventPump(make_manager()).stop()


def test_drain_waits_for_update_outcomes(pump, vault):
    vault.put("garden/tomatoes.md", "Tomatoes in pots on the balcony")
    future = pump.manager.update_document("garden/tomatoes.md")
    pump.events.modified("garden/tomatoes.md")
    pump.drain(_WAIT)

    assert future.result(0) in (UpdateOutcome.APPLIED, UpdateOutcome.UNCHANGED)
