"""Debounced autosave that never persists provisional completion text."""

from __future__ import annotations

import asyncio
from typing import Iterator

import pytest

from conftest import FakeProvider
from helm.completion.controller import CompletionController
from helm.core.ranges import TextRange
from helm.editor.buffer import EditorBuffer
from helm.editor.marks import COMPLETION_MARK
from helm.services.autosave import DOCUMENT_ID, AutosaveScheduler, committed_snapshot
from helm.services.document_store import Database, DocumentStore
from helm.ui.events import DocumentSaved, EventBus


@pytest.fixture
def store() -> Iterator[DocumentStore]:
    database = Database()
    yield DocumentStore(database)
    database.close()


def test_committed_snapshot_cuts_excluded_ranges(buffer: EditorBuffer) -> None:
    with buffer.transaction() as tr:
        tr.insert_text(" on the mat.", 11, marks=())
        tr.add_mark(COMPLETION_MARK, 14, 23)
        tr.add_mark("bold", 0, 3)
        tr.set_selection(14)

    snapshot = committed_snapshot(buffer, [TextRange(11, 23)])

    assert snapshot["text"] == "The cat sat"
    assert snapshot["selection"] == [11, 11]
    assert snapshot["marks"] == [{"name": "bold", "start": 0, "end": 3}]


def test_committed_snapshot_without_exclusions_only_drops_mark(buffer: EditorBuffer) -> None:
    with buffer.transaction() as tr:
        tr.add_mark(COMPLETION_MARK, 4, 7)

    snapshot = committed_snapshot(buffer, [])

    assert snapshot["text"] == "The cat sat"
    assert snapshot["marks"] == []


@pytest.mark.asyncio
async def test_changes_are_saved_after_delay(buffer: EditorBuffer, store: DocumentStore) -> None:
    bus = EventBus()
    saved: list[DocumentSaved] = []
    bus.subscribe(DocumentSaved, saved.append)
    scheduler = AutosaveScheduler(buffer, store, delay=0.01, event_bus=bus)

    buffer.type_text(" down")
    assert scheduler.pending is True
    await asyncio.sleep(0.05)

    payload = store.get(DOCUMENT_ID)
    assert payload is not None
    assert payload["text"] == "The cat sat down"
    assert scheduler.save_count == 1
    assert saved[0].document_id == DOCUMENT_ID
    scheduler.close()


@pytest.mark.asyncio
async def test_rapid_changes_are_debounced(buffer: EditorBuffer, store: DocumentStore) -> None:
    scheduler = AutosaveScheduler(buffer, store, delay=0.05)

    for character in " down":
        buffer.type_text(character)
        await asyncio.sleep(0)
    await scheduler.flush()

    assert scheduler.save_count == 1
    assert scheduler.pending is False
    scheduler.close()


@pytest.mark.asyncio
async def test_provisional_completion_is_never_persisted(buffer: EditorBuffer, store: DocumentStore) -> None:
    controller = CompletionController(buffer, FakeProvider(["on the mat."]))
    scheduler = AutosaveScheduler(
        buffer,
        store,
        delay=0.01,
        provisional_ranges=lambda: [] if controller.session.range is None else [controller.session.range],
    )

    await controller.request_completion()
    controller.select_next_word()
    await scheduler.flush()
    assert store.get(DOCUMENT_ID)["text"] == "The cat sat"

    controller.confirm()
    await scheduler.flush()
    assert store.get(DOCUMENT_ID)["text"] == "The cat sat on"
    scheduler.close()


@pytest.mark.asyncio
async def test_edit_while_negotiating_does_not_persist_unaccepted_words(
    buffer: EditorBuffer, store: DocumentStore
) -> None:
    controller = CompletionController(buffer, FakeProvider(["on the mat."]))
    scheduler = AutosaveScheduler(buffer, store, delay=0.01)

    await controller.request_completion()
    buffer.type_text("s")
    await scheduler.flush()

    assert controller.session.is_active is False
    assert store.get(DOCUMENT_ID)["text"] == "The cat sats"
    scheduler.close()



def test_save_now_skips_unchanged_documents(buffer: EditorBuffer, store: DocumentStore) -> None:
    scheduler = AutosaveScheduler(buffer, store)

    assert scheduler.save_now() is True
    assert scheduler.save_now() is False
    buffer.set_selection(0)
    assert scheduler.save_now() is False
    scheduler.close()


def test_restore_loads_stored_document(store: DocumentStore) -> None:
    store.put(DOCUMENT_ID, {"text": "Saved words", "marks": [], "selection": [5, 5]})
    buffer = EditorBuffer()
    scheduler = AutosaveScheduler(buffer, store)

    assert scheduler.restore() is True

    assert buffer.text == "Saved words"
    assert buffer.caret == 5
    assert scheduler.save_now() is False
    scheduler.close()


def test_restore_without_document_or_with_corrupt_one(store: DocumentStore) -> None:
    buffer = EditorBuffer()
    scheduler = AutosaveScheduler(buffer, store, document_id="other")

    assert scheduler.restore() is False

    store._db.upsert_value("documents", "id", "content", "other", "{broken")
    assert scheduler.restore() is False
    assert buffer.text == ""
    scheduler.close()


def test_schedule_without_event_loop_is_skipped(buffer: EditorBuffer, store: DocumentStore) -> None:
    scheduler = AutosaveScheduler(buffer, store)

    buffer.type_text("!")

    assert scheduler.pending is False
    scheduler.close()


@pytest.mark.asyncio
async def test_close_stops_listening(buffer: EditorBuffer, store: DocumentStore) -> None:
    scheduler = AutosaveScheduler(buffer, store, delay=0.01)
    scheduler.close()

    buffer.type_text("!")
    await asyncio.sleep(0.03)

    assert store.get(DOCUMENT_ID) is None
