"""Debounced persistence of the editor document."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Sequence

from ..core.ranges import TextRange
from ..editor.buffer import EditorBuffer
from ..editor.document_model import DocumentState
from ..editor.marks import COMPLETION_MARK
from ..ui.events import DocumentSaved, EventBus
from .document_store import DocumentStore, StoreError

__all__ = ["DOCUMENT_ID", "AutosaveScheduler", "committed_snapshot"]

LOGGER = logging.getLogger(__name__)

DOCUMENT_ID = "infinite-doc-v1"

RangeProvider = Callable[[], Sequence[TextRange]]


def committed_snapshot(
    buffer: EditorBuffer,
    excluded: Sequence[TextRange],
    *,
    mark_name: str = COMPLETION_MARK,
) -> dict[str, Any]:
    """Snapshot of ``buffer`` with ``excluded`` text cut out and ``mark_name`` dropped."""

    snapshot = buffer.snapshot(exclude_marks=[mark_name])
    ranges = sorted(
        (item for item in (TextRange.from_value(value) for value in excluded) if not item.is_caret),
        key=lambda item: item.start,
    )
    if not ranges:
        return snapshot

    text = snapshot["text"]
    pieces: list[str] = []
    cursor = 0
    for item in ranges:
        start = max(cursor, min(item.start, len(text)))
        end = max(start, min(item.end, len(text)))
        pieces.append(text[cursor:start])
        cursor = end
    pieces.append(text[cursor:])

    def _map(offset: int) -> int:
        shift = 0
        for item in ranges:
            if offset >= item.end:
                shift += item.length
            elif offset > item.start:
                shift += offset - item.start
        return offset - shift

    start, end = snapshot["selection"]
    snapshot["text"] = "".join(pieces)
    snapshot["selection"] = [_map(start), _map(end)]
    snapshot["marks"] = [
        {**span, "start": _map(span["start"]), "end": _map(span["end"])}
        for span in snapshot["marks"]
        if _map(span["end"]) > _map(span["start"])
    ]
    return snapshot


class AutosaveScheduler:
    """Saves the document ``delay`` seconds after the last change.

    Provisional completion text never reaches the store. Failures are logged
    and swallowed so editing is never interrupted.
    """

    def __init__(
        self,
        buffer: EditorBuffer,
        store: DocumentStore,
        *,
        document_id: str = DOCUMENT_ID,
        delay: float = 1.0,
        event_bus: EventBus | None = None,
        provisional_ranges: RangeProvider | None = None,
    ) -> None:
        self._buffer = buffer
        self._store = store
        self._document_id = document_id
        self._delay = max(0.0, float(delay))
        self._bus = event_bus
        self._provisional_ranges = provisional_ranges or (lambda: buffer.mark_ranges(COMPLETION_MARK))
        self._task: asyncio.Task[None] | None = None
        self._last_saved: str | None = None
        self._save_count = 0
        self._closed = False
        self._buffer.add_text_listener(self._handle_text_changed)

    @property
    def document_id(self) -> str:
        return self._document_id

    @property
    def save_count(self) -> int:
        return self._save_count

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def restore(self) -> bool:
        """Load the stored document into the buffer; returns ``True`` when found."""

        try:
            payload = self._store.get(self._document_id)
        except StoreError as exc:
            LOGGER.error("Failed to load document %s: %s", self._document_id, exc)
            return False
        if payload is None:
            LOGGER.debug("No stored document %s; starting empty", self._document_id)
            return False
        self._buffer.load_snapshot(payload)
        self._last_saved = self._serialize(self.snapshot())
        LOGGER.info("Restored document %s (%s chars)", self._document_id, len(self._buffer.text))
        return True

    def snapshot(self) -> dict[str, Any]:
        return committed_snapshot(self._buffer, self._provisional_ranges())

    def schedule(self) -> None:
        if self._closed:
            return
        if self._task is not None and not self._task.done():
            self._task.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.debug("No running event loop; autosave skipped")
            self._task = None
            return
        self._task = loop.create_task(self._save_later())

    async def flush(self) -> bool:
        """Cancel any pending timer and save immediately."""

        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        return self.save_now()

    def save_now(self) -> bool:
        snapshot = self.snapshot()
        body = self._serialize(snapshot)
        if body == self._last_saved:
            return False
        try:
            self._store.put(self._document_id, snapshot)
        except StoreError as exc:
            LOGGER.error("Failed to save document %s: %s", self._document_id, exc)
            return False
        self._last_saved = body
        self._save_count += 1
        LOGGER.debug("Saved document %s", self._document_id)
        if self._bus is not None:
            self._bus.publish(DocumentSaved(document_id=self._document_id, version=self._buffer.version))
        return True

    def close(self) -> None:
        self._closed = True
        self._buffer.remove_text_listener(self._handle_text_changed)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _save_later(self) -> None:
        await asyncio.sleep(self._delay)
        self.save_now()

    def _handle_text_changed(self, _text: str, _state: DocumentState) -> None:
        self.schedule()

    @staticmethod
    def _serialize(snapshot: dict[str, Any]) -> str:
        # Selection and version churn alone should not trigger a write.
        return repr((snapshot.get("text"), snapshot.get("marks")))
