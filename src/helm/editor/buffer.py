"""Headless editing surface: text, selection, inline marks and undo history.

The buffer holds all editing logic so it can be driven (and tested) without a
GUI. :class:`~helm.editor.editor_widget.EditorWidget` renders it when PySide6
is available.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Protocol, Sequence

from ..core.ranges import TextRange
from .document_model import DocumentState, SelectionRange
from .marks import MarkSet, MarkSpan
from .transaction import EditTransaction

LOGGER = logging.getLogger(__name__)

__all__ = ["EditorBuffer", "TextChangeListener", "SelectionListener"]


class TextChangeListener(Protocol):
    """Callback signature invoked when text or marks change."""

    def __call__(self, text: str, state: DocumentState) -> None:
        ...


class SelectionListener(Protocol):
    """Callback invoked when the active selection or caret moves."""

    def __call__(self, selection: SelectionRange, line: int, column: int) -> None:
        ...


CoordinatesProvider = Callable[[int], tuple[int, int]]


@dataclass(slots=True)
class _UndoEntry:
    """Text + mark snapshot for undo/redo bookkeeping."""

    text: str
    marks: tuple[MarkSpan, ...]
    selection: tuple[int, int]


class EditorBuffer:
    """Document model exposing transactional edit commands."""

    MAX_HISTORY = 100

    def __init__(self, document: DocumentState | None = None) -> None:
        self._state = DocumentState()
        self._marks = MarkSet()
        self._selection = SelectionRange()
        self._undo_stack: list[_UndoEntry] = []
        self._redo_stack: list[_UndoEntry] = []
        self._text_listeners: list[TextChangeListener] = []
        self._selection_listeners: list[SelectionListener] = []
        self._active_transaction: EditTransaction | None = None
        self._coordinates_provider: CoordinatesProvider | None = None
        if document is not None:
            self.load_document(document)

    # ------------------------------------------------------------------
    # Document accessors
    # ------------------------------------------------------------------
    @property
    def text(self) -> str:
        return self._state.text

    @property
    def selection(self) -> SelectionRange:
        return SelectionRange(self._selection.start, self._selection.end)

    @property
    def caret(self) -> int:
        return self._selection.start

    @property
    def marks(self) -> tuple[MarkSpan, ...]:
        return self._marks.spans

    @property
    def stored_marks(self) -> frozenset[str] | None:
        return self._marks.stored

    @property
    def version(self) -> int:
        return self._state.version_id

    def mark_ranges(self, name: str) -> list[TextRange]:
        return [TextRange(start, end) for start, end in self._marks.ranges(name)]

    def marks_at(self, offset: int) -> frozenset[str]:
        return self._marks.covering(offset)

    def has_mark(self, name: str) -> bool:
        """Return ``True`` if ``name`` is applied to any text or stored for the next insert."""

        return self._marks.has(name)

    def text_before_caret(self) -> str:
        return self._state.text[: self._selection.start]

    def load_document(self, document: DocumentState) -> None:
        """Replace the whole document, dropping undo history."""

        self._state = document
        self._marks = MarkSet(document.marks)
        clamped = TextRange(document.selection.start, document.selection.end).clamp(upper=len(document.text))
        self._selection = SelectionRange(clamped.start, clamped.end)
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._emit_text_changed()
        self._emit_selection_changed()

    def load_snapshot(self, payload: Mapping[str, Any] | None) -> None:
        self.load_document(DocumentState.from_snapshot(payload))

    def to_document(self) -> DocumentState:
        """Return the current document representation."""

        self._state.marks = self._marks.spans
        self._state.selection = self.selection
        return self._state

    def snapshot(self, *, exclude_marks: Sequence[str] = ()) -> dict[str, Any]:
        return self.to_document().snapshot(exclude_marks=exclude_marks)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    @contextmanager
    def transaction(self, label: str = "edit") -> Iterator[EditTransaction]:
        """Stage edits and apply them atomically when the block exits cleanly.

        An exception discards every staged step and propagates.
        """

        if self._active_transaction is not None:
            raise RuntimeError("EditorBuffer transactions cannot be nested")
        transaction = EditTransaction(self._state.text, self._marks, self._selection, label=label)
        self._active_transaction = transaction
        try:
            yield transaction
        except Exception:
            LOGGER.debug("Transaction %s rolled back after %s step(s)", label, transaction.step_count)
            raise
        finally:
            self._active_transaction = None
        self._commit(transaction)

    def type_text(self, text: str) -> None:
        """Insert user-typed ``text`` at the selection, inheriting marks."""

        with self.transaction("typing") as tr:
            tr.insert_text(text)

    def set_selection(self, start: int, end: int | None = None) -> None:
        with self.transaction("selection") as tr:
            tr.set_selection(start, end)

    # ------------------------------------------------------------------
    # Undo/redo support
    # ------------------------------------------------------------------
    def undo(self) -> bool:
        """Restore the previous snapshot; returns ``False`` when history is empty."""

        if not self._undo_stack:
            return False
        entry = self._undo_stack.pop()
        self._redo_stack.append(self._current_entry())
        self._restore(entry)
        return True

    def redo(self) -> bool:
        if not self._redo_stack:
            return False
        entry = self._redo_stack.pop()
        self._undo_stack.append(self._current_entry())
        self._restore(entry)
        return True

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def add_text_listener(self, listener: TextChangeListener) -> None:
        """Register a callback fired whenever the text or marks mutate."""

        self._text_listeners.append(listener)

    def remove_text_listener(self, listener: TextChangeListener) -> None:
        if listener in self._text_listeners:
            self._text_listeners.remove(listener)

    def add_selection_listener(self, listener: SelectionListener) -> None:
        """Register a callback fired when the selection/caret changes."""

        self._selection_listeners.append(listener)

    # ------------------------------------------------------------------
    # Caret geometry
    # ------------------------------------------------------------------
    def set_coordinates_provider(self, provider: CoordinatesProvider | None) -> None:
        """Install a view-specific ``offset -> (x, y)`` resolver."""

        self._coordinates_provider = provider

    def caret_coordinates(self) -> tuple[int, int]:
        """Return screen coordinates for the caret.

        Without a view the (column, line) pair doubles as coordinates.
        """

        caret = self._selection.start
        if self._coordinates_provider is not None:
            try:
                return self._coordinates_provider(caret)
            except Exception:  # pragma: no cover - view defensive guard
                LOGGER.debug("Coordinates provider failed; using line/column", exc_info=True)
        line, column = self.line_column(caret)
        return (column, line)

    def line_column(self, caret: int) -> tuple[int, int]:
        text = self._state.text
        if not text:
            return (1, 1)
        caret = max(0, min(int(caret), len(text)))
        line = text.count("\n", 0, caret) + 1
        last_newline = text.rfind("\n", 0, caret)
        column = caret + 1 if last_newline == -1 else caret - last_newline
        return (line, max(1, column))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _commit(self, transaction: EditTransaction) -> None:
        new_marks = transaction.marks
        document_changed = (
            transaction.text != self._state.text or new_marks.spans != self._marks.spans
        )
        new_selection = transaction.selection
        selection_changed = new_selection.as_tuple() != self._selection.as_tuple()
        if document_changed:
            self._push_undo_snapshot(self._current_entry())
            self._state.update(transaction.text, new_marks.spans)
        self._marks = new_marks.copy()
        self._selection = new_selection
        if document_changed:
            self._emit_text_changed()
        if selection_changed:
            self._emit_selection_changed()

    def _current_entry(self) -> _UndoEntry:
        return _UndoEntry(
            text=self._state.text,
            marks=self._marks.spans,
            selection=self._selection.as_tuple(),
        )

    def _restore(self, entry: _UndoEntry) -> None:
        self._state.update(entry.text, entry.marks)
        self._marks = MarkSet(entry.marks)
        start, end = TextRange(*entry.selection).clamp(upper=len(entry.text))
        self._selection = SelectionRange(start, end)
        self._emit_text_changed()
        self._emit_selection_changed()

    def _push_undo_snapshot(self, entry: _UndoEntry) -> None:
        self._undo_stack.append(entry)
        if len(self._undo_stack) > self.MAX_HISTORY:
            self._undo_stack.pop(0)
        self._redo_stack.clear()

    def _emit_text_changed(self) -> None:
        for listener in list(self._text_listeners):
            listener(self._state.text, self._state)

    def _emit_selection_changed(self) -> None:
        if not self._selection_listeners:
            return
        selection = self.selection
        line, column = self.line_column(selection.end)
        for listener in list(self._selection_listeners):
            listener(selection, line, column)
