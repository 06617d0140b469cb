"""Chainable edit transactions staged against a working copy of the buffer.

Every operation mutates a private copy of text, marks and selection. The
owning :class:`~helm.editor.buffer.EditorBuffer` swaps the copy in on commit,
so listeners never observe half-applied edits (text inserted but not yet
marked) and the whole batch becomes one undo step.
"""

from __future__ import annotations

from typing import Iterable

from .document_model import SelectionRange
from .marks import MarkSet

__all__ = ["EditTransaction"]


class EditTransaction:
    """Staged text, mark and selection edits."""

    def __init__(self, text: str, marks: MarkSet, selection: SelectionRange, *, label: str = "edit") -> None:
        self.label = label
        self._text = text
        self._marks = marks.copy()
        self._selection = SelectionRange(selection.start, selection.end)
        self._steps = 0

    # ------------------------------------------------------------------
    # Working copy accessors
    # ------------------------------------------------------------------
    @property
    def text(self) -> str:
        return self._text

    @property
    def marks(self) -> MarkSet:
        return self._marks

    @property
    def selection(self) -> SelectionRange:
        return SelectionRange(self._selection.start, self._selection.end)

    @property
    def step_count(self) -> int:
        return self._steps

    # ------------------------------------------------------------------
    # Text operations
    # ------------------------------------------------------------------
    def insert_text(
        self,
        text: str,
        position: int | None = None,
        *,
        marks: Iterable[str] | None = None,
    ) -> EditTransaction:
        """Insert ``text`` and move the caret after it.

        Without ``position`` the current selection is replaced. ``marks=None``
        means "inherit like typed text" (stored marks, else the marks of the
        preceding character); pass an explicit iterable, possibly empty, to
        control the marks exactly.
        """

        if position is None:
            if not self._selection.is_caret:
                self.delete_range(self._selection.start, self._selection.end)
            position = self._selection.start
        position = self._clamp(position)
        if marks is None:
            applied = self._marks.inherited_at(position)
            self._marks.clear_stored()
        else:
            applied = frozenset(marks)
        if text:
            self._text = self._text[:position] + text + self._text[position:]
            self._marks.shift_for_insert(position, len(text), applied)
        caret = position + len(text)
        self._selection = SelectionRange(caret, caret)
        self._steps += 1
        return self

    def delete_range(self, start: int, end: int) -> EditTransaction:
        """Delete ``[start, end)`` and map the selection through the deletion."""

        begin, finish = self._clamp(start), self._clamp(end)
        if finish < begin:
            begin, finish = finish, begin
        if begin == finish:
            return self
        self._text = self._text[:begin] + self._text[finish:]
        self._marks.shift_for_delete(begin, finish)
        width = finish - begin

        def _map(offset: int) -> int:
            if offset <= begin:
                return offset
            if offset >= finish:
                return offset - width
            return begin

        self._selection = SelectionRange(_map(self._selection.start), _map(self._selection.end))
        self._steps += 1
        return self

    def set_selection(self, start: int, end: int | None = None) -> EditTransaction:
        begin = self._clamp(start)
        finish = begin if end is None else self._clamp(end)
        if finish < begin:
            begin, finish = finish, begin
        self._selection = SelectionRange(begin, finish)
        self._steps += 1
        return self

    # ------------------------------------------------------------------
    # Mark operations
    # ------------------------------------------------------------------
    def add_mark(self, name: str, start: int | None = None, end: int | None = None) -> EditTransaction:
        """Apply ``name`` over a range, or store it when the range is a caret."""

        begin, finish = self._resolve_range(start, end)
        if begin == finish:
            self._marks.store([name])
        else:
            self._marks.add(name, begin, finish)
        self._steps += 1
        return self

    def remove_mark(self, name: str, start: int | None = None, end: int | None = None) -> EditTransaction:
        """Remove ``name`` from a range; a caret range drops it from stored marks."""

        begin, finish = self._resolve_range(start, end)
        if begin == finish:
            self._marks.clear_stored(name)
        else:
            self._marks.remove(name, begin, finish)
        self._steps += 1
        return self

    def purge_mark(self, name: str) -> EditTransaction:
        """Remove ``name`` from every range *and* from the stored marks."""

        self._marks.purge(name)
        self._steps += 1
        return self

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _clamp(self, offset: int) -> int:
        return max(0, min(int(offset), len(self._text)))

    def _resolve_range(self, start: int | None, end: int | None) -> tuple[int, int]:
        if start is None and end is None:
            return self._selection.start, self._selection.end
        begin = self._clamp(self._selection.start if start is None else start)
        finish = self._clamp(begin if end is None else end)
        if finish < begin:
            begin, finish = finish, begin
        return begin, finish
