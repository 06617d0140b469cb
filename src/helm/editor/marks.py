"""Inline mark bookkeeping for the editing surface.

Marks live in two independent places:

* ``spans`` - named marks applied to ranges of existing text.
* ``stored`` - marks that the *next* inserted text inherits. A caret-only
  ``add`` populates it, and user typing consumes it.

Removing a mark from a range leaves ``stored`` untouched, so code that must
guarantee a mark never reappears calls :meth:`MarkSet.purge`, which clears
both.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

__all__ = ["COMPLETION_MARK", "MarkSpan", "MarkSet"]

COMPLETION_MARK = "completion"


@dataclass(slots=True, frozen=True)
class MarkSpan:
    """A named mark covering ``[start, end)``."""

    name: str
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "start": self.start, "end": self.end}


class MarkSet:
    """Mutable collection of mark spans plus the stored-mark mode bit."""

    __slots__ = ("_spans", "_stored")

    def __init__(self, spans: Iterable[MarkSpan] = (), stored: Iterable[str] | None = None) -> None:
        self._spans: list[MarkSpan] = []
        self._stored: frozenset[str] | None = frozenset(stored) if stored is not None else None
        for span in spans:
            self.add(span.name, span.start, span.end)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def spans(self) -> tuple[MarkSpan, ...]:
        return tuple(self._spans)

    @property
    def stored(self) -> frozenset[str] | None:
        """Marks the next insertion inherits, or ``None`` when nothing is stored."""

        return self._stored

    def copy(self) -> MarkSet:
        clone = MarkSet()
        clone._spans = list(self._spans)
        clone._stored = self._stored
        return clone

    def ranges(self, name: str) -> list[tuple[int, int]]:
        return [(span.start, span.end) for span in self._spans if span.name == name]

    def has(self, name: str) -> bool:
        """Return ``True`` if ``name`` is applied anywhere or stored."""

        if self._stored is not None and name in self._stored:
            return True
        return any(span.name == name for span in self._spans)

    def covering(self, offset: int) -> frozenset[str]:
        """Names of marks applied to the character at ``offset``."""

        return frozenset(span.name for span in self._spans if span.start <= offset < span.end)

    def inherited_at(self, offset: int) -> frozenset[str]:
        """Marks text inserted at ``offset`` picks up.

        Stored marks win; otherwise the marks of the character before the
        caret carry over, so typing at the end of a marked run extends it.
        """

        if self._stored is not None:
            return self._stored
        if offset <= 0:
            return frozenset()
        return self.covering(offset - 1)

    # ------------------------------------------------------------------
    # Range operations
    # ------------------------------------------------------------------
    def add(self, name: str, start: int, end: int) -> None:
        """Apply ``name`` over ``[start, end)``, merging touching spans."""

        if end < start:
            start, end = end, start
        if start == end:
            return
        merged_start, merged_end = start, end
        kept: list[MarkSpan] = []
        for span in self._spans:
            if span.name == name and span.start <= merged_end and merged_start <= span.end:
                merged_start = min(merged_start, span.start)
                merged_end = max(merged_end, span.end)
            else:
                kept.append(span)
        kept.append(MarkSpan(name, merged_start, merged_end))
        self._spans = sorted(kept, key=lambda item: (item.start, item.end, item.name))

    def remove(self, name: str, start: int, end: int) -> None:
        """Remove ``name`` from ``[start, end)``, splitting spans as needed."""

        if end < start:
            start, end = end, start
        if start == end:
            return
        updated: list[MarkSpan] = []
        for span in self._spans:
            if span.name != name or span.end <= start or span.start >= end:
                updated.append(span)
                continue
            if span.start < start:
                updated.append(MarkSpan(name, span.start, start))
            if span.end > end:
                updated.append(MarkSpan(name, end, span.end))
        self._spans = sorted(updated, key=lambda item: (item.start, item.end, item.name))

    def store(self, names: Iterable[str]) -> None:
        current = set(self._stored or ())
        current.update(names)
        self._stored = frozenset(current)

    def clear_stored(self, name: str | None = None) -> None:
        """Drop ``name`` (or every mark) from the stored set."""

        if self._stored is None:
            return
        if name is None:
            self._stored = None
            return
        remaining = self._stored - {name}
        self._stored = remaining or None

    def purge(self, name: str) -> None:
        """Fully reset ``name``: no span carries it and nothing inherits it."""

        self._spans = [span for span in self._spans if span.name != name]
        self.clear_stored(name)

    # ------------------------------------------------------------------
    # Text mutation tracking
    # ------------------------------------------------------------------
    def shift_for_insert(self, position: int, length: int, applied: Iterable[str] = ()) -> None:
        """Move spans to account for ``length`` chars inserted at ``position``.

        ``applied`` lists the marks the inserted text carries; spans without
        them are split around the insertion point.
        """

        if length <= 0:
            return
        applied_names = frozenset(applied)
        shifted: list[MarkSpan] = []
        for span in self._spans:
            if span.end <= position:
                shifted.append(span)
            elif span.start >= position:
                shifted.append(MarkSpan(span.name, span.start + length, span.end + length))
            else:
                shifted.append(MarkSpan(span.name, span.start, position))
                shifted.append(MarkSpan(span.name, position + length, span.end + length))
        self._spans = sorted(shifted, key=lambda item: (item.start, item.end, item.name))
        for name in applied_names:
            self.add(name, position, position + length)

    def shift_for_delete(self, start: int, end: int) -> None:
        """Collapse spans over the deleted ``[start, end)`` region."""

        width = end - start
        if width <= 0:
            return

        def _map(offset: int) -> int:
            if offset <= start:
                return offset
            if offset >= end:
                return offset - width
            return start

        remaining: list[MarkSpan] = []
        for span in self._spans:
            new_start, new_end = _map(span.start), _map(span.end)
            if new_end > new_start:
                remaining.append(MarkSpan(span.name, new_start, new_end))
        rebuilt = MarkSet(remaining)
        self._spans = rebuilt._spans

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_list(self) -> list[dict[str, Any]]:
        return [span.to_dict() for span in self._spans]

    @classmethod
    def from_list(cls, payload: Iterable[Mapping[str, Any]], *, length: int | None = None) -> MarkSet:
        spans: list[MarkSpan] = []
        for item in payload:
            if not isinstance(item, Mapping):
                continue
            name = str(item.get("name") or "").strip()
            try:
                start = int(item.get("start", 0))
                end = int(item.get("end", 0))
            except (TypeError, ValueError):
                continue
            if not name:
                continue
            if length is not None:
                start = max(0, min(start, length))
                end = max(0, min(end, length))
            spans.append(MarkSpan(name, start, end))
        return cls(spans)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MarkSet):
            return NotImplemented
        return self._spans == other._spans and self._stored == other._stored

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"MarkSet(spans={self._spans!r}, stored={self._stored!r})"
