"""Dataclasses representing editor document state and snapshots."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Sequence

from ..core.ranges import TextRange
from .marks import MarkSet, MarkSpan

SNAPSHOT_FORMAT = "helm.doc/1"


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class SelectionRange:
    """Represents the current selection inside the editor."""

    start: int = 0
    end: int = 0

    def as_tuple(self) -> tuple[int, int]:
        """Return the selection as a tuple for serialization."""

        return (self.start, self.end)

    @property
    def is_caret(self) -> bool:
        return self.start == self.end

    @classmethod
    def from_value(cls, value: Any) -> SelectionRange:
        if isinstance(value, SelectionRange):
            return cls(value.start, value.end)
        span = TextRange.from_value(value)
        return cls(span.start, span.end)


@dataclass(slots=True)
class DocumentState:
    """Full snapshot of the document: text, inline marks and selection."""

    text: str = ""
    marks: tuple[MarkSpan, ...] = ()
    selection: SelectionRange = field(default_factory=SelectionRange)
    dirty: bool = False
    version_id: int = 1
    content_hash: str = field(default_factory=str)
    updated_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.content_hash:
            self.content_hash = _hash_text(self.text)

    def update(self, text: str, marks: Sequence[MarkSpan]) -> None:
        """Replace text and marks, bumping the version and marking dirty."""

        self.text = text
        self.marks = tuple(marks)
        self.dirty = True
        self.updated_at = _utcnow()
        self.version_id += 1
        self.content_hash = _hash_text(text)

    def snapshot(self, *, exclude_marks: Sequence[str] = ()) -> Dict[str, Any]:
        """Return a JSON-serializable snapshot suitable for the document store."""

        excluded = set(exclude_marks)
        return {
            "format": SNAPSHOT_FORMAT,
            "text": self.text,
            "marks": [span.to_dict() for span in self.marks if span.name not in excluded],
            "selection": list(self.selection.as_tuple()),
            "version": self.version_id,
        }

    @classmethod
    def from_snapshot(cls, payload: Mapping[str, Any] | None) -> DocumentState:
        """Rebuild a document from :meth:`snapshot` output (unknown keys ignored)."""

        if not payload:
            return cls()
        text = str(payload.get("text") or "")
        raw_marks = payload.get("marks") or ()
        marks = MarkSet.from_list(raw_marks, length=len(text)).spans
        try:
            selection = SelectionRange.from_value(payload.get("selection") or (0, 0))
        except (TypeError, ValueError):
            selection = SelectionRange()
        clamped = TextRange(selection.start, selection.end).clamp(upper=len(text))
        return cls(
            text=text,
            marks=marks,
            selection=SelectionRange(clamped.start, clamped.end),
        )
