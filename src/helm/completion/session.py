"""Completion session state: ``Idle | Generating | Negotiating``."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from ..core.ranges import TextRange
from .text import selected_text, split_offset

__all__ = ["SessionPhase", "Negotiation", "CompletionSession"]


class SessionPhase(Enum):
    """Coarse controller phase used to drive the view."""

    IDLE = "idle"
    GENERATING = "generating"
    NEGOTIATING = "negotiating"


@dataclass(slots=True, frozen=True)
class Negotiation:
    """A provisional completion living in the document.

    Attributes:
        words: Whitespace-split completion tokens.
        range: Offsets of the whole provisional insertion.
        leading_space: Whether a separating space was prepended.
        selected_count: Leading words confirmed pending commit.
    """

    words: tuple[str, ...]
    range: TextRange
    leading_space: bool = False
    selected_count: int = 0

    def __post_init__(self) -> None:
        if not self.words:
            raise ValueError("Negotiation requires at least one word")
        count = max(0, min(int(self.selected_count), len(self.words)))
        object.__setattr__(self, "selected_count", count)

    @property
    def text(self) -> str:
        """The exact inserted text (leading space included)."""

        return (" " if self.leading_space else "") + " ".join(self.words)

    @property
    def all_selected(self) -> bool:
        return self.selected_count == len(self.words)

    @property
    def selected_text(self) -> str:
        return selected_text(self.words, self.selected_count, leading_space=self.leading_space)

    @property
    def split(self) -> int:
        return split_offset(self.range.start, self.words, self.selected_count, leading_space=self.leading_space)

    def with_selected(self, count: int) -> Negotiation:
        return replace(self, selected_count=count)


class CompletionSession:
    """Per-document holder of the current :class:`Negotiation`.

    ``range is None`` iff ``not is_active`` iff ``words == ()``.
    """

    def __init__(self) -> None:
        self._negotiation: Negotiation | None = None

    @property
    def negotiation(self) -> Negotiation | None:
        return self._negotiation

    @property
    def is_active(self) -> bool:
        return self._negotiation is not None

    @property
    def words(self) -> tuple[str, ...]:
        return self._negotiation.words if self._negotiation else ()

    @property
    def selected_count(self) -> int:
        return self._negotiation.selected_count if self._negotiation else 0

    @property
    def range(self) -> TextRange | None:
        return self._negotiation.range if self._negotiation else None

    @property
    def leading_space(self) -> bool:
        return bool(self._negotiation and self._negotiation.leading_space)

    def activate(self, negotiation: Negotiation) -> None:
        self._negotiation = negotiation.with_selected(0)

    def select(self, count: int) -> bool:
        """Set the selected word count (clamped); returns whether it changed."""

        if self._negotiation is None:
            return False
        updated = self._negotiation.with_selected(count)
        if updated.selected_count == self._negotiation.selected_count:
            return False
        self._negotiation = updated
        return True

    def deactivate(self) -> None:
        self._negotiation = None
