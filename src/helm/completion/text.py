"""Pure text helpers used by the completion controller."""

from __future__ import annotations

from typing import Sequence

__all__ = [
    "SENTENCE_BREAKS",
    "extract_context",
    "tokenize_words",
    "needs_leading_space",
    "selected_text",
    "split_offset",
]

#: Characters that end the span used as completion context.
SENTENCE_BREAKS = frozenset(".!?\n")


def extract_context(text_before_caret: str) -> str:
    """Return the trimmed text after the last sentence end or paragraph break.

    Falls back to the whole (trimmed) text when no break exists.
    """

    last_break = -1
    for index in range(len(text_before_caret) - 1, -1, -1):
        if text_before_caret[index] in SENTENCE_BREAKS:
            last_break = index
            break
    if last_break == -1:
        return text_before_caret.strip()
    return text_before_caret[last_break + 1 :].strip()


def tokenize_words(completion: str) -> tuple[str, ...]:
    """Split on any whitespace, dropping empty tokens."""

    return tuple(completion.split())


def needs_leading_space(text: str, position: int) -> bool:
    """Whether text inserted at ``position`` needs a separating space.

    Only when the insertion point is past document start and the preceding
    character is not whitespace.
    """

    if position <= 0 or position > len(text):
        return False
    return not text[position - 1].isspace()


def selected_text(words: Sequence[str], count: int, *, leading_space: bool) -> str:
    """Text for the first ``count`` words, re-joined with single spaces."""

    count = max(0, min(count, len(words)))
    if count == 0:
        return ""
    prefix = " " if leading_space else ""
    return prefix + " ".join(words[:count])


def split_offset(start: int, words: Sequence[str], count: int, *, leading_space: bool) -> int:
    """Document offset separating selected from unselected words.

    With no word selected the split is ``start`` itself, leading space
    included in the unselected run. Otherwise the leading space travels with
    the selected prefix.
    """

    count = max(0, min(count, len(words)))
    if count == 0:
        return start
    prefix = 1 if leading_space else 0
    return start + prefix + len(" ".join(words[:count]))

