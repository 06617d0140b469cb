"""Record of rejected completions used to steer regeneration."""

from __future__ import annotations

import re
from typing import Iterator, Sequence

__all__ = ["ATTEMPTS_PLACEHOLDER", "ORIGINAL_PROMPT_PLACEHOLDER", "AttemptHistory", "format_attempts"]

ATTEMPTS_PLACEHOLDER = "{{ATTEMPTS}}"
ORIGINAL_PROMPT_PLACEHOLDER = "{{ORIGINAL_PROMPT}}"
_PLACEHOLDER_PATTERN = re.compile(r"\{\{(ATTEMPTS|ORIGINAL_PROMPT)\}\}")


def format_attempts(attempts: Sequence[str]) -> str:
    """Render attempts as ``Attempt i: <text>`` lines, numbered from 1."""

    return "\n".join(f"Attempt {index}: {text}" for index, text in enumerate(attempts, start=1))


class AttemptHistory:
    """Ordered (oldest first) list of completions the user regenerated away from."""

    def __init__(self, attempts: Sequence[str] = ()) -> None:
        self._attempts: list[str] = list(attempts)

    @property
    def attempts(self) -> tuple[str, ...]:
        return tuple(self._attempts)

    def record(self, text: str) -> None:
        self._attempts.append(text)

    def clear(self) -> None:
        self._attempts.clear()

    def build_regen_prompt(self, original_prompt: str, template: str) -> str:
        """Fill ``template`` with the numbered attempts and ``original_prompt``.

        Substitution is single-pass: placeholder text appearing inside an
        attempt is left alone.
        """

        values = {
            "ATTEMPTS": format_attempts(self._attempts),
            "ORIGINAL_PROMPT": original_prompt,
        }
        return _PLACEHOLDER_PATTERN.sub(lambda match: values[match.group(1)], template)

    def __len__(self) -> int:
        return len(self._attempts)

    def __bool__(self) -> bool:
        return bool(self._attempts)

    def __iter__(self) -> Iterator[str]:
        return iter(tuple(self._attempts))
