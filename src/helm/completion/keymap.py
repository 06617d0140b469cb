"""Keyboard surface for completion negotiation.

==========  ===================================================================
Key         Action
==========  ===================================================================
Tab         generate when idle, regenerate with nothing selected, else confirm
Shift+Tab   reserved
Right       select the next provisional word
Left        deselect the last selected word
Space       select every word (only while a completion is active)
Escape      cancel the in-flight request, else discard the completion
==========  ===================================================================

Tab is always consumed. The other keys are consumed only while a completion
exists or a request is pending; Space passes through unless a completion is
active so ordinary typing is unaffected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Protocol, Set

if TYPE_CHECKING:  # pragma: no cover
    from .controller import CompletionController

LOGGER = logging.getLogger(__name__)

__all__ = [
    "TAB",
    "SHIFT_TAB",
    "RIGHT",
    "LEFT",
    "SPACE",
    "ESCAPE",
    "normalize_key",
    "KeyHandler",
    "KeySource",
    "CompletionKeymap",
    "KeyboardCapture",
]

TAB = "Tab"
SHIFT_TAB = "Shift+Tab"
RIGHT = "Right"
LEFT = "Left"
SPACE = "Space"
ESCAPE = "Escape"

_ALIASES = {
    "tab": TAB,
    "shift+tab": SHIFT_TAB,
    "backtab": SHIFT_TAB,
    "right": RIGHT,
    "arrowright": RIGHT,
    "left": LEFT,
    "arrowleft": LEFT,
    "space": SPACE,
    " ": SPACE,
    "escape": ESCAPE,
    "esc": ESCAPE,
}

KeyHandler = Callable[[str], bool]


def normalize_key(key: str) -> str:
    """Map DOM/Qt style key names onto the canonical names above."""

    if key == " ":
        return SPACE
    return _ALIASES.get((key or "").strip().lower(), key)


class KeySource(Protocol):
    """A view that forwards key presses to registered handlers first."""

    def add_key_handler(self, handler: KeyHandler) -> None:
        ...

    def remove_key_handler(self, handler: KeyHandler) -> None:
        ...


class CompletionKeymap:
    """Translates key presses into controller operations."""

    def __init__(self, controller: CompletionController) -> None:
        self._controller = controller
        self._tasks: Set[asyncio.Task[Any]] = set()

    @property
    def pending_tasks(self) -> tuple[asyncio.Task[Any], ...]:
        return tuple(self._tasks)

    def handle_key(self, key: str) -> bool:
        """Dispatch ``key``; returns ``True`` when the editor must not see it."""

        name = normalize_key(key)
        controller = self._controller
        active = controller.session.is_active

        if name == TAB:
            if controller.is_generating:
                return True
            if not active:
                self._schedule(controller.request_completion())
            elif controller.session.selected_count == 0:
                self._schedule(controller.regenerate())
            else:
                controller.confirm()
            return True

        if not controller.is_capturing:
            return False

        if name == SHIFT_TAB:
            return True
        if name == RIGHT:
            controller.select_next_word()
            return True
        if name == LEFT:
            controller.deselect_last_word()
            return True
        if name == SPACE:
            if not active:
                return False
            controller.select_all_words()
            return True
        if name == ESCAPE:
            if controller.is_generating:
                controller.cancel_generation()
            else:
                controller.cancel()
            return True
        return False

    def cancel_pending(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def drain(self) -> None:
        """Wait for every scheduled request to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _schedule(self, coroutine: Coroutine[Any, Any, Any]) -> asyncio.Task[Any] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coroutine.close()
            LOGGER.warning("No running event loop; completion key action dropped")
            return None
        task = loop.create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Completion key action failed", exc_info=exc)


class KeyboardCapture:
    """Registration of a keymap with a :class:`KeySource`, released exactly once."""

    def __init__(self, keymap: CompletionKeymap) -> None:
        self._keymap = keymap
        self._source: KeySource | None = None

    @property
    def is_attached(self) -> bool:
        return self._source is not None

    def attach(self, source: KeySource) -> None:
        if self._source is not None:
            self.release()
        source.add_key_handler(self._keymap.handle_key)
        self._source = source

    def release(self) -> None:
        source, self._source = self._source, None
        if source is None:
            return
        source.remove_key_handler(self._keymap.handle_key)
