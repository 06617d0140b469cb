"""Cooperative cancellation tokens for completion requests.

Each generation request owns a fresh :class:`CancelToken`. Cancelling it asks
the provider call to abort, but the network operation may still finish; the
controller therefore also compares the token against its current one before
applying any result.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Awaitable, Callable, List, TypeVar

from .errors import GenerationCancelled

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_SEQUENCE = itertools.count(1)


class CancelToken:
    """Single-use cancellation token bound to one generation request.

    Example::

        token = CancelToken()
        result = await token.guard(provider.complete(...))
        # elsewhere
        token.cancel()  # guard() raises GenerationCancelled
    """

    def __init__(self) -> None:
        self.generation = next(_SEQUENCE)
        self._cancelled = False
        self._event = asyncio.Event()
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self) -> None:
        """Request cancellation. Idempotent; callbacks fire once."""

        if self._cancelled:
            return
        self._cancelled = True
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                LOGGER.debug("Cancel callback failed", exc_info=True)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise GenerationCancelled()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Register ``callback``; it runs immediately if already cancelled."""

        if self._cancelled:
            callback()
            return
        self._callbacks.append(callback)

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token is cancelled first.

        On cancellation the pending work is cancelled and
        :class:`GenerationCancelled` is raised.
        """

        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _pending = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work in done:
            return work.result()
        work.cancel()
        raise GenerationCancelled()

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        state = "cancelled" if self._cancelled else "live"
        return f"CancelToken(generation={self.generation}, {state})"
