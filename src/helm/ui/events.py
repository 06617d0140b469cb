"""Event bus and the events exchanged between the editor, controller and chrome.

Components publish dataclass events instead of calling each other, so the
completion controller stays free of any UI dependency.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, TYPE_CHECKING
from weakref import WeakMethod, ref

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

logger = logging.getLogger(__name__)

# Type variable for event types
E = TypeVar("E", bound="Event")

# Handler type: a callable that takes an event and returns None
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all events in the system."""

    pass


# =============================================================================
# Completion events
# =============================================================================


@dataclass(slots=True)
class CompletionRequested(Event):
    """A generation request was sent to the provider.

    Attributes:
        context: Text before the caret sent as completion context.
        prompt: Prompt text (the regeneration prompt when ``regenerate``).
        model_id: Model the request targets.
        regenerate: Whether this request replaces a rejected completion.
    """

    context: str
    prompt: str
    model_id: str
    regenerate: bool = False


@dataclass(slots=True)
class CompletionInserted(Event):
    """Provisional text was inserted and marked."""

    words: tuple[str, ...]
    start: int
    end: int


@dataclass(slots=True)
class CompletionSelectionChanged(Event):
    """The number of confirmed-pending words changed."""

    selected_count: int
    total: int


@dataclass(slots=True)
class CompletionConfirmed(Event):
    """The selected prefix became permanent text (possibly empty)."""

    text: str


@dataclass(slots=True)
class CompletionCancelled(Event):
    """The provisional text was discarded."""

    pass


@dataclass(slots=True)
class GenerationAborted(Event):
    """An in-flight generation request was cancelled by the user."""

    pass


@dataclass(slots=True)
class CompletionFailed(Event):
    """A request could not be made or the provider failed.

    Attributes:
        message: Human-readable error surfaced to the user.
        kind: Exception class name (``EmptyContext``, ``ProviderError``...).
    """

    message: str
    kind: str


@dataclass(slots=True)
class CompletionUsageReported(Event):
    """Token usage of the last successful generation."""

    model_id: str
    prompt_tokens: int
    completion_tokens: int


# =============================================================================
# Chrome events
# =============================================================================


@dataclass(slots=True)
class StatusMessage(Event):
    """Emitted to display a message in the status bar.

    Attributes:
        message: The text message to display in the status bar.
        timeout_ms: Use 0 for persistent messages, or a positive value
                   for auto-dismissing messages.
    """

    message: str
    timeout_ms: int = 0


@dataclass(slots=True)
class DocumentSaved(Event):
    """The autosave scheduler persisted the document."""

    document_id: str
    version: int


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = {CompletionSelectionChanged}


class EventBus(Generic[E]):
    """A typed publish-subscribe event bus for decoupled communication.

    Handlers are stored as weak references where possible (bound methods) to
    prevent leaks. Not thread-safe: publish from the event loop thread.

    Example::

        bus = EventBus()
        bus.subscribe(CompletionFailed, lambda event: print(event.message))
        bus.publish(CompletionFailed(message="boom", kind="ProviderError"))
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Register a handler to receive events of the specified type."""

        handler_ref = _HandlerRef.create(handler)
        self._handlers[event_type].append(handler_ref)
        logger.debug(
            "Subscribed handler %s to event type %s",
            _handler_name(handler),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove a previously registered handler (first occurrence only)."""

        handlers = self._handlers.get(event_type)
        if handlers is None:
            return

        for i, handler_ref in enumerate(handlers):
            if handler_ref.matches(handler):
                handlers.pop(i)
                logger.debug(
                    "Unsubscribed handler %s from event type %s",
                    _handler_name(handler),
                    event_type.__name__,
                )
                return

    def publish(self, event: E) -> None:
        """Broadcast an event to all registered handlers.

        A handler raising is logged and the remaining handlers still run.
        """

        event_type = type(event)
        handlers = self._handlers.get(event_type)
        is_quiet = event_type in _QUIET_EVENT_TYPES

        if handlers is None:
            if not is_quiet:
                logger.debug("No handlers for event type %s", event_type.__name__)
            return

        if not is_quiet:
            logger.debug(
                "Publishing %s to %d handler(s)",
                event_type.__name__,
                len(handlers),
            )

        dead_indices: list[int] = []

        for i, handler_ref in enumerate(list(handlers)):
            handler = handler_ref.resolve()
            if handler is None:
                dead_indices.append(i)
                continue

            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised exception for event %s",
                    _handler_name(handler),
                    event_type.__name__,
                )

        for i in reversed(dead_indices):
            handlers.pop(i)

    def clear(self) -> None:
        """Remove all registered handlers."""

        self._handlers.clear()
        logger.debug("Cleared all event handlers")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        if event_type is not None:
            return len(self._handlers.get(event_type, []))
        return sum(len(handlers) for handlers in self._handlers.values())


class _HandlerRef:
    """Wrapper holding a weak reference for bound methods, strong otherwise."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: WeakMethod | ref | Handler, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> _HandlerRef:
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]

    def matches(self, handler: Handler) -> bool:
        resolved = self.resolve()
        if resolved is None:
            return False
        return resolved == handler


def _handler_name(handler: Any) -> str:
    """Get a human-readable name for a handler for logging purposes."""
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        cls_name = type(handler.__self__).__name__
        return f"{cls_name}.{handler.__func__.__name__}"
    if hasattr(handler, "__name__"):
        return handler.__name__
    return repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "CompletionRequested",
    "CompletionInserted",
    "CompletionSelectionChanged",
    "CompletionConfirmed",
    "CompletionCancelled",
    "GenerationAborted",
    "CompletionFailed",
    "CompletionUsageReported",
    "StatusMessage",
    "DocumentSaved",
]
