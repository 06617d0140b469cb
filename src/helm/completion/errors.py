"""Exception taxonomy for completion negotiation."""

from __future__ import annotations

__all__ = [
    "CompletionError",
    "EmptyContext",
    "ProviderError",
    "GenerationCancelled",
    "ConfigurationError",
]


class CompletionError(Exception):
    """Base class for failures surfaced by the completion controller."""

    #: Whether the controller should show the message to the user.
    user_visible: bool = True


class EmptyContext(CompletionError):
    """There is no text before the caret to continue."""

    def __init__(self, message: str = "Nothing to complete: write some text before the cursor first.") -> None:
        super().__init__(message)


class ProviderError(CompletionError):
    """Network, HTTP or model failure reported by the completion provider."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GenerationCancelled(CompletionError):
    """A user-initiated abort; never shown to the user."""

    user_visible = False

    def __init__(self, message: str = "Generation cancelled") -> None:
        super().__init__(message)


class ConfigurationError(CompletionError):
    """Provider credentials or settings are missing."""
