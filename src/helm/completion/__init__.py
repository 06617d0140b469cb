"""Word-grained completion negotiation: session state, history and controller."""

from importlib import import_module
from typing import Any

from .cancellation import CancelToken
from .errors import CompletionError, ConfigurationError, EmptyContext, GenerationCancelled, ProviderError
from .history import AttemptHistory
from .session import CompletionSession, Negotiation, SessionPhase

__all__ = [
    "AttemptHistory",
    "CancelToken",
    "CompletionController",
    "CompletionError",
    "CompletionKeymap",
    "CompletionSession",
    "ConfigurationError",
    "EmptyContext",
    "GenerationCancelled",
    "Negotiation",
    "ProviderError",
    "SessionPhase",
]

_LAZY = {
	"CompletionController": "controller",
	"CompletionKeymap": "keymap",
}


def __getattr__(name: str) -> Any:
	module_name = _LAZY.get(name)
	if module_name is None:
		raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
	value = getattr(import_module(f"{__name__}.{module_name}"), name)
	globals()[name] = value
	return value
