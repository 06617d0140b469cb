"""UI package holding the desktop window, status chrome and event bus."""

from importlib import import_module
from typing import Any

from .events import EventBus
from .loading_indicator import LoadingIndicator
from .status_bar import StatusBar

__all__ = [
	# Event Bus
	"EventBus",
	# Chrome
	"LoadingIndicator",
	"StatusBar",
	# Main Window
	"MainWindow",
	"WindowContext",
]

_LAZY = {
	"MainWindow": "main_window",
	"WindowContext": "main_window",
}


def __getattr__(name: str) -> Any:
	module_name = _LAZY.get(name)
	if module_name is None:
		raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
	value = getattr(import_module(f"{__name__}.{module_name}"), name)
	globals()[name] = value
	return value
