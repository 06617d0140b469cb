"""Editor package: document model, marks, transactions and the Qt view."""

from importlib import import_module
from typing import Any

from . import buffer, document_model, marks, transaction

__all__ = ["buffer", "document_model", "marks", "transaction", "editor_widget"]


def __getattr__(name: str) -> Any:
	if name == "editor_widget":
		module = import_module(f"{__name__}.{name}")
		globals()[name] = module
		return module
	raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
