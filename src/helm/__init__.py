"""Helm: a single-document editor with word-grained AI completions."""

__all__ = ["__version__"]

__version__ = "0.1.0"
