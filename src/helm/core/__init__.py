"""Core domain types shared by the editor and the completion engine."""

from .ranges import TextRange

__all__ = ["TextRange"]
