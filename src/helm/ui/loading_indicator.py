"""Small busy marker anchored at the caret while a completion is generated."""

from __future__ import annotations

import logging
from typing import Any

try:  # pragma: no cover - Qt imports are optional during tests
    from PySide6.QtWidgets import QApplication, QLabel
except Exception:  # pragma: no cover - PySide6 not available
    QApplication = None  # type: ignore[assignment]
    QLabel = None  # type: ignore[assignment]

LOGGER = logging.getLogger(__name__)

_TEXT = "Generating…"
_STYLE = (
    "QLabel#helm-loading {"
    " background: rgba(40, 40, 48, 220); color: #f0f0f0;"
    " border-radius: 4px; padding: 2px 6px; font-size: 11px; }"
)


class LoadingIndicator:
    """Tracks visibility and position; renders a floating ``QLabel`` when Qt runs.

    ``show_at`` receives viewport coordinates of the caret (see
    :meth:`EditorBuffer.caret_coordinates`).
    """

    def __init__(self, parent: Any | None = None, *, text: str = _TEXT, offset: tuple[int, int] = (4, 18)) -> None:
        self._visible = False
        self._position: tuple[int, int] | None = None
        self._text = text
        self._offset = offset
        self._show_count = 0
        self._label = self._build_label(parent)

    @property
    def visible(self) -> bool:
        return self._visible

    @property
    def position(self) -> tuple[int, int] | None:
        return self._position

    @property
    def show_count(self) -> int:
        return self._show_count

    def show_at(self, x: int, y: int) -> None:
        self._visible = True
        self._position = (int(x), int(y))
        self._show_count += 1
        if self._label is None:
            return
        dx, dy = self._offset
        try:
            self._label.adjustSize()
            self._label.move(int(x) + dx, int(y) + dy)
            self._label.show()
            self._label.raise_()
        except Exception:  # pragma: no cover - Qt defensive guard
            LOGGER.debug("Unable to position loading indicator", exc_info=True)

    def hide(self) -> None:
        self._visible = False
        self._position = None
        if self._label is None:
            return
        try:
            self._label.hide()
        except Exception:  # pragma: no cover - Qt defensive guard
            LOGGER.debug("Unable to hide loading indicator", exc_info=True)

    def _build_label(self, parent: Any | None) -> Any | None:
        if QLabel is None or QApplication is None or parent is None:
            return None
        try:
            if QApplication.instance() is None:
                return None
        except Exception:
            return None
        try:
            label = QLabel(self._text, parent)
            label.setObjectName("helm-loading")
            label.setStyleSheet(_STYLE)
            label.hide()
        except Exception:  # pragma: no cover - Qt defensive guard
            LOGGER.debug("Unable to build loading indicator", exc_info=True)
            return None
        return label


__all__ = ["LoadingIndicator"]
