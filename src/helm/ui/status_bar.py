"""Status bar with optional Qt widgets."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

try:  # pragma: no cover - Qt imports are optional during tests
    from PySide6.QtWidgets import QApplication, QLabel, QStatusBar
except Exception:  # pragma: no cover - PySide6 not available
    QApplication = None  # type: ignore[assignment]
    QLabel = None  # type: ignore[assignment]
    QStatusBar = None  # type: ignore[assignment]

from ..ai.models import format_cost


class StatusBar:
    """Shows caret position, completion state, model, cost and autosave status."""

    def __init__(self, parent: Any | None = None) -> None:
        self._message: str = ""
        self._message_timeout: Optional[int] = None
        self._cursor: tuple[int, int] = (1, 1)
        self._completion_state: str = "Idle"
        self._model: str = ""
        self._last_cost: float | None = None
        self._last_tokens: tuple[int, int] | None = None
        self._balance: float | None = None
        self._autosave_state: str = "Saved"
        self._autosave_detail: str = ""

        self._qt_bar = self._build_qt_status_bar(parent)
        self._cursor_label: Any = None
        self._completion_label: Any = None
        self._model_label: Any = None
        self._cost_label: Any = None
        self._autosave_label: Any = None

        if self._qt_bar is not None:
            self._init_widgets()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def set_message(self, message: str, *, timeout_ms: Optional[int] = None) -> None:
        """Show a primary status message, honoring optional timeouts."""

        self._message = message
        self._message_timeout = timeout_ms
        if self._qt_bar is not None:
            try:
                self._qt_bar.showMessage(message, timeout_ms or 0)
            except Exception:
                pass

    def clear_message(self) -> None:
        self._message = ""
        self._message_timeout = None
        if self._qt_bar is not None:
            try:
                self._qt_bar.clearMessage()
            except Exception:
                pass

    def update_cursor(self, line: int, column: int) -> None:
        self._cursor = (max(1, line), max(1, column))
        self._update_label(self._cursor_label, self._format_cursor_text())

    def set_completion_state(self, state: str | Enum) -> None:
        """Reflect the controller phase (Idle, Generating, Negotiating)."""

        self._completion_state = self._coerce_state(state)
        self._update_label(self._completion_label, self._completion_state)

    def set_model(self, model: str) -> None:
        self._model = (model or "").strip()
        self._update_label(self._model_label, self._model)

    def set_last_cost(self, cost: float | None, *, prompt_tokens: int = 0, completion_tokens: int = 0) -> None:
        """Display the estimated cost of the last generation (``None`` hides it)."""

        self._last_cost = cost
        self._last_tokens = (prompt_tokens, completion_tokens)
        self._update_label(self._cost_label, self._format_cost_text())

    def set_balance(self, balance: float | None) -> None:
        self._balance = balance
        self._update_label(self._cost_label, self._format_cost_text())

    def set_autosave_state(self, state: str, *, detail: str | None = None) -> None:
        normalized = state.strip() if state else "Saved"
        self._autosave_state = normalized or "Saved"
        self._autosave_detail = (detail or "").strip()
        self._update_label(self._autosave_label, self._format_autosave_text())

    def widget(self) -> Any | None:
        """Return the underlying :class:`QStatusBar` when available."""

        return self._qt_bar

    # ------------------------------------------------------------------
    # Introspection helpers (handy for tests)
    # ------------------------------------------------------------------
    @property
    def message(self) -> str:
        return self._message

    @property
    def cursor_position(self) -> tuple[int, int]:
        return self._cursor

    @property
    def completion_state(self) -> str:
        return self._completion_state

    @property
    def model(self) -> str:
        return self._model

    @property
    def cost_text(self) -> str:
        return self._format_cost_text()

    @property
    def autosave_state(self) -> tuple[str, str]:
        return (self._autosave_state, self._autosave_detail)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _init_widgets(self) -> None:
        if self._qt_bar is None or QLabel is None:
            return

        self._cursor_label = QLabel(self._format_cursor_text())
        self._cursor_label.setObjectName("helm-status-cursor")
        self._completion_label = QLabel(self._completion_state)
        self._completion_label.setObjectName("helm-status-completion")
        self._model_label = QLabel(self._model)
        self._model_label.setObjectName("helm-status-model")
        self._cost_label = QLabel(self._format_cost_text())
        self._cost_label.setObjectName("helm-status-cost")
        self._autosave_label = QLabel(self._format_autosave_text())
        self._autosave_label.setObjectName("helm-status-autosave")

        for label in (
            self._cursor_label,
            self._completion_label,
            self._model_label,
            self._cost_label,
            self._autosave_label,
        ):
            label.setContentsMargins(8, 0, 8, 0)
            try:
                self._qt_bar.addPermanentWidget(label)
            except Exception:
                break

    def _update_label(self, label: Any, text: str) -> None:
        if label is None:
            return
        try:
            label.setText(text)
        except Exception:
            pass

    def _format_cursor_text(self) -> str:
        line, column = self._cursor
        return f"Ln {line}, Col {column}"

    def _format_cost_text(self) -> str:
        parts: list[str] = []
        if self._last_cost is not None:
            text = f"Last: {format_cost(self._last_cost)}"
            if self._last_tokens:
                prompt_tokens, completion_tokens = self._last_tokens
                text += f" ({prompt_tokens}+{completion_tokens} tok)"
            parts.append(text)
        if self._balance is not None:
            parts.append(f"Balance: ${self._balance:.2f}")
        return " · ".join(parts)

    def _format_autosave_text(self) -> str:
        detail = self._autosave_detail
        base = f"Autosave: {self._autosave_state}"
        return f"{base} · {detail}" if detail else base

    @staticmethod
    def _coerce_state(state: str | Enum) -> str:
        if isinstance(state, Enum):
            return str(state.name).title()
        return str(state).strip() or "Idle"

    def _handle_qt_message_changed(self, text: str) -> None:
        self._message = text
        if not text:
            self._message_timeout = None

    def _build_qt_status_bar(self, parent: Any | None) -> Any | None:
        if QStatusBar is None or QApplication is None:
            return None
        try:
            if QApplication.instance() is None:
                return None
        except Exception:
            return None

        try:
            bar = QStatusBar(parent)
        except Exception:
            return None

        try:
            bar.setObjectName("helm-status-bar")
            bar.messageChanged.connect(self._handle_qt_message_changed)
        except Exception:
            pass
        return bar


__all__ = ["StatusBar"]
