"""Editor widget implementation with Qt + headless fallbacks.

All editing state lives in :class:`~helm.editor.buffer.EditorBuffer`. When
PySide6 is available and a ``QApplication`` has been instantiated, the widget
mirrors the buffer into a ``QPlainTextEdit``, renders provisional completion
text as ghost text and offers key presses to registered handlers before the
editor sees them; otherwise only the buffer is used.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from .buffer import EditorBuffer
from .document_model import DocumentState, SelectionRange
from .marks import COMPLETION_MARK

LOGGER = logging.getLogger(__name__)

Qt: Any = None
QEvent: Any = None
QObject: Any = None
QTextCursor: Any = None
QApplication: Any = None
QPlainTextEdit: Any = None
QTextEdit: Any = None
QVBoxLayout: Any = None
QWidgetBase: Any = None
QColor: Any = None
QKeySequence: Any = None

try:  # pragma: no cover - PySide6 optional in CI
    from PySide6.QtCore import QEvent as _QtEvent, QObject as _QtObject, Qt as _QtCoreQt
    from PySide6.QtGui import QColor as _QtColor, QKeySequence as _QtKeySequence, QTextCursor as _QtTextCursor
    from PySide6.QtWidgets import (
        QApplication as _QtApplication,
        QPlainTextEdit as _QtPlainTextEdit,
        QTextEdit as _QtTextEdit,
        QVBoxLayout as _QtVBoxLayout,
        QWidget as _QtWidget,
    )

    Qt = _QtCoreQt
    QEvent = _QtEvent
    QObject = _QtObject
    QTextCursor = _QtTextCursor
    QApplication = _QtApplication
    QPlainTextEdit = _QtPlainTextEdit
    QTextEdit = _QtTextEdit
    QVBoxLayout = _QtVBoxLayout
    QWidgetBase = _QtWidget
    QColor = _QtColor
    QKeySequence = _QtKeySequence
except Exception:  # pragma: no cover - runtime fallback

    class _StubQWidget:  # type: ignore[too-many-ancestors]
        """Runtime fallback avoiding PySide6 dependency during tests."""

        def __init__(self, *args: Any, **kwargs: Any) -> None:  # noqa: D401 - shim
            del args, kwargs

    QWidgetBase = _StubQWidget


KeyHandler = Callable[[str], bool]

_GHOST_FOREGROUND = (140, 140, 150)


class EditorWidget(QWidgetBase):
    """Presents an :class:`EditorBuffer` and routes completion keys."""

    def __init__(self, buffer: EditorBuffer | None = None, parent: Any | None = None) -> None:
        super().__init__(parent)
        self._buffer = buffer or EditorBuffer()
        self._key_handlers: list[KeyHandler] = []
        self._qt_editor: Any = None
        self._key_filter: Any = None
        self._ghost_brush: Any = None
        self._syncing = False

        self._buffer.add_text_listener(self._handle_buffer_text_changed)
        self._buffer.add_selection_listener(self._handle_buffer_selection_changed)
        self._build_ui()

    # ------------------------------------------------------------------
    # UI construction & helpers
    # ------------------------------------------------------------------
    def _build_ui(self) -> None:
        """Instantiate Qt widgets when a QApplication is available."""

        if QApplication is None or QPlainTextEdit is None or QVBoxLayout is None:
            return
        try:
            if QApplication.instance() is None:
                # Headless mode: the buffer keeps working on its own.
                return
        except Exception:  # pragma: no cover - defensive guard
            return

        self._qt_editor = QPlainTextEdit(self)
        self._qt_editor.setTabChangesFocus(False)
        self._qt_editor.setUndoRedoEnabled(False)
        self._qt_editor.setPlainText(self._buffer.text)
        self._qt_editor.document().contentsChange.connect(self._handle_qt_contents_change)  # type: ignore[attr-defined]
        self._qt_editor.cursorPositionChanged.connect(self._handle_qt_selection_changed)  # type: ignore[attr-defined]
        self._key_filter = _build_key_filter(self._dispatch_key, self._buffer)
        if self._key_filter is not None:
            self._qt_editor.installEventFilter(self._key_filter)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.addWidget(self._qt_editor)

        self._buffer.set_coordinates_provider(self._caret_rect)
        self._apply_ghost_highlight()

    @property
    def buffer(self) -> EditorBuffer:
        return self._buffer

    @property
    def has_qt_editor(self) -> bool:
        return self._qt_editor is not None

    def viewport(self) -> Any | None:
        """Widget that caret coordinates are relative to (for overlays)."""

        if self._qt_editor is None:
            return None
        return self._qt_editor.viewport()

    def load_document(self, document: DocumentState) -> None:
        self._buffer.load_document(document)

    def to_document(self) -> DocumentState:
        return self._buffer.to_document()

    def focus_editor(self) -> None:
        if self._qt_editor is not None:
            self._qt_editor.setFocus()

    # ------------------------------------------------------------------
    # Key routing
    # ------------------------------------------------------------------
    def add_key_handler(self, handler: KeyHandler) -> None:
        if handler not in self._key_handlers:
            self._key_handlers.append(handler)

    def remove_key_handler(self, handler: KeyHandler) -> None:
        if handler in self._key_handlers:
            self._key_handlers.remove(handler)

    @property
    def key_handler_count(self) -> int:
        return len(self._key_handlers)

    def press_key(self, key: str) -> bool:
        """Offer ``key`` to the handlers as if typed; returns ``True`` when consumed."""

        return self._dispatch_key(key)

    def _dispatch_key(self, key: str) -> bool:
        for handler in list(self._key_handlers):
            try:
                if handler(key):
                    return True
            except Exception:
                LOGGER.exception("Key handler failed for %s", key)
        return False

    # ------------------------------------------------------------------
    # Buffer -> Qt
    # ------------------------------------------------------------------
    def _handle_buffer_text_changed(self, text: str, _state: DocumentState) -> None:
        if self._qt_editor is None:
            return
        if self._syncing:
            self._apply_ghost_highlight()
            return
        self._syncing = True
        try:
            if self._qt_editor.toPlainText() != text:
                self._qt_editor.blockSignals(True)
                document = self._qt_editor.document()
                document.blockSignals(True)
                try:
                    self._qt_editor.setPlainText(text)
                finally:
                    document.blockSignals(False)
                    self._qt_editor.blockSignals(False)
            self._sync_cursor(self._buffer.selection)
        finally:
            self._syncing = False
        self._apply_ghost_highlight()

    def _handle_buffer_selection_changed(self, selection: SelectionRange, _line: int, _column: int) -> None:
        if self._qt_editor is None or self._syncing:
            return
        self._syncing = True
        try:
            self._sync_cursor(selection)
        finally:
            self._syncing = False

    def _sync_cursor(self, selection: SelectionRange) -> None:
        if self._qt_editor is None or QTextCursor is None:
            return
        cursor = self._qt_editor.textCursor()
        cursor.setPosition(selection.start)
        cursor.setPosition(selection.end, QTextCursor.KeepAnchor)  # type: ignore[attr-defined]
        self._qt_editor.blockSignals(True)
        try:
            self._qt_editor.setTextCursor(cursor)
        finally:
            self._qt_editor.blockSignals(False)

    # ------------------------------------------------------------------
    # Qt -> buffer
    # ------------------------------------------------------------------
    def _handle_qt_contents_change(self, position: int, removed: int, added: int) -> None:
        if self._qt_editor is None or self._syncing:
            return
        inserted = self._qt_editor.toPlainText()[position : position + added]
        self._syncing = True
        try:
            with self._buffer.transaction("typing") as tr:
                if removed:
                    tr.delete_range(position, position + removed)
                if inserted:
                    tr.insert_text(inserted, position)
        finally:
            self._syncing = False

    def _handle_qt_selection_changed(self) -> None:
        if self._qt_editor is None or self._syncing:
            return
        cursor = self._qt_editor.textCursor()
        self._syncing = True
        try:
            self._buffer.set_selection(cursor.anchor(), cursor.position())
        finally:
            self._syncing = False

    # ------------------------------------------------------------------
    # Ghost text
    # ------------------------------------------------------------------
    def _apply_ghost_highlight(self) -> None:
        if self._qt_editor is None or QTextCursor is None or QTextEdit is None:
            return
        selection_cls = getattr(QTextEdit, "ExtraSelection", None)
        if selection_cls is None:
            return
        selections: list[Any] = []
        for span in self._buffer.mark_ranges(COMPLETION_MARK):
            cursor = self._qt_editor.textCursor()
            cursor.setPosition(span.start)
            cursor.setPosition(span.end, QTextCursor.KeepAnchor)
            selection = selection_cls()
            selection.cursor = cursor
            format_obj = selection.format
            brush = self._ghost_color()
            try:
                if brush is not None:
                    format_obj.setForeground(brush)
                format_obj.setFontItalic(True)
            except Exception:  # pragma: no cover - Qt defensive guard
                pass
            selections.append(selection)
        try:
            self._qt_editor.setExtraSelections(selections)
        except Exception:  # pragma: no cover - defensive guard
            pass

    def _ghost_color(self) -> Any | None:
        if QColor is None:
            return None
        if self._ghost_brush is None:
            try:
                self._ghost_brush = QColor(*_GHOST_FOREGROUND)
            except Exception:  # pragma: no cover - defensive guard
                self._ghost_brush = None
        return self._ghost_brush

    def _caret_rect(self, offset: int) -> tuple[int, int]:
        cursor = self._qt_editor.textCursor()
        cursor.setPosition(max(0, min(offset, len(self._qt_editor.toPlainText()))))
        rect = self._qt_editor.cursorRect(cursor)
        return (rect.left(), rect.bottom())


def _key_name(event: Any) -> str | None:
    """Canonical key name for a ``QKeyEvent``, or ``None`` for keys we ignore."""

    key = event.key()
    modifiers = event.modifiers()
    if key == Qt.Key.Key_Backtab:
        return "Shift+Tab"
    blocking = (
        Qt.KeyboardModifier.ShiftModifier
        | Qt.KeyboardModifier.ControlModifier
        | Qt.KeyboardModifier.AltModifier
        | Qt.KeyboardModifier.MetaModifier
    )
    if modifiers & blocking:
        return None
    return {
        Qt.Key.Key_Tab: "Tab",
        Qt.Key.Key_Right: "Right",
        Qt.Key.Key_Left: "Left",
        Qt.Key.Key_Space: "Space",
        Qt.Key.Key_Escape: "Escape",
    }.get(key)


def _build_key_filter(dispatch: KeyHandler, buffer: EditorBuffer) -> Any | None:
    if QObject is None or QEvent is None:
        return None

    # Qt undo is disabled so history stays in the buffer with its marks.
    class _KeyFilter(QObject):  # type: ignore[misc, valid-type]
        def eventFilter(self, watched: Any, event: Any) -> bool:  # noqa: N802 - Qt API
            if event.type() == QEvent.Type.KeyPress:
                if QKeySequence is not None and event.matches(QKeySequence.StandardKey.Undo):
                    buffer.undo()
                    return True
                if QKeySequence is not None and event.matches(QKeySequence.StandardKey.Redo):
                    buffer.redo()
                    return True
                name = _key_name(event)
                if name is not None and dispatch(name):
                    return True
            return False

    return _KeyFilter()


__all__ = ["EditorWidget"]
