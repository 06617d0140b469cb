"""Editor widget tests covering logical behaviors in headless mode."""

from typing import Any

import pytest

from helm.editor.buffer import EditorBuffer
from helm.editor.document_model import DocumentState, SelectionRange
from helm.editor.editor_widget import EditorWidget
from helm.editor.marks import COMPLETION_MARK


@pytest.fixture(autouse=True)
def _ensure_qapp(qt_app: Any) -> Any:
    """Guarantee a QApplication when PySide6 is installed."""

    return qt_app


def test_editor_widget_document_roundtrip() -> None:
    widget = EditorWidget()
    widget.load_document(DocumentState(text="sample", selection=SelectionRange(2, 2)))

    document = widget.to_document()

    assert document.text == "sample"
    assert document.selection.as_tuple() == (2, 2)


def test_editor_widget_wraps_given_buffer() -> None:
    buffer = EditorBuffer(DocumentState(text="hello"))
    widget = EditorWidget(buffer)

    assert widget.buffer is buffer


def test_press_key_offers_key_to_handlers_in_order() -> None:
    widget = EditorWidget()
    seen: list[str] = []

    def _first(key: str) -> bool:
        seen.append(f"first:{key}")
        return False

    def _second(key: str) -> bool:
        seen.append(f"second:{key}")
        return key == "Tab"

    widget.add_key_handler(_first)
    widget.add_key_handler(_second)
    widget.add_key_handler(_first)

    assert widget.key_handler_count == 2
    assert widget.press_key("Tab") is True
    assert widget.press_key("a") is False
    assert seen == ["first:Tab", "second:Tab", "first:a", "second:a"]


def test_failing_key_handler_is_logged_and_skipped() -> None:
    widget = EditorWidget()

    def _broken(key: str) -> bool:
        raise RuntimeError("boom")

    widget.add_key_handler(_broken)
    widget.add_key_handler(lambda key: True)

    assert widget.press_key("Tab") is True


def test_remove_key_handler() -> None:
    widget = EditorWidget()

    def _handler(key: str) -> bool:
        return True

    widget.add_key_handler(_handler)
    widget.remove_key_handler(_handler)
    widget.remove_key_handler(_handler)

    assert widget.press_key("Tab") is False


def test_qt_editor_mirrors_buffer_when_available() -> None:
    widget = EditorWidget(EditorBuffer(DocumentState(text="The cat sat", selection=SelectionRange(11, 11))))
    if not widget.has_qt_editor:
        pytest.skip("PySide6 not available")

    with widget.buffer.transaction() as tr:
        tr.insert_text(" on", 11, marks=())
        tr.add_mark(COMPLETION_MARK, 11, 14)

    assert widget._qt_editor.toPlainText() == "The cat sat on"
    assert widget.viewport() is not None
    assert isinstance(widget.buffer.caret_coordinates(), tuple)


def test_headless_widget_has_no_viewport() -> None:
    widget = EditorWidget()
    if widget.has_qt_editor:
        pytest.skip("Qt editor active")

    assert widget.viewport() is None
    widget.focus_editor()
