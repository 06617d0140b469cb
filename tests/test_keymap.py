"""Keyboard routing for completion negotiation."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeProvider, wait_for_calls
from helm.completion.controller import CompletionController
from helm.completion.keymap import ESCAPE, LEFT, RIGHT, SHIFT_TAB, SPACE, TAB, normalize_key
from helm.completion.session import SessionPhase
from helm.editor.buffer import EditorBuffer


class _KeySource:
    def __init__(self) -> None:
        self.handlers: list = []

    def add_key_handler(self, handler) -> None:
        self.handlers.append(handler)

    def remove_key_handler(self, handler) -> None:
        self.handlers.remove(handler)

    def press(self, key: str) -> bool:
        return any(handler(key) for handler in list(self.handlers))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("tab", TAB),
        ("Backtab", SHIFT_TAB),
        ("ArrowRight", RIGHT),
        ("ArrowLeft", LEFT),
        (" ", SPACE),
        ("Esc", ESCAPE),
        ("Enter", "Enter"),
    ],
)
def test_normalize_key(raw: str, expected: str) -> None:
    assert normalize_key(raw) == expected


@pytest.mark.asyncio
async def test_tab_generates_then_arrows_negotiate_then_tab_confirms(buffer: EditorBuffer) -> None:
    controller = CompletionController(buffer, FakeProvider(["on the mat."]))

    assert controller.handle_key(TAB) is True
    await controller.keymap.drain()
    assert controller.phase is SessionPhase.NEGOTIATING

    assert controller.handle_key(RIGHT) is True
    assert controller.handle_key(RIGHT) is True
    assert controller.handle_key(LEFT) is True
    assert controller.session.selected_count == 1

    assert controller.handle_key(TAB) is True
    assert buffer.text == "The cat sat on"
    assert controller.phase is SessionPhase.IDLE


@pytest.mark.asyncio
async def test_tab_with_nothing_selected_regenerates(buffer: EditorBuffer) -> None:
    provider = FakeProvider(["on the mat.", "by the door."])
    controller = CompletionController(buffer, provider)
    controller.handle_key(TAB)
    await controller.keymap.drain()

    controller.handle_key(TAB)
    await controller.keymap.drain()

    assert buffer.text == "The cat sat by the door."
    assert len(provider.calls) == 2
    assert controller.history.attempts == ("on the mat.",)


@pytest.mark.asyncio
async def test_space_selects_all_only_while_active(buffer: EditorBuffer) -> None:
    controller = CompletionController(buffer, FakeProvider(["on the mat."]))

    assert controller.handle_key(SPACE) is False

    controller.handle_key(TAB)
    await controller.keymap.drain()
    assert controller.handle_key(SPACE) is True
    assert controller.session.selected_count == 3


@pytest.mark.asyncio
async def test_escape_cancels_active_completion(buffer: EditorBuffer) -> None:
    controller = CompletionController(buffer, FakeProvider(["on the mat."]))
    controller.handle_key(TAB)
    await controller.keymap.drain()

    assert controller.handle_key(ESCAPE) is True

    assert buffer.text == "The cat sat"
    assert controller.phase is SessionPhase.IDLE


@pytest.mark.asyncio
async def test_keys_while_generating(buffer: EditorBuffer) -> None:
    provider = FakeProvider(["on the mat."], hold=True)
    controller = CompletionController(buffer, provider)
    controller.handle_key(TAB)
    await wait_for_calls(provider)

    assert controller.handle_key(TAB) is True
    assert controller.handle_key(SPACE) is False
    assert controller.handle_key(RIGHT) is True
    assert controller.handle_key(ESCAPE) is True
    assert controller.phase is SessionPhase.IDLE

    provider.release()
    await controller.keymap.drain()
    assert buffer.text == "The cat sat"
    assert len(provider.calls) == 1


def test_navigation_keys_pass_through_when_idle(buffer: EditorBuffer, provider: FakeProvider) -> None:
    controller = CompletionController(buffer, provider)

    for key in (RIGHT, LEFT, SPACE, ESCAPE, SHIFT_TAB, "a"):
        assert controller.handle_key(key) is False


@pytest.mark.asyncio
async def test_shift_tab_is_swallowed_while_active(buffer: EditorBuffer) -> None:
    controller = CompletionController(buffer, FakeProvider(["on the mat."]))
    controller.handle_key(TAB)
    await controller.keymap.drain()

    assert controller.handle_key(SHIFT_TAB) is True
    assert controller.session.selected_count == 0
    assert controller.handle_key("x") is False


def test_tab_without_running_loop_is_consumed_but_dropped(buffer: EditorBuffer, provider: FakeProvider) -> None:
    controller = CompletionController(buffer, provider)

    assert controller.handle_key(TAB) is True
    assert controller.keymap.pending_tasks == ()
    assert provider.calls == []


@pytest.mark.asyncio
async def test_bind_keys_routes_source_until_released(buffer: EditorBuffer) -> None:
    source = _KeySource()
    controller = CompletionController(buffer, FakeProvider(["on the mat."]))

    capture = controller.bind_keys(source)
    assert capture.is_attached
    assert source.press("Tab") is True
    await controller.keymap.drain()
    assert controller.session.is_active

    capture.release()
    capture.release()
    assert source.handlers == []
    assert source.press("ArrowRight") is False


@pytest.mark.asyncio
async def test_rebinding_releases_previous_source(buffer: EditorBuffer, provider: FakeProvider) -> None:
    first, second = _KeySource(), _KeySource()
    controller = CompletionController(buffer, provider)

    controller.bind_keys(first)
    controller.bind_keys(second)

    assert first.handlers == []
    assert len(second.handlers) == 1


@pytest.mark.asyncio
async def test_dispose_releases_capture_and_pending_tasks(buffer: EditorBuffer) -> None:
    source = _KeySource()
    provider = FakeProvider(["on the mat."], hold=True)
    controller = CompletionController(buffer, provider)
    controller.bind_keys(source)
    source.press("Tab")
    await wait_for_calls(provider)
    assert len(controller.keymap.pending_tasks) == 1

    controller.dispose()
    await asyncio.sleep(0)

    assert source.handlers == []
    assert controller.keymap.pending_tasks == ()
    assert controller.is_generating is False
