"""Main window behavior tests."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, Iterator

import pytest

from conftest import FakeProvider
from helm.ai.client import CompletionUsage
from helm.ai.prompts import DEFAULT_PROMPT
from helm.completion.errors import ProviderError
from helm.services.autosave import DOCUMENT_ID
from helm.services.document_store import Database, DocumentStore, PromptSettingsStore
from helm.services.settings import Settings
from helm.ui.events import StatusMessage
from helm.ui.main_window import MainWindow, WindowContext


class _FakePricing:
    def __init__(self, cost: float | None = 0.002, balance: float | None = 4.5) -> None:
        self.cost = cost
        self.balance = balance
        self.estimates: list[tuple[str, CompletionUsage]] = []

    async def estimate_cost(self, model_id: str, usage: CompletionUsage) -> float | None:
        self.estimates.append((model_id, usage))
        return self.cost

    async def fetch_balance(self) -> Any:
        if self.balance is None:
            return None
        return SimpleNamespace(balance=self.balance)


@pytest.fixture(autouse=True)
def _ensure_qapp(qt_app: Any) -> Any:
    return qt_app


@pytest.fixture
def database() -> Iterator[Database]:
    db = Database()
    yield db
    db.close()


def _make_window(
    provider: FakeProvider,
    database: Database | None = None,
    *,
    pricing: Any = None,
    settings: Settings | None = None,
) -> MainWindow:
    context = WindowContext(
        settings=settings or Settings(autosave_delay=0.01),
        provider=provider,
        document_store=DocumentStore(database) if database is not None else None,
        prompt_store=PromptSettingsStore(database) if database is not None else None,
        pricing=pricing,
    )
    return MainWindow(context)


async def _type_and_complete(window: MainWindow, text: str) -> None:
    window.editor.buffer.type_text(text)
    assert window.editor.press_key("Tab") is True
    await window.controller.keymap.drain()


def test_main_window_requires_provider() -> None:
    with pytest.raises(ValueError):
        MainWindow(WindowContext(settings=Settings()))


def test_main_window_starts_idle_with_model(provider: FakeProvider) -> None:
    window = _make_window(provider, settings=Settings(model="openai/gpt-4o-mini"))

    assert window.status_bar.completion_state == "Idle"
    assert window.status_bar.model == "GPT-4o Mini"
    assert window.controller.model_id == "openai/gpt-4o-mini"
    assert window.autosave is None


@pytest.mark.asyncio
async def test_tab_from_editor_negotiates_completion(database: Database) -> None:
    window = _make_window(FakeProvider(["on the mat."]), database)

    await _type_and_complete(window, "The cat sat")

    assert window.editor.buffer.text == "The cat sat on the mat."
    assert window.status_bar.completion_state == "Negotiating"

    window.editor.press_key("ArrowRight")
    window.editor.press_key("Tab")

    assert window.editor.buffer.text == "The cat sat on"
    assert window.status_bar.completion_state == "Idle"
    await window.shutdown()


@pytest.mark.asyncio
async def test_autosave_excludes_provisional_text(database: Database) -> None:
    window = _make_window(FakeProvider(["on the mat."]), database)
    store = DocumentStore(database)

    await _type_and_complete(window, "The cat sat")
    assert window.autosave is not None
    await window.autosave.flush()
    assert store.get(DOCUMENT_ID)["text"] == "The cat sat"

    window.editor.press_key(" ")
    window.editor.press_key("Tab")
    await window.autosave.flush()
    assert store.get(DOCUMENT_ID)["text"] == "The cat sat on the mat."
    assert window.status_bar.autosave_state == ("Saved", "")
    await window.shutdown()


@pytest.mark.asyncio
async def test_failure_is_shown_in_status_bar(provider: FakeProvider) -> None:
    provider.queue(ProviderError("Rate limited by provider"))
    window = _make_window(provider)

    await _type_and_complete(window, "The cat sat")

    assert window.status_bar.message == "Rate limited by provider"
    assert window.status_bar.completion_state == "Idle"


@pytest.mark.asyncio
async def test_empty_document_reports_missing_context(provider: FakeProvider) -> None:
    window = _make_window(provider)

    window.editor.press_key("Tab")
    await window.controller.keymap.drain()

    assert window.status_bar.message
    assert provider.calls == []


@pytest.mark.asyncio
async def test_usage_updates_cost_and_balance() -> None:
    pricing = _FakePricing()
    window = _make_window(FakeProvider(["on the mat."]), pricing=pricing)

    await _type_and_complete(window, "The cat sat")
    for _ in range(5):
        await asyncio.sleep(0)

    assert pricing.estimates[0][1].prompt_tokens == 12
    assert "(12+4 tok)" in window.status_bar.cost_text
    assert window.status_bar.cost_text.endswith("Balance: $4.50")
    await window.shutdown()


@pytest.mark.asyncio
async def test_restore_loads_saved_document_and_balance(database: Database) -> None:
    DocumentStore(database).put(DOCUMENT_ID, {"text": "Saved words", "marks": [], "selection": [11, 11]})
    window = _make_window(FakeProvider(), database, pricing=_FakePricing(balance=2.0))

    assert window.restore() is True
    await asyncio.sleep(0)

    assert window.editor.buffer.text == "Saved words"
    assert window.status_bar.cost_text == "Balance: $2.00"
    await window.shutdown()


def test_restore_before_loop_runs_queues_balance_refresh(database: Database) -> None:
    DocumentStore(database).put(DOCUMENT_ID, {"text": "Saved words", "marks": [], "selection": [11, 11]})
    window = _make_window(FakeProvider(), database, pricing=_FakePricing(balance=3.25))
    loop = asyncio.new_event_loop()
    try:
        assert window.restore(loop=loop) is True
        assert window.status_bar.message == "Restored saved document"
        assert window.status_bar.cost_text != "Balance: $3.25"

        loop.run_until_complete(asyncio.sleep(0.01))
    finally:
        loop.close()

    assert window.status_bar.cost_text == "Balance: $3.25"


def test_set_prompts_persists_and_applies(database: Database) -> None:
    window = _make_window(FakeProvider(), database)

    assert window.set_prompts(custom_prompt="Write like a pirate.") is True

    assert window.controller.prompts.custom_prompt == "Write like a pirate."
    reloaded = PromptSettingsStore(database).load_prompts()
    assert reloaded.custom_prompt == "Write like a pirate."


def test_prompts_default_when_nothing_stored(database: Database) -> None:
    window = _make_window(FakeProvider(), database)

    assert window.controller.prompts.custom_prompt == DEFAULT_PROMPT


def test_set_model_updates_status_bar(provider: FakeProvider) -> None:
    window = _make_window(provider)

    window.set_model("anthropic/claude-3-haiku")
    assert window.status_bar.model == "Claude 3 Haiku"

    window.set_model("mistralai/mistral-7b")
    assert window.status_bar.model == "mistralai/mistral-7b"
    assert window.controller.model_id == "mistralai/mistral-7b"


def test_status_messages_and_cursor_reach_status_bar(provider: FakeProvider) -> None:
    window = _make_window(provider)

    window.event_bus.publish(StatusMessage(message="Ready"))
    window.editor.buffer.type_text("one\ntwo")

    assert window.status_bar.message == "Ready"
    assert window.status_bar.cursor_position == (2, 4)


@pytest.mark.asyncio
async def test_shutdown_flushes_pending_save(database: Database) -> None:
    window = _make_window(FakeProvider(), database, settings=Settings(autosave_delay=10.0))

    window.editor.buffer.type_text("Draft")
    assert window.status_bar.autosave_state == ("Unsaved", "saving…")
    await window.shutdown()
    await window.shutdown()

    assert DocumentStore(database).get(DOCUMENT_ID)["text"] == "Draft"


def test_close_event_saves_and_accepts(database: Database) -> None:
    window = _make_window(FakeProvider(), database)
    accepted: list[bool] = []
    window.editor.buffer.type_text("Draft")

    window.closeEvent(SimpleNamespace(accept=lambda: accepted.append(True)))

    assert accepted == [True]
    assert DocumentStore(database).get(DOCUMENT_ID)["text"] == "Draft"
