"""Main window wiring the editor, completion controller, autosave and status bar."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Coroutine, Set

from ..ai.client import CompletionProvider, CompletionUsage
from ..ai.models import DEFAULT_MODEL, find_model
from ..ai.pricing import PricingFeed
from ..ai.prompts import PromptSettings
from ..completion.controller import CompletionController
from ..core.ranges import TextRange
from ..editor.buffer import EditorBuffer
from ..editor.document_model import DocumentState, SelectionRange
from ..editor.editor_widget import EditorWidget
from ..services.autosave import DOCUMENT_ID, AutosaveScheduler
from ..services.document_store import DocumentStore, PromptSettingsStore
from ..services.settings import Settings, SettingsStore
from .events import (
    CompletionCancelled,
    CompletionConfirmed,
    CompletionFailed,
    CompletionInserted,
    CompletionRequested,
    CompletionUsageReported,
    DocumentSaved,
    EventBus,
    GenerationAborted,
    StatusMessage,
)
from .loading_indicator import LoadingIndicator
from .status_bar import StatusBar

QApplication: Any = None
QMainWindow: Any = None

try:  # pragma: no cover - PySide6 optional in CI
    from PySide6.QtWidgets import QApplication as _QtQApplication, QMainWindow as _QtQMainWindow

    QApplication = _QtQApplication
    QMainWindow = _QtQMainWindow
except Exception:  # pragma: no cover - runtime stubs keep tests headless

    class _StubQMainWindow:  # type: ignore[misc]
        """Fallback placeholder when PySide6 is unavailable."""

        def __init__(self, *args: object, **kwargs: object) -> None:
            del args, kwargs

    QMainWindow = _StubQMainWindow


_LOGGER = logging.getLogger(__name__)

WINDOW_APP_NAME = "Helm"
ERROR_MESSAGE_TIMEOUT_MS = 6000


@dataclass(slots=True)
class WindowContext:
    """Shared context passed to the main window when constructing the UI."""

    settings: Settings | None = None
    settings_store: SettingsStore | None = None
    provider: CompletionProvider | None = None
    document_store: DocumentStore | None = None
    prompt_store: PromptSettingsStore | None = None
    pricing: PricingFeed | None = None


class MainWindow(QMainWindow):
    """Single-document editor window with inline AI completions."""

    def __init__(
        self,
        context: WindowContext,
        *,
        buffer: EditorBuffer | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        super().__init__()
        if context.provider is None:
            raise ValueError("MainWindow requires a completion provider")
        self._context = context
        settings = context.settings or Settings()
        self._settings = settings
        self._bus = event_bus or EventBus()
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._closed = False

        self._editor = EditorWidget(buffer)
        self._buffer = self._editor.buffer
        self._status_bar = StatusBar()
        self._loading = LoadingIndicator(self._editor.viewport())

        prompts = context.prompt_store.load_prompts() if context.prompt_store is not None else PromptSettings()
        self._controller = CompletionController(
            self._buffer,
            context.provider,
            prompts=prompts,
            model_id=settings.model or DEFAULT_MODEL,
            event_bus=self._bus,
            loading_indicator=self._loading,
        )
        self._controller.bind_keys(self._editor)

        self._autosave: AutosaveScheduler | None = None
        if context.document_store is not None:
            self._autosave = AutosaveScheduler(
                self._buffer,
                context.document_store,
                document_id=DOCUMENT_ID,
                delay=settings.autosave_delay,
                event_bus=self._bus,
                provisional_ranges=self._provisional_ranges,
            )

        self._subscribe()
        self._buffer.add_text_listener(self._handle_text_changed)
        self._buffer.add_selection_listener(self._handle_selection_changed)
        self._show_model()
        self._refresh_phase()
        self._initialize_ui()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def editor(self) -> EditorWidget:
        return self._editor

    @property
    def controller(self) -> CompletionController:
        return self._controller

    @property
    def status_bar(self) -> StatusBar:
        return self._status_bar

    @property
    def autosave(self) -> AutosaveScheduler | None:
        return self._autosave

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def loading_indicator(self) -> LoadingIndicator:
        return self._loading

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def restore(self, *, loop: asyncio.AbstractEventLoop | None = None) -> bool:
        """Load the persisted document, if any, and refresh the account balance.

        Pass ``loop`` when calling before the event loop runs so the balance
        refresh is queued on it instead of skipped.
        """

        restored = False
        if self._autosave is not None:
            restored = self._autosave.restore()
            if restored:
                self._status_bar.set_autosave_state("Saved")
                self._bus.publish(StatusMessage(message="Restored saved document", timeout_ms=2000))
        self._spawn(self.refresh_balance(), loop=loop)
        return restored


    async def refresh_balance(self) -> None:
        pricing = self._context.pricing
        if pricing is None:
            return
        balance = await pricing.fetch_balance()
        if balance is not None:
            self._status_bar.set_balance(balance.balance)

    def set_prompts(self, *, custom_prompt: str | None = None, regen_template: str | None = None) -> bool:
        """Persist prompt edits and apply them to subsequent requests."""

        current = self._controller.prompts
        updated = PromptSettings(
            custom_prompt=current.custom_prompt if custom_prompt is None else custom_prompt,
            regen_template=current.regen_template if regen_template is None else regen_template,
        )
        self._controller.prompts = updated
        store = self._context.prompt_store
        if store is None:
            return True
        return store.save_prompts(custom_prompt=custom_prompt, regen_template=regen_template)

    def set_model(self, model_id: str) -> None:
        self._controller.model_id = model_id
        self._show_model()

    async def shutdown(self) -> None:
        """Release the controller and flush pending saves."""

        if self._closed:
            return
        self._closed = True
        self._controller.dispose()
        for task in list(self._tasks):
            task.cancel()
        if self._autosave is not None:
            await self._autosave.flush()
            self._autosave.close()

    def closeEvent(self, event: Any) -> None:  # noqa: N802 - Qt naming
        """Ensure background work is cancelled before the window closes."""

        if not self._closed:
            self._closed = True
            self._controller.dispose()
            for task in list(self._tasks):
                task.cancel()
            if self._autosave is not None:
                self._autosave.save_now()
                self._autosave.close()

        super_close = getattr(super(), "closeEvent", None)
        if callable(super_close):  # pragma: no branch - defensive wiring
            try:
                super_close(event)
            except Exception:  # pragma: no cover - Qt stubs/tests
                _LOGGER.debug("Base closeEvent handler raised", exc_info=True)

        accept = getattr(event, "accept", None)
        if callable(accept):
            accept()

    # ------------------------------------------------------------------
    # UI construction
    # ------------------------------------------------------------------
    def _initialize_ui(self) -> None:
        if QApplication is None or QApplication.instance() is None or not self._editor.has_qt_editor:
            return
        try:
            self.setWindowTitle(WINDOW_APP_NAME)
            self.setCentralWidget(self._editor)
            qt_status_bar = self._status_bar.widget()
            if qt_status_bar is not None:
                self.setStatusBar(qt_status_bar)
            self.resize(900, 700)
            self._apply_font()
            self._editor.focus_editor()
        except Exception:  # pragma: no cover - Qt defensive guard
            _LOGGER.debug("Failed to assemble the main window", exc_info=True)

    def _apply_font(self) -> None:
        try:
            from PySide6.QtGui import QFont
        except Exception:  # pragma: no cover - PySide6 optional during tests
            return
        font = QFont(self._settings.font_family, self._settings.font_size)
        self._editor.setFont(font)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------
    def _subscribe(self) -> None:
        bus = self._bus
        bus.subscribe(CompletionRequested, self._handle_completion_requested)
        bus.subscribe(CompletionInserted, self._handle_phase_event)
        bus.subscribe(CompletionConfirmed, self._handle_phase_event)
        bus.subscribe(CompletionCancelled, self._handle_phase_event)
        bus.subscribe(GenerationAborted, self._handle_generation_aborted)
        bus.subscribe(CompletionFailed, self._handle_completion_failed)
        bus.subscribe(CompletionUsageReported, self._handle_usage_reported)
        bus.subscribe(DocumentSaved, self._handle_document_saved)
        bus.subscribe(StatusMessage, self._handle_status_message)

    def _handle_completion_requested(self, event: CompletionRequested) -> None:
        self._status_bar.clear_message()
        self._status_bar.set_completion_state("Generating")

    def _handle_phase_event(self, _event: Any) -> None:
        self._refresh_phase()

    def _handle_generation_aborted(self, _event: GenerationAborted) -> None:
        self._status_bar.set_message("Generation cancelled", timeout_ms=2000)
        self._refresh_phase()

    def _handle_completion_failed(self, event: CompletionFailed) -> None:
        self._status_bar.set_message(event.message, timeout_ms=ERROR_MESSAGE_TIMEOUT_MS)
        self._refresh_phase()

    def _handle_usage_reported(self, event: CompletionUsageReported) -> None:
        usage = CompletionUsage(prompt_tokens=event.prompt_tokens, completion_tokens=event.completion_tokens)
        self._spawn(self._update_cost(event.model_id, usage))

    def _handle_document_saved(self, _event: DocumentSaved) -> None:
        self._status_bar.set_autosave_state("Saved")

    def _handle_status_message(self, event: StatusMessage) -> None:
        self._status_bar.set_message(event.message, timeout_ms=event.timeout_ms or None)

    def _handle_text_changed(self, _text: str, _state: DocumentState) -> None:
        self._refresh_phase()
        if self._autosave is not None and self._autosave.pending:
            self._status_bar.set_autosave_state("Unsaved", detail="saving…")

    def _handle_selection_changed(self, _selection: SelectionRange, line: int, column: int) -> None:
        self._status_bar.update_cursor(line, column)

    async def _update_cost(self, model_id: str, usage: CompletionUsage) -> None:
        pricing = self._context.pricing
        if pricing is None:
            self._status_bar.set_last_cost(
                None, prompt_tokens=usage.prompt_tokens, completion_tokens=usage.completion_tokens
            )
            return
        cost = await pricing.estimate_cost(model_id, usage)
        self._status_bar.set_last_cost(
            cost, prompt_tokens=usage.prompt_tokens, completion_tokens=usage.completion_tokens
        )
        await self.refresh_balance()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _refresh_phase(self) -> None:
        self._status_bar.set_completion_state(self._controller.phase)

    def _show_model(self) -> None:
        model_id = self._controller.model_id
        config = find_model(model_id)
        if config is None:
            _LOGGER.info("Model %s is not in the built-in catalog", model_id)
        self._status_bar.set_model(config.name if config is not None else model_id)

    def _provisional_ranges(self) -> list[TextRange]:
        span = self._controller.session.range
        return [] if span is None else [span]

    def _spawn(
        self,
        coroutine: Coroutine[Any, Any, Any],
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> asyncio.Task[Any] | None:
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                coroutine.close()
                _LOGGER.debug("No running event loop; background refresh skipped")
                return None
        task = loop.create_task(coroutine)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _LOGGER.warning("Background status refresh failed: %s", exc)


__all__ = ["MainWindow", "WindowContext", "WINDOW_APP_NAME"]
