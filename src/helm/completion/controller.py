"""Completion session controller.

Drives one provisional completion from request to resolution: it asks the
provider for a continuation of the text before the caret, inserts the result
under the completion mark and lets the user accept it word by word before
committing or discarding it.

Phases::

    IDLE --request--> GENERATING --response--> NEGOTIATING(0..N)
      ^                  |                        |  |
      +----cancel/fail---+          regenerate ---+  +--confirm/cancel--> IDLE

All document mutations happen inside one :meth:`EditorBuffer.transaction`, so
the view never renders half-applied state and each step is a single undo
entry.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

from ..ai.client import CompletionProvider, CompletionResult, CompletionUsage
from ..ai.models import DEFAULT_MODEL
from ..ai.prompts import PromptSettings
from ..core.ranges import TextRange
from ..editor.buffer import EditorBuffer
from ..editor.document_model import DocumentState
from ..editor.marks import COMPLETION_MARK
from ..editor.transaction import EditTransaction
from ..ui.events import (
    CompletionCancelled,
    CompletionConfirmed,
    CompletionFailed,
    CompletionInserted,
    CompletionRequested,
    CompletionSelectionChanged,
    CompletionUsageReported,
    EventBus,
    GenerationAborted,
)
from .cancellation import CancelToken
from .errors import CompletionError, EmptyContext, GenerationCancelled, ProviderError
from .history import AttemptHistory
from .keymap import CompletionKeymap, KeyboardCapture, KeySource
from .session import CompletionSession, Negotiation, SessionPhase
from .text import extract_context, needs_leading_space, tokenize_words

LOGGER = logging.getLogger(__name__)

__all__ = ["CompletionController", "LoadingIndicator"]


class LoadingIndicator(Protocol):
    """Position-anchored busy marker shown while a request is in flight."""

    def show_at(self, x: int, y: int) -> None:
        ...

    def hide(self) -> None:
        ...


class CompletionController:
    """Owns the completion session, attempt history and in-flight request.

    Public operations never raise: failures are reported through
    :attr:`error_message` and a :class:`CompletionFailed` event.
    """

    def __init__(
        self,
        buffer: EditorBuffer,
        provider: CompletionProvider,
        *,
        prompts: PromptSettings | None = None,
        model_id: str = DEFAULT_MODEL,
        event_bus: EventBus | None = None,
        loading_indicator: LoadingIndicator | None = None,
        mark_name: str = COMPLETION_MARK,
    ) -> None:
        self._buffer = buffer
        self._provider = provider
        self._prompts = prompts or PromptSettings()
        self._model_id = model_id
        self._bus = event_bus
        self._loading = loading_indicator
        self._mark = mark_name
        self._session = CompletionSession()
        self._history = AttemptHistory()
        self._token: CancelToken | None = None
        self._original_prompt: str | None = None
        self._error_message: str | None = None
        self._last_usage: CompletionUsage | None = None
        self._last_prompt: str | None = None
        self._applying = False
        self._keymap = CompletionKeymap(self)
        self._capture: KeyboardCapture | None = None
        self._buffer.add_text_listener(self._on_text_changed)

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------
    @property
    def phase(self) -> SessionPhase:
        if self._token is not None:
            return SessionPhase.GENERATING
        if self._session.is_active:
            return SessionPhase.NEGOTIATING
        return SessionPhase.IDLE

    @property
    def session(self) -> CompletionSession:
        return self._session

    @property
    def history(self) -> AttemptHistory:
        return self._history

    @property
    def buffer(self) -> EditorBuffer:
        return self._buffer

    @property
    def is_generating(self) -> bool:
        return self._token is not None

    @property
    def is_capturing(self) -> bool:
        """Whether navigation keys belong to the completion surface."""

        return self._token is not None or self._session.is_active

    @property
    def error_message(self) -> str | None:
        return self._error_message

    @property
    def last_usage(self) -> CompletionUsage | None:
        return self._last_usage

    @property
    def last_prompt(self) -> str | None:
        """Prompt text sent with the most recent request."""

        return self._last_prompt

    @property
    def model_id(self) -> str:
        return self._model_id

    @model_id.setter
    def model_id(self, value: str) -> None:
        self._model_id = (value or "").strip() or DEFAULT_MODEL

    @property
    def prompts(self) -> PromptSettings:
        return self._prompts

    @prompts.setter
    def prompts(self, value: PromptSettings) -> None:
        self._prompts = value

    @property
    def keymap(self) -> CompletionKeymap:
        return self._keymap

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    async def request_completion(self, prompt: str | None = None) -> bool:
        """Generate a completion at the caret.

        Returns ``True`` when provisional text was inserted. Rejected while a
        request is in flight or a completion is already being negotiated.
        """

        if self._token is not None:
            LOGGER.debug("Completion request ignored: a request is already in flight")
            return False
        if self._session.is_active:
            LOGGER.debug("Completion request ignored: a completion is already active")
            return False
        prompt_text = self._prompts.custom_prompt if prompt is None else prompt
        self._original_prompt = prompt_text
        return await self._generate(prompt_text, regenerate=False)

    async def regenerate(self) -> bool:
        """Replace the active completion with a deliberately different one."""

        negotiation = self._session.negotiation
        if negotiation is None or self._token is not None:
            return False
        self._history.record(negotiation.text.strip())
        start, end = negotiation.range
        with self._edit("completion.regenerate") as tr:
            tr.delete_range(start, end)
            tr.purge_mark(self._mark)
            tr.set_selection(start)
        self._session.deactivate()
        original = self._original_prompt
        if original is None:
            original = self._prompts.custom_prompt
        prompt = self._history.build_regen_prompt(original, self._prompts.regen_template)
        LOGGER.debug("Regenerating completion (attempt %s)", len(self._history) + 1)
        return await self._generate(prompt, regenerate=True)

    def cancel_generation(self) -> bool:
        """Abort the in-flight request; its eventual result is discarded."""

        token = self._token
        if token is None:
            return False
        self._token = None
        token.cancel()
        self._hide_loading()
        LOGGER.debug("Cancelled generation %s", token.generation)
        self._publish(GenerationAborted())
        return True

    async def _generate(self, prompt: str, *, regenerate: bool) -> bool:
        self._error_message = None
        try:
            context = extract_context(self._buffer.text_before_caret())
            if not context:
                raise EmptyContext()
            ensure_configured = getattr(self._provider, "ensure_configured", None)
            if callable(ensure_configured):
                ensure_configured()
        except CompletionError as exc:
            self._report(exc)
            return False

        token = CancelToken()
        self._token = token
        self._last_prompt = prompt
        self._show_loading()
        self._publish(
            CompletionRequested(context=context, prompt=prompt, model_id=self._model_id, regenerate=regenerate)
        )
        try:
            result = await self._provider.complete(
                context,
                model_id=self._model_id,
                prompt=prompt,
                cancel_token=token,
            )
        except GenerationCancelled:
            LOGGER.debug("Generation %s ended by cancellation", token.generation)
            return False
        except CompletionError as exc:
            if self._is_current(token):
                self._release(token)
                self._report(exc)
            else:
                LOGGER.debug("Discarding error from stale generation %s: %s", token.generation, exc)
            return False
        except Exception as exc:
            if self._is_current(token):
                LOGGER.exception("Completion provider raised unexpectedly")
                self._release(token)
                self._report(ProviderError(str(exc) or exc.__class__.__name__))
            else:
                LOGGER.debug("Discarding error from stale generation %s", token.generation, exc_info=True)
            return False
        else:
            if not self._is_current(token):
                LOGGER.debug("Discarding late response from generation %s", token.generation)
                return False
            self._release(token)
            return self._apply(result)
        finally:
            self._release(token)

    def _apply(self, result: CompletionResult) -> bool:
        self._last_usage = result.usage
        self._publish(
            CompletionUsageReported(
                model_id=result.model or self._model_id,
                prompt_tokens=result.usage.prompt_tokens,
                completion_tokens=result.usage.completion_tokens,
            )
        )
        words = tokenize_words(result.text)
        if not words:
            LOGGER.debug("Provider returned no words; nothing to insert")
            return False
        position = self._buffer.caret
        leading = needs_leading_space(self._buffer.text, position)
        text = (" " if leading else "") + " ".join(words)
        negotiation = Negotiation(words=words, range=TextRange(position, position + len(text)), leading_space=leading)
        with self._edit("completion.insert") as tr:
            tr.insert_text(text, position, marks=())
            tr.add_mark(self._mark, negotiation.range.start, negotiation.range.end)
            tr.set_selection(negotiation.range.start)
        self._session.activate(negotiation)
        LOGGER.debug("Inserted %s provisional word(s) at %s", len(words), position)
        self._publish(CompletionInserted(words=words, start=negotiation.range.start, end=negotiation.range.end))
        return True

    def _is_current(self, token: CancelToken) -> bool:
        return token is self._token and not token.is_cancelled

    def _release(self, token: CancelToken) -> None:
        if self._token is not token:
            return
        self._token = None
        self._hide_loading()

    # ------------------------------------------------------------------
    # Word negotiation
    # ------------------------------------------------------------------
    def select_next_word(self) -> bool:
        if not self._session.is_active:
            return False
        if self._session.selected_count == 0 and self._history:
            self._history.clear()
        return self._select(self._session.selected_count + 1)

    def deselect_last_word(self) -> bool:
        if not self._session.is_active:
            return False
        return self._select(self._session.selected_count - 1)

    def select_all_words(self) -> bool:
        if not self._session.is_active:
            return False
        if self._history:
            self._history.clear()
        return self._select(len(self._session.words))

    def _select(self, count: int) -> bool:
        if not self._session.select(count):
            return False
        self._render_selection()
        self._publish(
            CompletionSelectionChanged(
                selected_count=self._session.selected_count,
                total=len(self._session.words),
            )
        )
        return True

    def _render_selection(self) -> None:
        negotiation = self._session.negotiation
        if negotiation is None:
            return
        start, end = negotiation.range
        with self._edit("completion.select") as tr:
            if negotiation.all_selected:
                tr.remove_mark(self._mark, start, end)
                tr.set_selection(end)
                return
            split = negotiation.split
            if split > start:
                tr.remove_mark(self._mark, start, split)
            tr.add_mark(self._mark, split, end)
            tr.set_selection(split)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def confirm(self) -> bool:
        """Commit the selected words as plain text and drop the rest."""

        negotiation = self._session.negotiation
        if negotiation is None:
            return False
        start, end = negotiation.range
        committed = negotiation.selected_text
        with self._edit("completion.confirm") as tr:
            tr.delete_range(start, end)
            if committed:
                tr.insert_text(committed, start, marks=())
            else:
                tr.set_selection(start)
            tr.purge_mark(self._mark)
        self._finish()
        LOGGER.debug("Confirmed %s of %s word(s)", negotiation.selected_count, len(negotiation.words))
        self._publish(CompletionConfirmed(text=committed))
        return True

    def cancel(self) -> bool:
        """Remove the provisional text, restoring the pre-insertion document."""

        negotiation = self._session.negotiation
        if negotiation is None:
            return False
        start, end = negotiation.range
        with self._edit("completion.cancel") as tr:
            tr.delete_range(start, end)
            tr.set_selection(start)
            tr.purge_mark(self._mark)
        self._finish()
        self._publish(CompletionCancelled())
        return True

    def _finish(self) -> None:
        self._history.clear()
        self._session.deactivate()

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------
    def handle_key(self, key: str) -> bool:
        """Dispatch a key press; returns ``True`` when it was consumed."""

        return self._keymap.handle_key(key)

    def bind_keys(self, source: KeySource) -> KeyboardCapture:
        """Route key presses from ``source`` through the completion keymap."""

        if self._capture is not None:
            self._capture.release()
        self._capture = KeyboardCapture(self._keymap)
        self._capture.attach(source)
        return self._capture

    def dispose(self) -> None:
        """Cancel pending work and release every hook into the editor."""

        self.cancel_generation()
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        self._keymap.cancel_pending()
        self._buffer.remove_text_listener(self._on_text_changed)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _edit(self, label: str) -> Iterator[EditTransaction]:
        self._applying = True
        try:
            with self._buffer.transaction(label) as tr:
                yield tr
        finally:
            self._applying = False

    def _on_text_changed(self, _text: str, _state: DocumentState) -> None:
        if self._applying or not self._session.is_active:
            return
        # User edit or undo: the unaccepted words still carry the mark, shifted
        # through the edit, and are removed along with it.
        LOGGER.debug("Document changed outside the completion session; detaching")
        self._applying = True
        try:
            with self._buffer.transaction("completion.detach") as tr:
                for span in reversed(self._buffer.mark_ranges(self._mark)):
                    tr.delete_range(span.start, span.end)
                tr.purge_mark(self._mark)
        finally:
            self._applying = False
        self._finish()
        self._publish(CompletionCancelled())

    def _report(self, exc: CompletionError) -> None:
        if not exc.user_visible:
            return
        message = str(exc) or exc.__class__.__name__
        self._error_message = message
        LOGGER.warning("Completion failed: %s", message)
        self._publish(CompletionFailed(message=message, kind=exc.__class__.__name__))

    def _show_loading(self) -> None:
        if self._loading is None:
            return
        x, y = self._buffer.caret_coordinates()
        try:
            self._loading.show_at(x, y)
        except Exception:  # pragma: no cover - view defensive guard
            LOGGER.debug("Loading indicator failed to show", exc_info=True)

    def _hide_loading(self) -> None:
        if self._loading is None:
            return
        try:
            self._loading.hide()
        except Exception:  # pragma: no cover - view defensive guard
            LOGGER.debug("Loading indicator failed to hide", exc_info=True)

    def _publish(self, event: Any) -> None:
        if self._bus is not None:
            self._bus.publish(event)
