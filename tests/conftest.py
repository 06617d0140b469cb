"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
import os
from collections import deque
from typing import Any, Iterable

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from helm.ai.client import CompletionResult, CompletionUsage
from helm.completion.cancellation import CancelToken
from helm.completion.errors import ConfigurationError
from helm.editor.buffer import EditorBuffer
from helm.editor.document_model import DocumentState, SelectionRange


class FakeProvider:
    """Scripted completion provider.

    Responses are consumed in order; strings become :class:`CompletionResult`
    objects and exceptions are raised. With ``hold`` set, every call blocks
    until :meth:`release` is called.
    """

    def __init__(self, responses: Iterable[Any] = (), *, configured: bool = True, hold: bool = False) -> None:
        self.calls: list[dict[str, Any]] = []
        self.configured = configured
        self.hold = hold
        self.honor_cancel = False
        self._responses: deque[Any] = deque(responses)
        self._gates: list[asyncio.Event] = []

    def queue(self, *responses: Any) -> None:
        self._responses.extend(responses)

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ConfigurationError("No API key configured.")

    def release(self) -> None:
        gates, self._gates = self._gates, []
        for gate in gates:
            gate.set()

    async def complete(
        self,
        context: str,
        *,
        model_id: str | None = None,
        prompt: str | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CompletionResult:
        self.calls.append({"context": context, "model_id": model_id, "prompt": prompt, "cancel_token": cancel_token})
        response = self._responses.popleft() if self._responses else "and then more words"
        if self.hold:
            gate = asyncio.Event()
            self._gates.append(gate)
            if self.honor_cancel and cancel_token is not None:
                await cancel_token.guard(gate.wait())
            else:
                await gate.wait()
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, CompletionResult):
            return response
        return CompletionResult(
            text=str(response),
            usage=CompletionUsage(prompt_tokens=12, completion_tokens=4),
            model=model_id or "",
        )


async def wait_for_calls(provider: FakeProvider, count: int = 1) -> None:
    """Yield to the loop until ``provider`` has seen ``count`` calls."""

    for _ in range(200):
        if len(provider.calls) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"provider saw {len(provider.calls)} call(s), expected {count}")


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def buffer() -> EditorBuffer:
    text = "The cat sat"
    return EditorBuffer(DocumentState(text=text, selection=SelectionRange(len(text), len(text))))


@pytest.fixture
def qt_app() -> Any | None:
    """Create a minimal QApplication when PySide6 is available."""

    try:
        from PySide6.QtWidgets import QApplication  # type: ignore[import-not-found]
    except Exception:  # pragma: no cover - PySide6 optional in tests
        return None
    return QApplication.instance() or QApplication([])  # pragma: no cover - depends on PySide6


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep user settings and provider keys out of the test run."""

    for name in list(os.environ):
        if name.startswith("HELM_") or name.startswith("OPENROUTER_") or name == "NEXT_PUBLIC_APP_URL":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HELM_HOME", str(tmp_path / "helm-home"))
    monkeypatch.setenv("HELM_LOG_DIR", str(tmp_path / "logs"))
