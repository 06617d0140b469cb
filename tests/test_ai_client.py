"""Tests for the OpenAI-compatible completion client."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any, cast

import httpx
import pytest
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from helm.ai.client import AIClient, ClientSettings, CompletionUsage, default_headers
from helm.ai.prompts import SYSTEM_PROMPT
from helm.completion.cancellation import CancelToken
from helm.completion.errors import ConfigurationError, GenerationCancelled, ProviderError

_REQUEST = httpx.Request("POST", "https://openrouter.test/api/v1/chat/completions")


def _response(content: str | None, *, usage: Any = None, model: str = "openai/gpt-4o-mini") -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage, model=model)


class _FakeCompletions:
    def __init__(self, *outcomes: Any) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []
        self.block: asyncio.Event | None = None

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.block is not None:
            await self.block.wait()
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _make_client(completions: _FakeCompletions, **overrides: Any) -> AIClient:
    settings = ClientSettings(api_key="test-key", retry_min_seconds=0, retry_max_seconds=0, **overrides)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return AIClient(settings, client=cast(AsyncOpenAI, fake))


@pytest.mark.asyncio
async def test_complete_returns_trimmed_text_and_usage() -> None:
    usage = SimpleNamespace(prompt_tokens=42, completion_tokens=7)
    completions = _FakeCompletions(_response("  on the mat.\n", usage=usage))
    client = _make_client(completions)

    result = await client.complete("The cat sat", model_id="openai/gpt-4o", prompt="Continue:")

    assert result.text == "on the mat."
    assert result.usage == CompletionUsage(prompt_tokens=42, completion_tokens=7)
    assert result.model == "openai/gpt-4o-mini"
    payload = completions.calls[0]
    assert payload["model"] == "openai/gpt-4o"
    assert payload["messages"] == [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "Continue: The cat sat"},
    ]
    assert payload["temperature"] == 0.7
    assert payload["max_tokens"] == 200


@pytest.mark.asyncio
async def test_complete_falls_back_to_configured_model() -> None:
    completions = _FakeCompletions(_response("down"))
    client = _make_client(completions, model="anthropic/claude-3-haiku")

    await client.complete("The cat sat")

    assert completions.calls[0]["model"] == "anthropic/claude-3-haiku"


@pytest.mark.asyncio
async def test_usage_accepts_input_output_token_names() -> None:
    completions = _FakeCompletions(_response("down", usage={"input_tokens": 9, "output_tokens": 3}))
    client = _make_client(completions)

    result = await client.complete("The cat sat")

    assert result.usage.prompt_tokens == 9
    assert result.usage.completion_tokens == 3
    assert result.usage.total_tokens == 12


@pytest.mark.asyncio
async def test_missing_usage_defaults_to_zero() -> None:
    client = _make_client(_FakeCompletions(_response("down")))

    result = await client.complete("The cat sat")

    assert result.usage == CompletionUsage()


@pytest.mark.asyncio
async def test_blank_context_is_rejected() -> None:
    completions = _FakeCompletions()
    client = _make_client(completions)

    with pytest.raises(ValueError, match="Text is required"):
        await client.complete("   ")
    assert completions.calls == []


@pytest.mark.asyncio
async def test_missing_api_key_raises_configuration_error() -> None:
    client = AIClient(ClientSettings(api_key=""))

    assert client.is_configured is False
    with pytest.raises(ConfigurationError):
        await client.complete("The cat sat")


@pytest.mark.asyncio
async def test_empty_completion_is_a_provider_error() -> None:
    client = _make_client(_FakeCompletions(_response("   ")))

    with pytest.raises(ProviderError, match="empty completion"):
        await client.complete("The cat sat")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "fragment"),
    [(401, "API key"), (402, "Insufficient credits"), (429, "Rate limited"), (500, "status 500")],
)
async def test_http_errors_map_to_provider_errors(status: int, fragment: str) -> None:
    error = APIStatusError("upstream failure", response=httpx.Response(status, request=_REQUEST), body=None)
    client = _make_client(_FakeCompletions(error))

    with pytest.raises(ProviderError) as excinfo:
        await client.complete("The cat sat")

    assert fragment in str(excinfo.value)
    assert excinfo.value.status_code == status


@pytest.mark.asyncio
async def test_connection_errors_are_retried() -> None:
    completions = _FakeCompletions(APIConnectionError(request=_REQUEST), _response("down"))
    client = _make_client(completions, max_retries=2)

    result = await client.complete("The cat sat")

    assert result.text == "down"
    assert len(completions.calls) == 2


@pytest.mark.asyncio
async def test_connection_error_after_last_attempt_is_reported() -> None:
    completions = _FakeCompletions(APIConnectionError(request=_REQUEST))
    client = _make_client(completions, max_retries=1)

    with pytest.raises(ProviderError, match="Completion request failed"):
        await client.complete("The cat sat")
    assert len(completions.calls) == 1


@pytest.mark.asyncio
async def test_cancel_token_aborts_pending_request() -> None:
    completions = _FakeCompletions(_response("never"))
    completions.block = asyncio.Event()
    client = _make_client(completions)
    token = CancelToken()

    task = asyncio.create_task(client.complete("The cat sat", cancel_token=token))
    while not completions.calls:
        await asyncio.sleep(0)
    token.cancel()

    with pytest.raises(GenerationCancelled):
        await task


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    closed: list[bool] = []

    async def _close() -> None:
        closed.append(True)

    fake_client = SimpleNamespace(close=_close)
    client = AIClient(ClientSettings(api_key="test"), client=cast(AsyncOpenAI, fake_client))

    await client.aclose()

    assert closed == [True]


def test_default_headers_carry_attribution() -> None:
    headers = default_headers("https://helm.example")

    assert headers["HTTP-Referer"] == "https://helm.example"
    assert headers["X-Title"] == "Helm Editor"
    assert ClientSettings().default_headers == default_headers()
