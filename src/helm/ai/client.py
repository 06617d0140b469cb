"""Async completion client built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Protocol

import httpx
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..completion.cancellation import CancelToken
from ..completion.errors import ConfigurationError, GenerationCancelled, ProviderError
from .models import DEFAULT_MODEL
from .prompts import SYSTEM_PROMPT, build_user_message

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_APP_URL = "http://localhost:3000"
APP_TITLE = "Helm Editor"

_RETRYABLE_ERRORS = (
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)


def default_headers(app_url: str | None = None) -> Dict[str, str]:
    """Attribution headers OpenRouter uses for its app rankings."""

    return {
        "HTTP-Referer": app_url or DEFAULT_APP_URL,
        "X-Title": APP_TITLE,
    }


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the completion client."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    request_timeout: float | None = 30.0
    max_retries: int = 1
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 4.0
    temperature: float = 0.7
    max_tokens: int = 200
    default_headers: Mapping[str, str] | None = field(default_factory=default_headers)
    debug_logging: bool = False


@dataclass(slots=True, frozen=True)
class CompletionUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(slots=True, frozen=True)
class CompletionResult:
    """Text returned by the provider along with its token usage."""

    text: str
    usage: CompletionUsage = field(default_factory=CompletionUsage)
    model: str = ""


class CompletionProvider(Protocol):
    """Anything able to continue a piece of text."""

    async def complete(
        self,
        context: str,
        *,
        model_id: str | None = None,
        prompt: str | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CompletionResult:
        ...


class AIClient:
    """Async client issuing single-shot completions with retry semantics."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | Any | None = None) -> None:
        self._settings = settings
        self._client = client

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self._settings.api_key.strip())

    def ensure_configured(self) -> None:
        if not self.is_configured:
            raise ConfigurationError(
                "No API key configured. Set OPENROUTER_API_KEY or add an api_key to the settings file."
            )

    async def complete(
        self,
        context: str,
        *,
        model_id: str | None = None,
        prompt: str | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CompletionResult:
        """Ask the model to continue ``context`` and return the trimmed completion.

        Raises:
            ValueError: ``context`` is blank.
            ConfigurationError: No API key is available.
            GenerationCancelled: ``cancel_token`` fired before the response arrived.
            ProviderError: The request failed or the model returned nothing usable.
        """

        if not context or not context.strip():
            raise ValueError("Text is required")
        self.ensure_configured()

        model = (model_id or "").strip() or self._settings.model
        payload = self._build_payload(context, model=model, prompt=prompt)
        LOGGER.debug("Requesting completion via %s (%s chars of context)", model, len(context))
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        request = self._request(payload)
        try:
            if cancel_token is not None:
                response = await cancel_token.guard(request)
            else:
                response = await request
        except GenerationCancelled:
            LOGGER.debug("Completion request cancelled before a response arrived")
            raise
        except APIStatusError as exc:
            raise ProviderError(_status_message(exc), status_code=exc.status_code) from exc
        except (APIError, httpx.HTTPError) as exc:
            raise ProviderError(f"Completion request failed: {exc}") from exc

        text = _extract_text(response)
        if not text:
            raise ProviderError("The model returned an empty completion")
        usage = _extract_usage(getattr(response, "usage", None))
        LOGGER.debug(
            "Completion received (%s prompt / %s completion tokens)",
            usage.prompt_tokens,
            usage.completion_tokens,
        )
        return CompletionResult(text=text, usage=usage, model=str(getattr(response, "model", None) or model))

    async def _request(self, payload: Mapping[str, Any]) -> Any:
        client = self._get_client()
        async for attempt in self._retrying():
            with attempt:
                return await client.chat.completions.create(**payload)
        raise ProviderError("Completion request was not attempted")  # pragma: no cover

    def _get_client(self) -> Any:
        if self._client is None:
            self.ensure_configured()
            self._client = self._build_client(self._settings)
        return self._client

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            timeout=settings.request_timeout,
            max_retries=0,
            default_headers=headers,
        )

    def _build_payload(self, context: str, *, model: str, prompt: str | None) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_message(prompt, context)},
            ],
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
        }

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(_RETRYABLE_ERRORS),
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Completion payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Completion payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        if self._client is None:
            return
        close = getattr(self._client, "close", None)
        if close is None:
            return
        try:
            result = close()
        except Exception as exc:  # pragma: no cover - defensive guard
            LOGGER.debug("AI client close failed to start: %s", exc)
            return
        if inspect.isawaitable(result):
            await result


def _extract_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None) if message is not None else None
    return str(content or "").strip()


def _extract_usage(usage: Any) -> CompletionUsage:
    """Read token counts, accepting both OpenAI and Anthropic field names."""

    if usage is None:
        return CompletionUsage()

    def _read(*names: str) -> int:
        for name in names:
            value = usage.get(name) if isinstance(usage, Mapping) else getattr(usage, name, None)
            if value is not None:
                try:
                    return int(value)
                except (TypeError, ValueError):
                    continue
        return 0

    return CompletionUsage(
        prompt_tokens=_read("prompt_tokens", "input_tokens"),
        completion_tokens=_read("completion_tokens", "output_tokens"),
    )


def _status_message(exc: APIStatusError) -> str:
    if exc.status_code == 401:
        return "The provider rejected the API key (401)."
    if exc.status_code == 402:
        return "Insufficient credits for this request (402)."
    if exc.status_code == 429:
        return "Rate limited by the provider (429). Try again shortly."
    return f"Completion request failed with status {exc.status_code}: {exc.message}"


__all__ = [
    "AIClient",
    "ClientSettings",
    "CompletionProvider",
    "CompletionResult",
    "CompletionUsage",
    "DEFAULT_BASE_URL",
    "default_headers",
]
