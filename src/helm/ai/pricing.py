"""OpenRouter catalog pricing and account balance lookups."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import httpx

from .client import DEFAULT_BASE_URL, CompletionUsage
from .models import ModelPricing

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RemoteModel:
    id: str
    name: str
    pricing: ModelPricing


@dataclass(slots=True, frozen=True)
class AccountBalance:
    total_credits: float = 0.0
    total_usage: float = 0.0

    @property
    def balance(self) -> float:
        return self.total_credits - self.total_usage


class PricingFeed:
    """Reads ``/models`` and ``/credits`` from an OpenRouter-style API.

    Failures are logged and reported as ``None``; pricing is informational
    and never blocks completions.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._models: Dict[str, RemoteModel] | None = None

    async def fetch_models(self, *, force_refresh: bool = False) -> Dict[str, RemoteModel] | None:
        """Return the catalog keyed by model id, with prices per million tokens."""

        if self._models is not None and not force_refresh:
            return dict(self._models)
        payload = await self._get_json("/models")
        if payload is None:
            return None
        models: Dict[str, RemoteModel] = {}
        for item in payload.get("data") or []:
            model_id = item.get("id") if isinstance(item, Mapping) else None
            if not model_id:
                continue
            pricing = item.get("pricing") or {}
            models[model_id] = RemoteModel(
                id=model_id,
                name=item.get("name") or model_id,
                pricing=ModelPricing(
                    prompt=_per_million(pricing.get("prompt")),
                    completion=_per_million(pricing.get("completion")),
                ),
            )
        self._models = models
        LOGGER.debug("Loaded pricing for %s model(s)", len(models))
        return dict(models)

    async def fetch_balance(self) -> AccountBalance | None:
        payload = await self._get_json("/credits")
        if payload is None:
            return None
        data = payload.get("data") or {}
        return AccountBalance(
            total_credits=float(data.get("total_credits") or 0),
            total_usage=float(data.get("total_usage") or 0),
        )

    async def estimate_cost(self, model_id: str, usage: CompletionUsage) -> float | None:
        """USD cost of ``usage`` on ``model_id``, or ``None`` when unpriced."""

        models = await self.fetch_models()
        if not models or model_id not in models:
            return None
        return models[model_id].pricing.cost(usage.prompt_tokens, usage.completion_tokens)

    async def _get_json(self, path: str) -> Mapping[str, Any] | None:
        if not self._api_key:
            LOGGER.debug("Skipping %s lookup: no API key configured", path)
            return None
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(f"{self._base_url}{path}", headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            LOGGER.warning("OpenRouter %s lookup failed (%s): %s", path, exc.response.status_code, exc.response.text)
            return None
        except (httpx.HTTPError, ValueError) as exc:
            LOGGER.warning("OpenRouter %s lookup failed: %s", path, exc)
            return None
        if not isinstance(payload, Mapping):
            LOGGER.warning("OpenRouter %s lookup returned unexpected payload", path)
            return None
        return payload


def _per_million(value: Any) -> float:
    try:
        return float(value or 0) * 1_000_000
    except (TypeError, ValueError):
        return 0.0


__all__ = ["AccountBalance", "PricingFeed", "RemoteModel"]
