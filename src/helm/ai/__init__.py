"""Completion provider client, prompts and model catalog."""

from .client import AIClient, ClientSettings, CompletionProvider, CompletionResult, CompletionUsage
from .models import AVAILABLE_MODELS, DEFAULT_MODEL, ModelConfig, ModelPricing, find_model, format_cost
from .pricing import AccountBalance, PricingFeed, RemoteModel
from .prompts import DEFAULT_PROMPT, DEFAULT_REGEN_PROMPT_TEMPLATE, SYSTEM_PROMPT, PromptSettings

__all__ = [
    "AIClient",
    "ClientSettings",
    "CompletionProvider",
    "CompletionResult",
    "CompletionUsage",
    "AVAILABLE_MODELS",
    "DEFAULT_MODEL",
    "ModelConfig",
    "ModelPricing",
    "find_model",
    "format_cost",
    "AccountBalance",
    "PricingFeed",
    "RemoteModel",
    "DEFAULT_PROMPT",
    "DEFAULT_REGEN_PROMPT_TEMPLATE",
    "SYSTEM_PROMPT",
    "PromptSettings",
]
