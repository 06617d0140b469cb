"""Catalog of selectable completion models and cost helpers."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "ModelPricing",
    "ModelConfig",
    "AVAILABLE_MODELS",
    "DEFAULT_MODEL",
    "find_model",
    "format_cost",
]


@dataclass(slots=True, frozen=True)
class ModelPricing:
    """USD cost per one million tokens."""

    prompt: float = 0.0
    completion: float = 0.0

    def cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (prompt_tokens * self.prompt + completion_tokens * self.completion) / 1_000_000


@dataclass(slots=True, frozen=True)
class ModelConfig:
    id: str
    name: str
    description: str = ""


AVAILABLE_MODELS: tuple[ModelConfig, ...] = (
    ModelConfig("openai/gpt-4o-mini", "GPT-4o Mini", "Fast and affordable"),
    ModelConfig("openai/gpt-4o", "GPT-4o", "Most capable OpenAI model"),
    ModelConfig("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet", "Excellent writing quality"),
    ModelConfig("anthropic/claude-3-haiku", "Claude 3 Haiku", "Fast Anthropic model"),
    ModelConfig("google/gemini-pro", "Gemini Pro", "Google AI model"),
    ModelConfig("meta-llama/llama-3.1-70b-instruct", "Llama 3.1 70B", "Open source model"),
)

DEFAULT_MODEL = "openai/gpt-4o-mini"


def find_model(model_id: str | None) -> ModelConfig | None:
    key = (model_id or "").strip()
    for model in AVAILABLE_MODELS:
        if model.id == key:
            return model
    return None


def format_cost(cost: float) -> str:
    """Render a USD amount with precision scaled to its magnitude."""

    if cost == 0:
        return "Free"
    if cost < 0.01:
        return f"${cost:.4f}"
    if cost < 1:
        return f"${cost:.3f}"
    return f"${cost:.2f}"
