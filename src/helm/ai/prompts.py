"""Prompt text sent to the completion provider."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "SYSTEM_PROMPT",
    "DEFAULT_PROMPT",
    "DEFAULT_REGEN_PROMPT_TEMPLATE",
    "PromptSettings",
    "build_user_message",
]

SYSTEM_PROMPT = (
    "You are a writing assistant. Your task is to continue the user's text naturally. "
    "Respond with ONLY the completion text, nothing else. "
    "Do not include any explanations, quotes, or the original text."
)

DEFAULT_PROMPT = "Provide a two sentence long completion to this text:"

DEFAULT_REGEN_PROMPT_TEMPLATE = """This is the already generated text:
{{ATTEMPTS}}

Now generate a drastically different path to the completion for the next attempt, very far different from the ones that are shown in the attempts above.
{{ORIGINAL_PROMPT}}"""


@dataclass(slots=True)
class PromptSettings:
    """User-editable prompt text persisted in the settings store."""

    custom_prompt: str = DEFAULT_PROMPT
    regen_template: str = DEFAULT_REGEN_PROMPT_TEMPLATE


def build_user_message(prompt: str | None, context: str) -> str:
    """Join the instruction and the context into the user turn."""

    instruction = (prompt or "").strip() or DEFAULT_PROMPT
    return f"{instruction} {context}"
