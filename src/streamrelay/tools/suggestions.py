"""Hidden tool that lets the model propose follow-up actions."""

from __future__ import annotations

from typing import Any

from ..chat.streaming.tooling import ToolContext

SUGGESTIONS_TOOL_NAME = "suggest_actions"
SUGGESTIONS_TOOL_DESCRIPTION = (
    "Suggest 2-3 follow-up actions the user might want. "
    "Call this after answering questions."
)
SUGGESTIONS_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "suggestions": {
            "type": "array",
            "items": {"type": "string"},
            "description": "Array of 2-3 short suggestions (under 40 chars each)",
        },
    },
    "required": ["suggestions"],
}

MAX_SUGGESTIONS = 3


async def suggest_actions(arguments: dict[str, Any], context: ToolContext) -> str:
    raw = arguments.get("suggestions")
    if not isinstance(raw, list):
        raise ValueError("suggestions must be an array of strings")

    cleaned = [item.strip() for item in raw if isinstance(item, str) and item.strip()]
    # The latest call wins, matching how the UI replaces suggestions.
    context.outcome.suggestions = cleaned[:MAX_SUGGESTIONS]
    return "Suggestions recorded"


__all__ = [
    "MAX_SUGGESTIONS",
    "SUGGESTIONS_INPUT_SCHEMA",
    "SUGGESTIONS_TOOL_DESCRIPTION",
    "SUGGESTIONS_TOOL_NAME",
    "suggest_actions",
]
