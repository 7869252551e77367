"""Conversation title generation."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from ..prompts import TITLE_PROMPT
from .streaming.driver import ModelTurnDriver
from .streaming.events import Error, TextDelta

logger = logging.getLogger(__name__)

TITLE_CONTEXT_MESSAGES = 4
TITLE_MESSAGE_CHARS = 500
TITLE_MAX_TOKENS = 50


class TitleGenerationError(Exception):
    """The model could not produce a title."""


async def generate_title(
    driver: ModelTurnDriver, messages: Sequence[Mapping[str, Any]]
) -> str:
    """Ask the model for a 3-6 word title describing the opening messages."""

    context = "\n\n".join(
        f"{message['role']}: {str(message['content'])[:TITLE_MESSAGE_CHARS]}"
        for message in messages[:TITLE_CONTEXT_MESSAGES]
    )
    prompt = [{"role": "user", "content": f"{TITLE_PROMPT}\n\n{context}"}]

    parts: list[str] = []
    async for item in driver.run_turn(prompt, max_tokens=TITLE_MAX_TOKENS):
        if isinstance(item, Error):
            raise TitleGenerationError(item.message)
        if isinstance(item, TextDelta):
            parts.append(item.content)

    title = "".join(parts).strip().strip('"').strip()
    if not title:
        raise TitleGenerationError("Model returned an empty title")
    logger.debug("Generated conversation title %r", title)
    return title[:100]


__all__ = ["TitleGenerationError", "generate_title"]
