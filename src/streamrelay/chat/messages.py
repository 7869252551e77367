"""Build provider messages from client requests and stored history."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping, Sequence

from ..schemas.chat import Attachment

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)


def attachment_blocks(attachments: Iterable[Attachment]) -> list[dict[str, Any]]:
    """Translate attachments into content blocks, images before the user's text.

    Images are passed through either inline (base64) or by URL; PDFs are sent
    as their already-extracted text. Anything else is dropped.
    """

    blocks: list[dict[str, Any]] = []
    for attachment in attachments:
        if attachment.is_image:
            if attachment.url.startswith("data:"):
                match = _DATA_URL_RE.match(attachment.url)
                if match is None:
                    logger.warning("Skipping malformed data URL attachment %s", attachment.name)
                    continue
                blocks.append(
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": match.group(1),
                            "data": match.group(2),
                        },
                    }
                )
            elif attachment.url:
                blocks.append(
                    {"type": "image", "source": {"type": "url", "url": attachment.url}}
                )
        elif attachment.is_pdf and attachment.extracted_text:
            blocks.append(
                {
                    "type": "text",
                    "text": (
                        f"[Content from {attachment.name}]:\n"
                        f"{attachment.extracted_text}\n\n---\n\n"
                    ),
                }
            )
    return blocks


def build_user_content(
    message: str, attachments: Sequence[Attachment] = ()
) -> str | list[dict[str, Any]]:
    blocks = attachment_blocks(attachments)
    if not blocks:
        return message
    blocks.append({"type": "text", "text": message})
    return blocks


def history_to_messages(history: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Keep the role/content pairs the provider accepts, dropping empty turns."""

    messages: list[dict[str, Any]] = []
    for entry in history:
        role = entry.get("role")
        content = entry.get("content")
        if role not in {"user", "assistant"}:
            continue
        if not isinstance(content, str) or not content:
            continue
        messages.append({"role": role, "content": content})
    return messages


__all__ = ["attachment_blocks", "build_user_content", "history_to_messages"]
