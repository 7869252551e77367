"""Wire framing for stream events."""

from __future__ import annotations

import json
import logging

from .events import FrameDecodeError, StreamEvent, event_from_payload
from .parser import parse_frame

logger = logging.getLogger(__name__)


def encode(event: StreamEvent, event_name: str | None = None) -> bytes:
    """Render one event as an SSE frame.

    ``json.dumps`` escapes control characters, so newlines inside text stay
    inside the JSON string and never break the frame.
    """

    data = json.dumps(event.to_payload(), ensure_ascii=False)
    if event_name:
        if "\n" in event_name or "\r" in event_name:
            raise ValueError("SSE event names cannot contain line breaks")
        return f"event: {event_name}\ndata: {data}\n\n".encode("utf-8")
    return f"data: {data}\n\n".encode("utf-8")


def encode_comment(text: str = "") -> bytes:
    """Render a comment frame, used for keepalives."""

    flattened = " ".join(text.splitlines())
    return f": {flattened}\n\n".encode("utf-8")


def decode_frame(frame: str, *, strict: bool = False) -> StreamEvent | None:
    """Decode one complete frame into an event.

    Comment-only frames return ``None``. Malformed frames are logged and
    skipped, or raise ``FrameDecodeError`` when ``strict`` is set.
    """

    parsed = parse_frame(frame)
    if parsed is None:
        return None

    try:
        payload = json.loads(parsed.data)
    except json.JSONDecodeError as exc:
        if strict:
            raise FrameDecodeError(f"Invalid JSON in frame: {exc.msg}") from exc
        logger.warning("Skipping malformed SSE frame: %s (%r)", exc.msg, parsed.data[:120])
        return None

    try:
        return event_from_payload(payload)
    except FrameDecodeError as exc:
        if strict:
            raise
        logger.warning("Skipping unrecognised SSE frame: %s", exc)
        return None


__all__ = ["decode_frame", "encode", "encode_comment"]
