"""Incremental Server-Sent Events parsing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterable, Optional

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b"\n\n"
DEFAULT_MAX_BUFFER_BYTES = 1024 * 1024


class StreamProtocolError(Exception):
    """Fatal violation of the stream framing or ordering rules."""


@dataclass
class ServerSentEvent:
    """Represents a parsed Server-Sent Event."""

    data: str
    event: str = "message"
    event_id: Optional[str] = None

    def asdict(self) -> dict[str, Optional[str]]:
        payload: dict[str, Optional[str]] = {"event": self.event, "data": self.data}
        if self.event_id is not None:
            payload["id"] = self.event_id
        return payload


def parse_frame(frame: str) -> ServerSentEvent | None:
    """Parse the field lines of one complete frame.

    Returns ``None`` for frames that carry no ``data`` field, such as
    keepalive comments.
    """

    event_name: Optional[str] = None
    event_id: Optional[str] = None
    data_lines: list[str] = []

    for raw_line in frame.split("\n"):
        line = raw_line.rstrip("\r")
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event_name = value or None
        elif field == "data":
            data_lines.append(value)
        elif field == "id":
            event_id = value or None

    if not data_lines:
        return None

    return ServerSentEvent(
        data="\n".join(data_lines), event=event_name or "message", event_id=event_id
    )


class IncrementalSseParser:
    """Split an arbitrarily chunked byte stream into complete frames.

    Bytes are buffered until a blank-line delimiter arrives, so a delimiter
    or a multi-byte character split across two ``feed`` calls is handled the
    same as if the stream had arrived in one piece.
    """

    def __init__(self, *, max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES) -> None:
        self._buffer = b""
        self._max_buffer_bytes = max_buffer_bytes

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a complete frame."""

        return len(self._buffer)

    def feed(self, chunk: bytes | str) -> list[str]:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        if not chunk:
            return []

        buffer = (self._buffer + chunk).replace(b"\r\n", b"\n")
        segments = buffer.split(FRAME_DELIMITER)
        self._buffer = segments.pop()

        if len(self._buffer) > self._max_buffer_bytes:
            size = len(self._buffer)
            self._buffer = b""
            raise StreamProtocolError(
                f"Unterminated frame exceeded {self._max_buffer_bytes} bytes ({size} buffered)"
            )

        frames: list[str] = []
        for segment in segments:
            if not segment.strip():
                continue
            frames.append(segment.decode("utf-8", errors="replace"))
        return frames

    def flush(self) -> str:
        """Return and clear whatever is left once the connection closes."""

        leftover = self._buffer.decode("utf-8", errors="replace")
        self._buffer = b""
        if leftover.strip():
            logger.warning(
                "Dropping incomplete SSE frame at end of stream (%d chars): %r",
                len(leftover),
                leftover[:120],
            )
            return leftover
        return ""


async def iter_sse_events(
    chunks: AsyncIterable[bytes],
    *,
    max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
) -> AsyncGenerator[ServerSentEvent, None]:
    """Yield parsed events from a raw byte stream as soon as each completes."""

    parser = IncrementalSseParser(max_buffer_bytes=max_buffer_bytes)
    async for chunk in chunks:
        for frame in parser.feed(chunk):
            event = parse_frame(frame)
            if event is not None:
                yield event
    parser.flush()


__all__ = [
    "DEFAULT_MAX_BUFFER_BYTES",
    "FRAME_DELIMITER",
    "IncrementalSseParser",
    "ServerSentEvent",
    "StreamProtocolError",
    "iter_sse_events",
    "parse_frame",
]
