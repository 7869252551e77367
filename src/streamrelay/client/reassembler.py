"""Rebuild a displayable conversation from a relay event stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, AsyncGenerator, Literal

import httpx

from ..chat.streaming.codec import decode_frame
from ..chat.streaming.events import (
    Citation,
    Citations,
    Done,
    Error,
    Session,
    StreamEvent,
    Suggestions,
    TextDelta,
    ToolCall,
    ToolResult,
    Usage,
)
from ..chat.streaming.parser import (
    DEFAULT_MAX_BUFFER_BYTES,
    IncrementalSseParser,
    StreamProtocolError,
)

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_CAP = 500

BufferStatus = Literal["streaming", "done", "error"]


@dataclass(frozen=True)
class ToolStep:
    type: Literal["tool_call", "tool_result"]
    name: str
    input: Any = None
    content: str | None = None
    id: str | None = None
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        if self.type == "tool_call":
            return {"type": self.type, "name": self.name, "input": self.input}
        return {"type": self.type, "name": self.name, "content": self.content}


@dataclass(frozen=True)
class ConversationBuffer:
    text: str = ""
    steps: tuple[ToolStep, ...] = ()
    citations: tuple[Citation, ...] = ()
    suggestions: tuple[str, ...] = ()
    usage: Usage | None = None
    conversation_id: str | None = None
    status: BufferStatus = "streaming"
    error: Error | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status != "streaming"


def truncate_for_display(content: str, cap: int = DEFAULT_DISPLAY_CAP) -> str:
    if len(content) <= cap:
        return content
    return content[:cap] + "..."


def apply(
    buffer: ConversationBuffer,
    event: StreamEvent,
    *,
    display_cap: int = DEFAULT_DISPLAY_CAP,
) -> ConversationBuffer:
    """Return the buffer that results from applying ``event`` to ``buffer``.

    Pure: the input buffer is never modified. Events arriving after a
    terminal event leave the buffer untouched.
    """

    if buffer.is_terminal:
        logger.debug("Ignoring %s after the stream terminated", event.type)
        return buffer

    if isinstance(event, TextDelta):
        return replace(buffer, text=buffer.text + event.content)
    if isinstance(event, ToolCall):
        step = ToolStep(type="tool_call", name=event.name, input=event.input, id=event.id)
        return replace(buffer, steps=buffer.steps + (step,))
    if isinstance(event, ToolResult):
        step = ToolStep(
            type="tool_result",
            name=event.name,
            content=truncate_for_display(event.content, display_cap),
            id=event.id,
            is_error=event.is_error,
        )
        return replace(buffer, steps=buffer.steps + (step,))
    if isinstance(event, Citation):
        return replace(buffer, citations=buffer.citations + (event,))
    if isinstance(event, Citations):
        return replace(buffer, citations=buffer.citations + tuple(event.citations))
    if isinstance(event, Suggestions):
        return replace(buffer, suggestions=tuple(event.suggestions))
    if isinstance(event, Usage):
        usage = event if buffer.usage is None else buffer.usage + event
        return replace(buffer, usage=usage)
    if isinstance(event, Session):
        return replace(buffer, conversation_id=event.conversation_id)
    if isinstance(event, Done):
        return replace(buffer, status="done")
    if isinstance(event, Error):
        marker = f"Error: {event.message}"
        text = f"{buffer.text}\n\n{marker}" if buffer.text else marker
        return replace(buffer, text=text, status="error", error=event)

    logger.debug("Ignoring unsupported event %r", event)
    return buffer


class StreamReassembler:
    """Feed raw SSE bytes and keep the current ``ConversationBuffer``."""

    def __init__(
        self,
        *,
        display_cap: int = DEFAULT_DISPLAY_CAP,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
    ) -> None:
        self._display_cap = display_cap
        self._max_buffer_bytes = max_buffer_bytes
        self._parser = IncrementalSseParser(max_buffer_bytes=max_buffer_bytes)
        self._final_taken = False
        self.buffer = ConversationBuffer()

    def reset(self) -> None:
        """Start a fresh buffer for the next response."""

        self._parser = IncrementalSseParser(max_buffer_bytes=self._max_buffer_bytes)
        self._final_taken = False
        self.buffer = ConversationBuffer()

    def apply_event(self, event: StreamEvent) -> ConversationBuffer:
        self.buffer = apply(self.buffer, event, display_cap=self._display_cap)
        return self.buffer

    def feed(self, chunk: bytes | str) -> ConversationBuffer:
        try:
            frames = self._parser.feed(chunk)
        except StreamProtocolError as exc:
            logger.warning("Relay stream rejected: %s", exc)
            return self.apply_event(Error(message=str(exc), reason="protocol"))

        for frame in frames:
            event = decode_frame(frame)
            if event is not None:
                self.apply_event(event)
        return self.buffer

    def close(self) -> ConversationBuffer:
        """Finish the stream; an unterminated stream becomes a visible error."""

        self._parser.flush()
        if not self.buffer.is_terminal:
            self.apply_event(
                Error(message="Stream ended before the response completed", reason="transport")
            )
        return self.buffer

    def take_final_message(self) -> dict[str, str] | None:
        """Return the assistant message to persist, at most once per stream."""

        if self.buffer.status != "done" or self._final_taken:
            return None
        self._final_taken = True
        return {"role": "assistant", "content": self.buffer.text}


async def stream_buffers(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any] | None = None,
    *,
    method: str = "POST",
    display_cap: int = DEFAULT_DISPLAY_CAP,
) -> AsyncGenerator[ConversationBuffer, None]:
    """Yield a fresh buffer each time the relay stream changes it."""

    reassembler = StreamReassembler(display_cap=display_cap)
    request_kwargs: dict[str, Any] = {"headers": {"Accept": "text/event-stream"}}
    if payload is not None:
        request_kwargs["json"] = payload

    try:
        async with client.stream(method, url, **request_kwargs) as response:
            if response.status_code >= 400:
                body = await response.aread()
                yield reassembler.apply_event(
                    Error(
                        message=f"HTTP {response.status_code}: {body.decode('utf-8', errors='replace')}",
                        reason="provider",
                    )
                )
                return

            async for chunk in response.aiter_bytes():
                previous = reassembler.buffer
                current = reassembler.feed(chunk)
                if current is not previous:
                    yield current
                if current.is_terminal:
                    return
    except httpx.HTTPError as exc:
        logger.warning("Relay connection failed: %s", exc)
        yield reassembler.apply_event(Error(message=str(exc) or type(exc).__name__, reason="transport"))
        return

    previous = reassembler.buffer
    current = reassembler.close()
    if current is not previous:
        yield current


__all__ = [
    "ConversationBuffer",
    "DEFAULT_DISPLAY_CAP",
    "StreamReassembler",
    "ToolStep",
    "apply",
    "stream_buffers",
    "truncate_for_display",
]
