"""Provider-agnostic stream events shared by the relay and its clients.

Every component downstream of the model turn driver speaks only this
vocabulary. Each event is a frozen dataclass with a ``type`` discriminator
and a JSON-ready ``to_payload()``; ``event_from_payload`` is the inverse used
by frame decoders.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping


ErrorReason = Literal[
    "transport",
    "provider",
    "protocol",
    "timeout",
    "ceiling_reached",
    "cancelled",
    "internal",
]

ERROR_REASONS: frozenset[str] = frozenset(
    {
        "transport",
        "provider",
        "protocol",
        "timeout",
        "ceiling_reached",
        "cancelled",
        "internal",
    }
)


class FrameDecodeError(ValueError):
    """Raised when a frame payload cannot be turned into a stream event."""


@dataclass(frozen=True)
class TextDelta:
    content: str
    type: Literal["text_delta"] = field(default="text_delta", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "content": self.content}


@dataclass(frozen=True)
class ToolCall:
    name: str
    input: Any
    id: str | None = None
    type: Literal["tool_call"] = field(default="tool_call", init=False)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "name": self.name,
            "input": self.input,
        }
        if self.id is not None:
            payload["id"] = self.id
        return payload


@dataclass(frozen=True)
class ToolResult:
    name: str
    content: str
    id: str | None = None
    is_error: bool = False
    type: Literal["tool_result"] = field(default="tool_result", init=False)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "name": self.name,
            "content": self.content,
        }
        if self.id is not None:
            payload["id"] = self.id
        if self.is_error:
            payload["is_error"] = True
        return payload


@dataclass(frozen=True)
class Citation:
    title: str
    url: str
    type: Literal["citation"] = field(default="citation", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "title": self.title, "url": self.url}


@dataclass(frozen=True)
class Citations:
    """A batch of citations, as sent once web search results are known."""

    citations: tuple[Citation, ...]
    type: Literal["citations"] = field(default="citations", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "citations": [
                {"title": item.title, "url": item.url} for item in self.citations
            ],
        }


@dataclass(frozen=True)
class Suggestions:
    suggestions: tuple[str, ...]
    type: Literal["suggestions"] = field(default="suggestions", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "suggestions": list(self.suggestions)}


@dataclass(frozen=True)
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    type: Literal["usage"] = field(default="usage", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "usage": {
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
            },
        }

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass(frozen=True)
class Session:
    """Announces the conversation a stream belongs to."""

    conversation_id: str
    type: Literal["session"] = field(default="session", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "conversation_id": self.conversation_id}


@dataclass(frozen=True)
class Done:
    type: Literal["done"] = field(default="done", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True)
class Error:
    message: str
    reason: ErrorReason = "internal"
    type: Literal["error"] = field(default="error", init=False)

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message, "reason": self.reason}


StreamEvent = (
    TextDelta
    | ToolCall
    | ToolResult
    | Citation
    | Citations
    | Suggestions
    | Usage
    | Session
    | Done
    | Error
)

TERMINAL_EVENTS = (Done, Error)


def is_terminal(event: StreamEvent) -> bool:
    """Return True for events that end a stream."""

    return isinstance(event, TERMINAL_EVENTS)


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise FrameDecodeError(
            f"{payload.get('type')!r} event requires a string {key!r} field"
        )
    return value


def _optional_str(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise FrameDecodeError(f"{key!r} must be a string when present")
    return value


def _coerce_tokens(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def _citation_from(entry: Any) -> Citation:
    if not isinstance(entry, Mapping):
        raise FrameDecodeError("citation entries must be objects")
    return Citation(title=_require_str(entry, "title"), url=_require_str(entry, "url"))


def event_from_payload(payload: Any) -> StreamEvent:
    """Build a stream event from a decoded JSON payload."""

    if not isinstance(payload, Mapping):
        raise FrameDecodeError("event payload must be a JSON object")

    event_type = payload.get("type")
    if event_type == "text_delta":
        return TextDelta(content=_require_str(payload, "content"))
    if event_type == "tool_call":
        return ToolCall(
            name=_require_str(payload, "name"),
            input=payload.get("input"),
            id=_optional_str(payload, "id"),
        )
    if event_type == "tool_result":
        return ToolResult(
            name=_require_str(payload, "name"),
            content=_require_str(payload, "content"),
            id=_optional_str(payload, "id"),
            is_error=bool(payload.get("is_error", False)),
        )
    if event_type == "citation":
        return _citation_from(payload)
    if event_type == "citations":
        entries = payload.get("citations")
        if not isinstance(entries, list):
            raise FrameDecodeError("'citations' event requires a list")
        return Citations(citations=tuple(_citation_from(item) for item in entries))
    if event_type == "suggestions":
        entries = payload.get("suggestions")
        if not isinstance(entries, list) or not all(
            isinstance(item, str) for item in entries
        ):
            raise FrameDecodeError("'suggestions' event requires a list of strings")
        return Suggestions(suggestions=tuple(entries))
    if event_type == "usage":
        usage = payload.get("usage")
        if not isinstance(usage, Mapping):
            raise FrameDecodeError("'usage' event requires a usage object")
        return Usage(
            input_tokens=_coerce_tokens(usage.get("input_tokens")),
            output_tokens=_coerce_tokens(usage.get("output_tokens")),
        )
    if event_type == "session":
        return Session(conversation_id=_require_str(payload, "conversation_id"))
    if event_type == "done":
        return Done()
    if event_type == "error":
        reason = payload.get("reason")
        if reason not in ERROR_REASONS:
            reason = "internal"
        message = payload.get("message")
        if not isinstance(message, str):
            # Earlier producers sent the message under ``error``.
            message = payload.get("error")
        if not isinstance(message, str):
            message = "Unknown error"
        return Error(message=message, reason=reason)

    raise FrameDecodeError(f"Unknown event type: {event_type!r}")


__all__ = [
    "Citation",
    "Citations",
    "Done",
    "ERROR_REASONS",
    "Error",
    "ErrorReason",
    "FrameDecodeError",
    "Session",
    "StreamEvent",
    "Suggestions",
    "TERMINAL_EVENTS",
    "TextDelta",
    "ToolCall",
    "ToolResult",
    "Usage",
    "event_from_payload",
    "is_terminal",
]
