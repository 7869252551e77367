"""Type definitions for the chat streaming subsystem."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal

from .events import Error, Usage


StopReason = Literal["end_of_response", "tool_requested", "paused", "error"]


class LoopState(str, enum.Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class ToolCallRequest:
    """A completed tool_use block requested by the model."""

    id: str
    name: str
    input: Any
    input_error: str | None = None


@dataclass(frozen=True)
class TurnResult:
    stop_reason: StopReason
    tool_calls: tuple[ToolCallRequest, ...]
    text: str
    usage: Usage
    content: tuple[dict[str, Any], ...]
    model: str | None = None
    provider_stop_reason: str | None = None

    def to_message_dict(self) -> dict[str, Any]:
        """Return the assistant message that replays this turn to the model."""

        return {"role": "assistant", "content": [dict(block) for block in self.content]}


@dataclass
class LoopOutcome:
    """Accumulates what one agentic run produced.

    Passed through the controller to tools so request-scoped captures (such
    as suggestions) never live in module state. ``text`` spans every turn;
    ``final_text`` is the answering turn alone.
    """

    state: LoopState = LoopState.AWAITING_MODEL
    stop_reason: StopReason | None = None
    text: str = ""
    final_text: str = ""
    turns: int = 0
    usage: Usage = field(default_factory=Usage)
    suggestions: list[str] = field(default_factory=list)
    messages: list[dict[str, Any]] = field(default_factory=list)
    error: Error | None = None


__all__ = [
    "LoopOutcome",
    "LoopState",
    "StopReason",
    "ToolCallRequest",
    "TurnResult",
]
