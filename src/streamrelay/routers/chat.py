"""Streaming chat API routes."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator, Mapping

from fastapi import APIRouter, HTTPException, Query, Request
from sse_starlette.sse import EventSourceResponse

from ..chat.orchestrator import ChatOrchestrator, ConversationNotFoundError
from ..chat.streaming.codec import encode, encode_comment
from ..chat.streaming.events import Error, StreamEvent, is_terminal
from ..chat.streaming.types import LoopOutcome
from ..client.reassembler import ConversationBuffer, apply
from ..config import Settings
from ..schemas.chat import ChatStreamRequest, GenerateRequest, ToolChatRequest, ToolChatResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

# Event names for the EventSource-friendly GET endpoint.
SSE_EVENT_NAMES: dict[str, str] = {
    "text_delta": "message",
    "usage": "usage",
    "done": "done",
    "error": "error",
}

_ERROR_STATUS: dict[str, int] = {"timeout": 504}

KEEPALIVE_COMMENT = "keepalive"


def _orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.chat_orchestrator


def _settings(request: Request) -> Settings:
    return request.app.state.settings


async def frame_events(
    events: AsyncGenerator[StreamEvent, None],
    *,
    event_names: Mapping[str, str] | None = None,
    keepalive: float | None = None,
) -> AsyncGenerator[bytes, None]:
    """Encode ``events`` as SSE frames, guaranteeing one terminal frame.

    With ``keepalive`` set, a comment frame is written whenever the event
    stream stays quiet for that many seconds.
    """

    def _frame(event: StreamEvent) -> bytes:
        name = event_names.get(event.type) if event_names else None
        return encode(event, name)

    terminated = False
    pending: asyncio.Future[StreamEvent] | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(events.__anext__())
            done, _ = await asyncio.wait({pending}, timeout=keepalive)
            if not done:
                yield encode_comment(KEEPALIVE_COMMENT)
                continue
            ready, pending = pending, None
            try:
                event = ready.result()
            except StopAsyncIteration:
                break
            yield _frame(event)
            if is_terminal(event):
                terminated = True
                break
    except Exception as exc:
        logger.exception("Relay stream failed")
        if not terminated:
            yield _frame(Error(message=f"Internal error: {exc}", reason="internal"))
        return
    finally:
        if pending is not None:
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)
        await events.aclose()

    if not terminated:
        yield _frame(Error(message="Stream ended without a result", reason="internal"))


def _event_source(
    request: Request,
    events: AsyncGenerator[StreamEvent, None],
    event_names: Mapping[str, str] | None = None,
) -> EventSourceResponse:
    # Keepalives come from frame_events, so sse-starlette's own ping stays off.
    frames = frame_events(
        events,
        event_names=event_names,
        keepalive=_settings(request).sse_ping_seconds,
    )
    return EventSourceResponse(frames, ping=0, sep="\n")


@router.post("/chat/stream", response_model=None, status_code=200)
async def stream_chat(payload: ChatStreamRequest, request: Request) -> EventSourceResponse:
    """Stream a persisted chat turn with tools, web search and suggestions."""

    orchestrator = _orchestrator(request)
    try:
        turn = await orchestrator.prepare_chat(payload)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Conversation not found") from exc

    return _event_source(request, orchestrator.stream_chat(turn))


@router.post("/tools/chat", response_model=ToolChatResponse)
async def tools_chat(payload: ToolChatRequest, request: Request) -> ToolChatResponse:
    """Run the weather-tool loop to completion and return its steps."""

    orchestrator = _orchestrator(request)
    display_cap = _settings(request).tool_result_display_cap
    buffer = ConversationBuffer()
    outcome = LoopOutcome()
    events = orchestrator.stream_tools_chat(payload.message, payload.history, outcome=outcome)
    async for event in events:
        buffer = apply(buffer, event, display_cap=display_cap)

    if buffer.status == "error" and buffer.error is not None:
        status_code = _ERROR_STATUS.get(buffer.error.reason, 502)
        raise HTTPException(status_code=status_code, detail=buffer.error.message)
    if buffer.status != "done":
        raise HTTPException(status_code=502, detail="Stream ended without a result")

    return ToolChatResponse(
        steps=[step.to_dict() for step in buffer.steps],
        response=outcome.final_text or "No response",
    )


@router.post("/generate", response_model=None, status_code=200)
async def generate_story(payload: GenerateRequest, request: Request) -> EventSourceResponse:
    """Stream a short story for the prompt, without tools."""

    orchestrator = _orchestrator(request)
    return _event_source(request, orchestrator.stream_story(payload.prompt))


@router.get("/sse", response_model=None, status_code=200)
async def sse_chat(
    request: Request,
    message: str | None = Query(default=None),
) -> EventSourceResponse:
    """EventSource-compatible GET stream with named events."""

    if not message or not message.strip():
        raise HTTPException(status_code=400, detail="Missing message parameter")

    orchestrator = _orchestrator(request)
    return _event_source(
        request,
        orchestrator.stream_sse(message),
        SSE_EVENT_NAMES,
    )


__all__ = ["KEEPALIVE_COMMENT", "SSE_EVENT_NAMES", "frame_events", "router"]
