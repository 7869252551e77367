"""Conversation history API routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response

from ..chat.orchestrator import ChatOrchestrator, ConversationNotFoundError
from ..chat.titles import TitleGenerationError
from ..schemas.chat import TitleResponse

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


def _orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.chat_orchestrator


@router.get("")
async def list_conversations(request: Request) -> list[dict[str, Any]]:
    return await _orchestrator(request).list_conversations()


@router.get("/{conversation_id}/messages")
async def get_conversation_messages(
    conversation_id: str, request: Request
) -> list[dict[str, Any]]:
    try:
        return await _orchestrator(request).get_messages(conversation_id)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Conversation not found") from exc


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(conversation_id: str, request: Request) -> Response:
    deleted = await _orchestrator(request).delete_conversation(conversation_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return Response(status_code=204)


@router.post("/{conversation_id}/title", response_model=TitleResponse)
async def generate_conversation_title(conversation_id: str, request: Request) -> TitleResponse:
    """Generate and store a short title from the conversation's opening messages."""

    try:
        title = await _orchestrator(request).generate_title(conversation_id)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Conversation not found") from exc
    except TitleGenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    if title is None:
        raise HTTPException(status_code=400, detail="Not enough messages")
    return TitleResponse(title=title)


__all__ = ["router"]
