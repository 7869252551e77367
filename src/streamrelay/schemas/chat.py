"""Pydantic models for chat requests and responses."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class HistoryMessage(BaseModel):
    """A prior turn supplied by the client."""

    role: Literal["user", "assistant"]
    content: str


class Attachment(BaseModel):
    """A file the user attached to the message.

    Images are sent as data URLs or public URLs; PDFs arrive with their text
    already extracted.
    """

    url: str = ""
    name: str = ""
    type: str = ""
    extracted_text: Optional[str] = Field(default=None, alias="extractedText")
    is_image: bool = Field(default=False, alias="isImage")
    is_pdf: bool = Field(default=False, alias="isPdf")

    model_config = ConfigDict(populate_by_name=True)


class ChatStreamRequest(BaseModel):
    """Incoming payload for the persisted, tool-enabled chat stream."""

    message: str = Field(min_length=1)
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    attachments: List[Attachment] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class ToolChatRequest(BaseModel):
    """Incoming payload for the non-streaming tool demo."""

    message: str = Field(min_length=1)
    history: List[HistoryMessage] = Field(default_factory=list)


class GenerateRequest(BaseModel):
    """Incoming payload for the story generation stream."""

    prompt: str = Field(min_length=1)

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("prompt must not be blank")
        return stripped


class ToolChatResponse(BaseModel):
    steps: List[Dict[str, Any]]
    response: str


class TitleResponse(BaseModel):
    title: str


__all__ = [
    "Attachment",
    "ChatStreamRequest",
    "GenerateRequest",
    "HistoryMessage",
    "TitleResponse",
    "ToolChatRequest",
    "ToolChatResponse",
]
