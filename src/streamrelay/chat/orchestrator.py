"""High-level coordination for relay requests."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncGenerator, Sequence

from ..config import PROJECT_ROOT, Settings
from ..prompts import (
    STORY_SYSTEM_PROMPT,
    chat_system_prompt,
    sse_system_prompt,
    tools_system_prompt,
)
from ..provider import AnthropicClient
from ..repository import ConversationRepository
from ..schemas.chat import ChatStreamRequest, HistoryMessage
from ..tools import WEATHER_TOOL_NAME, build_default_registry
from .messages import build_user_content, history_to_messages
from .streaming.controller import AgenticLoopController
from .streaming.driver import WEB_SEARCH_TOOL_NAME, MessageStreamClient, ModelTurnDriver
from .streaming.events import Session, StreamEvent
from .streaming.tooling import ToolRegistry, summarize_tool_parameters
from .streaming.types import LoopOutcome
from .titles import generate_title

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL_TYPE = "web_search_20250305"


class ConversationNotFoundError(LookupError):
    """Raised when a request names a conversation that does not exist."""


@dataclass(frozen=True)
class ChatTurn:
    """A validated chat request ready to stream."""

    conversation_id: str
    message: str
    messages: list[dict[str, Any]]


class ChatOrchestrator:
    """Own the provider client, repository and tools shared by all requests.

    Every request gets its own driver and loop controller; nothing mutable
    is shared between requests apart from the pooled HTTP client and the
    database connection.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: MessageStreamClient | None = None,
        repository: ConversationRepository | None = None,
        registry: ToolRegistry | None = None,
    ) -> None:
        db_path = settings.chat_database_path
        if not db_path.is_absolute():
            db_path = PROJECT_ROOT / db_path

        self._settings = settings
        self._client = client if client is not None else AnthropicClient(settings)
        self._repo = repository if repository is not None else ConversationRepository(Path(db_path))
        self._registry = registry if registry is not None else build_default_registry()
        self._init_lock = asyncio.Lock()
        self._ready = asyncio.Event()

    async def initialize(self) -> None:
        """Initialize the database once."""

        async with self._init_lock:
            if self._ready.is_set():
                return
            await self._repo.initialize()
            self._ready.set()
            logger.info(
                "Chat orchestrator ready: %d tool(s) registered, model %s",
                len(self._registry),
                self._settings.default_model,
            )
            for tool in self._registry.provider_tools():
                logger.debug(
                    "Tool %s (params: %s)",
                    tool["name"],
                    summarize_tool_parameters(tool.get("input_schema")),
                )

    async def shutdown(self) -> None:
        """Clean up held resources."""

        aclose = getattr(self._client, "aclose", None)
        if aclose is not None:
            try:
                await asyncio.wait_for(aclose(), timeout=2.0)
            except (asyncio.TimeoutError, Exception) as exc:
                logger.warning("Error closing provider client: %s", exc)

        try:
            await asyncio.wait_for(self._repo.close(), timeout=2.0)
        except (asyncio.TimeoutError, Exception) as exc:
            logger.warning("Error closing repository: %s", exc)

        self._ready.clear()

    async def wait_until_ready(self) -> None:
        """Block until initialization has completed."""

        await self._ready.wait()

    @property
    def repository(self) -> ConversationRepository:
        return self._repo

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    def _driver(self) -> ModelTurnDriver:
        return ModelTurnDriver(
            self._client,
            model=self._settings.default_model,
            cumulative_text=self._settings.cumulative_text,
        )

    def _web_search_tools(self) -> list[dict[str, Any]]:
        if not self._settings.enable_web_search:
            return []
        return [
            {
                "type": WEB_SEARCH_TOOL_TYPE,
                "name": WEB_SEARCH_TOOL_NAME,
                "max_uses": self._settings.web_search_max_uses,
            }
        ]

    def build_controller(
        self,
        *,
        tool_names: Sequence[str] | None = None,
        extra_tools: Sequence[dict[str, Any]] = (),
    ) -> AgenticLoopController:
        """Return a fresh controller for one request."""

        return AgenticLoopController(
            self._driver(),
            self._registry,
            max_turns=self._settings.max_turns,
            turn_timeout=self._settings.turn_timeout,
            request_timeout=self._settings.overall_timeout,
            tool_timeout=self._settings.tool_timeout,
            tool_names=tool_names,
            extra_tools=extra_tools,
        )

    async def prepare_chat(self, request: ChatStreamRequest) -> ChatTurn:
        """Resolve or create the conversation and assemble the model input."""

        await self._ready.wait()

        conversation_id = request.conversation_id
        if conversation_id:
            if not await self._repo.conversation_exists(conversation_id):
                raise ConversationNotFoundError(conversation_id)
            stored = await self._repo.get_messages(conversation_id)
        else:
            conversation_id = await self._repo.create_conversation(request.message)
            stored = []

        messages = history_to_messages(stored)
        messages.append(
            {
                "role": "user",
                "content": build_user_content(request.message, request.attachments),
            }
        )
        return ChatTurn(
            conversation_id=conversation_id,
            message=request.message,
            messages=messages,
        )

    async def stream_chat(self, turn: ChatTurn) -> AsyncGenerator[StreamEvent, None]:
        """Stream the persisted, tool-enabled chat for ``turn``."""

        async def persist(outcome: LoopOutcome) -> None:
            await self._repo.append_message(turn.conversation_id, "user", turn.message)
            await self._repo.append_message(turn.conversation_id, "assistant", outcome.text)
            logger.debug(
                "Persisted turn for conversation %s (%d model turn(s))",
                turn.conversation_id,
                outcome.turns,
            )

        yield Session(conversation_id=turn.conversation_id)
        controller = self.build_controller(extra_tools=self._web_search_tools())
        async for event in controller.run(
            turn.messages,
            system_prompt=chat_system_prompt(),
            max_tokens=self._settings.chat_max_tokens,
            on_complete=persist,
            conversation_id=turn.conversation_id,
        ):
            yield event

    async def stream_tools_chat(
        self,
        message: str,
        history: Sequence[HistoryMessage] = (),
        *,
        outcome: LoopOutcome | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Run the weather-tool demo loop without persistence."""

        await self._ready.wait()
        messages = [{"role": item.role, "content": item.content} for item in history]
        messages.append({"role": "user", "content": message})
        controller = self.build_controller(tool_names=[WEATHER_TOOL_NAME])
        async for event in controller.run(
            messages,
            system_prompt=tools_system_prompt(),
            max_tokens=self._settings.tools_max_tokens,
            outcome=outcome,
        ):
            yield event

    async def stream_story(self, prompt: str) -> AsyncGenerator[StreamEvent, None]:
        controller = self.build_controller(tool_names=[])
        async for event in controller.run(
            [{"role": "user", "content": prompt}],
            system_prompt=STORY_SYSTEM_PROMPT,
            max_tokens=self._settings.story_max_tokens,
        ):
            yield event

    async def stream_sse(self, message: str) -> AsyncGenerator[StreamEvent, None]:
        controller = self.build_controller(tool_names=[])
        async for event in controller.run(
            [{"role": "user", "content": message}],
            system_prompt=sse_system_prompt(),
            max_tokens=self._settings.sse_max_tokens,
        ):
            yield event

    async def list_conversations(self) -> list[dict[str, Any]]:
        await self._ready.wait()
        return await self._repo.list_conversations()

    async def get_messages(self, conversation_id: str) -> list[dict[str, Any]]:
        await self._ready.wait()
        if not await self._repo.conversation_exists(conversation_id):
            raise ConversationNotFoundError(conversation_id)
        return await self._repo.get_messages(conversation_id)

    async def delete_conversation(self, conversation_id: str) -> bool:
        await self._ready.wait()
        return await self._repo.delete_conversation(conversation_id)

    async def generate_title(self, conversation_id: str) -> str | None:
        """Title the conversation from its opening messages.

        Returns ``None`` when there are fewer than two messages to work from.
        """

        messages = await self.get_messages(conversation_id)
        if len(messages) < 2:
            return None
        title = await generate_title(self._driver(), messages)
        await self._repo.update_title(conversation_id, title)
        return title


__all__ = ["ChatOrchestrator", "ChatTurn", "ConversationNotFoundError"]
