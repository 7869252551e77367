"""Tool registration and execution for the agentic loop."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

from .events import ToolResult
from .types import LoopOutcome, ToolCallRequest

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """Request-scoped state handed to every tool handler."""

    outcome: LoopOutcome
    conversation_id: str | None = None


ToolHandler = Callable[[dict[str, Any], ToolContext], Awaitable[str]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler
    hidden: bool = False

    def to_provider_tool(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class ToolRegistry:
    """Name-indexed collection of callable tools."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(
        self,
        name: str,
        description: str,
        input_schema: dict[str, Any],
        handler: ToolHandler,
        *,
        hidden: bool = False,
    ) -> ToolSpec:
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered")
        spec = ToolSpec(
            name=name,
            description=description,
            input_schema=input_schema,
            handler=handler,
            hidden=hidden,
        )
        self._tools[name] = spec
        return spec

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def is_hidden(self, name: str) -> bool:
        spec = self._tools.get(name)
        return bool(spec and spec.hidden)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def provider_tools(self, names: Sequence[str] | None = None) -> list[dict[str, Any]]:
        """Return tool definitions in the provider's request format."""

        if names is None:
            return [spec.to_provider_tool() for spec in self._tools.values()]
        selected: list[dict[str, Any]] = []
        for name in names:
            spec = self._tools.get(name)
            if spec is None:
                raise KeyError(f"Unknown tool '{name}'")
            selected.append(spec.to_provider_tool())
        return selected

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


def summarize_tool_parameters(parameters: Mapping[str, Any] | None) -> str:
    """Render a schema's properties as ``a*, b`` with required fields starred."""

    if not isinstance(parameters, Mapping):
        return "none"

    required_raw = parameters.get("required")
    required: set[str] = set()
    if isinstance(required_raw, Sequence):
        for item in required_raw:
            if isinstance(item, str) and item.strip():
                required.add(item.strip())

    props = parameters.get("properties")
    names: list[str] = []
    if isinstance(props, Mapping):
        for key in props.keys():
            if not isinstance(key, str) or not key.strip():
                continue
            normalized = key.strip()
            names.append(f"{normalized}*" if normalized in required else normalized)

    return ", ".join(names) if names else "none"


def _error_content(message: str) -> str:
    return json.dumps({"error": message}, ensure_ascii=False)


async def execute_tool_call(
    registry: ToolRegistry,
    call: ToolCallRequest,
    context: ToolContext,
    *,
    timeout: float | None = None,
) -> ToolResult:
    """Run one requested tool and capture its outcome as a ``ToolResult``.

    Failures never propagate: they become error results the model can read.
    """

    if call.input_error:
        return ToolResult(
            name=call.name, content=_error_content(call.input_error), id=call.id, is_error=True
        )

    spec = registry.get(call.name)
    if spec is None:
        logger.warning("Model requested unknown tool %s", call.name)
        return ToolResult(
            name=call.name,
            content=_error_content(f"Unknown tool: {call.name}"),
            id=call.id,
            is_error=True,
        )

    if not isinstance(call.input, dict):
        return ToolResult(
            name=call.name,
            content=_error_content(
                f"Tool {call.name} expected a JSON object for arguments but "
                f"received {type(call.input).__name__}."
            ),
            id=call.id,
            is_error=True,
        )

    try:
        if timeout is not None:
            content = await asyncio.wait_for(spec.handler(dict(call.input), context), timeout)
        else:
            content = await spec.handler(dict(call.input), context)
    except asyncio.TimeoutError:
        logger.warning("Tool '%s' timed out after %.1fs", call.name, timeout or 0.0)
        return ToolResult(
            name=call.name,
            content=_error_content(f"Tool error: {call.name} timed out"),
            id=call.id,
            is_error=True,
        )
    except Exception as exc:
        logger.exception("Tool '%s' raised an exception", call.name)
        return ToolResult(
            name=call.name,
            content=_error_content(f"Tool error: {exc}"),
            id=call.id,
            is_error=True,
        )

    if not isinstance(content, str):
        content = json.dumps(content, ensure_ascii=False, default=str)
    return ToolResult(name=call.name, content=content, id=call.id)


def tool_result_block(result: ToolResult) -> dict[str, Any]:
    """Return the provider message block that reports ``result``."""

    block: dict[str, Any] = {
        "type": "tool_result",
        "tool_use_id": result.id,
        "content": result.content,
    }
    if result.is_error:
        block["is_error"] = True
    return block


__all__ = [
    "ToolContext",
    "ToolHandler",
    "ToolRegistry",
    "ToolSpec",
    "execute_tool_call",
    "summarize_tool_parameters",
    "tool_result_block",
]
