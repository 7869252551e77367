"""Tools the relay exposes to the model."""

from __future__ import annotations

import httpx

from ..chat.streaming.tooling import ToolRegistry
from .suggestions import (
    SUGGESTIONS_INPUT_SCHEMA,
    SUGGESTIONS_TOOL_DESCRIPTION,
    SUGGESTIONS_TOOL_NAME,
    suggest_actions,
)
from .weather import (
    WEATHER_INPUT_SCHEMA,
    WEATHER_TOOL_DESCRIPTION,
    WEATHER_TOOL_NAME,
    WeatherTool,
)


def build_default_registry(http_client: httpx.AsyncClient | None = None) -> ToolRegistry:
    """Register the weather tool and the hidden suggestions tool."""

    registry = ToolRegistry()
    registry.register(
        WEATHER_TOOL_NAME,
        WEATHER_TOOL_DESCRIPTION,
        WEATHER_INPUT_SCHEMA,
        WeatherTool(http_client),
    )
    registry.register(
        SUGGESTIONS_TOOL_NAME,
        SUGGESTIONS_TOOL_DESCRIPTION,
        SUGGESTIONS_INPUT_SCHEMA,
        suggest_actions,
        hidden=True,
    )
    return registry


__all__ = ["SUGGESTIONS_TOOL_NAME", "WEATHER_TOOL_NAME", "build_default_registry"]
