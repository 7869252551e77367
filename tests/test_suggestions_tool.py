"""Tests for the hidden suggestions tool."""

from __future__ import annotations

import pytest

from streamrelay.chat.streaming.tooling import ToolContext
from streamrelay.chat.streaming.types import LoopOutcome
from streamrelay.tools import SUGGESTIONS_TOOL_NAME, WEATHER_TOOL_NAME, build_default_registry
from streamrelay.tools.suggestions import suggest_actions


@pytest.mark.asyncio
async def test_suggestions_are_cleaned_and_capped() -> None:
    context = ToolContext(outcome=LoopOutcome())

    reply = await suggest_actions(
        {"suggestions": ["  Check Paris ", "", 7, "Tomorrow?", "Weekly", "Extra"]}, context
    )

    assert reply == "Suggestions recorded"
    assert context.outcome.suggestions == ["Check Paris", "Tomorrow?", "Weekly"]


@pytest.mark.asyncio
async def test_latest_call_replaces_earlier_suggestions() -> None:
    context = ToolContext(outcome=LoopOutcome())

    await suggest_actions({"suggestions": ["First"]}, context)
    await suggest_actions({"suggestions": ["Second"]}, context)

    assert context.outcome.suggestions == ["Second"]


@pytest.mark.asyncio
async def test_non_list_suggestions_are_rejected() -> None:
    with pytest.raises(ValueError):
        await suggest_actions({"suggestions": "oops"}, ToolContext(outcome=LoopOutcome()))


def test_default_registry_hides_suggestions() -> None:
    registry = build_default_registry()

    assert registry.names == [WEATHER_TOOL_NAME, SUGGESTIONS_TOOL_NAME]
    assert registry.is_hidden(SUGGESTIONS_TOOL_NAME)
    assert not registry.is_hidden(WEATHER_TOOL_NAME)
