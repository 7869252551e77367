from __future__ import annotations

import json
from typing import Any, Iterator

import pytest
import sse_starlette.sse as sse_module
from fastapi.testclient import TestClient

from provider_fakes import ScriptedClient, text_turn, tool_turn
from streamrelay.app import create_app
from streamrelay.chat.orchestrator import ChatOrchestrator
from streamrelay.chat.streaming.parser import IncrementalSseParser, parse_frame
from streamrelay.chat.streaming.tooling import ToolContext, ToolRegistry
from streamrelay.client import StreamReassembler
from streamrelay.config import get_settings
from streamrelay.provider import ProviderError

WEATHER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"location": {"type": "string"}},
    "required": ["location"],
}


async def fake_weather(arguments: dict[str, Any], context: ToolContext) -> str:
    return json.dumps({"location": arguments["location"], "conditions": "Clear sky"})


@pytest.fixture(autouse=True)
def reset_sse_app_status(monkeypatch: pytest.MonkeyPatch) -> None:
    # sse-starlette keeps a process-wide exit event bound to the first loop.
    app_status = getattr(sse_module, "AppStatus", None)
    if app_status is not None and hasattr(app_status, "should_exit_event"):
        monkeypatch.setattr(app_status, "should_exit_event", None)


class RelayHarness:
    def __init__(self, turns: list[list[Any]]) -> None:
        registry = ToolRegistry()
        registry.register("get_weather", "Weather", WEATHER_SCHEMA, fake_weather)
        self.provider = ScriptedClient(turns)
        self.orchestrator = ChatOrchestrator(
            get_settings(), client=self.provider, registry=registry
        )
        self.app = create_app(orchestrator=self.orchestrator)


@pytest.fixture
def harness_factory() -> Iterator[Any]:
    clients: list[TestClient] = []

    def build(turns: list[list[Any]]) -> tuple[TestClient, RelayHarness]:
        harness = RelayHarness(turns)
        client = TestClient(harness.app)
        client.__enter__()
        clients.append(client)
        return client, harness

    yield build
    for client in clients:
        client.__exit__(None, None, None)


def reassemble(body: bytes):
    reassembler = StreamReassembler()
    reassembler.feed(body)
    return reassembler.close()


def named_frames(body: bytes) -> list[tuple[str, dict[str, Any]]]:
    parser = IncrementalSseParser()
    frames = []
    for frame in parser.feed(body):
        event = parse_frame(frame)
        if event is not None:
            frames.append((event.event, json.loads(event.data)))
    return frames


def test_health(harness_factory) -> None:
    client, _ = harness_factory([])

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_chat_stream_runs_tools_and_persists(harness_factory) -> None:
    client, harness = harness_factory(
        [
            tool_turn([("toolu_1", "get_weather", {"location": "Tokyo"})]),
            text_turn("Clear skies ", "in Tokyo."),
        ]
    )

    response = client.post("/api/chat/stream", json={"message": "What's the weather in Tokyo?"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    buffer = reassemble(response.content)
    assert buffer.status == "done"
    assert buffer.text == "Clear skies in Tokyo."
    assert [step.type for step in buffer.steps] == ["tool_call", "tool_result"]
    assert buffer.conversation_id

    tool_names = [tool["name"] for tool in harness.provider.payloads[0]["tools"]]
    assert tool_names == ["get_weather", "web_search"]
    assert "Today's date is" in harness.provider.payloads[0]["system"]

    conversations = client.get("/api/conversations").json()
    assert [item["id"] for item in conversations] == [buffer.conversation_id]
    assert conversations[0]["title"] == "What's the weather in Tokyo?"

    messages = client.get(f"/api/conversations/{buffer.conversation_id}/messages").json()
    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "What's the weather in Tokyo?"),
        ("assistant", "Clear skies in Tokyo."),
    ]


def test_chat_stream_continues_a_conversation(harness_factory) -> None:
    client, harness = harness_factory([text_turn("Hi!"), text_turn("Still here.")])

    first = reassemble(client.post("/api/chat/stream", json={"message": "Hello"}).content)
    second = reassemble(
        client.post(
            "/api/chat/stream",
            json={"message": "Are you there?", "conversationId": first.conversation_id},
        ).content
    )

    assert second.conversation_id == first.conversation_id
    assert harness.provider.payloads[1]["messages"] == [
        {"role": "user", "content": "Hello"},
        {"role": "assistant", "content": "Hi!"},
        {"role": "user", "content": "Are you there?"},
    ]


def test_chat_stream_unknown_conversation(harness_factory) -> None:
    client, _ = harness_factory([])

    response = client.post(
        "/api/chat/stream", json={"message": "Hello", "conversationId": "missing"}
    )

    assert response.status_code == 404


def test_chat_stream_rejects_empty_message(harness_factory) -> None:
    client, _ = harness_factory([])

    assert client.post("/api/chat/stream", json={"message": ""}).status_code == 422


def test_failed_chat_is_not_persisted_and_cannot_be_titled(harness_factory) -> None:
    client, _ = harness_factory([[ProviderError(529, "Overloaded")]])

    buffer = reassemble(client.post("/api/chat/stream", json={"message": "Hello"}).content)

    assert buffer.status == "error"
    assert buffer.error.reason == "provider"
    assert client.get(f"/api/conversations/{buffer.conversation_id}/messages").json() == []
    response = client.post(f"/api/conversations/{buffer.conversation_id}/title")
    assert response.status_code == 400


def test_generate_title_for_conversation(harness_factory) -> None:
    client, _ = harness_factory([text_turn("Hello!"), text_turn("Friendly Greeting")])
    buffer = reassemble(client.post("/api/chat/stream", json={"message": "Hello"}).content)

    response = client.post(f"/api/conversations/{buffer.conversation_id}/title")

    assert response.status_code == 200
    assert response.json() == {"title": "Friendly Greeting"}
    conversations = client.get("/api/conversations").json()
    assert conversations[0]["title"] == "Friendly Greeting"
    assert client.post("/api/conversations/missing/title").status_code == 404


def test_delete_conversation(harness_factory) -> None:
    client, _ = harness_factory([text_turn("Hi!")])
    buffer = reassemble(client.post("/api/chat/stream", json={"message": "Hello"}).content)

    assert client.delete(f"/api/conversations/{buffer.conversation_id}").status_code == 204
    assert client.delete(f"/api/conversations/{buffer.conversation_id}").status_code == 404
    assert client.get(f"/api/conversations/{buffer.conversation_id}/messages").status_code == 404


def test_tools_chat_returns_steps(harness_factory) -> None:
    client, harness = harness_factory(
        [
            tool_turn(
                [
                    ("toolu_1", "get_weather", {"location": "Tokyo"}),
                    ("toolu_2", "get_weather", {"location": "Paris"}),
                ]
            ),
            text_turn("Both clear."),
        ]
    )

    response = client.post(
        "/api/tools/chat",
        json={
            "message": "Weather in Tokyo and Paris?",
            "history": [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hello"}],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "Both clear."
    assert [step["type"] for step in body["steps"]] == [
        "tool_call",
        "tool_call",
        "tool_result",
        "tool_result",
    ]
    assert body["steps"][0] == {"type": "tool_call", "name": "get_weather", "input": {"location": "Tokyo"}}
    first_payload = harness.provider.payloads[0]
    assert [tool["name"] for tool in first_payload["tools"]] == ["get_weather"]
    assert len(first_payload["messages"]) == 3


def test_tools_chat_response_is_the_final_answer_only(harness_factory) -> None:
    client, _ = harness_factory(
        [
            tool_turn([("toolu_1", "get_weather", {"location": "Tokyo"})], preamble="Let me check."),
            text_turn("It is clear in Tokyo."),
        ]
    )

    response = client.post("/api/tools/chat", json={"message": "Weather in Tokyo?"})

    assert response.status_code == 200
    assert response.json()["response"] == "It is clear in Tokyo."


def test_tools_chat_reports_provider_failure(harness_factory) -> None:
    client, _ = harness_factory([[ProviderError(529, "Overloaded")]])

    response = client.post("/api/tools/chat", json={"message": "Weather?"})

    assert response.status_code == 502
    assert "Overloaded" in response.json()["detail"]


def test_generate_streams_a_story(harness_factory) -> None:
    client, harness = harness_factory([text_turn("Once upon ", "a time.")])

    response = client.post("/api/generate", json={"prompt": "a dragon"})

    buffer = reassemble(response.content)
    assert buffer.text == "Once upon a time."
    assert buffer.status == "done"
    assert "tools" not in harness.provider.payloads[0]
    assert harness.provider.payloads[0]["messages"] == [{"role": "user", "content": "a dragon"}]


def test_generate_requires_a_prompt(harness_factory) -> None:
    client, _ = harness_factory([])

    assert client.post("/api/generate", json={}).status_code == 422
    assert client.post("/api/generate", json={"prompt": "   "}).status_code == 422


def test_sse_get_uses_named_events(harness_factory) -> None:
    client, _ = harness_factory([text_turn("Hello", " there")])

    response = client.get("/api/sse", params={"message": "Hi"})

    frames = named_frames(response.content)
    assert [name for name, _ in frames] == ["message", "message", "usage", "done"]
    assert frames[0][1] == {"type": "text_delta", "content": "Hello"}


def test_sse_get_requires_message(harness_factory) -> None:
    client, _ = harness_factory([])

    response = client.get("/api/sse")

    assert response.status_code == 400
    assert response.json()["detail"] == "Missing message parameter"
