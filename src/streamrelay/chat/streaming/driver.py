"""Single model turn: provider stream in, normalized events out."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, AsyncIterator, Protocol, Sequence

from ...provider import ProviderConnectionError, ProviderError
from .events import Citation, Citations, Error, StreamEvent, TextDelta, ToolCall, ToolResult, Usage
from .parser import ServerSentEvent, StreamProtocolError
from .types import StopReason, ToolCallRequest, TurnResult

logger = logging.getLogger(__name__)

WEB_SEARCH_TOOL_NAME = "web_search"
_TOOL_BLOCK_TYPES = {"tool_use", "server_tool_use"}


class MessageStreamClient(Protocol):
    def stream_messages(
        self, payload: dict[str, Any]
    ) -> AsyncIterator[ServerSentEvent]:
        ...


def map_stop_reason(provider_reason: str | None, has_tool_calls: bool) -> StopReason:
    """Translate the provider stop reason into the loop's vocabulary."""

    if provider_reason == "tool_use":
        if has_tool_calls:
            return "tool_requested"
        logger.warning("Provider reported tool_use without any tool_use blocks")
    if provider_reason == "pause_turn":
        # Long server-side tool runs; the turn is resent as-is to continue.
        return "paused"
    return "end_of_response"


class CumulativeText:
    """Turn a sequence of full-text snapshots into suffix deltas."""

    def __init__(self) -> None:
        self._seen = ""

    @property
    def text(self) -> str:
        return self._seen

    def advance(self, snapshot: str) -> str:
        if not snapshot.startswith(self._seen):
            raise StreamProtocolError(
                "Provider rewrote previously streamed text "
                f"(had {len(self._seen)} chars, snapshot has {len(snapshot)})"
            )
        delta = snapshot[len(self._seen):]
        self._seen = snapshot
        return delta


@dataclass
class _Block:
    kind: str
    raw: dict[str, Any]
    text: CumulativeText = field(default_factory=CumulativeText)
    json_parts: list[str] = field(default_factory=list)
    citations: list[dict[str, Any]] = field(default_factory=list)


class _TurnAccumulator:
    """Provider-shaped bookkeeping for one streamed message."""

    def __init__(self, *, cumulative_text: bool) -> None:
        self._cumulative = cumulative_text
        self._blocks: dict[int, _Block] = {}
        self._tool_calls: list[ToolCallRequest] = []
        self.model: str | None = None
        self.provider_stop_reason: str | None = None
        self.input_tokens = 0
        self.output_tokens = 0
        self.finished = False

    def apply(self, kind: str, chunk: dict[str, Any]) -> list[StreamEvent]:
        if kind == "message_start":
            message = chunk.get("message") or {}
            if isinstance(message.get("model"), str):
                self.model = message["model"]
            self._apply_usage(message.get("usage"))
            return []
        if kind == "content_block_start":
            return self._start_block(chunk)
        if kind == "content_block_delta":
            return self._apply_delta(chunk)
        if kind == "content_block_stop":
            return self._stop_block(chunk)
        if kind == "message_delta":
            delta = chunk.get("delta") or {}
            stop_reason = delta.get("stop_reason")
            if isinstance(stop_reason, str):
                self.provider_stop_reason = stop_reason
            self._apply_usage(chunk.get("usage"))
            return []
        if kind == "message_stop":
            self.finished = True
            return []
        if kind != "ping":
            logger.debug("Ignoring provider stream event %s", kind)
        return []

    def _apply_usage(self, usage: Any) -> None:
        if not isinstance(usage, dict):
            return
        input_tokens = usage.get("input_tokens")
        if isinstance(input_tokens, int):
            self.input_tokens = input_tokens
        output_tokens = usage.get("output_tokens")
        if isinstance(output_tokens, int):
            self.output_tokens = output_tokens

    def _index(self, chunk: dict[str, Any]) -> int:
        index = chunk.get("index")
        if not isinstance(index, int) or index < 0:
            raise StreamProtocolError(f"Content block event without a valid index: {index!r}")
        return index

    def _append_text(self, block: _Block, fragment: str) -> list[StreamEvent]:
        if self._cumulative:
            delta = block.text.advance(fragment)
        else:
            delta = fragment
            block.text.advance(block.text.text + fragment)
        return [TextDelta(content=delta)] if delta else []

    def _start_block(self, chunk: dict[str, Any]) -> list[StreamEvent]:
        index = self._index(chunk)
        raw = chunk.get("content_block")
        if not isinstance(raw, dict):
            raise StreamProtocolError(f"content_block_start {index} has no block")
        block = _Block(kind=str(raw.get("type")), raw=dict(raw))
        self._blocks[index] = block

        if block.kind == "text":
            initial = raw.get("text")
            if isinstance(initial, str) and initial:
                return self._append_text(block, initial)
            return []
        if block.kind == "web_search_tool_result":
            return self._web_search_events(raw)
        return []

    def _apply_delta(self, chunk: dict[str, Any]) -> list[StreamEvent]:
        index = self._index(chunk)
        block = self._blocks.get(index)
        if block is None:
            raise StreamProtocolError(f"Delta for unknown content block {index}")
        delta = chunk.get("delta") or {}
        delta_type = delta.get("type")

        if delta_type == "text_delta":
            text = delta.get("text")
            if isinstance(text, str):
                return self._append_text(block, text)
        elif delta_type == "input_json_delta":
            partial = delta.get("partial_json")
            if isinstance(partial, str):
                block.json_parts.append(partial)
        elif delta_type == "citations_delta":
            citation = delta.get("citation")
            if isinstance(citation, dict):
                block.citations.append(citation)
                url = citation.get("url")
                if isinstance(url, str) and url:
                    title = citation.get("title")
                    return [Citation(title=title if isinstance(title, str) else url, url=url)]
        elif delta_type == "thinking_delta":
            block.raw["thinking"] = block.raw.get("thinking", "") + str(delta.get("thinking", ""))
        elif delta_type == "signature_delta":
            block.raw["signature"] = str(delta.get("signature", ""))
        else:
            logger.debug("Ignoring content delta of type %s", delta_type)
        return []

    def _stop_block(self, chunk: dict[str, Any]) -> list[StreamEvent]:
        index = self._index(chunk)
        block = self._blocks.get(index)
        if block is None or block.kind not in _TOOL_BLOCK_TYPES:
            return []

        tool_id = block.raw.get("id") or f"toolu_{index}"
        name = block.raw.get("name") or "unknown"
        arguments_raw = "".join(block.json_parts)
        input_error: str | None = None
        if arguments_raw.strip():
            try:
                tool_input = json.loads(arguments_raw)
            except json.JSONDecodeError as exc:
                tool_input = {}
                input_error = f"Invalid JSON arguments for tool {name}: {exc.msg}"
                logger.warning("Tool argument parse failure for %s: %s", name, exc)
        else:
            initial = block.raw.get("input")
            tool_input = initial if isinstance(initial, dict) else {}

        block.raw["id"] = tool_id
        block.raw["name"] = name
        block.raw["input"] = tool_input

        if block.kind == "tool_use":
            self._tool_calls.append(
                ToolCallRequest(
                    id=tool_id, name=name, input=tool_input, input_error=input_error
                )
            )
        return [ToolCall(name=name, input=tool_input, id=tool_id)]

    def _web_search_events(self, raw: dict[str, Any]) -> list[StreamEvent]:
        tool_use_id = raw.get("tool_use_id")
        content = raw.get("content")
        if isinstance(content, list):
            citations = tuple(
                Citation(title=str(item.get("title") or item["url"]), url=item["url"])
                for item in content
                if isinstance(item, dict)
                and item.get("type") == "web_search_result"
                and isinstance(item.get("url"), str)
            )
            summary = json.dumps(
                [{"title": item.title, "url": item.url} for item in citations],
                ensure_ascii=False,
            )
            events: list[StreamEvent] = [
                ToolResult(name=WEB_SEARCH_TOOL_NAME, content=summary, id=tool_use_id)
            ]
            if citations:
                events.append(Citations(citations=citations))
            return events

        error_code = content.get("error_code") if isinstance(content, dict) else None
        return [
            ToolResult(
                name=WEB_SEARCH_TOOL_NAME,
                content=json.dumps({"error": error_code or "web search failed"}),
                id=tool_use_id,
                is_error=True,
            )
        ]

    def content_blocks(self) -> tuple[dict[str, Any], ...]:
        blocks: list[dict[str, Any]] = []
        for index in sorted(self._blocks):
            block = self._blocks[index]
            if block.kind == "text":
                if not block.text.text:
                    continue
                rendered: dict[str, Any] = {"type": "text", "text": block.text.text}
                if block.citations:
                    rendered["citations"] = list(block.citations)
                blocks.append(rendered)
            else:
                blocks.append(dict(block.raw))
        return tuple(blocks)

    def result(self) -> TurnResult:
        text = "".join(
            self._blocks[index].text.text
            for index in sorted(self._blocks)
            if self._blocks[index].kind == "text"
        )
        return TurnResult(
            stop_reason=map_stop_reason(self.provider_stop_reason, bool(self._tool_calls)),
            tool_calls=tuple(self._tool_calls),
            text=text,
            usage=Usage(input_tokens=self.input_tokens, output_tokens=self.output_tokens),
            content=self.content_blocks(),
            model=self.model,
            provider_stop_reason=self.provider_stop_reason,
        )


class ModelTurnDriver:
    """Issue one model call and translate its stream into stream events."""

    def __init__(
        self,
        client: MessageStreamClient,
        *,
        model: str,
        cumulative_text: bool = False,
    ) -> None:
        self._client = client
        self._model = model
        self._cumulative_text = cumulative_text

    def build_payload(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]] | None,
        system_prompt: str | None,
        max_tokens: int,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "messages": list(messages),
        }
        if system_prompt:
            payload["system"] = system_prompt
        if tools:
            payload["tools"] = list(tools)
        return payload

    async def run_turn(
        self,
        messages: Sequence[dict[str, Any]],
        tools: Sequence[dict[str, Any]] | None = None,
        system_prompt: str | None = None,
        max_tokens: int = 1024,
    ) -> AsyncGenerator[StreamEvent | TurnResult, None]:
        """Yield events as the provider streams, then a ``TurnResult``.

        A failed turn ends with a single ``Error`` event instead of a result.
        """

        payload = self.build_payload(messages, tools, system_prompt, max_tokens)
        accumulator = _TurnAccumulator(cumulative_text=self._cumulative_text)
        stream = self._client.stream_messages(payload)
        try:
            async for sse in stream:
                try:
                    chunk = json.loads(sse.data)
                except json.JSONDecodeError:
                    logger.warning("Skipping non-JSON provider frame: %r", sse.data[:120])
                    continue
                if not isinstance(chunk, dict):
                    continue

                kind = chunk.get("type") or sse.event
                if kind == "error":
                    error = chunk.get("error") or {}
                    message = error.get("message") if isinstance(error, dict) else None
                    yield Error(
                        message=f"Model provider error: {message or 'unknown error'}",
                        reason="provider",
                    )
                    return

                for event in accumulator.apply(kind, chunk):
                    yield event
                if accumulator.finished:
                    break
        except ProviderConnectionError as exc:
            logger.warning("Provider connection failed: %s", exc.detail)
            yield Error(message=f"Connection to model provider failed: {exc.detail}", reason="transport")
            return
        except ProviderError as exc:
            detail = exc.detail if isinstance(exc.detail, str) else json.dumps(exc.detail)
            logger.warning("Provider returned %s: %s", exc.status_code, detail)
            yield Error(message=f"Model provider error ({exc.status_code}): {detail}", reason="provider")
            return
        except StreamProtocolError as exc:
            logger.warning("Provider stream violated the protocol: %s", exc)
            yield Error(message=str(exc), reason="protocol")
            return
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        if not accumulator.finished:
            yield Error(
                message="Model stream ended before the response completed",
                reason="transport",
            )
            return

        result = accumulator.result()
        logger.debug(
            "Turn finished: stop_reason=%s tool_calls=%d usage=%s/%s",
            result.provider_stop_reason,
            len(result.tool_calls),
            result.usage.input_tokens,
            result.usage.output_tokens,
        )
        yield result.usage
        yield result


__all__ = [
    "CumulativeText",
    "MessageStreamClient",
    "ModelTurnDriver",
    "WEB_SEARCH_TOOL_NAME",
    "map_stop_reason",
]
