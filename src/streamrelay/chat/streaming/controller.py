"""Agentic loop: model turns interleaved with concurrent tool execution."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Sequence

from .driver import ModelTurnDriver
from .events import Done, Error, StreamEvent, Suggestions, TextDelta, ToolCall, ToolResult, Usage
from .tooling import ToolContext, ToolRegistry, execute_tool_call, tool_result_block
from .types import LoopOutcome, LoopState, ToolCallRequest, TurnResult

logger = logging.getLogger(__name__)

CompletionHook = Callable[[LoopOutcome], Awaitable[None]]


class _DeadlineExceeded(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AgenticLoopController:
    """Drive model turns until the model answers, fails, or hits the ceiling.

    One controller serves one request. ``run`` is the only writer of the
    request's event stream and always finishes with exactly one ``Done`` or
    ``Error`` unless the consumer abandons it first.
    """

    def __init__(
        self,
        driver: ModelTurnDriver,
        registry: ToolRegistry,
        *,
        max_turns: int = 10,
        turn_timeout: float | None = None,
        request_timeout: float | None = None,
        tool_timeout: float | None = None,
        tool_names: Sequence[str] | None = None,
        extra_tools: Sequence[dict[str, Any]] = (),
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._driver = driver
        self._registry = registry
        self._max_turns = max_turns
        self._turn_timeout = turn_timeout
        self._request_timeout = request_timeout
        self._tool_timeout = tool_timeout
        self._tool_names = list(tool_names) if tool_names is not None else None
        self._extra_tools = list(extra_tools)
        self.state = LoopState.AWAITING_MODEL

    def _tool_definitions(self) -> list[dict[str, Any]]:
        return self._registry.provider_tools(self._tool_names) + self._extra_tools

    def _is_hidden(self, event: StreamEvent) -> bool:
        if isinstance(event, (ToolCall, ToolResult)):
            return self._registry.is_hidden(event.name)
        return False

    async def _next_item(
        self,
        stream: AsyncIterator[StreamEvent | TurnResult],
        turn_deadline: float | None,
        request_deadline: float | None,
    ) -> StreamEvent | TurnResult:
        loop = asyncio.get_running_loop()
        deadlines = [
            (deadline, label)
            for deadline, label in (
                (turn_deadline, "Model turn timed out"),
                (request_deadline, "Request timed out"),
            )
            if deadline is not None
        ]
        if not deadlines:
            return await stream.__anext__()

        deadline, label = min(deadlines, key=lambda item: item[0])
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise _DeadlineExceeded(label)
        try:
            return await asyncio.wait_for(stream.__anext__(), remaining)
        except asyncio.TimeoutError:
            raise _DeadlineExceeded(label) from None

    async def _execute_tools(
        self,
        calls: Sequence[ToolCallRequest],
        context: ToolContext,
        tasks: dict[asyncio.Task[ToolResult], int],
        request_deadline: float | None,
    ) -> AsyncGenerator[tuple[int, ToolResult], None]:
        loop = asyncio.get_running_loop()
        for index, call in enumerate(calls):
            task = asyncio.create_task(
                execute_tool_call(self._registry, call, context, timeout=self._tool_timeout),
                name=f"tool:{call.name}:{call.id}",
            )
            tasks[task] = index

        while tasks:
            timeout = None
            if request_deadline is not None:
                timeout = request_deadline - loop.time()
                if timeout <= 0:
                    raise _DeadlineExceeded("Request timed out")
            done, _ = await asyncio.wait(
                set(tasks), timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                raise _DeadlineExceeded("Request timed out")
            for task in sorted(done, key=lambda item: tasks[item]):
                index = tasks.pop(task)
                yield index, task.result()

    def _fail(self, outcome: LoopOutcome, error: Error) -> Error:
        self.state = LoopState.FAILED
        outcome.state = LoopState.FAILED
        outcome.stop_reason = "error"
        outcome.error = error
        return error

    async def run(
        self,
        messages: Sequence[dict[str, Any]],
        *,
        system_prompt: str | None = None,
        max_tokens: int = 1024,
        outcome: LoopOutcome | None = None,
        on_complete: CompletionHook | None = None,
        conversation_id: str | None = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        """Run the loop over ``messages`` and yield client-facing events."""

        outcome = outcome if outcome is not None else LoopOutcome()
        history: list[dict[str, Any]] = list(messages)
        outcome.messages = history
        context = ToolContext(outcome=outcome, conversation_id=conversation_id)
        tools = self._tool_definitions()

        loop = asyncio.get_running_loop()
        request_deadline = (
            loop.time() + self._request_timeout if self._request_timeout else None
        )
        tasks: dict[asyncio.Task[ToolResult], int] = {}
        turn_stream: AsyncGenerator[StreamEvent | TurnResult, None] | None = None

        try:
            while True:
                self.state = outcome.state = LoopState.AWAITING_MODEL
                outcome.turns += 1
                turn_deadline = (
                    loop.time() + self._turn_timeout if self._turn_timeout else None
                )
                logger.debug("Starting model turn %d", outcome.turns)

                result: TurnResult | None = None
                turn_stream = self._driver.run_turn(history, tools, system_prompt, max_tokens)
                while True:
                    try:
                        item = await self._next_item(turn_stream, turn_deadline, request_deadline)
                    except StopAsyncIteration:
                        break
                    if isinstance(item, TurnResult):
                        result = item
                        continue
                    if isinstance(item, Error):
                        yield self._fail(outcome, item)
                        return
                    if isinstance(item, Usage):
                        outcome.usage = outcome.usage + item
                        continue
                    if isinstance(item, TextDelta):
                        outcome.text += item.content
                    if self._is_hidden(item):
                        continue
                    yield item
                await turn_stream.aclose()
                turn_stream = None

                if result is None:
                    yield self._fail(
                        outcome,
                        Error(message="Model turn ended without a result", reason="internal"),
                    )
                    return

                history.append(result.to_message_dict())
                outcome.stop_reason = result.stop_reason
                if result.stop_reason == "end_of_response":
                    outcome.final_text = result.text
                    break

                if outcome.turns >= self._max_turns:
                    logger.warning(
                        "Turn ceiling of %d reached with tools still requested",
                        self._max_turns,
                    )
                    yield self._fail(
                        outcome,
                        Error(
                            message=f"Stopped after {self._max_turns} turns: the model kept requesting tools",
                            reason="ceiling_reached",
                        ),
                    )
                    return

                if result.stop_reason == "paused":
                    logger.debug("Model paused turn %d; resuming", outcome.turns)
                    continue

                self.state = outcome.state = LoopState.EXECUTING_TOOLS
                calls = result.tool_calls
                results: dict[int, ToolResult] = {}
                async for index, tool_result in self._execute_tools(
                    calls, context, tasks, request_deadline
                ):
                    results[index] = tool_result
                    if not self._is_hidden(tool_result):
                        yield tool_result

                history.append(
                    {
                        "role": "user",
                        "content": [tool_result_block(results[index]) for index in range(len(calls))],
                    }
                )

            self.state = outcome.state = LoopState.DONE
            if outcome.suggestions:
                yield Suggestions(suggestions=tuple(outcome.suggestions))
            yield outcome.usage
            if on_complete is not None:
                await on_complete(outcome)
            yield Done()
        except _DeadlineExceeded as exc:
            logger.warning("%s after %d turn(s)", exc.message, outcome.turns)
            yield self._fail(outcome, Error(message=exc.message, reason="timeout"))
        except (asyncio.CancelledError, GeneratorExit):
            if self.state is not LoopState.DONE:
                logger.info("Agentic loop cancelled during turn %d", outcome.turns)
                self._fail(outcome, Error(message="Request cancelled", reason="cancelled"))
            raise
        except Exception as exc:
            logger.exception("Agentic loop failed")
            yield self._fail(outcome, Error(message=f"Internal error: {exc}", reason="internal"))
        finally:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            if turn_stream is not None:
                await turn_stream.aclose()


__all__ = ["AgenticLoopController", "CompletionHook"]
