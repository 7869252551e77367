from __future__ import annotations

import asyncio
from typing import AsyncGenerator

import pytest

from streamrelay.chat.streaming.codec import decode_frame
from streamrelay.chat.streaming.events import Done, Error, StreamEvent, TextDelta
from streamrelay.chat.streaming.parser import IncrementalSseParser
from streamrelay.routers.chat import KEEPALIVE_COMMENT, SSE_EVENT_NAMES, frame_events


class TrackedStream:
    """Async event source that records whether it was closed."""

    def __init__(self, events: list[StreamEvent], *, delay: float = 0.0, fail: Exception | None = None):
        self.events = events
        self.delay = delay
        self.fail = fail
        self.closed = False
        self.emitted = 0

    async def generate(self) -> AsyncGenerator[StreamEvent, None]:
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for event in self.events:
                self.emitted += 1
                yield event
            if self.fail is not None:
                raise self.fail
        finally:
            self.closed = True


async def collect(frames: AsyncGenerator[bytes, None]) -> list[bytes]:
    return [frame async for frame in frames]


def decode_all(frames: list[bytes]) -> list[StreamEvent]:
    parser = IncrementalSseParser()
    events = []
    for frame in parser.feed(b"".join(frames)):
        event = decode_frame(frame)
        if event is not None:
            events.append(event)
    return events


@pytest.mark.asyncio
async def test_frames_stop_after_the_terminal_event() -> None:
    source = TrackedStream([TextDelta(content="Hi"), Done(), TextDelta(content="late")])

    frames = await collect(frame_events(source.generate()))

    assert [event.type for event in decode_all(frames)] == ["text_delta", "done"]
    assert source.emitted == 2
    assert source.closed


@pytest.mark.asyncio
async def test_stream_without_terminal_gets_an_error_frame() -> None:
    source = TrackedStream([TextDelta(content="partial")])

    events = decode_all(await collect(frame_events(source.generate())))

    assert [event.type for event in events] == ["text_delta", "error"]
    assert events[-1] == Error(message="Stream ended without a result", reason="internal")
    assert source.closed


@pytest.mark.asyncio
async def test_failing_stream_ends_with_internal_error() -> None:
    source = TrackedStream([TextDelta(content="partial")], fail=RuntimeError("boom"))

    events = decode_all(await collect(frame_events(source.generate())))

    assert [event.type for event in events] == ["text_delta", "error"]
    assert isinstance(events[-1], Error)
    assert events[-1].reason == "internal"
    assert "boom" in events[-1].message
    assert source.closed


@pytest.mark.asyncio
async def test_quiet_stream_gets_keepalive_comments() -> None:
    source = TrackedStream([TextDelta(content="Hi"), Done()], delay=0.2)

    frames = await collect(frame_events(source.generate(), keepalive=0.02))

    comment = f": {KEEPALIVE_COMMENT}\n\n".encode("utf-8")
    assert frames[0] == comment
    assert frames.count(comment) >= 2
    assert [event.type for event in decode_all(frames)] == ["text_delta", "done"]
    assert source.closed


@pytest.mark.asyncio
async def test_busy_stream_has_no_keepalives() -> None:
    source = TrackedStream([TextDelta(content="Hi"), Done()])

    frames = await collect(frame_events(source.generate(), keepalive=5))

    assert not any(frame.startswith(b":") for frame in frames)


@pytest.mark.asyncio
async def test_named_frames_use_the_event_mapping() -> None:
    source = TrackedStream([TextDelta(content="Hi"), Done()])

    frames = await collect(frame_events(source.generate(), event_names=SSE_EVENT_NAMES))

    assert frames[0].startswith(b"event: message\n")
    assert frames[1].startswith(b"event: done\n")


@pytest.mark.asyncio
async def test_abandoned_frames_close_the_source() -> None:
    source = TrackedStream([TextDelta(content="Hi"), Done()], delay=0.5)
    frames = frame_events(source.generate(), keepalive=0.01)

    first = await frames.__anext__()
    await frames.aclose()

    assert first.startswith(b":")
    assert source.closed
