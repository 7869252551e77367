"""Client-side helpers for consuming relay streams."""

from .reassembler import ConversationBuffer, StreamReassembler, ToolStep, apply, stream_buffers

__all__ = [
    "ConversationBuffer",
    "StreamReassembler",
    "ToolStep",
    "apply",
    "stream_buffers",
]
