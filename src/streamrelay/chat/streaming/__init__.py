"""Chat streaming package: event vocabulary, framing, and SSE parsing.

The model turn driver and the agentic loop controller live in
``.driver`` and ``.controller``; they depend on the provider client and
are imported from there directly.
"""

from .codec import decode_frame, encode, encode_comment
from .events import StreamEvent, event_from_payload, is_terminal
from .parser import IncrementalSseParser, StreamProtocolError

__all__ = [
    "IncrementalSseParser",
    "StreamEvent",
    "StreamProtocolError",
    "decode_frame",
    "encode",
    "encode_comment",
    "event_from_payload",
    "is_terminal",
]
