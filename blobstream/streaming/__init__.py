"""Streaming reads with exactly-once terminal status."""

from blobstream.streaming.http_reader import HttpObjectReader, ReadPayload, media_url
from blobstream.streaming.read_wrapper import (
    MessageReader,
    StreamingReadResult,
    StreamingReadWrapper,
)

__all__ = [
    "HttpObjectReader",
    "MessageReader",
    "ReadPayload",
    "StreamingReadResult",
    "StreamingReadWrapper",
    "media_url",
]
