"""Resumable upload engine."""

from blobstream.upload.chunk_buffer import ChunkBuffer, align_buffer_size
from blobstream.upload.http_transport import HttpUploadTransport
from blobstream.upload.session import (
    ResumableUploadSession,
    SessionState,
    UploadTransport,
)

__all__ = [
    "ChunkBuffer",
    "HttpUploadTransport",
    "ResumableUploadSession",
    "SessionState",
    "UploadTransport",
    "align_buffer_size",
]
