from .client import Client
from .config import ConfigManager, TransferConfig
from .const import UPLOAD_QUANTUM
from .exceptions import (
    HashMismatchError,
    PartialChunkError,
    PreconditionError,
    ProtocolError,
    SessionStateError,
    TransferError,
    TransportError,
)
from .models import ObjectMetadata
from .read_stream import ObjectReadStream
from .status import Status, StatusCode
from .streaming import StreamingReadWrapper
from .upload import ResumableUploadSession, SessionState
from .write_stream import ObjectWriteStream

__version__ = "0.3.0"

__all__ = [
    "Client",
    "ConfigManager",
    "HashMismatchError",
    "ObjectMetadata",
    "ObjectReadStream",
    "ObjectWriteStream",
    "PartialChunkError",
    "PreconditionError",
    "ProtocolError",
    "ResumableUploadSession",
    "SessionState",
    "SessionStateError",
    "Status",
    "StatusCode",
    "StreamingReadWrapper",
    "TransferConfig",
    "TransferError",
    "TransportError",
    "UPLOAD_QUANTUM",
]
