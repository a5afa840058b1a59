"""Status codes shared by the upload and streaming-read paths."""

from dataclasses import dataclass
from enum import Enum


class StatusCode(str, Enum):
    """Canonical outcome codes for a transfer operation."""

    OK = "OK"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    FAILED_PRECONDITION = "FAILED_PRECONDITION"
    ABORTED = "ABORTED"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    UNIMPLEMENTED = "UNIMPLEMENTED"
    INTERNAL = "INTERNAL"
    UNAVAILABLE = "UNAVAILABLE"
    DATA_LOSS = "DATA_LOSS"


_HTTP_STATUS_MAP: dict[int, StatusCode] = {
    400: StatusCode.INVALID_ARGUMENT,
    401: StatusCode.UNAUTHENTICATED,
    403: StatusCode.PERMISSION_DENIED,
    404: StatusCode.NOT_FOUND,
    409: StatusCode.ABORTED,
    410: StatusCode.NOT_FOUND,
    412: StatusCode.FAILED_PRECONDITION,
    416: StatusCode.OUT_OF_RANGE,
    429: StatusCode.RESOURCE_EXHAUSTED,
    499: StatusCode.CANCELLED,
    501: StatusCode.UNIMPLEMENTED,
}


@dataclass(frozen=True)
class Status:
    """Outcome of an operation: a code plus a human readable message."""

    code: StatusCode = StatusCode.OK
    message: str = ""

    @property
    def ok(self) -> bool:
        """Return True when the status denotes success."""
        return self.code == StatusCode.OK

    def __str__(self) -> str:
        if self.message:
            return f"{self.code.value}: {self.message}"
        return self.code.value


OK_STATUS = Status()


def status_code_from_http(http_status: int) -> StatusCode:
    """Map an HTTP status code to a StatusCode."""
    if 200 <= http_status < 300:
        return StatusCode.OK
    if http_status in _HTTP_STATUS_MAP:
        return _HTTP_STATUS_MAP[http_status]
    if http_status >= 500:
        return StatusCode.UNAVAILABLE
    return StatusCode.UNKNOWN


def status_from_http(http_status: int, message: str = "") -> Status:
    """Build a Status from an HTTP response code and body excerpt."""
    return Status(status_code_from_http(http_status), message)
