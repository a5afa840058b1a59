"""Sequence adapter over a blocking message reader.

The underlying reader exposes two primitives: ``read()`` returns the next
message or None at end of stream, and ``finish()`` returns the final status.
:class:`StreamingReadWrapper` folds them into one ordered sequence of
``message | Status`` results in which the status appears exactly once, last.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Generic, Protocol, TypeVar, Union

import requests

from blobstream.exceptions import TransferError
from blobstream.status import Status, StatusCode

logger = logging.getLogger(__name__)

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

StreamingReadResult = Union[T, Status]


class MessageReader(Protocol[T_co]):
    """Blocking receive primitive of a server-streaming call."""

    def read(self) -> T_co | None:
        """Return the next message, or None once the stream ended."""
        ...

    def finish(self) -> Status:
        """Release the stream and return its final status."""
        ...


def _status_from_exception(exc: Exception) -> Status:
    if isinstance(exc, TransferError):
        return exc.status
    if isinstance(exc, requests.exceptions.Timeout):
        return Status(StatusCode.DEADLINE_EXCEEDED, str(exc))
    return Status(StatusCode.UNAVAILABLE, str(exc))


class StreamingReadWrapper(Generic[T]):
    """Yields messages, then exactly one terminal status.

    Once the terminal status has been produced every further ``read()``
    returns it again without touching the underlying reader. If the wrapper
    is closed (or garbage collected) before the status was read, the reader
    is finished and a failure is logged, since nobody is left to receive it.
    """

    def __init__(self, reader: MessageReader[T]) -> None:
        """Wrap a reader.

        Args:
            reader: The underlying message reader; owned by the wrapper.
        """
        self._reader = reader
        self._status: Status | None = None

    @property
    def status(self) -> Status | None:
        """Terminal status, or None while the stream is still open."""
        return self._status

    @property
    def finished(self) -> bool:
        """True once the terminal status was produced."""
        return self._status is not None

    def read(self) -> StreamingReadResult[T]:
        """Return the next message or the terminal status."""
        if self._status is not None:
            return self._status
        read_error: Status | None = None
        try:
            message = self._reader.read()
        except (TransferError, OSError, requests.exceptions.RequestException) as exc:
            read_error = _status_from_exception(exc)
            message = None
        if message is not None:
            return message
        self._status = self._finish(read_error)
        return self._status

    def _finish(self, read_error: Status | None) -> Status:
        try:
            status = self._reader.finish()
        except (TransferError, OSError, requests.exceptions.RequestException) as exc:
            status = _status_from_exception(exc)
        if read_error is not None:
            return read_error
        return status

    def __iter__(self) -> Iterator[T]:
        """Yield messages until the terminal status; see :attr:`status`."""
        while True:
            result = self.read()
            if isinstance(result, Status):
                return
            yield result

    def close(self) -> None:
        """Finish the stream if the terminal status was never produced."""
        if self._status is not None:
            return
        self._status = self._finish(None)
        if not self._status.ok:
            logger.warning(
                "unhandled error for streaming read: status=%s",
                self._status,
                extra={
                    "status_code": self._status.code.value,
                    "status_message": self._status.message,
                },
            )

    def __enter__(self) -> "StreamingReadWrapper[T]":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __del__(self) -> None:
        # Attributes may be missing if __init__ did not complete.
        if getattr(self, "_reader", None) is not None:
            self.close()
