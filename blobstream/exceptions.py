"""Exception hierarchy for blobstream transfers.

Every exception carries a :class:`~blobstream.status.Status` so callers that
prefer status values over exceptions can inspect ``exc.status``.
"""

from __future__ import annotations

from blobstream.status import Status, StatusCode

RETRYABLE_CODES = {
    StatusCode.UNAVAILABLE,
    StatusCode.DEADLINE_EXCEEDED,
    StatusCode.RESOURCE_EXHAUSTED,
    StatusCode.INTERNAL,
    StatusCode.UNKNOWN,
}


class TransferError(Exception):
    """Base class for all transfer failures."""

    default_code = StatusCode.UNKNOWN

    def __init__(self, message: str, code: StatusCode | None = None) -> None:
        """Initialise the error.

        Args:
            message: Human readable description of the failure.
            code: Status code; defaults to the class' ``default_code``.
        """
        super().__init__(message)
        self.status = Status(code or self.default_code, message)

    @property
    def code(self) -> StatusCode:
        """Return the status code carried by this error."""
        return self.status.code


class TransportError(TransferError):
    """Network level failure with unknown server-side effect.

    Retryable, but a resumable upload must be restored before resuming.
    """

    default_code = StatusCode.UNAVAILABLE


class ProtocolError(TransferError):
    """Client logic error: misaligned chunk, offset or size disagreement."""

    default_code = StatusCode.INVALID_ARGUMENT


class PartialChunkError(ProtocolError):
    """The service stored only the leading part of a chunk.

    The session already adopted the shorter offset; the unconfirmed tail is
    resent after a fresh restore.
    """


class PreconditionError(TransferError):
    """The service rejected the request; terminal for this transfer."""

    default_code = StatusCode.FAILED_PRECONDITION


class SessionStateError(TransferError):
    """An operation is not legal in the session's current state."""

    default_code = StatusCode.FAILED_PRECONDITION


class HashMismatchError(TransferError):
    """Computed and received digests disagree."""

    default_code = StatusCode.DATA_LOSS

    def __init__(self, computed_hash: str, received_hash: str) -> None:
        """Initialise the error with both digests for diagnostics.

        Args:
            computed_hash: Digest computed locally over the transferred bytes.
            received_hash: Digest reported by the service.
        """
        super().__init__(
            "mismatched hashes in transfer: "
            f"computed={computed_hash!r} received={received_hash!r}"
        )
        self.computed_hash = computed_hash
        self.received_hash = received_hash


def error_from_status(status: Status) -> TransferError:
    """Build the exception matching a non-OK status.

    Args:
        status: A failed status.

    Returns:
        The TransferError subclass instance for the status' error class.
    """
    if status.code in RETRYABLE_CODES:
        return TransportError(status.message, status.code)
    if status.code in {StatusCode.INVALID_ARGUMENT, StatusCode.OUT_OF_RANGE}:
        return ProtocolError(status.message, status.code)
    return PreconditionError(status.message, status.code)
