"""User-facing streaming upload object."""

from __future__ import annotations

import logging
from types import TracebackType

from blobstream.exceptions import HashMismatchError, SessionStateError, TransferError
from blobstream.hashing import (
    HashValidator,
    NullHashValidator,
    received_hash_from_metadata,
)
from blobstream.models import ObjectMetadata
from blobstream.retry import RetryPolicy
from blobstream.status import OK_STATUS, Status
from blobstream.upload.chunk_buffer import ChunkBuffer
from blobstream.upload.session import ResumableUploadSession, SessionState

logger = logging.getLogger(__name__)


class ObjectWriteStream:
    """Writes an object through a resumable upload session.

    Bytes are buffered into quantum-aligned chunks, digested, and sent as the
    buffer fills. ``close()`` sends the final chunk and validates the digest
    reported by the service. ``suspend()`` detaches without finalizing so the
    upload can be resumed later from :attr:`resumable_session_id`.

    Used as a context manager the stream is closed on normal exit and
    suspended when the block raises.
    """

    def __init__(
        self,
        session: ResumableUploadSession,
        buffer_size: int,
        hash_validator: HashValidator | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialise the stream.

        Args:
            session: A created or restored session; owned by the stream.
            buffer_size: Upload buffer size, rounded up to the quantum.
            hash_validator: Digest of the uploaded bytes. Ignored (replaced
                by a null validator) when the session resumes at a non-zero
                offset, since earlier bytes cannot be digested any more.
            retry_policy: Governs retries of transport failures.
        """
        if session.next_expected_byte > 0 and hash_validator is not None:
            logger.debug(
                "Session %s resumes at byte %d; hash validation disabled",
                session.session_id,
                session.next_expected_byte,
            )
            hash_validator = NullHashValidator()
        self._session = session
        self._buffer = ChunkBuffer(
            session,
            hash_validator=hash_validator,
            buffer_size=buffer_size,
            retry_policy=retry_policy,
        )
        self._status: Status = OK_STATUS
        self._metadata: ObjectMetadata | None = session.final_metadata
        self._received_hash = received_hash_from_metadata(self._metadata)
        self._closed = session.done

    @property
    def resumable_session_id(self) -> str:
        """Session id to persist for resuming this upload."""
        return self._session.session_id

    @property
    def next_expected_byte(self) -> int:
        """Bytes the service has confirmed so far."""
        return self._session.next_expected_byte

    @property
    def bytes_written(self) -> int:
        """Object size implied by everything written so far."""
        return self._buffer.total_bytes

    @property
    def closed(self) -> bool:
        """True once the upload was finalized (or found finalized)."""
        return self._closed

    @property
    def bad(self) -> bool:
        """True once an operation failed."""
        return not self._status.ok

    @property
    def status(self) -> Status:
        """Outcome of the last failed operation, OK otherwise."""
        return self._status

    @property
    def metadata(self) -> ObjectMetadata | None:
        """Metadata of the finalized object."""
        return self._metadata

    @property
    def computed_hash(self) -> str:
        """Digest computed over the bytes written through this stream."""
        return self._buffer.hash_validator.finish()

    @property
    def received_hash(self) -> str:
        """Digest reported by the service once the upload finalized."""
        return self._received_hash

    def _check_open(self) -> None:
        if self._closed:
            raise SessionStateError("write stream is closed")
        if self.bad:
            raise SessionStateError(f"write stream failed earlier: {self._status}")
        if self._session.state not in (SessionState.CREATED, SessionState.ACTIVE):
            raise SessionStateError(
                f"write stream session is {self._session.state.value}"
            )

    def write(self, data: bytes) -> int:
        """Append bytes to the object.

        Returns:
            The number of bytes accepted.
        """
        self._check_open()
        try:
            self._buffer.append(data)
        except TransferError as exc:
            self._status = exc.status
            raise
        return len(data)

    def flush(self) -> None:
        """Send every whole quantum currently buffered."""
        self._check_open()
        try:
            self._buffer.flush()
        except TransferError as exc:
            self._status = exc.status
            raise

    def close(self) -> ObjectMetadata | None:
        """Finalize the upload and validate the object digest.

        Returns:
            Metadata of the created object.

        Raises:
            HashMismatchError: If the service reports a different digest.
            TransferError: If finalization fails.
        """
        if self._closed:
            return self._metadata
        self._check_open()
        try:
            response = self._buffer.flush_final(self._buffer.total_bytes)
        except TransferError as exc:
            self._status = exc.status
            raise
        self._closed = True
        self._metadata = response.payload
        self._received_hash = received_hash_from_metadata(self._metadata)
        result = self._buffer.hash_validator.validate(self._received_hash)
        if result.is_mismatch:
            self._status = result.status
            raise HashMismatchError(result.computed, result.received)
        return self._metadata

    def suspend(self) -> str:
        """Stop writing without finalizing.

        Bytes buffered but not yet sent are discarded; resume at
        ``next_expected_byte``.

        Returns:
            The session id needed to resume.
        """
        session_id = self._session.suspend()
        if self._buffer.buffered_bytes:
            logger.info(
                "Suspending session %s with %d unsent bytes",
                session_id,
                self._buffer.buffered_bytes,
            )
        return session_id

    def cancel(self) -> None:
        """Abandon the upload and delete the remote session."""
        self._session.cancel()

    def __enter__(self) -> "ObjectWriteStream":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.close()
        elif not self._closed and self._session.state in (
            SessionState.CREATED,
            SessionState.ACTIVE,
        ):
            self.suspend()
