"""Quantum-aligned write buffering in front of a resumable session."""

from __future__ import annotations

import logging

from blobstream.const import DEFAULT_UPLOAD_BUFFER_SIZE
from blobstream.exceptions import PartialChunkError, ProtocolError, TransferError
from blobstream.hashing import HashValidator, NullHashValidator
from blobstream.models import UploadResponse
from blobstream.retry import LimitedErrorCountRetryPolicy, RetryPolicy, sleep_backoff
from blobstream.status import StatusCode
from blobstream.upload.session import ResumableUploadSession

logger = logging.getLogger(__name__)


def align_buffer_size(buffer_size: int, quantum: int) -> int:
    """Round ``buffer_size`` up to a multiple of ``quantum`` (at least one)."""
    if buffer_size <= quantum:
        return quantum
    if buffer_size % quantum != 0:
        aligned = ((buffer_size // quantum) + 1) * quantum
        logger.debug(
            "Adjusted upload buffer size to %d KiB "
            "to ensure it's a multiple of %d KiB",
            aligned // 1024,
            quantum // 1024,
        )
        return aligned
    return buffer_size


class ChunkBuffer:
    """Turns arbitrarily sized writes into quantum-aligned chunks.

    Bytes stay buffered until they are confirmed by the service, so an
    ambiguous failure can be recovered by restoring the session and resending
    from ``next_expected_byte``.
    """

    def __init__(
        self,
        session: ResumableUploadSession,
        hash_validator: HashValidator | None = None,
        buffer_size: int = DEFAULT_UPLOAD_BUFFER_SIZE,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialise the buffer.

        Args:
            session: Session the chunks are sent through. Uploads resume at
                its current ``next_expected_byte``.
            hash_validator: Receives every appended byte exactly once.
            buffer_size: Bytes accumulated before a flush; rounded up to a
                quantum multiple.
            retry_policy: Governs retries of transport failures.
        """
        self._session = session
        self._hash_validator = hash_validator or NullHashValidator()
        self._quantum = session.quantum
        self._buffer_size = align_buffer_size(buffer_size, self._quantum)
        self._retry_policy = retry_policy or LimitedErrorCountRetryPolicy()
        self._buffer = bytearray()
        self._start_offset = session.next_expected_byte
        # Absolute object offset of self._buffer[0].
        self._buffer_offset = session.next_expected_byte
        self._bytes_appended = 0

    @property
    def buffer_size(self) -> int:
        """Flush threshold in bytes."""
        return self._buffer_size

    @property
    def buffered_bytes(self) -> int:
        """Bytes accepted but not yet confirmed by the service."""
        return len(self._buffer)

    @property
    def offset(self) -> int:
        """Absolute offset of the first byte not yet confirmed."""
        return self._buffer_offset

    @property
    def total_bytes(self) -> int:
        """Object size implied by everything appended so far."""
        return self._start_offset + self._bytes_appended

    @property
    def hash_validator(self) -> HashValidator:
        """Validator fed by this buffer."""
        return self._hash_validator

    def append(self, data: bytes) -> None:
        """Accept more object bytes, flushing whole quanta when full.

        Args:
            data: Bytes to append; may be empty.
        """
        if not data:
            return
        self._hash_validator.update(data)
        self._buffer.extend(data)
        self._bytes_appended += len(data)
        if len(self._buffer) >= self._buffer_size:
            self.flush()

    def flush(self) -> None:
        """Send every whole quantum currently buffered."""
        while len(self._buffer) >= self._quantum:
            self._send(final_total=None)

    def flush_final(self, total_size: int) -> UploadResponse:
        """Send the remaining bytes as the final chunk.

        Args:
            total_size: Size of the whole object; must equal the bytes
                appended (plus the offset the upload resumed at).

        Returns:
            The finalizing transport response.

        Raises:
            ProtocolError: If ``total_size`` disagrees with the bytes
                appended; raised before any network call.
        """
        if total_size != self.total_bytes:
            raise ProtocolError(
                f"final size {total_size} does not match the "
                f"{self.total_bytes} bytes written"
            )
        return self._send(final_total=total_size)

    def _send(self, final_total: int | None) -> UploadResponse:
        policy = self._retry_policy.clone()
        needs_restore = False
        response = UploadResponse(self._session.next_expected_byte)
        while True:
            size = 0
            try:
                if needs_restore:
                    response = self._session.restore()
                    needs_restore = False
                    if response.done:
                        return self._already_finalized(response, final_total)
                    self._reconcile(self._session.next_expected_byte)
                if final_total is None:
                    size = len(self._buffer) - len(self._buffer) % self._quantum
                    if size == 0:
                        return response
                    response = self._session.upload_chunk(bytes(self._buffer[:size]))
                else:
                    size = len(self._buffer)
                    response = self._session.upload_final_chunk(
                        bytes(self._buffer), final_total
                    )
                self._consume(size)
                return response
            except PartialChunkError:
                stored = self._session.next_expected_byte - self._buffer_offset
                if stored <= 0:
                    raise
                logger.info(
                    "Session %s stored %d of %d bytes sent; resending the rest",
                    self._session.session_id,
                    stored,
                    size,
                )
                needs_restore = True
            except TransferError as exc:
                if not policy.on_failure(exc):
                    raise
                logger.warning(
                    "Chunk upload failed for session %s at byte %d (%s); "
                    "restoring before retry",
                    self._session.session_id,
                    self._buffer_offset,
                    exc.status,
                )
                sleep_backoff(policy)
                needs_restore = True

    def _already_finalized(
        self, response: UploadResponse, final_total: int | None
    ) -> UploadResponse:
        # A lost response to the final chunk; the object exists.
        if final_total is not None and response.next_expected_byte == final_total:
            self._consume(len(self._buffer))
            return response
        raise ProtocolError(
            "upload was finalized before all buffered data was sent",
            StatusCode.FAILED_PRECONDITION,
        )

    def _consume(self, size: int) -> None:
        del self._buffer[:size]
        self._buffer_offset += size

    def _reconcile(self, next_expected_byte: int) -> None:
        """Drop bytes the service confirmed after an ambiguous failure."""
        skip = next_expected_byte - self._buffer_offset
        if skip < 0:
            raise ProtocolError(
                f"service expects byte {next_expected_byte} but bytes before "
                f"{self._buffer_offset} are no longer buffered",
                StatusCode.DATA_LOSS,
            )
        if skip > len(self._buffer):
            raise ProtocolError(
                f"service reports byte {next_expected_byte}, beyond the "
                f"{self._buffer_offset + len(self._buffer)} bytes written",
                StatusCode.FAILED_PRECONDITION,
            )
        if skip:
            logger.info(
                "Service confirmed %d bytes of an unacknowledged chunk", skip
            )
            self._consume(skip)
