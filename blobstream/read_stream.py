"""User-facing streaming download object."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from types import TracebackType

from blobstream.exceptions import HashMismatchError, error_from_status
from blobstream.hashing import HashValidator, NullHashValidator
from blobstream.retry import LimitedErrorCountRetryPolicy, RetryPolicy, sleep_backoff
from blobstream.status import OK_STATUS, Status, StatusCode
from blobstream.streaming.http_reader import ReadPayload
from blobstream.streaming.read_wrapper import MessageReader, StreamingReadWrapper

logger = logging.getLogger(__name__)

# Opens a reader at (offset, generation); generation is None until known.
ReaderFactory = Callable[[int, int | None], MessageReader[ReadPayload]]


class ObjectReadStream:
    """Reads an object as a byte stream, validating its digest at the end.

    Interrupted downloads are restarted at the current offset, pinned to the
    generation first observed, as long as the retry policy allows. Since the
    bytes before a restart were not re-read, a restarted download is no
    longer hash validated.
    """

    def __init__(
        self,
        reader_factory: ReaderFactory,
        offset: int = 0,
        generation: int | None = None,
        hash_validator: HashValidator | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Open the download.

        Args:
            reader_factory: Opens a message reader at a given offset.
            offset: First byte to read; a non-zero offset disables
                hash validation.
            generation: Object generation to read, or None for the live one.
            hash_validator: Digest of the downloaded bytes.
            retry_policy: Governs restarts after transport failures.
        """
        if offset > 0 or hash_validator is None:
            hash_validator = NullHashValidator()
        self._reader_factory = reader_factory
        self._offset = offset
        self._generation = generation
        self._hash_validator = hash_validator
        self._retry_policy = retry_policy or LimitedErrorCountRetryPolicy()
        self._received_hash = ""
        self._status: Status = OK_STATUS
        self._pending = b""
        self._eof = False
        self._wrapper = StreamingReadWrapper(reader_factory(offset, generation))

    @property
    def offset(self) -> int:
        """Object offset of the next byte that ``read`` will return."""
        return self._offset - len(self._pending)

    @property
    def generation(self) -> int | None:
        """Generation being read, once reported by the service."""
        return self._generation

    @property
    def status(self) -> Status:
        """Terminal status once the download ended, OK before."""
        return self._status

    @property
    def bad(self) -> bool:
        """True once the download failed."""
        return not self._status.ok

    @property
    def eof(self) -> bool:
        """True once every byte was returned and the digest checked."""
        return self._eof and not self._pending

    @property
    def computed_hash(self) -> str:
        """Digest over the bytes received so far."""
        return self._hash_validator.finish()

    @property
    def received_hash(self) -> str:
        """Digest reported by the service for the whole object."""
        return self._received_hash

    def _restart(self, status: Status) -> bool:
        error = error_from_status(status)
        if not self._retry_policy.on_failure(error):
            return False
        logger.warning(
            "Download interrupted at byte %d (%s); restarting",
            self._offset,
            status,
        )
        sleep_backoff(self._retry_policy)
        if not isinstance(self._hash_validator, NullHashValidator):
            logger.info(
                "Hash validation disabled after restart at byte %d", self._offset
            )
            self._hash_validator = NullHashValidator()
        self._wrapper = StreamingReadWrapper(
            self._reader_factory(self._offset, self._generation)
        )
        return True

    def _next_block(self) -> bytes | None:
        """Return the next received block, or None at end of object."""
        while not self._eof:
            result = self._wrapper.read()
            if isinstance(result, ReadPayload):
                data = self._accept(result)
                if data:
                    return data
                continue
            if result.ok:
                self._eof = True
                self._check_hash()
                return None
            if not self._restart(result):
                self._eof = True
                self._status = result
                raise error_from_status(result)
        return None

    def _accept(self, payload: ReadPayload) -> bytes:
        if payload.received_hash and not self._received_hash:
            self._received_hash = payload.received_hash
        if payload.generation is not None and self._generation is None:
            self._generation = payload.generation
        self._hash_validator.update(payload.data)
        self._offset += len(payload.data)
        return payload.data

    def _check_hash(self) -> None:
        result = self._hash_validator.validate(self._received_hash)
        if result.is_mismatch:
            self._status = result.status
            raise HashMismatchError(result.computed, result.received)

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes, or everything left when negative.

        Returns:
            The bytes read; empty once the object is exhausted.

        Raises:
            HashMismatchError: When the end of the object is reached and the
                digest does not match.
            TransferError: When the download fails and cannot be restarted.
        """
        chunks = [self._pending]
        available = len(self._pending)
        self._pending = b""
        while size < 0 or available < size:
            block = self._next_block()
            if block is None:
                break
            chunks.append(block)
            available += len(block)
        data = b"".join(chunks)
        if 0 <= size < len(data):
            self._pending = data[size:]
            data = data[:size]
        return data

    def __iter__(self) -> Iterator[bytes]:
        """Yield the object in blocks as they are received."""
        if self._pending:
            pending, self._pending = self._pending, b""
            yield pending
        while True:
            block = self._next_block()
            if block is None:
                return
            yield block

    def close(self) -> None:
        """Stop the download, releasing the connection."""
        if self._eof:
            return
        self._eof = True
        self._pending = b""
        self._wrapper.close()
        status = self._wrapper.status
        # Closing before the end cancels the stream; that is not a failure.
        if status is not None and status.code != StatusCode.CANCELLED:
            self._status = status

    def __enter__(self) -> "ObjectReadStream":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

