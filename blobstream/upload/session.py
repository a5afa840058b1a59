"""Resumable upload session state machine.

A :class:`ResumableUploadSession` owns the client view of one server-side
resumable upload. It never guesses the server offset: ``next_expected_byte``
only changes from values the transport reports back, and every chunk is sent
at exactly that offset.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from blobstream.const import UPLOAD_QUANTUM
from blobstream.exceptions import (
    PartialChunkError,
    PreconditionError,
    ProtocolError,
    SessionStateError,
    TransferError,
)
from blobstream.models import ObjectMetadata, ResumableUploadRequest, UploadResponse
from blobstream.status import StatusCode

logger = logging.getLogger(__name__)


class UploadTransport(Protocol):
    """Network primitives a resumable session is driven through."""

    def create_session(self, request: ResumableUploadRequest) -> str:
        """Start a session and return its id."""
        ...

    def upload_chunk(
        self,
        session_id: str,
        offset: int,
        data: bytes,
        total_size: int | None = None,
    ) -> UploadResponse:
        """Send ``data`` at ``offset``; ``total_size`` marks the final chunk."""
        ...

    def query_session(self, session_id: str) -> UploadResponse:
        """Return the server's view of the session without sending data."""
        ...

    def delete_session(self, session_id: str) -> None:
        """Abandon the session server-side."""
        ...


class SessionState(str, Enum):
    """Lifecycle states of a resumable upload session.

    State transitions:
    - CREATED + upload_chunk -> ACTIVE
    - CREATED/ACTIVE + upload_final_chunk -> FINALIZING -> DONE
    - CREATED/ACTIVE + suspend -> SUSPENDED
    - CREATED/ACTIVE/SUSPENDED + restore -> RESTORING -> ACTIVE (or DONE)
    - CREATED/ACTIVE/SUSPENDED + cancel -> CANCELLED
    A failed network call returns the session to the state it started in.
    """

    CREATED = "created"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    RESTORING = "restoring"
    FINALIZING = "finalizing"
    DONE = "done"
    CANCELLED = "cancelled"


_CAN_UPLOAD = {SessionState.CREATED, SessionState.ACTIVE}
_CAN_RESTORE = {SessionState.CREATED, SessionState.ACTIVE, SessionState.SUSPENDED}


class ResumableUploadSession:
    """Client side of a server-tracked resumable upload."""

    def __init__(
        self,
        transport: UploadTransport,
        session_id: str,
        next_expected_byte: int = 0,
        quantum: int = UPLOAD_QUANTUM,
    ) -> None:
        """Wrap an existing session id.

        Use :meth:`create` or :meth:`restore_from` rather than calling this
        directly.

        Args:
            transport: Network primitives for this session.
            session_id: Opaque id assigned by the service.
            next_expected_byte: Offset the service last confirmed.
            quantum: Alignment required for non-final chunks.
        """
        if quantum < UPLOAD_QUANTUM or quantum % UPLOAD_QUANTUM != 0:
            raise ValueError(
                f"quantum must be a positive multiple of {UPLOAD_QUANTUM}, "
                f"got {quantum}"
            )
        self._transport = transport
        self._session_id = session_id
        self._next_expected_byte = next_expected_byte
        self._quantum = quantum
        self._state = SessionState.CREATED
        self._final_metadata: ObjectMetadata | None = None

    @classmethod
    def create(
        cls, transport: UploadTransport, request: ResumableUploadRequest
    ) -> "ResumableUploadSession":
        """Start a new resumable upload.

        Args:
            transport: Network primitives used for the session.
            request: Destination and write preconditions.

        Returns:
            A session in the CREATED state with ``next_expected_byte == 0``.

        Raises:
            TransferError: If the service refuses to start the session.
        """
        session_id = transport.create_session(request)
        logger.info(
            "Created resumable session for %s/%s",
            request.bucket,
            request.object_name,
        )
        return cls(transport, session_id)

    @classmethod
    def restore_from(
        cls, transport: UploadTransport, session_id: str
    ) -> "ResumableUploadSession":
        """Re-attach to a previously created session.

        Args:
            transport: Network primitives used for the session.
            session_id: Id returned by an earlier ``create``.

        Returns:
            A session whose offset (or final metadata) came from the service.
        """
        session = cls(transport, session_id)
        session._state = SessionState.SUSPENDED
        session.restore()
        return session

    @property
    def session_id(self) -> str:
        """Opaque id that can be persisted to resume later."""
        return self._session_id

    @property
    def next_expected_byte(self) -> int:
        """Server-confirmed count of received bytes."""
        return self._next_expected_byte

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def done(self) -> bool:
        """True once the service acknowledged finalization."""
        return self._state == SessionState.DONE

    @property
    def final_metadata(self) -> ObjectMetadata | None:
        """Metadata of the finalized object, only set when ``done``."""
        return self._final_metadata

    @property
    def quantum(self) -> int:
        """Alignment required for non-final chunks."""
        return self._quantum

    def _require(self, allowed: set[SessionState], operation: str) -> None:
        if self._state not in allowed:
            raise SessionStateError(
                f"cannot {operation} while session is {self._state.value}"
            )

    def _apply(self, response: UploadResponse, expected: int | None) -> None:
        """Adopt the offset reported by the service.

        Args:
            response: Transport answer.
            expected: Offset the client expects after a data-carrying call,
                or None for a status query.
        """
        if response.done:
            self._next_expected_byte = max(
                self._next_expected_byte, response.next_expected_byte
            )
            self._final_metadata = response.payload
            self._state = SessionState.DONE
            return
        if response.next_expected_byte < self._next_expected_byte:
            raise ProtocolError(
                "server offset moved backwards: "
                f"local={self._next_expected_byte} "
                f"server={response.next_expected_byte}"
            )
        self._next_expected_byte = response.next_expected_byte
        if expected is not None and response.next_expected_byte < expected:
            raise PartialChunkError(
                "service stored part of the chunk: "
                f"expected={expected} server={response.next_expected_byte}"
            )
        if expected is not None and response.next_expected_byte != expected:
            raise ProtocolError(
                "server offset disagrees with bytes sent: "
                f"expected={expected} server={response.next_expected_byte}; "
                "restore the session before resuming"
            )

    def upload_chunk(self, data: bytes) -> UploadResponse:
        """Send a non-final chunk at the current offset.

        Args:
            data: A non-empty, quantum-aligned chunk.

        Returns:
            The transport response.

        Raises:
            ProtocolError: If ``data`` is not quantum aligned, or the server
                acknowledged a different amount than was sent.
            PartialChunkError: If the server stored only part of ``data``; the
                session keeps the shorter offset.
            TransportError: On network failure; the session is unchanged and
                the caller should ``restore`` before resuming.
        """
        self._require(_CAN_UPLOAD, "upload a chunk")
        if len(data) == 0 or len(data) % self._quantum != 0:
            raise ProtocolError(
                f"non-final chunk of {len(data)} bytes is not a positive "
                f"multiple of the upload quantum ({self._quantum})"
            )
        offset = self._next_expected_byte
        logger.debug(
            "Uploading chunk: session=%s range=[%d, %d)",
            self._session_id,
            offset,
            offset + len(data),
        )
        response = self._transport.upload_chunk(self._session_id, offset, data)
        if response.done:
            self._apply(response, None)
            raise ProtocolError(
                "service finalized the upload on a non-final chunk",
                StatusCode.FAILED_PRECONDITION,
            )
        self._state = SessionState.ACTIVE
        self._apply(response, offset + len(data))
        return response

    def upload_final_chunk(self, data: bytes, total_size: int) -> UploadResponse:
        """Send the terminal chunk and finalize the object.

        Args:
            data: Remaining bytes; may be empty.
            total_size: Total object size the client believes it sent.

        Returns:
            The transport response carrying the object metadata.

        Raises:
            PreconditionError: If ``total_size`` disagrees with the bytes the
                server confirmed plus ``data``, or the service rejects the
                final size.
            PartialChunkError: If the server stored only part of ``data``.
            TransportError: On network failure; the session stays as it was.
        """
        self._require(_CAN_UPLOAD, "finalize")
        offset = self._next_expected_byte
        if offset + len(data) != total_size:
            raise PreconditionError(
                f"asserted total size {total_size} does not match "
                f"{offset} confirmed bytes plus {len(data)} final bytes"
            )
        previous_state = self._state
        self._state = SessionState.FINALIZING
        try:
            response = self._transport.upload_chunk(
                self._session_id, offset, data, total_size=total_size
            )
        except TransferError:
            self._state = previous_state
            raise
        if not response.done:
            self._state = SessionState.ACTIVE
            self._apply(response, None)
            if offset < response.next_expected_byte < total_size:
                raise PartialChunkError(
                    "service stored part of the final chunk: "
                    f"expected={total_size} server={response.next_expected_byte}"
                )
            raise PreconditionError(
                f"service did not finalize the upload at total size {total_size}; "
                f"next expected byte is {response.next_expected_byte}"
            )
        self._apply(response, None)
        logger.info(
            "Finalized resumable session %s: %d bytes",
            self._session_id,
            total_size,
        )
        return response

    def restore(self) -> UploadResponse:
        """Fetch the authoritative offset from the service.

        Used after a suspend, a crash, or an ambiguous chunk failure. The
        reported offset replaces the local one.

        Returns:
            The transport response.
        """
        if self._state == SessionState.DONE:
            return UploadResponse(
                self._next_expected_byte, done=True, payload=self._final_metadata
            )
        self._require(_CAN_RESTORE, "restore")
        previous_state = self._state
        self._state = SessionState.RESTORING
        try:
            response = self._transport.query_session(self._session_id)
        except TransferError:
            self._state = previous_state
            raise
        if response.done:
            self._apply(response, None)
            logger.info("Session %s is already finalized", self._session_id)
            return response
        # The service is authoritative here, even if it reports fewer bytes.
        self._next_expected_byte = response.next_expected_byte
        self._state = SessionState.ACTIVE
        logger.info(
            "Restored session %s at byte %d",
            self._session_id,
            self._next_expected_byte,
        )
        return response

    def suspend(self) -> str:
        """Detach from the session without finalizing it.

        Returns:
            The session id, which remains valid until it expires server-side.
        """
        self._require(_CAN_UPLOAD, "suspend")
        self._state = SessionState.SUSPENDED
        logger.info(
            "Suspended session %s at byte %d",
            self._session_id,
            self._next_expected_byte,
        )
        return self._session_id

    def cancel(self) -> None:
        """Delete the remote session; the upload can no longer be resumed."""
        self._require(_CAN_RESTORE, "cancel")
        self._transport.delete_session(self._session_id)
        self._state = SessionState.CANCELLED
        logger.info("Cancelled session %s", self._session_id)
