"""HTTP media download exposed as a message reader."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from urllib.parse import quote

import requests

from blobstream.const import DEFAULT_DOWNLOAD_CHUNK_SIZE, HTTP_TIMEOUT_SECONDS
from blobstream.exceptions import TransportError
from blobstream.status import OK_STATUS, Status, StatusCode, status_from_http

logger = logging.getLogger(__name__)

MEDIA_SUCCESS_CODES = {200, 206}


@dataclass(frozen=True)
class ReadPayload:
    """One block of object data received from the service.

    Attributes:
        data: The bytes received.
        offset: Absolute object offset of ``data[0]``.
        received_hash: ``x-goog-hash`` value; only set on the first payload,
            which carries no data when the object is empty.
        generation: Object generation being read, when reported.
    """

    data: bytes
    offset: int
    received_hash: str = ""
    generation: int | None = None


def media_url(endpoint: str, bucket: str, object_name: str) -> str:
    """Return the JSON-API media URL of an object."""
    return (
        f"{endpoint.rstrip('/')}/storage/v1/b/{quote(bucket, safe='')}"
        f"/o/{quote(object_name, safe='')}"
    )


def _expected_end(response: requests.Response, offset: int) -> int | None:
    if response.status_code == 206:
        content_range = response.headers.get("Content-Range", "")
        try:
            byte_range = content_range.split(" ", 1)[1].split("/", 1)[0]
            return int(byte_range.split("-", 1)[1]) + 1
        except (IndexError, ValueError):
            return None
    content_length = response.headers.get("Content-Length")
    if content_length is None:
        return None
    return offset + int(content_length)


class HttpObjectReader:
    """Streams an object's media as :class:`ReadPayload` messages."""

    def __init__(
        self,
        session: requests.Session,
        url: str,
        offset: int = 0,
        chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
        generation: int | None = None,
    ) -> None:
        """Prepare the download; the request is sent on the first ``read``.

        Args:
            session: HTTP session used for the download.
            url: Object media URL.
            offset: First byte to read.
            chunk_size: Size of the blocks handed out by ``read``.
            timeout: Per-request timeout in seconds.
            headers: Extra headers (e.g. authorization).
            generation: Read this object generation instead of the live one.
        """
        self._http = session
        self._url = url
        self._offset = offset
        self._chunk_size = chunk_size
        self._timeout = timeout
        self._headers = dict(headers or {})
        self._generation = generation
        self._response: requests.Response | None = None
        self._chunks: Iterator[bytes] | None = None
        self._error: Status | None = None
        self._expected_end: int | None = None
        self._received_hash = ""
        self._object_generation: int | None = None
        self._first = True
        self._eof = False

    @property
    def offset(self) -> int:
        """Offset of the next byte to be returned."""
        return self._offset

    def _open(self) -> None:
        headers = dict(self._headers)
        if self._offset > 0:
            headers["Range"] = f"bytes={self._offset}-"
        params: dict[str, str] = {"alt": "media"}
        if self._generation is not None:
            params["generation"] = str(self._generation)
        logger.debug("GET media: %s offset=%d", self._url, self._offset)
        try:
            response = self._http.get(
                self._url,
                params=params,
                headers=headers,
                stream=True,
                timeout=self._timeout,
            )
        except requests.exceptions.Timeout as exc:
            raise TransportError(
                f"GET timed out: {exc}", StatusCode.DEADLINE_EXCEEDED
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"GET failed: {exc}") from exc
        self._response = response
        if response.status_code not in MEDIA_SUCCESS_CODES:
            self._error = status_from_http(
                response.status_code,
                f"HTTP {response.status_code}: {response.text[:200]}",
            )
            return
        generation_header = response.headers.get("x-goog-generation")
        if generation_header:
            self._object_generation = int(generation_header)
        self._received_hash = response.headers.get("x-goog-hash", "")
        self._expected_end = _expected_end(response, self._offset)
        self._chunks = response.iter_content(chunk_size=self._chunk_size)

    def read(self) -> ReadPayload | None:
        """Return the next block, or None at end of stream."""
        if self._response is None:
            self._open()
        if self._error is not None or self._chunks is None or self._eof:
            return None
        try:
            for data in self._chunks:
                if not data:
                    continue
                payload = self._payload(data)
                self._offset += len(data)
                return payload
        except requests.exceptions.RequestException as exc:
            raise TransportError(
                f"download interrupted at byte {self._offset}: {exc}"
            ) from exc
        self._eof = True
        if self._first:
            # An empty object still reports its digest and generation.
            return self._payload(b"")
        return None

    def _payload(self, data: bytes) -> ReadPayload:
        if not self._first:
            return ReadPayload(data=data, offset=self._offset)
        self._first = False
        return ReadPayload(
            data=data,
            offset=self._offset,
            received_hash=self._received_hash,
            generation=self._object_generation,
        )

    def finish(self) -> Status:
        """Close the response and report how the download ended."""
        if self._response is not None:
            self._response.close()
        if self._error is not None:
            return self._error
        if not self._eof:
            return Status(StatusCode.CANCELLED, "download closed before end of data")
        if self._expected_end is not None and self._offset != self._expected_end:
            return Status(
                StatusCode.UNAVAILABLE,
                f"short read: got bytes up to {self._offset}, "
                f"expected {self._expected_end}",
            )
        return OK_STATUS
