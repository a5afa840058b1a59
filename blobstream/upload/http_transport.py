"""HTTP transport for resumable uploads.

Speaks the GCS JSON-API resumable upload dialect: a ``POST`` starts the
session and returns its URL in the ``Location`` header, chunks are ``PUT``
with a ``Content-Range`` header, and ``308 Resume Incomplete`` answers carry
the persisted range in a ``Range`` header.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import requests

from blobstream.const import HTTP_TIMEOUT_SECONDS, STORAGE_ENDPOINT
from blobstream.exceptions import (
    ProtocolError,
    TransportError,
    error_from_status,
)
from blobstream.models import ObjectMetadata, ResumableUploadRequest, UploadResponse
from blobstream.status import StatusCode, status_from_http

logger = logging.getLogger(__name__)

FINAL_SUCCESS_CODES = {200, 201}
RESUME_INCOMPLETE_CODE = 308
CANCELLED_CODES = {204, 499}


def content_range(offset: int, length: int, total_size: int | None) -> str:
    """Build the ``Content-Range`` header for a chunk.

    Args:
        offset: First byte of the chunk.
        length: Chunk length; may be zero only for a final chunk.
        total_size: Object size for the final chunk, None otherwise.

    Returns:
        The header value, e.g. ``bytes 0-262143/*`` or ``bytes */1024``.
    """
    total = "*" if total_size is None else str(total_size)
    if length == 0:
        return f"bytes */{total}"
    return f"bytes {offset}-{offset + length - 1}/{total}"


def parse_range_header(value: str | None) -> int:
    """Return the next expected byte from a ``Range: bytes=0-N`` header.

    Args:
        value: Header value, or None when the service stored nothing yet.

    Raises:
        ProtocolError: If the header is malformed or does not start at 0.
    """
    if not value:
        return 0
    byte_range = value.strip()
    if byte_range.startswith("bytes="):
        byte_range = byte_range[len("bytes=") :]
    try:
        first, last = byte_range.split("-", 1)
        if int(first) != 0:
            raise ValueError(value)
        return int(last) + 1
    except ValueError as exc:
        raise ProtocolError(f"unexpected Range header: {value!r}") from exc


def _error_message(response: requests.Response) -> str:
    if not response.text:
        return f"HTTP {response.status_code}"
    return f"HTTP {response.status_code}: {response.text[:200]}"


class HttpUploadTransport:
    """Resumable upload primitives over ``requests``."""

    def __init__(
        self,
        session: requests.Session | None = None,
        endpoint: str = STORAGE_ENDPOINT,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Initialise the transport.

        Args:
            session: HTTP session used for every request.
            endpoint: Storage service base URL.
            timeout: Per-request timeout in seconds.
            headers: Extra headers (e.g. authorization) sent with every call.
        """
        self._http = session or requests.Session()
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._headers = dict(headers or {})

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            return getattr(self._http, method)(
                url, headers=headers, timeout=self._timeout, **kwargs
            )
        except requests.exceptions.Timeout as exc:
            raise TransportError(
                f"{method.upper()} timed out: {exc}", StatusCode.DEADLINE_EXCEEDED
            ) from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"{method.upper()} failed: {exc}") from exc

    def create_session(self, request: ResumableUploadRequest) -> str:
        """Start a resumable upload and return the session URL."""
        params: dict[str, str] = {
            "uploadType": "resumable",
            "name": request.object_name,
        }
        if request.if_generation_match is not None:
            params["ifGenerationMatch"] = str(request.if_generation_match)
        if request.if_metageneration_match is not None:
            params["ifMetagenerationMatch"] = str(request.if_metageneration_match)
        headers = {"X-Upload-Content-Type": request.content_type}
        if request.upload_content_length is not None:
            headers["X-Upload-Content-Length"] = str(request.upload_content_length)
        body: dict[str, object] = {
            "name": request.object_name,
            "contentType": request.content_type,
        }
        if request.metadata:
            body["metadata"] = request.metadata
        if request.md5_hash is not None:
            body["md5Hash"] = request.md5_hash
        if request.crc32c is not None:
            body["crc32c"] = request.crc32c

        bucket = quote(request.bucket, safe="")
        url = f"{self._endpoint}/upload/storage/v1/b/{bucket}/o"
        logger.debug(
            "POST resumable session: %s/%s", request.bucket, request.object_name
        )
        response = self._request(
            "post", url, params=params, headers=headers, json=body
        )
        if response.status_code not in FINAL_SUCCESS_CODES:
            raise error_from_status(
                status_from_http(response.status_code, _error_message(response))
            )
        location = response.headers.get("Location")
        if not location:
            raise ProtocolError("session creation response has no Location header")
        return location

    def upload_chunk(
        self,
        session_id: str,
        offset: int,
        data: bytes,
        total_size: int | None = None,
    ) -> UploadResponse:
        """PUT one chunk to the session URL."""
        headers = {
            "Content-Length": str(len(data)),
            "Content-Range": content_range(offset, len(data), total_size),
        }
        logger.debug("PUT chunk: range=%s", headers["Content-Range"])
        response = self._request("put", session_id, headers=headers, data=data)
        return self._parse_session_response(response)

    def query_session(self, session_id: str) -> UploadResponse:
        """PUT an empty ``bytes */*`` range to read the session status."""
        headers = {"Content-Length": "0", "Content-Range": "bytes */*"}
        response = self._request("put", session_id, headers=headers, data=b"")
        return self._parse_session_response(response)

    def delete_session(self, session_id: str) -> None:
        """DELETE the session URL."""
        response = self._request("delete", session_id)
        if response.status_code not in CANCELLED_CODES:
            raise error_from_status(
                status_from_http(response.status_code, _error_message(response))
            )

    def _parse_session_response(self, response: requests.Response) -> UploadResponse:
        status_code = response.status_code
        if status_code in FINAL_SUCCESS_CODES:
            try:
                payload = ObjectMetadata.from_json(response.json())
            except ValueError as exc:
                raise ProtocolError(
                    f"final upload response is not valid object metadata: {exc}"
                ) from exc
            return UploadResponse(payload.size, done=True, payload=payload)
        if status_code == RESUME_INCOMPLETE_CODE:
            return UploadResponse(parse_range_header(response.headers.get("Range")))
        raise error_from_status(
            status_from_http(status_code, _error_message(response))
        )
