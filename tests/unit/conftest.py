"""Shared fixtures: an in-memory storage server speaking the resumable dialect."""

from __future__ import annotations

import base64
import hashlib
import os
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import unquote, urlparse

import google_crc32c
import pytest
import requests

from blobstream.client import Client
from blobstream.config import TransferConfig
from blobstream.const import UPLOAD_QUANTUM

BASE_URL = "http://storage.test"


@dataclass
class RequestInfo:
    method: str
    path: str
    content_length: int = 0
    content_range: str = ""
    range_header: str = ""
    session_id: str | None = None


@dataclass
class ResponseAction:
    status: int = 503
    headers: dict[str, str] | None = None
    body: bytes | None = None
    drop: bool = False


@dataclass
class UploadSession:
    bucket: str
    name: str
    content_type: str
    metadata: dict[str, str]
    data: bytearray = field(default_factory=bytearray)
    total_bytes: int | None = None
    finalized: bool = False
    cancelled: bool = False
    object_json: dict[str, Any] | None = None
    expected_md5: str | None = None
    expected_crc32c: str | None = None


@dataclass
class StoredObject:
    data: bytes
    generation: int
    content_type: str
    metadata: dict[str, str]


def md5_b64(data: bytes) -> str:
    return base64.b64encode(hashlib.md5(data).digest()).decode("ascii")


def crc32c_b64(data: bytes) -> str:
    return base64.b64encode(google_crc32c.Checksum(data).digest()).decode("ascii")


class FakeResponse:
    def __init__(
        self,
        status_code: int,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        content: bytes = b"",
        text: str = "",
        fail_after: int | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = headers or {}
        self._json_body = json_body
        self.content = content
        self.text = text
        self.closed = False
        self._fail_after = fail_after

    def json(self) -> dict[str, Any]:
        if self._json_body is None:
            raise ValueError("No JSON body")
        return self._json_body

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        limit = len(self.content) if self._fail_after is None else self._fail_after
        for start in range(0, limit, chunk_size):
            yield self.content[start : min(start + chunk_size, limit)]
        if self._fail_after is not None:
            raise requests.exceptions.ChunkedEncodingError("Connection broken")

    def close(self) -> None:
        self.closed = True


def _parse_content_range(value: str) -> tuple[int | None, int | None, int | None]:
    """Return (start, end, total) from ``bytes a-b/t``; '*' parts are None."""
    _, byte_range = value.split(" ", 1)
    range_part, total_part = byte_range.split("/")
    total = None if total_part == "*" else int(total_part)
    if range_part == "*":
        return None, None, total
    start, end = range_part.split("-")
    return int(start), int(end), total


class FakeStorageServer:
    """Duck-types the ``requests.Session`` methods the transports call."""

    base_url = BASE_URL

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], StoredObject] = {}
        self.sessions: dict[str, UploadSession] = {}
        self.request_log: list[RequestInfo] = []
        self.pre_request: Callable[[RequestInfo], ResponseAction | None] | None = None
        self.post_store: (
            Callable[[RequestInfo, UploadSession], ResponseAction | None] | None
        ) = None
        self.reported_md5: str | None = None
        self.download_fail_after: int | None = None
        self._generation = 1000
        self._session_count = 0

    # Helpers used by tests

    def add_object(
        self, bucket: str, name: str, data: bytes, content_type: str = "text/plain"
    ) -> StoredObject:
        self._generation += 1
        stored = StoredObject(data, self._generation, content_type, {})
        self.objects[(bucket, name)] = stored
        return stored

    def session_id(self, index: int = -1) -> str:
        return f"{self.base_url}/upload/resumable/{list(self.sessions)[index]}"

    def requests_for(self, method: str) -> list[RequestInfo]:
        return [info for info in self.request_log if info.method == method]

    # Internals

    def _object_json(self, bucket: str, name: str, stored: StoredObject) -> dict:
        body: dict[str, Any] = {
            "kind": "storage#object",
            "bucket": bucket,
            "name": name,
            "size": str(len(stored.data)),
            "generation": str(stored.generation),
            "metageneration": "1",
            "contentType": stored.content_type,
            "md5Hash": self.reported_md5 or md5_b64(stored.data),
            "crc32c": crc32c_b64(stored.data),
        }
        if stored.metadata:
            body["metadata"] = dict(stored.metadata)
        return body

    def _hash_header(self, data: bytes) -> str:
        md5 = self.reported_md5 or md5_b64(data)
        return f"crc32c={crc32c_b64(data)},md5={md5}"

    def _finalize(self, session: UploadSession) -> FakeResponse:
        data = bytes(session.data)
        if session.expected_md5 not in (None, md5_b64(data)):
            return FakeResponse(
                400, text="Provided MD5 hash doesn't match calculated MD5 hash"
            )
        if session.expected_crc32c not in (None, crc32c_b64(data)):
            return FakeResponse(
                400, text="Provided CRC32C doesn't match calculated CRC32C"
            )
        self._generation += 1
        stored = StoredObject(
            data,
            self._generation,
            session.content_type,
            session.metadata,
        )
        self.objects[(session.bucket, session.name)] = stored
        session.finalized = True
        session.object_json = self._object_json(session.bucket, session.name, stored)
        return FakeResponse(200, json_body=session.object_json)

    @staticmethod
    def _incomplete(session: UploadSession) -> FakeResponse:
        headers: dict[str, str] = {}
        if session.data:
            headers["Range"] = f"bytes=0-{len(session.data) - 1}"
        return FakeResponse(308, headers=headers)

    @staticmethod
    def _apply_action(action: ResponseAction) -> FakeResponse:
        if action.drop:
            raise requests.exceptions.ConnectionError("Dropped connection")
        return FakeResponse(
            action.status,
            headers=action.headers,
            text=action.body.decode() if action.body else "",
        )

    # requests.Session surface

    def post(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        **_: Any,
    ) -> FakeResponse:
        path = urlparse(url).path
        self.request_log.append(RequestInfo("POST", path))
        parts = path.split("/")
        params = params or {}
        if not path.startswith("/upload/storage/v1/b/") or parts[-1] != "o":
            return FakeResponse(404)
        if params.get("uploadType") != "resumable" or "name" not in params:
            return FakeResponse(400, text="bad upload request")
        bucket = unquote(parts[5])
        name = params["name"]
        if "ifGenerationMatch" in params:
            current = self.objects.get((bucket, name))
            current_generation = current.generation if current else 0
            if int(params["ifGenerationMatch"]) != current_generation:
                return FakeResponse(412, text="Precondition Failed")
        body = json or {}
        self._session_count += 1
        upload_id = f"sess-{self._session_count}"
        self.sessions[upload_id] = UploadSession(
            bucket=bucket,
            name=name,
            content_type=body.get("contentType", "application/octet-stream"),
            metadata=body.get("metadata", {}),
            expected_md5=body.get("md5Hash"),
            expected_crc32c=body.get("crc32c"),
        )
        return FakeResponse(
            200, headers={"Location": f"{self.base_url}/upload/resumable/{upload_id}"}
        )

    def put(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        data: bytes | None = None,
        **_: Any,
    ) -> FakeResponse:
        path = urlparse(url).path
        upload_id = path.split("/")[-1]
        headers = headers or {}
        info = RequestInfo(
            "PUT",
            path,
            content_length=int(headers.get("Content-Length", "0")),
            content_range=headers.get("Content-Range", ""),
            session_id=url,
        )
        self.request_log.append(info)
        session = self.sessions.get(upload_id)
        if session is None:
            return FakeResponse(404, text="No such upload")
        if session.cancelled:
            return FakeResponse(499, text="Upload cancelled")

        if self.pre_request:
            action = self.pre_request(info)
            if action:
                return self._apply_action(action)

        if session.finalized:
            return FakeResponse(200, json_body=session.object_json)

        try:
            start, _end, total = _parse_content_range(info.content_range)
        except ValueError:
            return FakeResponse(400, text="bad Content-Range")

        if total is not None:
            session.total_bytes = total
        data = data or b""
        if start is not None:
            if start != len(session.data):
                return self._incomplete(session)
            session.data.extend(data)
            if self.post_store:
                action = self.post_store(info, session)
                if action:
                    return self._apply_action(action)

        if session.total_bytes is not None:
            if len(session.data) == session.total_bytes:
                return self._finalize(session)
            if len(session.data) > session.total_bytes:
                return FakeResponse(400, text="more data than declared size")
        return self._incomplete(session)

    def get(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        **_: Any,
    ) -> FakeResponse:
        path = urlparse(url).path
        headers = headers or {}
        self.request_log.append(
            RequestInfo("GET", path, range_header=headers.get("Range", ""))
        )
        parts = path.split("/")
        if not path.startswith("/storage/v1/b/") or len(parts) != 7:
            return FakeResponse(404)
        if self.pre_request:
            action = self.pre_request(self.request_log[-1])
            if action:
                return self._apply_action(action)
        stored = self.objects.get((unquote(parts[4]), unquote(parts[6])))
        if stored is None:
            return FakeResponse(404, text="No such object")
        params = params or {}
        if "generation" in params and int(params["generation"]) != stored.generation:
            return FakeResponse(404, text="No such object generation")

        offset = 0
        range_header = headers.get("Range", "")
        if range_header:
            offset = int(range_header[len("bytes=") :].rstrip("-"))
            if offset >= len(stored.data):
                return FakeResponse(416, text="Requested range not satisfiable")
        content = stored.data[offset:]
        response_headers = {
            "x-goog-hash": self._hash_header(stored.data),
            "x-goog-generation": str(stored.generation),
            "Content-Length": str(len(content)),
        }
        status = 200
        if offset:
            status = 206
            response_headers["Content-Range"] = (
                f"bytes {offset}-{len(stored.data) - 1}/{len(stored.data)}"
            )
        fail_after, self.download_fail_after = self.download_fail_after, None
        return FakeResponse(
            status, headers=response_headers, content=content, fail_after=fail_after
        )

    def delete(self, url: str, **_: Any) -> FakeResponse:
        path = urlparse(url).path
        self.request_log.append(RequestInfo("DELETE", path, session_id=url))
        session = self.sessions.get(path.split("/")[-1])
        if session is None:
            return FakeResponse(404)
        session.cancelled = True
        return FakeResponse(499)


@pytest.fixture(autouse=True)
def clean_blobstream_env(monkeypatch):
    """Keep BLOBSTREAM_* variables from the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith("BLOBSTREAM_"):
            monkeypatch.delenv(name)


@pytest.fixture
def storage_server() -> FakeStorageServer:
    return FakeStorageServer()


@pytest.fixture
def response_action() -> type[ResponseAction]:
    return ResponseAction


@pytest.fixture
def transfer_config() -> TransferConfig:
    return TransferConfig(
        endpoint=BASE_URL,
        upload_buffer_size=UPLOAD_QUANTUM,
        download_chunk_size=64 * 1024,
        max_retries=3,
        initial_backoff=0,
        max_backoff=0,
    )


@pytest.fixture
def client(storage_server, transfer_config) -> Client:
    return Client(config=transfer_config, session=storage_server)
