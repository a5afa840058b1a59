"""Entry point wiring configuration, transports and transfer streams."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

import requests
from tqdm import tqdm

from blobstream.config import TransferConfig
from blobstream.hashing import HashValidator, create_hash_validator
from blobstream.models import ObjectMetadata, ResumableUploadRequest
from blobstream.read_stream import ObjectReadStream
from blobstream.retry import LimitedErrorCountRetryPolicy
from blobstream.streaming.http_reader import HttpObjectReader, media_url
from blobstream.upload.http_transport import HttpUploadTransport
from blobstream.upload.session import ResumableUploadSession, UploadTransport
from blobstream.write_stream import ObjectWriteStream

logger = logging.getLogger(__name__)

FILE_READ_SIZE = 1024 * 1024


class Client:
    """Uploads and downloads objects with resumable, validated transfers."""

    def __init__(
        self,
        config: TransferConfig | None = None,
        session: requests.Session | None = None,
        transport: UploadTransport | None = None,
    ) -> None:
        """Initialise the client.

        Args:
            config: Transfer settings; defaults are used when omitted.
            session: HTTP session shared by uploads and downloads.
            transport: Upload transport; an ``HttpUploadTransport`` over
                ``session`` by default.
        """
        self.config = config or TransferConfig()
        self._http = session or requests.Session()
        self._transport = transport or HttpUploadTransport(
            session=self._http,
            endpoint=self.config.endpoint,
            timeout=self.config.http_timeout,
            headers=self._auth_headers(),
        )

    def _auth_headers(self) -> dict[str, str]:
        if not self.config.bearer_token:
            return {}
        return {"Authorization": f"Bearer {self.config.bearer_token}"}

    def _retry_policy(self) -> LimitedErrorCountRetryPolicy:
        return LimitedErrorCountRetryPolicy(
            max_retries=self.config.max_retries,
            initial_backoff=self.config.initial_backoff,
            max_backoff=self.config.max_backoff,
        )

    def _hash_validator(
        self, enable_md5: bool | None, enable_crc32c: bool | None
    ) -> HashValidator:
        return create_hash_validator(
            enable_md5=self.config.enable_md5 if enable_md5 is None else enable_md5,
            enable_crc32c=(
                self.config.enable_crc32c if enable_crc32c is None else enable_crc32c
            ),
        )

    def create_resumable_session(
        self,
        bucket: str,
        object_name: str,
        content_type: str = "application/octet-stream",
        if_generation_match: int | None = None,
        if_metageneration_match: int | None = None,
        upload_content_length: int | None = None,
        metadata: dict[str, str] | None = None,
        md5_hash: str | None = None,
        crc32c: str | None = None,
    ) -> ResumableUploadSession:
        """Start a new resumable upload session."""
        request = ResumableUploadRequest(
            bucket=bucket,
            object_name=object_name,
            content_type=content_type,
            if_generation_match=if_generation_match,
            if_metageneration_match=if_metageneration_match,
            upload_content_length=upload_content_length,
            metadata=metadata or {},
            md5_hash=md5_hash,
            crc32c=crc32c,
        )
        return ResumableUploadSession.create(self._transport, request)

    def restore_resumable_session(self, session_id: str) -> ResumableUploadSession:
        """Re-attach to an upload started earlier, possibly by another process."""
        return ResumableUploadSession.restore_from(self._transport, session_id)

    def write_object(
        self,
        bucket: str,
        object_name: str,
        *,
        resumable_session_id: str | None = None,
        content_type: str = "application/octet-stream",
        if_generation_match: int | None = None,
        if_metageneration_match: int | None = None,
        upload_content_length: int | None = None,
        metadata: dict[str, str] | None = None,
        md5_hash: str | None = None,
        crc32c: str | None = None,
        enable_md5: bool | None = None,
        enable_crc32c: bool | None = None,
    ) -> ObjectWriteStream:
        """Open a stream that uploads an object.

        Args:
            bucket: Destination bucket.
            object_name: Destination object name.
            resumable_session_id: Resume this session instead of starting a
                new one; the remaining arguments describing the object are
                then ignored. Writing continues at the stream's
                ``next_expected_byte``.
            content_type: MIME type stored with the object.
            if_generation_match: Generation precondition; ``0`` only creates.
            if_metageneration_match: Metageneration precondition.
            upload_content_length: Total size, when known up front.
            metadata: Custom object metadata.
            md5_hash: Base64 MD5 the object must have; the service refuses to
                finalize an upload with different content.
            crc32c: Base64 CRC32C the object must have, checked the same way.
            enable_md5: Override ``config.enable_md5``.
            enable_crc32c: Override ``config.enable_crc32c``.

        Returns:
            An open write stream, or a closed one if the resumed session
            had already been finalized.
        """
        if resumable_session_id is not None:
            session = self.restore_resumable_session(resumable_session_id)
        else:
            session = self.create_resumable_session(
                bucket,
                object_name,
                content_type=content_type,
                if_generation_match=if_generation_match,
                if_metageneration_match=if_metageneration_match,
                upload_content_length=upload_content_length,
                metadata=metadata,
                md5_hash=md5_hash,
                crc32c=crc32c,
            )
        return ObjectWriteStream(
            session,
            buffer_size=self.config.upload_buffer_size,
            hash_validator=self._hash_validator(enable_md5, enable_crc32c),
            retry_policy=self._retry_policy(),
        )

    def _reader_factory(
        self, bucket: str, object_name: str
    ) -> Callable[[int, int | None], HttpObjectReader]:
        url = media_url(self.config.endpoint, bucket, object_name)

        def open_reader(offset: int, generation: int | None) -> HttpObjectReader:
            return HttpObjectReader(
                self._http,
                url,
                offset=offset,
                chunk_size=self.config.download_chunk_size,
                timeout=self.config.http_timeout,
                headers=self._auth_headers(),
                generation=generation,
            )

        return open_reader

    def read_object(
        self,
        bucket: str,
        object_name: str,
        *,
        offset: int = 0,
        generation: int | None = None,
        enable_md5: bool | None = None,
        enable_crc32c: bool | None = None,
    ) -> ObjectReadStream:
        """Open a stream that downloads an object.

        Args:
            bucket: Source bucket.
            object_name: Source object name.
            offset: First byte to read; disables hash validation when set.
            generation: Read this generation instead of the live object.
            enable_md5: Override ``config.enable_md5``.
            enable_crc32c: Override ``config.enable_crc32c``.
        """
        return ObjectReadStream(
            self._reader_factory(bucket, object_name),
            offset=offset,
            generation=generation,
            hash_validator=self._hash_validator(enable_md5, enable_crc32c),
            retry_policy=self._retry_policy(),
        )

    def upload_file(
        self,
        path: str | os.PathLike[str],
        bucket: str,
        object_name: str,
        *,
        resumable_session_id: str | None = None,
        if_generation_match: int | None = None,
        content_type: str = "application/octet-stream",
        on_session: Callable[[str], None] | None = None,
        progress: bool = False,
    ) -> ObjectMetadata | None:
        """Upload a local file, optionally resuming an earlier attempt.

        Args:
            path: File to upload.
            bucket: Destination bucket.
            object_name: Destination object name.
            resumable_session_id: Session to resume; the file is read from
                the session's ``next_expected_byte``.
            if_generation_match: Generation precondition for a new upload.
            content_type: MIME type stored with the object.
            on_session: Called with the session id once it is known, so the
                caller can persist it.
            progress: Show a progress bar.

        Returns:
            Metadata of the uploaded object.
        """
        file_path = Path(path)
        file_size = file_path.stat().st_size
        stream = self.write_object(
            bucket,
            object_name,
            resumable_session_id=resumable_session_id,
            content_type=content_type,
            if_generation_match=if_generation_match,
            upload_content_length=file_size,
        )
        if on_session is not None:
            on_session(stream.resumable_session_id)
        if stream.closed:
            logger.info("Upload %s was already finalized", stream.resumable_session_id)
            return stream.metadata

        start = stream.next_expected_byte
        if start > file_size:
            stream.suspend()
            raise ValueError(
                f"session has {start} bytes but {file_path} has only {file_size}"
            )
        with stream, file_path.open("rb") as source, tqdm(
            total=file_size,
            initial=start,
            unit="B",
            unit_scale=True,
            desc=f"Uploading {file_path.name}",
            disable=not progress,
        ) as pbar:
            source.seek(start)
            while data := source.read(FILE_READ_SIZE):
                stream.write(data)
                pbar.update(len(data))
        return stream.metadata

    def download_file(
        self,
        bucket: str,
        object_name: str,
        destination: str | os.PathLike[str],
        *,
        offset: int = 0,
        progress: bool = False,
    ) -> int:
        """Download an object into a local file.

        Args:
            bucket: Source bucket.
            object_name: Source object name.
            destination: File to write; appended to when ``offset`` is set.
            offset: First byte to download.
            progress: Show a progress bar.

        Returns:
            The number of bytes written.
        """
        written = 0
        mode = "ab" if offset > 0 else "wb"
        with self.read_object(
            bucket, object_name, offset=offset
        ) as stream, Path(destination).open(mode) as target, tqdm(
            unit="B",
            unit_scale=True,
            desc=f"Downloading {object_name}",
            disable=not progress,
        ) as pbar:
            for block in stream:
                target.write(block)
                written += len(block)
                pbar.update(len(block))
        logger.info("Downloaded %d bytes of %s/%s", written, bucket, object_name)
        return written
