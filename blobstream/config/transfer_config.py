"""Pydantic model for transfer configuration."""

from pydantic import BaseModel, field_validator

from blobstream.const import (
    DEFAULT_DOWNLOAD_CHUNK_SIZE,
    DEFAULT_UPLOAD_BUFFER_SIZE,
    HTTP_TIMEOUT_SECONDS,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    MAX_RETRIES,
    STORAGE_ENDPOINT,
    UPLOAD_QUANTUM,
)


class TransferConfig(BaseModel):
    """Settings shared by uploads and downloads.

    Attributes:
        endpoint: base URL of the storage service.
        upload_buffer_size: bytes buffered before an upload chunk is sent,
            rounded up to a multiple of the upload quantum.
        download_chunk_size: size of the blocks read from a download.
        enable_md5: compute and validate MD5 digests.
        enable_crc32c: compute and validate CRC32C digests.
        http_timeout: per-request timeout, in seconds.
        max_retries: transport failures tolerated per chunk or download.
        initial_backoff: delay after the first failure, in seconds.
        max_backoff: upper bound for any retry delay, in seconds.
        bearer_token: OAuth2 access token sent as ``Authorization: Bearer``.
    """

    endpoint: str = STORAGE_ENDPOINT
    upload_buffer_size: int = DEFAULT_UPLOAD_BUFFER_SIZE
    download_chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE
    enable_md5: bool = True
    enable_crc32c: bool = True
    http_timeout: float = HTTP_TIMEOUT_SECONDS
    max_retries: int = MAX_RETRIES
    initial_backoff: float = INITIAL_BACKOFF_SECONDS
    max_backoff: float = MAX_BACKOFF_SECONDS
    bearer_token: str | None = None

    @field_validator("upload_buffer_size")
    @classmethod
    def _align_upload_buffer_size(cls, value: int) -> int:
        if value <= UPLOAD_QUANTUM:
            return UPLOAD_QUANTUM
        return -(-value // UPLOAD_QUANTUM) * UPLOAD_QUANTUM

    @field_validator("download_chunk_size")
    @classmethod
    def _positive_chunk_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("download_chunk_size must be positive")
        return value

    @field_validator("max_retries")
    @classmethod
    def _non_negative_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("max_retries must not be negative")
        return value
