"""Models exchanged between the transfer engine and its transports."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ObjectMetadata(BaseModel):
    """Subset of the object resource returned when an upload finalizes.

    Only the fields the transfer engine reads back are modelled; anything
    else in the service response is ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bucket: str = ""
    name: str = ""
    size: int = 0
    generation: int | None = None
    metageneration: int | None = None
    content_type: str | None = Field(default=None, alias="contentType")
    md5_hash: str | None = Field(default=None, alias="md5Hash")
    crc32c: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @field_validator("size", "generation", "metageneration", mode="before")
    @classmethod
    def _parse_int64(cls, value: Any) -> Any:
        # The JSON API encodes int64 fields as strings.
        if isinstance(value, str):
            return int(value)
        return value

    @classmethod
    def from_json(cls, payload: dict[str, Any] | None) -> "ObjectMetadata":
        """Build metadata from a decoded JSON response body."""
        return cls.model_validate(payload or {})


class ResumableUploadRequest(BaseModel):
    """Parameters used to start a resumable upload session.

    Attributes:
        bucket: Destination bucket.
        object_name: Destination object name.
        content_type: MIME type stored with the object.
        if_generation_match: Only create the object if its live generation
            matches; ``0`` means "only if it does not exist yet".
        if_metageneration_match: Only write if the metageneration matches.
        upload_content_length: Total size announced up front, if known.
        metadata: Custom metadata attached to the object.
        md5_hash: Base64 MD5 of the whole object, known before upload.
            The service rejects the finalizing chunk if the content differs.
        crc32c: Base64 big-endian CRC32C of the whole object, checked the
            same way.
    """

    bucket: str
    object_name: str
    content_type: str = "application/octet-stream"
    if_generation_match: int | None = None
    if_metageneration_match: int | None = None
    upload_content_length: int | None = None
    metadata: dict[str, str] = Field(default_factory=dict)
    md5_hash: str | None = None
    crc32c: str | None = None


@dataclass(frozen=True)
class UploadResponse:
    """Server view of a resumable session after a chunk or a status query."""

    next_expected_byte: int
    done: bool = False
    payload: ObjectMetadata | None = None
