"""Incremental content digests for upload and download validation.

Digests are rendered the way the storage service reports them in the
``x-goog-hash`` header: ``<algorithm>=<base64 digest>``, with several
algorithms joined by commas in name order, e.g.
``crc32c=AAAAAA==,md5=1B2M2Y8AsgTpgAmY7PhCfg==``.
"""

from __future__ import annotations

import base64
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass

import google_crc32c

from blobstream.models import ObjectMetadata
from blobstream.status import OK_STATUS, Status, StatusCode


def parse_hash_string(value: str) -> dict[str, str]:
    """Split a rendered digest string into ``{algorithm: digest}``."""
    hashes: dict[str, str] = {}
    for part in value.split(","):
        part = part.strip()
        if "=" not in part:
            continue
        name, digest = part.split("=", 1)
        hashes[name.strip().lower()] = digest.strip()
    return hashes


def format_hashes(hashes: dict[str, str]) -> str:
    """Render ``{algorithm: digest}`` as a comparable digest string."""
    return ",".join(
        f"{name}={hashes[name]}" for name in sorted(hashes) if hashes[name]
    )


def received_hash_from_metadata(metadata: ObjectMetadata | None) -> str:
    """Build the received digest string from finalized object metadata."""
    if metadata is None:
        return ""
    return format_hashes({
        "crc32c": metadata.crc32c or "",
        "md5": metadata.md5_hash or "",
    })


@dataclass(frozen=True)
class HashValidationResult:
    """Outcome of comparing the computed digest with the received one."""

    computed: str
    received: str
    is_mismatch: bool = False

    @property
    def status(self) -> Status:
        """Return DATA_LOSS on mismatch, OK otherwise."""
        if not self.is_mismatch:
            return OK_STATUS
        return Status(
            StatusCode.DATA_LOSS,
            f"mismatched hashes: computed={self.computed!r} "
            f"received={self.received!r}",
        )


class HashValidator(ABC):
    """Running digest over transferred bytes."""

    name = ""

    @abstractmethod
    def update(self, data: bytes) -> None:
        """Feed the next bytes of the object, in transfer order."""

    @abstractmethod
    def digests(self) -> dict[str, str]:
        """Return ``{algorithm: base64 digest}`` over the bytes seen so far."""

    def finish(self) -> str:
        """Render the digest(s) over the bytes seen so far."""
        return format_hashes(self.digests())

    def validate(self, received: str) -> HashValidationResult:
        """Compare the computed digests against a server-reported string.

        An algorithm missing from ``received`` is not compared, so an empty
        ``received`` never reports a mismatch.

        Args:
            received: Digest string reported by the service.

        Returns:
            The validation result carrying both digest strings.
        """
        computed = self.digests()
        received_hashes = parse_hash_string(received)
        is_mismatch = any(
            name in received_hashes and received_hashes[name] != digest
            for name, digest in computed.items()
        )
        return HashValidationResult(
            computed=format_hashes(computed),
            received=received,
            is_mismatch=is_mismatch,
        )


class NullHashValidator(HashValidator):
    """Validator used when integrity checking is disabled."""

    name = "null"

    def update(self, data: bytes) -> None:
        """Ignore the bytes."""

    def digests(self) -> dict[str, str]:
        """Return no digests."""
        return {}


class MD5HashValidator(HashValidator):
    """MD5 digest, base64 encoded."""

    name = "md5"

    def __init__(self) -> None:
        """Start an empty MD5 context."""
        self._context = hashlib.md5()

    def update(self, data: bytes) -> None:
        """Add bytes to the MD5 context."""
        self._context.update(data)

    def digests(self) -> dict[str, str]:
        """Return the base64 encoded MD5 digest."""
        return {self.name: base64.b64encode(self._context.digest()).decode("ascii")}


class Crc32cHashValidator(HashValidator):
    """CRC32C checksum, base64 of the big-endian 4 byte value."""

    name = "crc32c"

    def __init__(self) -> None:
        """Start an empty CRC32C checksum."""
        self._checksum = google_crc32c.Checksum()

    def update(self, data: bytes) -> None:
        """Add bytes to the checksum."""
        self._checksum.update(data)

    def digests(self) -> dict[str, str]:
        """Return the base64 encoded CRC32C checksum."""
        return {self.name: base64.b64encode(self._checksum.digest()).decode("ascii")}


class CompositeHashValidator(HashValidator):
    """Runs several validators over the same bytes."""

    name = "composite"

    def __init__(self, validators: list[HashValidator]) -> None:
        """Combine validators.

        Args:
            validators: Validators updated in the given order.
        """
        self._validators = list(validators)

    def update(self, data: bytes) -> None:
        """Feed the bytes to every validator."""
        for validator in self._validators:
            validator.update(data)

    def digests(self) -> dict[str, str]:
        """Return the union of all validators' digests."""
        merged: dict[str, str] = {}
        for validator in self._validators:
            merged.update(validator.digests())
        return merged


def create_hash_validator(
    enable_md5: bool = True, enable_crc32c: bool = True
) -> HashValidator:
    """Build the validator matching the enabled algorithms."""
    validators: list[HashValidator] = []
    if enable_crc32c:
        validators.append(Crc32cHashValidator())
    if enable_md5:
        validators.append(MD5HashValidator())
    if not validators:
        return NullHashValidator()
    if len(validators) == 1:
        return validators[0]
    return CompositeHashValidator(validators)
