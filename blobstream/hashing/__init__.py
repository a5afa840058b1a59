"""Digest computation and validation."""

from blobstream.hashing.validator import (
    CompositeHashValidator,
    Crc32cHashValidator,
    HashValidationResult,
    HashValidator,
    MD5HashValidator,
    NullHashValidator,
    create_hash_validator,
    format_hashes,
    parse_hash_string,
    received_hash_from_metadata,
)

__all__ = [
    "CompositeHashValidator",
    "Crc32cHashValidator",
    "HashValidationResult",
    "HashValidator",
    "MD5HashValidator",
    "NullHashValidator",
    "create_hash_validator",
    "format_hashes",
    "parse_hash_string",
    "received_hash_from_metadata",
]
