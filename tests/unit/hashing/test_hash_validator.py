import base64
import hashlib

import google_crc32c
import pytest

from blobstream.hashing import (
    CompositeHashValidator,
    Crc32cHashValidator,
    MD5HashValidator,
    NullHashValidator,
    create_hash_validator,
    format_hashes,
    parse_hash_string,
    received_hash_from_metadata,
)
from blobstream.models import ObjectMetadata
from blobstream.status import StatusCode

# Well-known digests of the empty string.
EMPTY_MD5 = "1B2M2Y8AsgTpgAmY7PhCfg=="
EMPTY_CRC32C = "AAAAAA=="

PAYLOAD = b"The quick brown fox jumps over the lazy dog"


def _md5(data: bytes) -> str:
    return base64.b64encode(hashlib.md5(data).digest()).decode()


def _crc32c(data: bytes) -> str:
    return base64.b64encode(google_crc32c.Checksum(data).digest()).decode()


def test_empty_digests():
    assert MD5HashValidator().finish() == f"md5={EMPTY_MD5}"
    assert Crc32cHashValidator().finish() == f"crc32c={EMPTY_CRC32C}"
    assert NullHashValidator().finish() == ""


def test_incremental_update_matches_single_update():
    split = MD5HashValidator()
    for start in range(0, len(PAYLOAD), 7):
        split.update(PAYLOAD[start : start + 7])
    whole = MD5HashValidator()
    whole.update(PAYLOAD)

    assert split.finish() == whole.finish() == f"md5={_md5(PAYLOAD)}"


def test_crc32c_is_big_endian_base64():
    validator = Crc32cHashValidator()
    validator.update(b"123456789")
    # CRC32C check value for "123456789" is 0xE3069283.
    assert validator.finish() == "crc32c=" + base64.b64encode(
        bytes.fromhex("e3069283")
    ).decode()


def test_composite_renders_sorted_by_algorithm():
    validator = CompositeHashValidator([MD5HashValidator(), Crc32cHashValidator()])
    validator.update(PAYLOAD)

    assert validator.finish() == f"crc32c={_crc32c(PAYLOAD)},md5={_md5(PAYLOAD)}"


def test_empty_update_is_noop():
    validator = create_hash_validator()
    validator.update(b"")
    validator.update(PAYLOAD)
    validator.update(b"")

    assert validator.finish() == f"crc32c={_crc32c(PAYLOAD)},md5={_md5(PAYLOAD)}"


def test_validate_matching_hashes():
    validator = create_hash_validator()
    validator.update(PAYLOAD)

    result = validator.validate(f"crc32c={_crc32c(PAYLOAD)},md5={_md5(PAYLOAD)}")

    assert not result.is_mismatch
    assert result.status.ok


def test_validate_mismatch_reports_data_loss_with_both_hashes():
    validator = MD5HashValidator()
    validator.update(PAYLOAD)
    received = f"md5={_md5(b'something else')}"

    result = validator.validate(received)

    assert result.is_mismatch
    assert result.computed == f"md5={_md5(PAYLOAD)}"
    assert result.received == received
    assert result.status.code == StatusCode.DATA_LOSS
    assert result.computed in result.status.message


def test_algorithm_missing_from_received_is_not_compared():
    validator = create_hash_validator()
    validator.update(PAYLOAD)

    result = validator.validate(f"crc32c={_crc32c(PAYLOAD)}")

    assert not result.is_mismatch


def test_one_bad_algorithm_is_a_mismatch():
    validator = create_hash_validator()
    validator.update(PAYLOAD)

    result = validator.validate(f"crc32c={EMPTY_CRC32C},md5={_md5(PAYLOAD)}")

    assert result.is_mismatch


def test_null_validator_never_mismatches():
    validator = NullHashValidator()
    validator.update(PAYLOAD)

    assert not validator.validate(f"md5={EMPTY_MD5}").is_mismatch


@pytest.mark.parametrize(
    ("enable_md5", "enable_crc32c", "expected"),
    [
        (True, True, CompositeHashValidator),
        (True, False, MD5HashValidator),
        (False, True, Crc32cHashValidator),
        (False, False, NullHashValidator),
    ],
)
def test_create_hash_validator(enable_md5, enable_crc32c, expected):
    validator = create_hash_validator(
        enable_md5=enable_md5, enable_crc32c=enable_crc32c
    )
    assert isinstance(validator, expected)


def test_parse_and_format_hash_strings():
    parsed = parse_hash_string(" md5=abc== , crc32c=xyz==,garbage")

    assert parsed == {"md5": "abc==", "crc32c": "xyz=="}
    assert format_hashes(parsed) == "crc32c=xyz==,md5=abc=="
    assert format_hashes({"md5": "", "crc32c": "xyz=="}) == "crc32c=xyz=="


def test_received_hash_from_metadata():
    metadata = ObjectMetadata.from_json(
        {"name": "obj", "size": "3", "md5Hash": "m==", "crc32c": "c=="}
    )

    assert received_hash_from_metadata(metadata) == "crc32c=c==,md5=m=="
    assert received_hash_from_metadata(None) == ""
