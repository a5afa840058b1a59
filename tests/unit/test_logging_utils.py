import json
import logging

from blobstream.logging_utils import JsonLineLogFormatter


def _record(level=logging.WARNING, msg="hello %s", args=("world",), **extra):
    record = logging.LogRecord(
        name="blobstream.test",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_one_json_object():
    line = JsonLineLogFormatter().format(_record())

    event = json.loads(line)
    assert event["severity"] == "WARNING"
    assert event["message"] == "hello world"
    assert event["logger"] == "blobstream.test"
    assert event["timestamp"].endswith("Z")
    assert "\n" not in line


def test_status_extras_are_included():
    record = _record(status_code="DATA_LOSS", status_message="mismatched hashes")

    event = json.loads(JsonLineLogFormatter().format(record))

    assert event["status_code"] == "DATA_LOSS"
    assert event["status_message"] == "mismatched hashes"


def test_unknown_level_becomes_info():
    record = _record(level=25)
    record.levelname = "NOTICE"

    event = json.loads(JsonLineLogFormatter().format(record))

    assert event["severity"] == "INFO"
