import pytest

from blobstream.config import (
    ConfigFileError,
    ConfigManager,
    TransferConfig,
    parse_bytes,
)
from blobstream.config.config_manager import default_config_path
from blobstream.const import DEFAULT_UPLOAD_BUFFER_SIZE, UPLOAD_QUANTUM


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "endpoint: http://from-file\n"
        "upload_buffer_size: 1MiB\n"
        "max_retries: 2\n"
        "enable_md5: false\n",
        encoding="utf-8",
    )
    return path


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (42, 42),
        ("42", 42),
        ("1k", 1024),
        ("2KB", 2048),
        ("8 MiB", 8 * 1024**2),
        ("1g", 1024**3),
        ("10b", 10),
    ],
)
def test_parse_bytes(value, expected):
    assert parse_bytes(value) == expected


@pytest.mark.parametrize("value", ["", "mb", "1.5m", "12 parsecs"])
def test_parse_bytes_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_bytes(value)


def test_defaults():
    config = TransferConfig()

    assert config.upload_buffer_size == DEFAULT_UPLOAD_BUFFER_SIZE
    assert config.enable_md5 and config.enable_crc32c
    assert config.bearer_token is None


@pytest.mark.parametrize(
    ("requested", "aligned"),
    [
        (1, UPLOAD_QUANTUM),
        (UPLOAD_QUANTUM, UPLOAD_QUANTUM),
        (UPLOAD_QUANTUM + 1, 2 * UPLOAD_QUANTUM),
    ],
)
def test_upload_buffer_size_rounded_to_quantum(requested, aligned):
    assert TransferConfig(upload_buffer_size=requested).upload_buffer_size == aligned


def test_invalid_values_rejected():
    with pytest.raises(ValueError):
        TransferConfig(download_chunk_size=0)
    with pytest.raises(ValueError):
        TransferConfig(max_retries=-1)


def test_missing_file_gives_defaults(tmp_path):
    config = ConfigManager(tmp_path / "absent.yaml").resolve_effective_config()

    assert config == TransferConfig()


def test_file_values(config_file):
    config = ConfigManager(config_file).resolve_effective_config()

    assert config.endpoint == "http://from-file"
    assert config.upload_buffer_size == 1024**2
    assert config.max_retries == 2
    assert config.enable_md5 is False


def test_env_overrides_file(config_file, monkeypatch):
    monkeypatch.setenv("BLOBSTREAM_ENDPOINT", "http://from-env")
    monkeypatch.setenv("BLOBSTREAM_UPLOAD_BUFFER_SIZE", "300k")
    monkeypatch.setenv("BLOBSTREAM_ENABLE_MD5", "yes")
    monkeypatch.setenv("BLOBSTREAM_HTTP_TIMEOUT", "2.5")

    config = ConfigManager(config_file).resolve_effective_config()

    assert config.endpoint == "http://from-env"
    assert config.upload_buffer_size == 2 * UPLOAD_QUANTUM
    assert config.enable_md5 is True
    assert config.http_timeout == 2.5
    assert config.max_retries == 2


def test_explicit_overrides_win(config_file, monkeypatch):
    monkeypatch.setenv("BLOBSTREAM_MAX_RETRIES", "9")

    config = ConfigManager(config_file).resolve_effective_config(
        {"max_retries": 0, "bearer_token": "tok", "endpoint": None}
    )

    assert config.max_retries == 0
    assert config.bearer_token == "tok"
    assert config.endpoint == "http://from-file"


def test_invalid_env_value_is_ignored(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("BLOBSTREAM_MAX_RETRIES", "many")

    config = ConfigManager(tmp_path / "absent.yaml").resolve_effective_config()

    assert config.max_retries == TransferConfig().max_retries
    assert "BLOBSTREAM_MAX_RETRIES" in caplog.text


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("endpoint: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigFileError):
        ConfigManager(path).resolve_effective_config()


def test_yaml_must_be_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigFileError):
        ConfigManager(path).resolve_effective_config()


def test_default_config_path(tmp_path):
    assert default_config_path(tmp_path) == tmp_path / ".blobstream" / "config.yaml"
