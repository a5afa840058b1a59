"""Protocol constants and defaults for blobstream transfers."""

import os

# Every non-final upload chunk must be a multiple of this many bytes.
UPLOAD_QUANTUM = 256 * 1024
DEFAULT_UPLOAD_BUFFER_SIZE = 32 * UPLOAD_QUANTUM  # 8 MiB
DEFAULT_DOWNLOAD_CHUNK_SIZE = 1024 * 1024

STORAGE_ENDPOINT = os.getenv("BLOBSTREAM_ENDPOINT", "https://storage.googleapis.com")

HTTP_TIMEOUT_SECONDS = 60
MAX_RETRIES = 5
INITIAL_BACKOFF_SECONDS = 1.0
MAX_BACKOFF_SECONDS = 300.0

CONFIG_DIR_NAME = ".blobstream"
CONFIG_FILE = "config.yaml"
CONFIG_ENCODING = "utf-8"
