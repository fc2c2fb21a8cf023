from __future__ import annotations

TRANSCRIBE_ENDPOINT_NAME = "transcribe"

ONE_MIB = 1024 * 1024
MAX_FILE_SIZE_FOR_SINGLE_UPLOAD = 100 * ONE_MIB
FILE_PART_SIZE = 20 * ONE_MIB
MAX_CONCURRENT_PART_UPLOADS = 3

SIGNED_URL_TTL_SECONDS = 3600

POLL_INTERVAL_SECONDS = 3.0
POLL_TIMEOUT_SECONDS = 120.0

REMOTE_SCHEMES = ("http", "https", "ftp")

DEFAULT_API_BASE_URL = "https://api.salad.com/api/public"
DEFAULT_STORAGE_BASE_URL = "https://storage-api.salad.com"
API_KEY_HEADER = "Salad-Api-Key"
