from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx

from salad_transcription.constants import (
    FILE_PART_SIZE,
    MAX_FILE_SIZE_FOR_SINGLE_UPLOAD,
    REMOTE_SCHEMES,
)
from salad_transcription.errors import UploadError
from salad_transcription.services.cancellation import raise_if_cancelled, until_cancelled
from salad_transcription.services.storage import StorageClient

logger = logging.getLogger(__name__)

_WINDOWS_ENV_VAR = re.compile(r"%([^%]+)%")


def is_remote_file(source: str) -> bool:
    parsed = urlparse(source.strip())
    return parsed.scheme.lower() in REMOTE_SCHEMES and bool(parsed.netloc)


def normalize_file_path(file_path: str) -> Path:
    """Turn a user supplied local source into an absolute path.

    Steps run in a fixed order: ``file://`` URL decoding, ``~`` expansion,
    ``$VAR``/``${VAR}``/``%VAR%`` substitution (unknown variables are left
    as written), then resolution against the current directory.
    """
    value = file_path.strip()

    if value.lower().startswith("file://"):
        parsed = urlparse(value)
        if parsed.netloc not in ("", "localhost"):
            raise ValueError(f"Unsupported file URL host: {parsed.netloc}")
        value = url2pathname(parsed.path)

    if value.startswith("~"):
        value = os.path.expanduser(value)

    value = os.path.expandvars(value)
    value = _WINDOWS_ENV_VAR.sub(lambda match: os.environ.get(match.group(1), match.group(0)), value)

    return Path(os.path.abspath(value))


async def resolve_transcription_source(
    storage: StorageClient,
    organization_name: str,
    source: str,
    *,
    max_file_size: int = MAX_FILE_SIZE_FOR_SINGLE_UPLOAD,
    part_size: int = FILE_PART_SIZE,
    cancel_event: asyncio.Event | None = None,
) -> str:
    """Return a URL the transcription service can fetch ``source`` from.

    Remote URLs pass through untouched. Local files are uploaded, in parts
    when larger than ``max_file_size``, and exchanged for a signed URL.
    """
    if is_remote_file(source):
        return source

    try:
        path = normalize_file_path(source)
    except ValueError as exc:
        raise UploadError(source, str(exc)) from exc

    file_name = path.name
    try:
        file_size = path.stat().st_size
    except OSError as exc:
        raise UploadError(file_name, f"File not found: {path}") from exc
    if not path.is_file():
        raise UploadError(file_name, f"Not a regular file: {path}")

    raise_if_cancelled(cancel_event, file_name, "Upload cancelled")

    if file_size > max_file_size:
        await storage.upload_file_in_parts(
            organization_name,
            file_name,
            path,
            file_size,
            part_size=part_size,
            cancel_event=cancel_event,
        )
    else:
        logger.info("Uploading %s (%s bytes) in a single request", file_name, file_size)
        await storage.upload_file(organization_name, file_name, path, cancel_event=cancel_event)

    return await until_cancelled(
        storage.sign_file(organization_name, file_name), cancel_event, file_name, "Upload cancelled"
    )


async def is_url_downloadable(url: str, http: httpx.AsyncClient | None = None) -> bool:
    """Best effort probe: does ``url`` look like a media file rather than a web page?"""
    owns_client = http is None
    client = http or httpx.AsyncClient(follow_redirects=True, max_redirects=5)
    try:
        async with client.stream("GET", url, headers={"Range": "bytes=0-0"}) as response:
            if response.status_code not in (200, 206):
                return False
            disposition = response.headers.get("content-disposition", "").lower()
            if "attachment" in disposition:
                return True
            content_type = response.headers.get("content-type", "").lower()
            return not content_type.startswith("text/html")
    except httpx.HTTPError as exc:
        logger.debug("Download probe for %s failed: %s", url, exc)
        return False
    finally:
        if owns_client:
            await client.aclose()
