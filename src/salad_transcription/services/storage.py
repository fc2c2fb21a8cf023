from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from salad_transcription.constants import (
    FILE_PART_SIZE,
    MAX_CONCURRENT_PART_UPLOADS,
    SIGNED_URL_TTL_SECONDS,
)
from salad_transcription.errors import SignFileError, TranscriptionSdkError, UploadError
from salad_transcription.services.cancellation import until_cancelled
from salad_transcription.services.chunks import plan_chunks, read_file_in_chunks
from salad_transcription.services.limiter import ConcurrencyLimiter
from salad_transcription.types import FilePart, UploadSession

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(value, safe="")


class StorageClient:
    """Client for the organization file storage API.

    ``http`` must already carry the storage base URL and the API key header.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        max_concurrent_uploads: int = MAX_CONCURRENT_PART_UPLOADS,
        part_size: int = FILE_PART_SIZE,
    ) -> None:
        self.http = http
        self.max_concurrent_uploads = max_concurrent_uploads
        self.part_size = part_size

    def files_url(self, organization_name: str, file_name: str) -> str:
        return f"/organizations/{_segment(organization_name)}/files/{_segment(file_name)}"

    def file_parts_url(self, organization_name: str, file_name: str) -> str:
        return f"/organizations/{_segment(organization_name)}/file_parts/{_segment(file_name)}"

    def file_tokens_url(self, organization_name: str, file_name: str) -> str:
        return f"/organizations/{_segment(organization_name)}/file_tokens/{_segment(file_name)}"

    async def create_upload(self, organization_name: str, file_name: str) -> str:
        payload = await self._send(
            "PUT",
            self.files_url(organization_name, file_name),
            file_name=file_name,
            params={"action": "mpu-create"},
        )
        upload_id = payload.get("uploadId")
        if not upload_id:
            raise UploadError(file_name, "Create upload response missing uploadId")
        return str(upload_id)

    async def upload_part(
        self,
        organization_name: str,
        file_name: str,
        upload_id: str,
        part_number: int,
        chunk: bytes,
    ) -> FilePart:
        payload = await self._send(
            "PUT",
            self.file_parts_url(organization_name, file_name),
            file_name=file_name,
            params={"uploadId": upload_id, "partNumber": part_number},
            content=chunk,
            headers={"Content-Type": "application/octet-stream"},
        )
        etag = payload.get("etag")
        if not etag:
            raise UploadError(file_name, f"Part {part_number} response missing etag")

        reported = payload.get("partNumber", part_number)
        try:
            reported_number = int(reported)
        except (TypeError, ValueError):
            reported_number = -1
        if reported_number != part_number:
            raise UploadError(file_name, f"Part {part_number} acknowledged as part {reported!r}")

        logger.debug("Uploaded part %s of %s", part_number, file_name)
        return FilePart(part_number=part_number, etag=str(etag))

    async def complete_upload(
        self,
        organization_name: str,
        file_name: str,
        upload_id: str,
        parts: list[FilePart],
    ) -> dict[str, Any]:
        return await self._send(
            "PUT",
            self.files_url(organization_name, file_name),
            file_name=file_name,
            params={"action": "mpu-complete", "uploadId": upload_id},
            json={"parts": [part.to_payload() for part in parts]},
            allow_empty=True,
        )

    async def upload_file_in_parts(
        self,
        organization_name: str,
        file_name: str,
        path: Path,
        file_size: int,
        *,
        part_size: int | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> UploadSession:
        """Upload ``path`` as a multipart session and finalize it.

        Setting ``cancel_event`` interrupts reads, in-flight parts and the
        finalize call. Cancellation or a failed part or finalize call leaves
        the session open on the server; nothing aborts it and nothing
        retries. The caller resubmits the whole file.
        """
        plan = plan_chunks(file_size, part_size or self.part_size)
        upload_id = await until_cancelled(
            self.create_upload(organization_name, file_name), cancel_event, file_name, "Upload cancelled"
        )
        session = UploadSession(upload_id=upload_id, file_name=file_name, plan=plan)
        logger.info(
            "Started multipart upload %s for %s (%s parts of up to %s bytes)",
            upload_id,
            file_name,
            plan.num_chunks,
            plan.chunk_size,
        )

        async def upload_chunk(part_number: int, chunk: bytes) -> FilePart:
            return await self.upload_part(organization_name, file_name, upload_id, part_number, chunk)

        try:
            session.state = "parts_in_flight"
            parts = await read_file_in_chunks(
                path,
                plan,
                upload_chunk,
                file_name=file_name,
                cancel_event=cancel_event,
                limiter=ConcurrencyLimiter(self.max_concurrent_uploads),
            )
            session.parts = sorted(parts, key=lambda part: part.part_number)
            expected = list(range(1, plan.num_chunks + 1))
            if [part.part_number for part in session.parts] != expected:
                raise UploadError(file_name, "Uploaded parts are not contiguous")

            session.state = "finalizing"
            await until_cancelled(
                self.complete_upload(organization_name, file_name, upload_id, session.parts),
                cancel_event,
                file_name,
                "Upload cancelled",
            )
        except TranscriptionSdkError:
            session.state = "failed"
            logger.warning("Multipart upload %s for %s left unfinalized", upload_id, file_name)
            raise

        session.state = "complete"
        logger.info("Completed multipart upload %s for %s", upload_id, file_name)
        return session

    async def upload_file(
        self,
        organization_name: str,
        file_name: str,
        path: Path,
        cancel_event: asyncio.Event | None = None,
    ) -> str | None:
        try:
            handle = path.open("rb")
        except OSError as exc:
            raise UploadError(file_name, f"Error reading file: {path} ({exc})") from exc

        with handle:
            payload = await until_cancelled(
                self._send(
                    "PUT",
                    self.files_url(organization_name, file_name),
                    file_name=file_name,
                    files={"file": (file_name, handle)},
                ),
                cancel_event,
                file_name,
                "Upload cancelled",
            )
        url = payload.get("url")
        return str(url) if url else None

    async def sign_file(
        self,
        organization_name: str,
        file_name: str,
        ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
    ) -> str:
        payload = await self._send(
            "POST",
            self.file_tokens_url(organization_name, file_name),
            file_name=file_name,
            json={"method": "GET", "exp": str(ttl_seconds)},
            error_cls=SignFileError,
        )
        url = payload.get("url")
        if not url:
            raise SignFileError(file_name, "Sign file response missing url")
        return str(url)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        file_name: str,
        error_cls: type[UploadError] | type[SignFileError] = UploadError,
        allow_empty: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        try:
            response = await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise error_cls(file_name, f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise error_cls(
                file_name,
                f"{method} {url} returned {response.status_code}: {response.text[:400]}",
            )

        if allow_empty and not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            if allow_empty:
                return {}
            raise error_cls(file_name, f"{method} {url} returned invalid JSON") from exc
        if not isinstance(payload, dict):
            if allow_empty:
                return {}
            raise error_cls(file_name, f"{method} {url} returned unexpected payload")
        return payload
