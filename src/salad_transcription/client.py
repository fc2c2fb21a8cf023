from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any

import httpx

from salad_transcription.config import Settings
from salad_transcription.constants import (
    API_KEY_HEADER,
    DEFAULT_API_BASE_URL,
    DEFAULT_STORAGE_BASE_URL,
    FILE_PART_SIZE,
    MAX_CONCURRENT_PART_UPLOADS,
    MAX_FILE_SIZE_FOR_SINGLE_UPLOAD,
    POLL_INTERVAL_SECONDS,
    POLL_TIMEOUT_SECONDS,
)
from salad_transcription.services.cancellation import until_cancelled
from salad_transcription.services.jobs import JobsApi
from salad_transcription.services.poller import JobPoller, raise_for_job_error
from salad_transcription.services.source import is_url_downloadable, resolve_transcription_source
from salad_transcription.services.storage import StorageClient
from salad_transcription.types import TranscribeOptions, TranscriptionJob
from salad_transcription.webhooks import process_webhook

logger = logging.getLogger(__name__)


class TranscriptionClient:
    """Submit media for transcription and follow the resulting jobs.

    Local files are uploaded to organization storage first (in parallel parts
    above ``max_file_size``) and the job is created from a signed URL.
    Pass ``storage_http``/``api_http`` to supply preconfigured clients, e.g.
    with a mock transport.
    """

    def __init__(
        self,
        api_key: str,
        *,
        api_base_url: str = DEFAULT_API_BASE_URL,
        storage_base_url: str = DEFAULT_STORAGE_BASE_URL,
        timeout_seconds: float = 60.0,
        max_concurrent_uploads: int = MAX_CONCURRENT_PART_UPLOADS,
        max_file_size: int = MAX_FILE_SIZE_FOR_SINGLE_UPLOAD,
        part_size: int = FILE_PART_SIZE,
        poll_interval_seconds: float = POLL_INTERVAL_SECONDS,
        poll_timeout_seconds: float = POLL_TIMEOUT_SECONDS,
        storage_http: httpx.AsyncClient | None = None,
        api_http: httpx.AsyncClient | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Client initialization requires an api_key")

        headers = {API_KEY_HEADER: api_key}
        self._storage_http = storage_http or httpx.AsyncClient(
            base_url=storage_base_url, headers=headers, timeout=timeout_seconds
        )
        self._api_http = api_http or httpx.AsyncClient(
            base_url=api_base_url, headers=headers, timeout=timeout_seconds
        )
        self.storage = StorageClient(
            self._storage_http,
            max_concurrent_uploads=max_concurrent_uploads,
            part_size=part_size,
        )
        self.jobs = JobsApi(self._api_http)
        self.max_file_size = max_file_size
        self.part_size = part_size
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_timeout_seconds = poll_timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> TranscriptionClient:
        return cls(
            settings.api_key,
            api_base_url=settings.api_base_url,
            storage_base_url=settings.storage_base_url,
            timeout_seconds=settings.request_timeout_seconds,
            max_concurrent_uploads=settings.max_concurrent_uploads,
            poll_interval_seconds=settings.poll_interval_seconds,
            poll_timeout_seconds=settings.poll_timeout_seconds,
        )

    async def __aenter__(self) -> TranscriptionClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._storage_http.aclose()
        await self._api_http.aclose()

    async def transcribe(
        self,
        organization_name: str,
        source: str,
        options: TranscribeOptions | None = None,
        webhook_url: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> TranscriptionJob:
        url = await resolve_transcription_source(
            self.storage,
            organization_name,
            source,
            max_file_size=self.max_file_size,
            part_size=self.part_size,
            cancel_event=cancel_event,
        )

        payload: dict[str, Any] = {"input": {"url": url, **(options or TranscribeOptions()).to_payload()}}
        if webhook_url:
            payload["webhook"] = webhook_url

        job = await until_cancelled(self.jobs.create(organization_name, payload), cancel_event, source)
        logger.info("Created transcription job %s for %s", job.id, source)
        return job

    async def get(self, organization_name: str, job_id: str) -> TranscriptionJob:
        return raise_for_job_error(await self.jobs.get(organization_name, job_id))

    async def list(self, organization_name: str) -> list[TranscriptionJob]:
        return await self.jobs.list(organization_name)

    async def stop(self, organization_name: str, job_id: str) -> None:
        await self.jobs.delete(organization_name, job_id)
        logger.info("Stopped transcription job %s", job_id)

    async def wait_for(
        self,
        organization_name: str,
        job_id: str,
        cancel_event: asyncio.Event | None = None,
    ) -> TranscriptionJob:
        poller = JobPoller(
            lambda: self.jobs.get(organization_name, job_id),
            interval_seconds=self.poll_interval_seconds,
            timeout_seconds=self.poll_timeout_seconds,
        )
        return await poller.poll(job_id, cancel_event=cancel_event)

    async def is_url_downloadable(self, url: str) -> bool:
        return await is_url_downloadable(url)

    @staticmethod
    def process_webhook(
        base64_secret: str,
        headers: Mapping[str, str],
        payload: bytes | str,
        tolerance_seconds: int | None = None,
    ) -> TranscriptionJob:
        return process_webhook(base64_secret, headers, payload, tolerance_seconds=tolerance_seconds)
