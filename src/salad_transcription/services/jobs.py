from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from salad_transcription.constants import TRANSCRIBE_ENDPOINT_NAME
from salad_transcription.errors import JobsApiError
from salad_transcription.types import TranscriptionJob


class JobsApi:
    """Thin proxy over the inference endpoint jobs API."""

    def __init__(self, http: httpx.AsyncClient, endpoint_name: str = TRANSCRIBE_ENDPOINT_NAME) -> None:
        self.http = http
        self.endpoint_name = endpoint_name

    def jobs_url(self, organization_name: str, job_id: str | None = None) -> str:
        url = (
            f"/organizations/{quote(organization_name, safe='')}"
            f"/inference-endpoints/{quote(self.endpoint_name, safe='')}/jobs"
        )
        if job_id is not None:
            url = f"{url}/{quote(job_id, safe='')}"
        return url

    async def create(self, organization_name: str, payload: dict[str, Any]) -> TranscriptionJob:
        data = await self._send("POST", self.jobs_url(organization_name), json=payload)
        return self._as_job(data)

    async def get(self, organization_name: str, job_id: str) -> TranscriptionJob:
        data = await self._send("GET", self.jobs_url(organization_name, job_id), identifier=job_id)
        return self._as_job(data, job_id)

    async def list(self, organization_name: str) -> list[TranscriptionJob]:
        data = await self._send("GET", self.jobs_url(organization_name))
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            raise JobsApiError("List jobs response missing items")
        return [self._as_job(item) for item in items]

    async def delete(self, organization_name: str, job_id: str) -> None:
        await self._send("DELETE", self.jobs_url(organization_name, job_id), identifier=job_id, expect_body=False)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        identifier: str | None = None,
        expect_body: bool = True,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise JobsApiError(f"{method} {url} failed: {exc}", identifier=identifier) from exc

        if response.status_code >= 400:
            raise JobsApiError(
                f"{method} {url} returned {response.status_code}: {response.text[:400]}",
                identifier=identifier,
                status_code=response.status_code,
            )
        if not expect_body:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise JobsApiError(f"{method} {url} returned invalid JSON", identifier=identifier) from exc

    @staticmethod
    def _as_job(data: Any, identifier: str | None = None) -> TranscriptionJob:
        if not isinstance(data, dict):
            raise JobsApiError("Job response is not a JSON object", identifier=identifier)
        try:
            return TranscriptionJob.from_payload(data)
        except ValueError as exc:
            raise JobsApiError(str(exc), identifier=identifier) from exc
