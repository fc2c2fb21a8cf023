from __future__ import annotations

from typing import Any

from fastmcp import FastMCP
from mcp.types import ToolAnnotations

from salad_transcription.client import TranscriptionClient
from salad_transcription.errors import TranscriptionSdkError
from salad_transcription.inbox import WebhookInbox
from salad_transcription.types import TranscribeOptions


def _error(exc: TranscriptionSdkError) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": exc.kind.value, "message": str(exc)}
    if exc.identifier:
        payload["identifier"] = exc.identifier
    return payload


class ToolRegistry:
    def __init__(self, client: TranscriptionClient, organization_name: str, inbox: WebhookInbox) -> None:
        self.client = client
        self.organization_name = organization_name
        self.inbox = inbox

    def register(self, mcp: FastMCP) -> None:
        _ro = ToolAnnotations(readOnlyHint=True)

        @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, idempotentHint=False))
        async def transcribe(
            source: str,
            options: dict[str, Any] | None = None,
            webhook_url: str | None = None,
        ) -> dict[str, Any]:
            """Submit a local file or remote URL for transcription.

            Args:
                source: Remote http(s)/ftp URL, or a local path (``~``, ``$VAR`` and file:// allowed)
                options: Transcription options, e.g. {"language_code": "en", "diarization": true}
                webhook_url: Optional URL notified when the job finishes

            Returns:
                The created job snapshot.
            """
            try:
                parsed = TranscribeOptions.from_mapping(options)
            except (TypeError, ValueError) as exc:
                return {"error": "invalid_options", "message": str(exc)}
            try:
                job = await self.client.transcribe(self.organization_name, source, parsed, webhook_url)
            except TranscriptionSdkError as exc:
                return _error(exc)
            return job.to_dict()

        @mcp.tool(annotations=_ro)
        async def get_transcription(job_id: str) -> dict[str, Any]:
            try:
                job = await self.client.get(self.organization_name, job_id)
            except TranscriptionSdkError as exc:
                return _error(exc)
            return job.to_dict()

        @mcp.tool(annotations=_ro)
        async def list_transcriptions(limit: int = 20) -> dict[str, Any]:
            try:
                jobs = await self.client.list(self.organization_name)
            except TranscriptionSdkError as exc:
                return _error(exc)
            items = [job.to_dict() for job in jobs[: max(limit, 0)]]
            return {"count": len(items), "total": len(jobs), "items": items}

        @mcp.tool(annotations=ToolAnnotations(readOnlyHint=False, destructiveHint=True))
        async def stop_transcription(job_id: str) -> dict[str, Any]:
            try:
                await self.client.stop(self.organization_name, job_id)
            except TranscriptionSdkError as exc:
                return _error(exc)
            return {"job_id": job_id, "stopped": True}

        @mcp.tool(annotations=_ro)
        async def wait_for_transcription(job_id: str) -> dict[str, Any]:
            """Poll a job until it succeeds, fails or the wait times out.

            Args:
                job_id: The job ID returned from transcribe()

            Returns:
                The terminal job snapshot, or an error with kind timed_out/job_failed.
            """
            try:
                job = await self.client.wait_for(self.organization_name, job_id)
            except TranscriptionSdkError as exc:
                return _error(exc)
            return job.to_dict()

        @mcp.tool(annotations=_ro)
        def recent_webhook_events(job_id: str | None = None) -> dict[str, Any]:
            if job_id is not None:
                job = self.inbox.get(job_id)
                if job is None:
                    return {"error": "job_not_found", "job_id": job_id}
                return job.to_dict()
            items = [job.to_dict() for job in self.inbox.recent()]
            return {"count": len(items), "items": items}
