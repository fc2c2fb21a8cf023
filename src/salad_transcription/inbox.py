from __future__ import annotations

import logging
from collections import OrderedDict
from threading import Lock

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from salad_transcription.errors import WebhookVerificationError
from salad_transcription.types import TranscriptionJob
from salad_transcription.webhooks import WebhookVerifier

logger = logging.getLogger(__name__)


class WebhookInbox:
    """Latest verified snapshot per job, kept in memory only."""

    def __init__(self, max_jobs: int = 500) -> None:
        self.max_jobs = max_jobs
        self._lock = Lock()
        self._jobs: OrderedDict[str, TranscriptionJob] = OrderedDict()

    def record(self, job: TranscriptionJob) -> None:
        with self._lock:
            self._jobs.pop(job.id, None)
            self._jobs[job.id] = job
            while len(self._jobs) > self.max_jobs:
                self._jobs.popitem(last=False)

    def get(self, job_id: str) -> TranscriptionJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def recent(self) -> list[TranscriptionJob]:
        with self._lock:
            return list(reversed(self._jobs.values()))


class WebhookReceiver:
    def __init__(self, verifier: WebhookVerifier, inbox: WebhookInbox) -> None:
        self.verifier = verifier
        self.inbox = inbox

    async def handle(self, request: Request) -> Response:
        body = await request.body()
        try:
            job = self.verifier.parse(request.headers, body)
        except WebhookVerificationError as exc:
            logger.warning("Rejected webhook delivery: %s", exc)
            return JSONResponse({"error": exc.kind.value}, status_code=401)
        except ValueError as exc:
            logger.warning("Unparsable webhook payload: %s", exc)
            return JSONResponse({"error": "invalid_payload"}, status_code=400)

        self.inbox.record(job)
        logger.info("Accepted webhook for job %s (%s)", job.id, job.status)
        return Response(status_code=204)
