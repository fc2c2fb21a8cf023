from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from salad_transcription.constants import POLL_INTERVAL_SECONDS, POLL_TIMEOUT_SECONDS
from salad_transcription.errors import PollTimeoutError, TranscriptionJobError
from salad_transcription.services.cancellation import raise_if_cancelled, until_cancelled
from salad_transcription.types import TranscriptionJob

logger = logging.getLogger(__name__)

FetchJob = Callable[[], Awaitable[TranscriptionJob]]


def raise_for_job_error(job: TranscriptionJob) -> TranscriptionJob:
    if job.error is not None:
        raise TranscriptionJobError(job.id, job.error)
    return job


class JobPoller:
    def __init__(
        self,
        fetch: FetchJob,
        *,
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        timeout_seconds: float = POLL_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.fetch = fetch
        self.interval_seconds = interval_seconds
        self.timeout_seconds = timeout_seconds
        self._sleep = sleep
        self._clock = clock

    async def poll(self, job_id: str, cancel_event: asyncio.Event | None = None) -> TranscriptionJob:
        """Fetch the job until it reaches a terminal status.

        Returns the terminal snapshot without a trailing sleep. Raises
        ``TranscriptionJobError`` when the terminal output carries an error,
        ``PollTimeoutError`` once the deadline passes and
        ``OperationCancelledError`` as soon as ``cancel_event`` is set, even
        while a fetch or sleep is in flight.
        """
        started = self._clock()
        attempts = 0
        while True:
            raise_if_cancelled(cancel_event, job_id)
            if self._clock() - started > self.timeout_seconds:
                raise PollTimeoutError(
                    f"Timeout waiting for transcription after {attempts} polls",
                    identifier=job_id,
                )

            attempts += 1
            job = await until_cancelled(self.fetch(), cancel_event, job_id)
            logger.debug("Job %s is %s (poll %s)", job_id, job.status, attempts)
            if job.is_terminal:
                return raise_for_job_error(job)

            await until_cancelled(self._sleep(self.interval_seconds), cancel_event, job_id)
