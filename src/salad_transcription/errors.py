from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    UPLOAD = "upload_failed"
    SIGNING = "signing_failed"
    JOB = "job_failed"
    TIMEOUT = "timed_out"
    CANCELLED = "cancelled"
    VERIFICATION = "verification_failed"
    API = "api_failed"


class TranscriptionSdkError(Exception):
    """Base error; callers can branch on ``kind`` instead of the concrete type."""

    kind: ErrorKind = ErrorKind.API

    def __init__(self, detail: str, identifier: str | None = None) -> None:
        self.detail = detail
        self.identifier = identifier
        super().__init__(self._format())

    def _format(self) -> str:
        if self.identifier:
            return f"{self.identifier}: {self.detail}"
        return self.detail


class UploadError(TranscriptionSdkError):
    kind = ErrorKind.UPLOAD

    def __init__(self, file_name: str, detail: str) -> None:
        super().__init__(detail, identifier=file_name)

    @property
    def file_name(self) -> str:
        return str(self.identifier)

    def _format(self) -> str:
        return f'Upload of file "{self.identifier}" failed: {self.detail}'


class SignFileError(TranscriptionSdkError):
    kind = ErrorKind.SIGNING

    def __init__(self, file_name: str, detail: str) -> None:
        super().__init__(detail, identifier=file_name)

    def _format(self) -> str:
        return f'Signing file "{self.identifier}" failed: {self.detail}'


class TranscriptionJobError(TranscriptionSdkError):
    kind = ErrorKind.JOB

    def __init__(self, job_id: str, detail: str) -> None:
        super().__init__(detail, identifier=job_id)

    @property
    def job_id(self) -> str:
        return str(self.identifier)

    def _format(self) -> str:
        return f"Transcription job {self.identifier} failed due to: {self.detail}"


class PollTimeoutError(TranscriptionSdkError):
    kind = ErrorKind.TIMEOUT


class OperationCancelledError(TranscriptionSdkError):
    kind = ErrorKind.CANCELLED


class WebhookVerificationError(TranscriptionSdkError):
    kind = ErrorKind.VERIFICATION


class JobsApiError(TranscriptionSdkError):
    kind = ErrorKind.API

    def __init__(self, detail: str, identifier: str | None = None, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(detail, identifier=identifier)
