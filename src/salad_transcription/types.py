from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Literal, Union

JobStatus = Literal["pending", "running", "succeeded", "failed"]
JOB_STATUSES: tuple[str, ...] = ("pending", "running", "succeeded", "failed")
TERMINAL_STATUSES: tuple[str, ...] = ("succeeded", "failed")

TRANSLATION_LANGUAGES = (
    "german",
    "italian",
    "french",
    "spanish",
    "english",
    "portuguese",
    "hindi",
    "thai",
)


@dataclass(slots=True)
class TranscribeOptions:
    return_as_file: bool | None = None
    language_code: str | None = None
    translate: str | None = None
    sentence_level_timestamps: bool | None = None
    word_level_timestamps: bool | None = None
    diarization: bool | None = None
    sentence_diarization: bool | None = None
    srt: bool | None = None
    summarize: int | None = None
    llm_translation: list[str] | None = None
    srt_translation: list[str] | None = None
    custom_vocabulary: str | None = None
    custom_prompt: str | None = None
    classification_labels: str | None = None
    overall_sentiment_analysis: bool | None = None
    overall_classification: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        """Render the options as the ``input`` fields the API expects.

        Unset fields are omitted and translation language lists are joined
        into the comma separated form the service parses.
        """
        payload: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(language) for language in value)
            payload[item.name] = value
        return payload

    @classmethod
    def from_mapping(cls, values: dict[str, Any] | None) -> TranscribeOptions:
        if not values:
            return cls()
        known = {item.name for item in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown transcription options: {', '.join(unknown)}")
        for key in ("llm_translation", "srt_translation"):
            languages = values.get(key)
            if languages is None:
                continue
            if not isinstance(languages, (list, tuple)):
                raise ValueError(f"{key} must be a list of languages, got {type(languages).__name__}")
            invalid = [language for language in languages if language not in TRANSLATION_LANGUAGES]
            if invalid:
                raise ValueError(f"Unsupported {key} languages: {', '.join(map(str, invalid))}")
        return cls(**values)


@dataclass(slots=True)
class TextOutput:
    text: str
    duration_in_seconds: float | None = None
    duration: float | None = None
    processing_time: float | None = None


@dataclass(slots=True)
class FileOutput:
    url: str
    duration_in_seconds: float | None = None
    duration: float | None = None
    processing_time: float | None = None


@dataclass(slots=True)
class ErrorOutput:
    error: str


JobOutput = Union[TextOutput, FileOutput, ErrorOutput]


@dataclass(slots=True)
class JobEvent:
    action: str
    time: str


@dataclass(slots=True)
class TranscriptionJob:
    id: str
    status: JobStatus
    input: dict[str, Any] = field(default_factory=dict)
    output: JobOutput | None = None
    events: list[JobEvent] = field(default_factory=list)
    create_time: str | None = None
    update_time: str | None = None
    organization_name: str | None = None
    inference_endpoint_name: str | None = None
    metadata: dict[str, Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def error(self) -> str | None:
        if isinstance(self.output, ErrorOutput):
            return self.output.error
        return None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> TranscriptionJob:
        job_id = payload.get("id")
        if not job_id:
            raise ValueError("Transcription job payload missing id")

        status = str(payload.get("status") or "").lower()
        if status not in JOB_STATUSES:
            raise ValueError(f"Unknown transcription job status: {payload.get('status')!r}")

        raw_events = payload.get("events")
        events = [
            JobEvent(action=str(item.get("action", "")), time=str(item.get("time", "")))
            for item in (raw_events if isinstance(raw_events, list) else [])
            if isinstance(item, dict)
        ]

        raw_input = payload.get("input")
        metadata = payload.get("metadata")

        return cls(
            id=str(job_id),
            status=status,  # type: ignore[arg-type]
            input=dict(raw_input) if isinstance(raw_input, dict) else {},
            output=_parse_output(payload.get("output")),
            events=events,
            create_time=_as_optional_str(payload.get("create_time") or payload.get("createTime")),
            update_time=_as_optional_str(payload.get("update_time") or payload.get("updateTime")),
            organization_name=_as_optional_str(
                payload.get("organization_name") or payload.get("organizationName")
            ),
            inference_endpoint_name=_as_optional_str(
                payload.get("inference_endpoint_name") or payload.get("inferenceEndpointName")
            ),
            metadata=dict(metadata) if isinstance(metadata, dict) else None,
            raw=dict(payload),
        )

    def to_dict(self) -> dict[str, Any]:
        output: dict[str, Any] | None = None
        if isinstance(self.output, TextOutput):
            output = {"type": "text", "text": self.output.text, "duration": self.output.duration,
                      "duration_in_seconds": self.output.duration_in_seconds,
                      "processing_time": self.output.processing_time}
        elif isinstance(self.output, FileOutput):
            output = {"type": "file", "url": self.output.url, "duration": self.output.duration,
                      "duration_in_seconds": self.output.duration_in_seconds,
                      "processing_time": self.output.processing_time}
        elif isinstance(self.output, ErrorOutput):
            output = {"type": "error", "error": self.output.error}

        return {
            "id": self.id,
            "status": self.status,
            "input": self.input,
            "output": output,
            "events": [{"action": event.action, "time": event.time} for event in self.events],
            "create_time": self.create_time,
            "update_time": self.update_time,
            "organization_name": self.organization_name,
            "metadata": self.metadata,
        }


@dataclass(slots=True, frozen=True)
class ChunkPlan:
    file_size: int
    num_chunks: int
    chunk_size: int

    def byte_range(self, part_number: int) -> tuple[int, int]:
        if part_number < 1 or part_number > self.num_chunks:
            raise ValueError(f"Part number {part_number} outside 1..{self.num_chunks}")
        start = (part_number - 1) * self.chunk_size
        return start, min(start + self.chunk_size, self.file_size)


@dataclass(slots=True, frozen=True)
class FilePart:
    part_number: int
    etag: str

    def to_payload(self) -> dict[str, Any]:
        return {"partNumber": self.part_number, "etag": self.etag}


UploadState = Literal["created", "parts_in_flight", "finalizing", "complete", "failed"]


@dataclass(slots=True)
class UploadSession:
    upload_id: str
    file_name: str
    plan: ChunkPlan
    state: UploadState = "created"
    parts: list[FilePart] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class WebhookEnvelope:
    id: str
    timestamp: str
    signature: str
    raw_payload: bytes


def _parse_output(value: object) -> JobOutput | None:
    if not isinstance(value, dict):
        return None
    if value.get("error"):
        return ErrorOutput(error=str(value["error"]))
    if "text" in value:
        return TextOutput(
            text=str(value.get("text") or ""),
            duration_in_seconds=_as_optional_float(value.get("duration_in_seconds")),
            duration=_as_optional_float(value.get("duration")),
            processing_time=_as_optional_float(value.get("processing_time")),
        )
    if "url" in value:
        return FileOutput(
            url=str(value["url"]),
            duration_in_seconds=_as_optional_float(value.get("duration_in_seconds")),
            duration=_as_optional_float(value.get("duration")),
            processing_time=_as_optional_float(value.get("processing_time")),
        )
    return None


def _as_optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_optional_float(value: object) -> float | None:
    try:
        return float(str(value)) if value is not None else None
    except (TypeError, ValueError):
        return None
