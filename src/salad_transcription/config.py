from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from salad_transcription.constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_STORAGE_BASE_URL,
    MAX_CONCURRENT_PART_UPLOADS,
    POLL_INTERVAL_SECONDS,
    POLL_TIMEOUT_SECONDS,
)


@dataclass(slots=True)
class Settings:
    host: str
    port: int
    mcp_path: str
    health_path: str
    webhook_path: str
    api_key: str
    organization_name: str
    api_base_url: str
    storage_base_url: str
    request_timeout_seconds: float
    max_concurrent_uploads: int
    poll_interval_seconds: float
    poll_timeout_seconds: float
    webhook_secret: str | None
    webhook_tolerance_seconds: int | None


def _as_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _as_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _normalized_path(path: str) -> str:
    if not path.startswith("/"):
        path = f"/{path}"
    return path


def load_settings() -> Settings:
    load_dotenv()

    api_key = os.getenv("SALAD_API_KEY", "").strip()
    if not api_key:
        raise RuntimeError("SALAD_API_KEY is required")

    organization_name = os.getenv("SALAD_ORGANIZATION", "").strip()
    if not organization_name:
        raise RuntimeError("SALAD_ORGANIZATION is required")

    max_concurrent_uploads = _as_int("MAX_CONCURRENT_UPLOADS", MAX_CONCURRENT_PART_UPLOADS)
    if max_concurrent_uploads < 1:
        raise RuntimeError("MAX_CONCURRENT_UPLOADS must be at least 1")

    # A negative tolerance disables the webhook timestamp check.
    tolerance = _as_int("WEBHOOK_TOLERANCE_SECONDS", 300)

    return Settings(
        host=os.getenv("HOST", "0.0.0.0"),
        port=_as_int("PORT", 3000),
        mcp_path=_normalized_path(os.getenv("MCP_PATH", "/mcp")),
        health_path=_normalized_path(os.getenv("HEALTH_PATH", "/healthz")),
        webhook_path=_normalized_path(os.getenv("WEBHOOK_PATH", "/webhooks/transcription")),
        api_key=api_key,
        organization_name=organization_name,
        api_base_url=os.getenv("SALAD_API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
        storage_base_url=os.getenv("SALAD_STORAGE_BASE_URL", DEFAULT_STORAGE_BASE_URL).rstrip("/"),
        request_timeout_seconds=_as_float("REQUEST_TIMEOUT_SECONDS", 60.0),
        max_concurrent_uploads=max_concurrent_uploads,
        poll_interval_seconds=_as_float("POLL_INTERVAL_SECONDS", POLL_INTERVAL_SECONDS),
        poll_timeout_seconds=_as_float("POLL_TIMEOUT_SECONDS", POLL_TIMEOUT_SECONDS),
        webhook_secret=os.getenv("WEBHOOK_SECRET") or None,
        webhook_tolerance_seconds=tolerance if tolerance >= 0 else None,
    )
