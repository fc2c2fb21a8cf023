from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest


def make_job_payload(
    status: str,
    job_id: str = "job-1",
    output: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": job_id,
        "status": status,
        "input": {"url": "https://files.example.com/audio.mp3"},
        "inference_endpoint_name": "transcribe",
        "organization_name": "acme",
        "events": [{"action": "created", "time": "2025-01-01T00:00:00Z"}],
        "create_time": "2025-01-01T00:00:00Z",
        "update_time": "2025-01-01T00:00:05Z",
    }
    if output is not None:
        payload["output"] = output
    return payload


class FakeStorageApi:
    """In-memory stand-in for the storage API behind an ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.part_bodies: dict[int, bytes] = {}
        self.part_delays: dict[int, float] = {}
        self.fail_parts: set[int] = set()
        self.fail_sign = False
        self.upload_delay = 0.0
        self.on_request: Callable[[httpx.Request], None] | None = None
        self.completed_body: dict[str, Any] | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.on_request is not None:
            self.on_request(request)
        path = request.url.path
        params = request.url.params

        if "/file_parts/" in path:
            part_number = int(params["partNumber"])
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            try:
                await asyncio.sleep(self.part_delays.get(part_number, 0))
            finally:
                self.in_flight -= 1
            if part_number in self.fail_parts:
                return httpx.Response(500, text="part exploded")
            self.part_bodies[part_number] = request.content
            return httpx.Response(200, json={"etag": f"etag-{part_number}", "partNumber": part_number})

        if "/file_tokens/" in path:
            if self.fail_sign:
                return httpx.Response(403, text="forbidden")
            name = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"url": f"https://signed.example.com/{name}?sig=abc"})

        if "/files/" in path:
            action = params.get("action")
            if action == "mpu-create":
                return httpx.Response(200, json={"uploadId": "upload-1"})
            if action == "mpu-complete":
                self.completed_body = json.loads(request.content)
                return httpx.Response(200, json={"ok": True})
            await asyncio.sleep(self.upload_delay)
            name = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"url": f"https://storage.example.com/{name}"})

        return httpx.Response(404, text="unknown route")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url="https://storage.test",
            transport=httpx.MockTransport(self.handler),
        )

    def matching(self, predicate: Callable[[httpx.Request], bool]) -> list[httpx.Request]:
        return [request for request in self.requests if predicate(request)]

    @property
    def part_requests(self) -> list[httpx.Request]:
        return self.matching(lambda request: "/file_parts/" in request.url.path)

    @property
    def sign_requests(self) -> list[httpx.Request]:
        return self.matching(lambda request: "/file_tokens/" in request.url.path)

    def file_requests(self, action: str | None) -> list[httpx.Request]:
        return self.matching(
            lambda request: "/files/" in request.url.path and request.url.params.get("action") == action
        )


@pytest.fixture
def storage_api() -> FakeStorageApi:
    return FakeStorageApi()


@pytest.fixture
def job_payload() -> Callable[..., dict[str, Any]]:
    return make_job_payload
