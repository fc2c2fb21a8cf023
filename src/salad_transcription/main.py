from __future__ import annotations

import logging

from fastmcp import FastMCP
from starlette.requests import Request
from starlette.responses import JSONResponse

from salad_transcription.client import TranscriptionClient
from salad_transcription.config import Settings, load_settings
from salad_transcription.inbox import WebhookInbox, WebhookReceiver
from salad_transcription.mcp_tools import ToolRegistry
from salad_transcription.webhooks import WebhookVerifier

logger = logging.getLogger(__name__)


class AppRuntime:
    def __init__(self, settings: Settings, client: TranscriptionClient | None = None) -> None:
        self.settings = settings
        self.client = client or TranscriptionClient.from_settings(settings)
        self.inbox = WebhookInbox()

        self.receiver: WebhookReceiver | None = None
        if settings.webhook_secret:
            try:
                verifier = WebhookVerifier(
                    settings.webhook_secret,
                    tolerance_seconds=settings.webhook_tolerance_seconds,
                )
            except ValueError as exc:
                raise RuntimeError(f"WEBHOOK_SECRET is invalid: {exc}") from exc
            self.receiver = WebhookReceiver(verifier, self.inbox)


def create_app(runtime: AppRuntime) -> FastMCP:
    mcp = FastMCP(name="salad-transcription")

    tools = ToolRegistry(runtime.client, runtime.settings.organization_name, runtime.inbox)
    tools.register(mcp)

    @mcp.custom_route(runtime.settings.health_path, methods=["GET"])
    async def health(_: Request) -> JSONResponse:
        return JSONResponse(
            {
                "ok": True,
                "organization": runtime.settings.organization_name,
                "webhooks_enabled": runtime.receiver is not None,
                "mcp_path": runtime.settings.mcp_path,
            }
        )

    if runtime.receiver is not None:
        mcp.custom_route(runtime.settings.webhook_path, methods=["POST"])(runtime.receiver.handle)
    else:
        logger.info("WEBHOOK_SECRET not set; webhook route disabled")

    return mcp


def cli() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")

    settings = load_settings()
    runtime = AppRuntime(settings)
    app = create_app(runtime)
    logger.info("Starting MCP server on %s:%s%s", settings.host, settings.port, settings.mcp_path)
    app.run(
        transport="http",
        host=settings.host,
        port=settings.port,
        path=settings.mcp_path,
    )


if __name__ == "__main__":
    cli()
