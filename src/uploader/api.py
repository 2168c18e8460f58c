from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import BackgroundTasks, FastAPI, HTTPException, Request

from uploader.container import build_services
from uploader.logging_config import setup_logging
from uploader.settings import (
    GOOGLE_DRIVE_ACCESS_TOKEN,
    HOST,
    PORT,
    QUEUE_DRAIN_TIMEOUT_S,
    SLACK_SIGNING_SECRET,
    SQLITE_PATH,
    validate_settings,
)
from uploader.slack_verification import verify_slack_signature

logger = logging.getLogger(__name__)


def create_app(
    services: dict[str, Any] | None = None, signing_secret: str | None = None
) -> FastAPI:
    """Build the HTTP surface for Slack events.

    Passing ``services`` skips logging setup and service construction; the
    caller owns them.
    """

    secret = SLACK_SIGNING_SECRET if signing_secret is None else signing_secret

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if services is None:
            setup_logging()
            validate_settings()
            app.state.services = build_services(GOOGLE_DRIVE_ACCESS_TOKEN, SQLITE_PATH)
            logger.info("Slack upload service started")
        else:
            app.state.services = services
        if not secret:
            logger.warning("SLACK_SIGNING_SECRET is not set, request signatures are not checked")
        yield
        result = app.state.services["upload_pipeline"].shutdown(QUEUE_DRAIN_TIMEOUT_S)
        logger.info(
            f"Queue stopped: {result.drained} drained, {result.aborted} aborted, "
            f"{result.still_running} still running"
        )

    app = FastAPI(title="Slack Drive Uploader", lifespan=lifespan)
    app.state.services = services

    @app.post("/slack/events", tags=["slack"])
    async def slack_events(request: Request, background_tasks: BackgroundTasks) -> dict:
        body = await request.body()
        if secret and not verify_slack_signature(
            secret,
            request.headers.get("X-Slack-Request-Timestamp"),
            request.headers.get("X-Slack-Signature"),
            body,
        ):
            raise HTTPException(status_code=401, detail="Invalid request signature")
        try:
            payload = json.loads(body or b"{}")
        except json.JSONDecodeError as exc:
            raise HTTPException(status_code=400, detail="Body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Body must be a JSON object")

        if payload.get("type") == "url_verification":
            return {"challenge": payload.get("challenge")}

        event = payload.get("event")
        if payload.get("type") == "event_callback" and isinstance(event, dict):
            if event.get("type") == "file_shared":
                pipeline = request.app.state.services["upload_pipeline"]
                shared = pipeline.accept_event(event, payload.get("event_id"))
                if shared is not None:
                    background_tasks.add_task(pipeline.intake, shared)
            else:
                logger.debug(f"Ignoring event type {event.get('type')}")
        return {"ok": True}

    @app.get("/health", tags=["system"])
    async def health(request: Request) -> dict:
        pipeline = request.app.state.services["upload_pipeline"]
        return {"status": "healthy", **pipeline.health()}

    return app


def main() -> None:
    uvicorn.run(create_app(), host=HOST, port=PORT)


if __name__ == "__main__":
    main()
