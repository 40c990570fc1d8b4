"""
FastAPI Application — VoceChat webhook + health.

Provides:
- /api/bot webhook: admission, then hand-off to the drain scheduler
- /health: queue depth and drain loop counters
"""
from __future__ import annotations

import structlog
from datetime import datetime
from typing import Any, Optional
from contextlib import asynccontextmanager

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from config.settings import Settings, get_settings
from channels.admission import admit, parse_inbound
from channels.errors import AdmissionError
from channels.transport import ResilientTransport
from job_queue.scheduler import DrainScheduler, create_scheduler

logger = structlog.get_logger()

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _mask(secret: str, keep: int = 5) -> str:
    return secret[-keep:] if secret else ""


def create_app(settings: Settings = None, scheduler: Optional[DrainScheduler] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        transport: Optional[ResilientTransport] = None
        if app.state.scheduler is None:
            transport = ResilientTransport.from_config(settings.transport)
            app.state.scheduler = create_scheduler(settings, transport)

        logger.info("vocebridge_started",
                    origin=settings.vocechat.origin,
                    bot_id=settings.vocechat.bot_id,
                    max_concurrent=settings.queue.max_concurrent)
        yield

        await app.state.scheduler.stop()
        if transport is not None:
            await transport.aclose()
        logger.info("vocebridge_stopped")

    app = FastAPI(
        title=f"{settings.app_name} API",
        description="VoceChat webhook bot backed by a chat-completion API",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.scheduler = scheduler

    # ══════════════════════════════════════════════════════════
    #  HEALTH
    # ══════════════════════════════════════════════════════════

    @app.get("/health")
    async def health():
        sched = app.state.scheduler
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "queue": sched.stats if sched is not None else {},
        }

    # ══════════════════════════════════════════════════════════
    #  WEBHOOK
    # ══════════════════════════════════════════════════════════

    @app.api_route("/api/bot", methods=ALL_METHODS)
    async def bot_webhook(request: Request):
        vc = settings.vocechat
        logger.info("webhook_received", method=request.method,
                    bot_id=vc.bot_id, origin=vc.origin,
                    bot_secret=_mask(vc.bot_secret))

        if request.method == "GET":
            return PlainTextResponse("GET: bot resp", status_code=200)
        if request.method != "POST":
            return PlainTextResponse(f"{request.method}: bot resp", status_code=405)

        try:
            raw: Any = await request.json()
            message = parse_inbound(raw)
        except (ValueError, AdmissionError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error("webhook_payload_invalid", error=str(e))
            return PlainTextResponse("Error processing request", status_code=500)

        logger.info("webhook_message", mid=message.mid, from_uid=message.from_uid,
                    group=message.target.is_group,
                    content_type=message.detail.content_type)

        decision = admit(message, vc.bot_id, vc.mention_alias)
        if not decision.accepted:
            logger.info("webhook_message_ignored", mid=message.mid, reason=decision.reason)
            return PlainTextResponse(decision.reason, status_code=200)

        app.state.scheduler.enqueue(message)
        return PlainTextResponse(decision.reason, status_code=200)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
