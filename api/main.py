"""
FastAPI Application — message CRUD and sender control.

Provides:
- Health check with uptime and sender state
- REST API for creating, listing, editing and deleting messages
- Start / stop / status of the background message sender job

Run:
    uvicorn api.main:app --port 8080
"""
from __future__ import annotations

import time
import structlog
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from api import responses
from config.settings import get_settings
from core.container import Container
from core.errors import AppError
from models.schemas import CreateMessageRequest, MessageResponse, UpdateMessageRequest

logger = structlog.get_logger()


def _container(request: Request) -> Container:
    return request.app.state.container


# ──────────────────────────────────────────────────────────────
#  App
# ──────────────────────────────────────────────────────────────

def create_app(container: Optional[Container] = None) -> FastAPI:
    """Build the app. Without a container one is built from settings at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        c = container or Container.from_settings(get_settings())
        app.state.container = c
        app.state.started_at = time.monotonic()
        await c.startup()
        logger.info("message_dispatcher_started", app=c.settings.app_name)
        yield
        await c.shutdown()
        logger.info("message_dispatcher_stopped")

    app = FastAPI(
        title="Message Dispatcher API",
        description="Scheduled batch delivery of pending messages to a webhook",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=str(exc))
        return responses.error(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in e['loc'][1:]) or 'body'}: {e['msg']}"
            for e in exc.errors()
        )
        return responses.error(400, "VALIDATION_ERROR", details or "Invalid request")


def _register_routes(app: FastAPI) -> None:

    # ══════════════════════════════════════════════════════════
    #  HEALTH
    # ══════════════════════════════════════════════════════════

    @app.get("/health")
    async def health(request: Request):
        c = _container(request)
        return responses.success({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(time.monotonic() - request.app.state.started_at, 3),
            "sender_running": c.job.is_running(),
        })

    # ══════════════════════════════════════════════════════════
    #  MESSAGES
    # ══════════════════════════════════════════════════════════

    @app.post("/api/v1/messages")
    async def create_message(req: CreateMessageRequest, request: Request):
        msg = await _container(request).message_service.create(req.phone_number, req.content)
        return responses.success(MessageResponse.from_message(msg), status_code=201)

    @app.get("/api/v1/messages")
    async def list_messages(
        request: Request,
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
    ):
        msgs = await _container(request).message_service.list_messages(limit=limit, offset=offset)
        return responses.success([MessageResponse.from_message(m) for m in msgs])

    @app.get("/api/v1/messages/sent")
    async def list_sent_messages(
        request: Request,
        limit: int = Query(10, ge=1, le=200),
        offset: int = Query(0, ge=0),
    ):
        msgs = await _container(request).message_service.list_sent(limit=limit, offset=offset)
        return responses.success([MessageResponse.from_message(m) for m in msgs])

    @app.get("/api/v1/messages/stats")
    async def message_stats(request: Request):
        return responses.success(await _container(request).message_service.stats())

    @app.get("/api/v1/messages/{message_id}")
    async def get_message(message_id: int, request: Request):
        msg = await _container(request).message_service.get(message_id)
        return responses.success(MessageResponse.from_message(msg))

    @app.patch("/api/v1/messages/{message_id}")
    async def update_message(message_id: int, req: UpdateMessageRequest, request: Request):
        msg = await _container(request).message_service.update(message_id, req.changes())
        return responses.success(MessageResponse.from_message(msg))

    @app.delete("/api/v1/messages/{message_id}")
    async def delete_message(message_id: int, request: Request):
        await _container(request).message_service.delete(message_id)
        return responses.success({"message": "Message deleted"})

    # ══════════════════════════════════════════════════════════
    #  SENDER CONTROL
    # ══════════════════════════════════════════════════════════

    @app.post("/api/v1/sender/start")
    async def start_sender(request: Request):
        await _container(request).job.start()
        return responses.success({"message": "Message sender started"})

    @app.post("/api/v1/sender/stop")
    async def stop_sender(request: Request):
        await _container(request).job.stop()
        return responses.success({"message": "Message sender stopped"})

    @app.get("/api/v1/sender/status")
    async def sender_status(request: Request):
        return responses.success({"running": _container(request).job.is_running()})


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
