"""
gamerhub.api.main — FastAPI application entry point
=====================================================

REST routers under ``/api`` plus the two WebSocket hubs:

* ``/hubs/chat``           — live chat (:class:`~gamerhub.realtime.chat_hub.ChatHub`)
* ``/hubs/notifications``  — notification push (:class:`~gamerhub.realtime.notification_hub.NotificationHub`)

Run with::

    uvicorn gamerhub.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from gamerhub.api.deps import (  # noqa: E402
    get_chat_hub,
    get_config,
    get_engine,
    get_hub_claims,
    get_notification_hub,
)
from gamerhub.api.routes.auth import router as auth_router  # noqa: E402
from gamerhub.api.routes.conversations import router as conversations_router  # noqa: E402
from gamerhub.api.routes.follows import router as follows_router  # noqa: E402
from gamerhub.api.routes.friendships import router as friendships_router  # noqa: E402
from gamerhub.api.routes.messages import router as messages_router  # noqa: E402
from gamerhub.api.routes.notifications import router as notifications_router  # noqa: E402
from gamerhub.realtime.chat_hub import ChatHub  # noqa: E402
from gamerhub.realtime.notification_hub import NotificationHub  # noqa: E402
from gamerhub.services.errors import ServiceError  # noqa: E402
from gamerhub.services.retention_service import CleanupLoop  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — start hub dispatchers and notification cleanup."""
    engine = get_engine()
    cfg = get_config()
    hubs = (get_chat_hub(), get_notification_hub())
    for hub in hubs:
        hub.ensure_dispatching()

    cleanup = CleanupLoop(engine, cfg)
    cleanup.start()
    logger.info(
        "%s API started — engine ready (%s), cleanup every %d min",
        cfg.community_name, engine.url.database, cfg.cleanup_interval_minutes,
    )
    yield
    cleanup.stop()
    for hub in hubs:
        await hub.dispatcher.drain_once()
        hub.dispatcher.stop()
    logger.info("%s API shutting down", cfg.community_name)


app = FastAPI(
    title="GamerHub Social API",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    body: dict[str, Any] = {"code": exc.code, "message": exc.message}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content={"error": body})


# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(conversations_router, prefix="/api")
app.include_router(messages_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(friendships_router, prefix="/api")
app.include_router(follows_router, prefix="/api")


# ---------------------------------------------------------------------------
# Hubs
# ---------------------------------------------------------------------------
@app.websocket("/hubs/chat")
async def chat_hub_endpoint(
    websocket: WebSocket,
    hub: ChatHub = Depends(get_chat_hub),
    claims: dict | None = Depends(get_hub_claims),
):
    await hub.serve(websocket, claims)


@app.websocket("/hubs/notifications")
async def notification_hub_endpoint(
    websocket: WebSocket,
    hub: NotificationHub = Depends(get_notification_hub),
    claims: dict | None = Depends(get_hub_claims),
):
    await hub.serve(websocket, claims)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/health/realtime")
def realtime_health(
    chat: ChatHub = Depends(get_chat_hub),
    notifications: NotificationHub = Depends(get_notification_hub),
):
    """Connection counts and queue depth for both hubs."""
    return {"chat": chat.stats(), "notifications": notifications.stats()}
