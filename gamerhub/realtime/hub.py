"""
gamerhub.realtime.hub — Hub base class
========================================

A hub is one WebSocket endpoint with its own connection registry and
outbound dispatcher.  Subclasses declare client-callable methods with
:func:`hub_method`; :meth:`Hub.invoke` validates an inbound frame and
routes it by ``target`` name.

Failure semantics are quiet: anonymous callers, unknown
targets, malformed arguments and errors raised inside a hub method are
logged and ignored.  Nothing is sent back to the client except events the
hub method publishes itself.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import ValidationError
from sqlalchemy import Engine
from starlette.websockets import WebSocket, WebSocketDisconnect

from gamerhub.realtime.dispatcher import EventDispatcher
from gamerhub.realtime.protocol import HubInvocation
from gamerhub.realtime.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

# Claim names that may carry the numeric user id, in priority order.
USER_ID_CLAIMS: tuple[str, ...] = (
    "userId",
    "sub",
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/nameidentifier",
    "nameid",
    "id",
)


def resolve_user_id(claims: Mapping[str, Any] | None) -> int | None:
    """Return the first claim value that parses as an integer, else None."""
    if not claims:
        return None
    for name in USER_ID_CLAIMS:
        value = claims.get(name)
        if value is None or isinstance(value, bool):
            continue
        try:
            return int(str(value).strip())
        except ValueError:
            continue
    return None


def hub_method(func: Callable[..., Awaitable[None]]) -> Callable[..., Awaitable[None]]:
    """Mark a coroutine method as invocable by clients."""
    func.__hub_method__ = True
    return func


class Hub:
    """Base for :class:`ChatHub` and :class:`NotificationHub`."""

    name = "hub"

    def __init__(
        self,
        engine: Engine,
        *,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        send_timeout: float = 5.0,
    ) -> None:
        self.engine = engine
        self.registry = ConnectionRegistry(self.name)
        self.dispatcher = EventDispatcher(
            self.registry,
            max_attempts=max_attempts,
            retry_delay=retry_delay,
            send_timeout=send_timeout,
        )
        self._methods: dict[str, Callable[..., Awaitable[None]]] = {
            attr: getattr(self, attr)
            for attr, value in inspect.getmembers(type(self), inspect.iscoroutinefunction)
            if getattr(value, "__hub_method__", False)
        }

    @property
    def methods(self) -> list[str]:
        return sorted(self._methods)

    # ------------------------------------------------------------------
    # Lifecycle hooks
    # ------------------------------------------------------------------
    async def on_connected(self, conn: Connection) -> None:
        """Called after an authenticated connection has been registered."""

    async def on_disconnected(self, conn: Connection) -> None:
        """Called for an authenticated connection that went away."""
        self.registry.unregister(conn)

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------
    async def connect(self, websocket: Any, claims: Mapping[str, Any] | None) -> Connection:
        conn = Connection(websocket=websocket, user_id=resolve_user_id(claims))
        if not conn.is_authenticated:
            logger.info("[%s] Anonymous connection %s (no user id claim)", self.name, conn.id)
            return conn
        self.registry.register(conn)
        logger.info("[%s] User %d connected (connection %s)", self.name, conn.user_id, conn.id)
        await self.on_connected(conn)
        return conn

    async def disconnect(self, conn: Connection) -> None:
        if not conn.is_authenticated:
            return
        logger.info("[%s] User %d disconnected (connection %s)", self.name, conn.user_id, conn.id)
        await self.on_disconnected(conn)

    async def invoke(self, conn: Connection, frame: str | bytes | Mapping[str, Any]) -> None:
        """Validate one inbound frame and run the hub method it names."""
        try:
            if isinstance(frame, (str, bytes)):
                call = HubInvocation.model_validate_json(frame)
            else:
                call = HubInvocation.model_validate(frame)
        except ValidationError:
            logger.warning("[%s] Malformed frame from connection %s", self.name, conn.id)
            return

        if not conn.is_authenticated:
            return

        method = self._methods.get(call.target)
        if method is None:
            logger.warning("[%s] Unknown hub method %r", self.name, call.target)
            return

        try:
            inspect.signature(method).bind(conn, **call.arguments)
        except TypeError:
            logger.warning(
                "[%s] Bad arguments for %s: %s", self.name, call.target, sorted(call.arguments)
            )
            return

        try:
            await method(conn, **call.arguments)
        except Exception:
            logger.exception(
                "[%s] %s failed for user %s", self.name, call.target, conn.user_id
            )

    async def serve(self, websocket: WebSocket, claims: Mapping[str, Any] | None) -> None:
        """Accept *websocket* and pump frames into :meth:`invoke` until it closes."""
        self.ensure_dispatching()
        await websocket.accept()
        conn = await self.connect(websocket, claims)
        try:
            while True:
                frame = await websocket.receive_text()
                await self.invoke(conn, frame)
        except WebSocketDisconnect:
            pass
        finally:
            await self.disconnect(conn)

    def ensure_dispatching(self) -> None:
        """(Re)start the dispatcher on the running loop if it isn't there already."""
        loop = asyncio.get_running_loop()
        if self.dispatcher.is_running_on(loop):
            return
        self.dispatcher.stop()
        self.dispatcher.start(loop)

    def stats(self) -> dict:
        return {
            "connections": self.registry.connection_count(),
            "online_users": len(self.registry.online_users()),
            "pending_events": self.dispatcher.pending(),
        }
