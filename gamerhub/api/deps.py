"""
gamerhub.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated, Any

import jwt
from fastapi import Depends, Header, HTTPException, WebSocket, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from gamerhub.config import GamerHubConfig, load_config
from gamerhub.database.engine import create_db_engine
from gamerhub.realtime.chat_hub import ChatHub
from gamerhub.realtime.hub import resolve_user_id
from gamerhub.realtime.notification_hub import NotificationHub
from gamerhub.realtime.notifier import HubNotifier, Notifier

_WEAK_SECRETS = frozenset({
    "gamerhub-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


def decode_token(token: str) -> dict:
    """Verify an HS256 token issued by the identity service."""
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])


# ---------------------------------------------------------------------------
# Infrastructure singletons
# ---------------------------------------------------------------------------
@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> GamerHubConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_chat_hub() -> ChatHub:
    cfg = get_config()
    return ChatHub(
        get_engine(),
        presence_grace_seconds=cfg.presence_grace_seconds,
        notifier=HubNotifier(get_notification_hub()),
        max_attempts=cfg.dispatch_max_attempts,
        retry_delay=cfg.dispatch_retry_delay,
        send_timeout=cfg.dispatch_send_timeout,
    )


@lru_cache(maxsize=1)
def get_notification_hub() -> NotificationHub:
    cfg = get_config()
    return NotificationHub(
        get_engine(),
        max_attempts=cfg.dispatch_max_attempts,
        retry_delay=cfg.dispatch_retry_delay,
        send_timeout=cfg.dispatch_send_timeout,
    )


def get_notifier(
    hub: Annotated[NotificationHub, Depends(get_notification_hub)],
) -> Notifier:
    return HubNotifier(hub)


# ---------------------------------------------------------------------------
# REST authentication
# ---------------------------------------------------------------------------
def get_current_claims(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate the Bearer JWT and return its claims. Raises 401 if invalid."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        return decode_token(token)
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")


def get_current_user_id(claims: dict = Depends(get_current_claims)) -> int:
    user_id = resolve_user_id(claims)
    if user_id is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    return user_id


def get_current_admin(claims: dict = Depends(get_current_claims)) -> dict:
    """Claims of an admin caller. Raises 403 for everyone else."""
    if not (claims.get("is_admin") or claims.get("role") == "Admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return claims


# ---------------------------------------------------------------------------
# Hub authentication
# ---------------------------------------------------------------------------
def get_hub_claims(websocket: WebSocket) -> dict[str, Any] | None:
    """Claims for a hub connection, or None for an anonymous one.

    Browsers cannot set headers on a WebSocket handshake, so the token may
    arrive as the ``access_token`` query parameter instead.
    """
    token = websocket.query_params.get("access_token")
    if not token:
        authorization = websocket.headers.get("authorization", "")
        if authorization.startswith("Bearer "):
            token = authorization.split(" ", 1)[1]
    if not token:
        return None
    try:
        return decode_token(token)
    except InvalidTokenError:
        return None
