"""
gamerhub.api.routes.auth — Current identity
=============================================

Tokens are issued by the identity service; this API only verifies them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from gamerhub.api.deps import get_current_claims, get_engine
from gamerhub.database.engine import get_session
from gamerhub.database.models import User
from gamerhub.realtime.hub import resolve_user_id

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me")
def me(claims: dict = Depends(get_current_claims), engine=Depends(get_engine)):
    """Return the caller's resolved identity and profile summary."""
    user_id = resolve_user_id(claims)
    profile = None
    if user_id is not None:
        with get_session(engine) as session:
            user = session.get(User, user_id)
            if user is not None:
                profile = user.summary()
    return {
        "id": user_id,
        "username": profile["username"] if profile else claims.get("username"),
        "display_name": profile["display_name"] if profile else None,
        "avatar_url": profile["avatar_url"] if profile else None,
        "is_admin": bool(claims.get("is_admin") or claims.get("role") == "Admin"),
    }
