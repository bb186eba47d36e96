"""
gamerhub.api.routes.messages — Message endpoints (JWT‑protected)
==================================================================

Sending happens over the chat hub; REST only covers what the navbar and
message menus need.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from gamerhub.api.deps import get_current_user_id, get_engine
from gamerhub.services import conversation_service

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/unread-count")
def unread_count(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"count": conversation_service.total_unread_message_count(engine, user_id)}


@router.delete("/{message_id}")
def delete_message(
    message_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return conversation_service.delete_message(engine, user_id, message_id)
