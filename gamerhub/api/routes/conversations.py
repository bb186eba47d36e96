"""
gamerhub.api.routes.conversations — Conversation endpoints (JWT‑protected)
============================================================================

Membership changes made here are mirrored into the live chat hub so that
already-connected sockets start (or stop) receiving the conversation's
events without reconnecting.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from gamerhub.api.deps import get_chat_hub, get_current_user_id, get_engine
from gamerhub.realtime.chat_hub import ChatHub
from gamerhub.services import conversation_service

router = APIRouter(prefix="/conversations", tags=["conversations"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class DirectConversationCreate(BaseModel):
    user_id: int


class GroupConversationCreate(BaseModel):
    title: str
    participant_ids: list[int] = Field(default_factory=list)
    description: str | None = None
    group_image_url: str | None = None


class ParticipantAdd(BaseModel):
    user_id: int


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------
@router.get("")
def list_conversations(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"conversations": conversation_service.list_conversations(engine, user_id)}


@router.get("/search")
def search_conversations(
    q: str = Query(""),
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"conversations": conversation_service.search_conversations(engine, user_id, q)}


@router.get("/unread-count")
def unread_count(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"count": conversation_service.total_unread_message_count(engine, user_id)}


@router.get("/{conversation_id}")
def get_conversation(
    conversation_id: int,
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return conversation_service.get_conversation(engine, user_id, conversation_id, skip, take)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
@router.post("/direct")
def start_direct(
    body: DirectConversationCreate,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    hub: ChatHub = Depends(get_chat_hub),
):
    result = conversation_service.start_direct_conversation(engine, user_id, body.user_id)
    for uid in (user_id, body.user_id):
        hub.join_user_to_conversation(uid, result["conversation_id"])
    return result


@router.post("/group", status_code=201)
def create_group(
    body: GroupConversationCreate,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    hub: ChatHub = Depends(get_chat_hub),
):
    result = conversation_service.create_group_conversation(
        engine,
        user_id,
        title=body.title,
        participant_ids=body.participant_ids,
        description=body.description,
        group_image_url=body.group_image_url,
    )
    for uid in result["participant_ids"]:
        hub.join_user_to_conversation(uid, result["conversation_id"])
    return result


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
@router.post("/{conversation_id}/participants")
def add_participant(
    conversation_id: int,
    body: ParticipantAdd,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    hub: ChatHub = Depends(get_chat_hub),
):
    result = conversation_service.add_participant(engine, user_id, conversation_id, body.user_id)
    hub.join_user_to_conversation(body.user_id, conversation_id)
    return result


@router.delete("/{conversation_id}/participants/{target_id}")
def kick_participant(
    conversation_id: int,
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    hub: ChatHub = Depends(get_chat_hub),
):
    result = conversation_service.kick_participant(engine, user_id, conversation_id, target_id)
    hub.remove_user_from_conversation(target_id, conversation_id)
    return result


@router.post("/{conversation_id}/leave")
def leave_conversation(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    hub: ChatHub = Depends(get_chat_hub),
):
    result = conversation_service.leave_conversation(engine, user_id, conversation_id)
    hub.remove_user_from_conversation(user_id, conversation_id)
    return result


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
@router.post("/{conversation_id}/read")
def mark_read(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return conversation_service.mark_conversation_read(engine, user_id, conversation_id)


@router.delete("/{conversation_id}/messages")
def clear_messages(
    conversation_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    cleared = conversation_service.clear_messages(engine, user_id, conversation_id)
    return {"conversation_id": conversation_id, "cleared": cleared}
