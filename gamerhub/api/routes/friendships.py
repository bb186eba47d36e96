"""
gamerhub.api.routes.friendships — Friend requests & blocks (JWT‑protected)
============================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from gamerhub.api.deps import get_current_user_id, get_engine, get_notifier
from gamerhub.realtime.notifier import Notifier
from gamerhub.services import friendship_service

router = APIRouter(prefix="/friendships", tags=["friendships"])


class FriendRequestCreate(BaseModel):
    user_id: int


@router.get("")
def list_friends(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"friends": friendship_service.list_friends(engine, user_id)}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
@router.post("/requests", status_code=201)
def send_request(
    body: FriendRequestCreate,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    return friendship_service.send_request(engine, notifier, user_id, body.user_id)


@router.get("/requests/incoming")
def incoming(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"requests": friendship_service.incoming_requests(engine, user_id)}


@router.get("/requests/sent")
def sent(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"requests": friendship_service.sent_requests(engine, user_id)}


@router.post("/requests/{friendship_id}/accept")
def accept(
    friendship_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    return friendship_service.accept(engine, notifier, user_id, friendship_id)


@router.post("/requests/{friendship_id}/decline")
def decline(
    friendship_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return friendship_service.decline(engine, user_id, friendship_id)


@router.post("/requests/{friendship_id}/cancel")
def cancel(
    friendship_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return friendship_service.cancel(engine, user_id, friendship_id)


# ---------------------------------------------------------------------------
# Friends & blocks
# ---------------------------------------------------------------------------
@router.get("/status/{other_id}")
def status_with(
    other_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return friendship_service.status_between(engine, user_id, other_id)


@router.post("/block/{target_id}")
def block(
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return friendship_service.block(engine, user_id, target_id)


@router.delete("/block/{target_id}")
def unblock(
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    friendship_service.unblock(engine, user_id, target_id)
    return {"user_id": target_id, "blocked": False}


@router.delete("/{friend_id}")
def remove_friend(
    friend_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    friendship_service.remove(engine, user_id, friend_id)
    return {"user_id": friend_id, "removed": True}
