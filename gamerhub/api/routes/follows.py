"""
gamerhub.api.routes.follows — Follow graph endpoints (JWT‑protected)
======================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from gamerhub.api.deps import get_current_user_id, get_engine, get_notifier
from gamerhub.realtime.notifier import Notifier
from gamerhub.services import follow_service

router = APIRouter(prefix="/follows", tags=["follows"])


class FollowNotificationsUpdate(BaseModel):
    enabled: bool


@router.post("/{target_id}", status_code=201)
def follow(
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    return follow_service.follow(engine, notifier, user_id, target_id)


@router.delete("/{target_id}")
def unfollow(
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    follow_service.unfollow(engine, user_id, target_id)
    return {"user_id": target_id, "following": False}


@router.put("/{target_id}/notifications")
def set_notifications(
    target_id: int,
    body: FollowNotificationsUpdate,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return follow_service.set_notifications(engine, user_id, target_id, body.enabled)


@router.get("/{target_id}/followers")
def followers(
    target_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"followers": follow_service.followers(engine, target_id, page, page_size)}


@router.get("/{target_id}/following")
def following(
    target_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"following": follow_service.following(engine, target_id, page, page_size)}


@router.get("/{target_id}/stats")
def stats(
    target_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {
        **follow_service.follow_stats(engine, target_id),
        "is_following": follow_service.is_following(engine, user_id, target_id),
    }
