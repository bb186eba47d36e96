"""
gamerhub.api.routes.notifications — Notification centre endpoints
===================================================================

Per-user reads and mutations (JWT‑protected) plus three admin-only
endpoints: system and admin notifications, and an on-demand cleanup run.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from gamerhub.api.deps import (
    get_config,
    get_current_admin,
    get_current_user_id,
    get_engine,
    get_notifier,
)
from gamerhub.config import GamerHubConfig
from gamerhub.database.models import NotificationPriority
from gamerhub.realtime.hub import resolve_user_id
from gamerhub.realtime.notifier import Notifier
from gamerhub.services import notification_service, retention_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SystemNotificationCreate(BaseModel):
    title: str
    message: str
    user_id: int | None = None  # None → live broadcast to every connection
    priority: NotificationPriority = NotificationPriority.NORMAL


class AdminNotificationCreate(BaseModel):
    user_id: int
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.HIGH


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("")
def list_notifications(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return notification_service.list_notifications(engine, user_id, page, page_size)


@router.get("/unread")
def unread(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"notifications": notification_service.unread_notifications(engine, user_id)}


@router.get("/unread-count")
def unread_count(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"count": notification_service.unread_count(engine, user_id)}


@router.get("/recent")
def recent(
    count: int = Query(5, ge=1, le=50),
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"notifications": notification_service.recent(engine, user_id, count)}


@router.get("/stats")
def stats(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return notification_service.stats(engine, user_id)


# ---------------------------------------------------------------------------
# Bulk mutations
# ---------------------------------------------------------------------------
@router.post("/read-all")
def mark_all_read(
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    changed = notification_service.mark_all_as_read(engine, notifier, user_id)
    return {"updated": changed, "unread_count": 0}


@router.delete("/old")
def delete_old(
    days_old: int = Query(30, ge=1),
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return {"deleted": notification_service.delete_old_for_user(engine, user_id, days_old)}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@router.post("/system")
def create_system_notification(
    body: SystemNotificationCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    if body.user_id is None:
        notifier.send_system_notification(body.message, body.title)
        return {"broadcast": True}
    notification = notification_service.notify_system(
        engine, notifier, body.user_id, body.title, body.message, body.priority
    )
    return {"broadcast": False, "notification": notification}


@router.post("/admin")
def create_admin_notification(
    body: AdminNotificationCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    return notification_service.notify_admin(
        engine,
        notifier,
        body.user_id,
        body.title,
        body.message,
        admin_id=resolve_user_id(admin),
        priority=body.priority,
    )


@router.post("/cleanup")
def run_cleanup(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    cfg: GamerHubConfig = Depends(get_config),
):
    result = retention_service.run_notification_cleanup(engine, cfg)
    return {**result, "stats": retention_service.get_notification_stats(engine)}


# ---------------------------------------------------------------------------
# Single notification
# ---------------------------------------------------------------------------
@router.get("/{notification_id}")
def get_notification(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return notification_service.get_notification(engine, user_id, notification_id)


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    count = notification_service.mark_as_read(engine, notifier, user_id, notification_id)
    return {"id": notification_id, "unread_count": count}


@router.post("/{notification_id}/archive")
def archive(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
):
    return notification_service.archive(engine, user_id, notification_id)


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    engine=Depends(get_engine),
    notifier: Notifier = Depends(get_notifier),
):
    notification_service.delete_notification(engine, notifier, user_id, notification_id)
    return {"id": notification_id, "deleted": True}
