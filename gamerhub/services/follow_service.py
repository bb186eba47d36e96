"""
gamerhub.services.follow_service — Asymmetric follow graph
============================================================

Follows are soft-deleted: unfollowing flips ``is_active`` and re-following
reactivates the same row.  Each edge carries its own
``notifications_enabled`` switch, honoured by
:func:`gamerhub.services.notification_service.notify_followers`.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from gamerhub.constants import iso_utc
from gamerhub.database.engine import get_session
from gamerhub.database.models import Follow, User
from gamerhub.realtime.notifier import Notifier
from gamerhub.services.errors import ConflictError, NotFoundError, ValidationError
from gamerhub.services.notification_service import notify_user_followed

logger = logging.getLogger(__name__)


def _edge(session: Session, follower_id: int, following_id: int) -> Follow | None:
    return session.scalar(
        select(Follow).where(
            Follow.follower_id == follower_id,
            Follow.following_id == following_id,
        )
    )


def _serialize(f: Follow, other: User | None) -> dict:
    return {
        **(other.summary() if other else {"id": None}),
        "followed_at": iso_utc(f.followed_at),
        "notifications_enabled": f.notifications_enabled,
    }


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def follow(engine: Engine, notifier: Notifier, follower_id: int, following_id: int) -> dict:
    """Start following *following_id* and notify them."""
    if follower_id == following_id:
        raise ValidationError("You cannot follow yourself")
    now = datetime.now(UTC)
    with get_session(engine) as session:
        target = session.get(User, following_id)
        if target is None or not target.is_active:
            raise NotFoundError(f"User {following_id} not found")
        edge = _edge(session, follower_id, following_id)
        if edge is not None and edge.is_active:
            raise ConflictError("You are already following this user")
        if edge is None:
            edge = Follow(follower_id=follower_id, following_id=following_id, followed_at=now)
            session.add(edge)
        else:
            edge.is_active = True
            edge.followed_at = now
            edge.unfollowed_at = None
        session.flush()
        payload = _serialize(edge, target)

    notify_user_followed(engine, notifier, following_id, follower_id)
    logger.info("User %d now follows %d", follower_id, following_id)
    return payload


def unfollow(engine: Engine, follower_id: int, following_id: int) -> None:
    with get_session(engine) as session:
        edge = _edge(session, follower_id, following_id)
        if edge is None or not edge.is_active:
            raise NotFoundError("You are not following this user")
        edge.is_active = False
        edge.unfollowed_at = datetime.now(UTC)


def set_notifications(
    engine: Engine, follower_id: int, following_id: int, enabled: bool
) -> dict:
    with get_session(engine) as session:
        edge = _edge(session, follower_id, following_id)
        if edge is None or not edge.is_active:
            raise NotFoundError("You are not following this user")
        edge.notifications_enabled = enabled
        session.flush()
        return _serialize(edge, edge.following)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def followers(engine: Engine, user_id: int, page: int = 1, page_size: int = 20) -> list[dict]:
    page = max(page, 1)
    with get_session(engine) as session:
        rows = session.execute(
            select(Follow, User)
            .join(User, User.id == Follow.follower_id)
            .where(Follow.following_id == user_id, Follow.is_active.is_(True))
            .order_by(Follow.followed_at.desc(), Follow.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return [_serialize(f, u) for f, u in rows]


def following(engine: Engine, user_id: int, page: int = 1, page_size: int = 20) -> list[dict]:
    page = max(page, 1)
    with get_session(engine) as session:
        rows = session.execute(
            select(Follow, User)
            .join(User, User.id == Follow.following_id)
            .where(Follow.follower_id == user_id, Follow.is_active.is_(True))
            .order_by(Follow.followed_at.desc(), Follow.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return [_serialize(f, u) for f, u in rows]


def follower_ids(engine: Engine, user_id: int, notifications_only: bool = False) -> list[int]:
    """Ids of active followers, optionally only those who want notifications."""
    query = select(Follow.follower_id).where(
        Follow.following_id == user_id, Follow.is_active.is_(True)
    )
    if notifications_only:
        query = query.where(Follow.notifications_enabled.is_(True))
    with get_session(engine) as session:
        return list(session.scalars(query.order_by(Follow.follower_id)).all())


def follow_stats(engine: Engine, user_id: int) -> dict:
    with get_session(engine) as session:
        n_followers = session.scalar(
            select(func.count()).select_from(Follow).where(
                Follow.following_id == user_id, Follow.is_active.is_(True)
            )
        ) or 0
        n_following = session.scalar(
            select(func.count()).select_from(Follow).where(
                Follow.follower_id == user_id, Follow.is_active.is_(True)
            )
        ) or 0
    return {"followers": n_followers, "following": n_following}


def is_following(engine: Engine, follower_id: int, following_id: int) -> bool:
    with get_session(engine) as session:
        edge = _edge(session, follower_id, following_id)
        return edge is not None and edge.is_active
