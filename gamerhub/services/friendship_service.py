"""
gamerhub.services.friendship_service — Friend requests, friendships, blocks
=============================================================================

One ``friendships`` row per unordered user pair.  The row moves through
``pending → accepted | declined | cancelled`` and can be flipped to
``blocked`` from any state.  Re-sending a declined or cancelled request
reuses the row instead of inserting a second one.

Direct chat is gated on an ``accepted`` row (see :func:`are_friends`).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, and_, or_, select
from sqlalchemy.orm import Session

from gamerhub.constants import iso_utc
from gamerhub.database.engine import get_session
from gamerhub.database.models import (
    EntityType,
    Friendship,
    FriendshipStatus,
    NotificationType,
    User,
)
from gamerhub.realtime.notifier import Notifier
from gamerhub.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from gamerhub.services.notification_service import NotificationDraft, create_notification

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def friendship_between(
    session: Session, user_a: int, user_b: int, *, accepted_only: bool = False
) -> Friendship | None:
    """The row linking two users, in either direction."""
    query = select(Friendship).where(
        or_(
            and_(Friendship.sender_id == user_a, Friendship.receiver_id == user_b),
            and_(Friendship.sender_id == user_b, Friendship.receiver_id == user_a),
        )
    )
    if accepted_only:
        query = query.where(Friendship.status == FriendshipStatus.ACCEPTED.value)
    return session.scalars(query.order_by(Friendship.id).limit(1)).first()


def are_friends(engine: Engine, user_a: int, user_b: int) -> bool:
    with get_session(engine) as session:
        return friendship_between(session, user_a, user_b, accepted_only=True) is not None


def serialize_friendship(f: Friendship, viewer_id: int | None = None) -> dict:
    data = {
        "id": f.id,
        "status": f.status,
        "sender": f.sender.summary() if f.sender else {"id": f.sender_id},
        "receiver": f.receiver.summary() if f.receiver else {"id": f.receiver_id},
        "requested_at": iso_utc(f.requested_at),
        "responded_at": iso_utc(f.responded_at),
        "friends_since": iso_utc(f.friends_since),
    }
    if viewer_id is not None:
        data["friend"] = data["receiver"] if f.sender_id == viewer_id else data["sender"]
    return data


def _get(session: Session, friendship_id: int) -> Friendship:
    row = session.get(Friendship, friendship_id)
    if row is None:
        raise NotFoundError(f"Friend request {friendship_id} not found")
    return row


def _require_pending(row: Friendship) -> None:
    if row.status != FriendshipStatus.PENDING:
        raise ValidationError("This friend request is no longer pending")


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------
def send_request(
    engine: Engine, notifier: Notifier, sender_id: int, receiver_id: int
) -> dict:
    """Send (or re-send) a friend request and notify the receiver."""
    if sender_id == receiver_id:
        raise ValidationError("You cannot send a friend request to yourself")

    now = datetime.now(UTC)
    with get_session(engine) as session:
        receiver = session.get(User, receiver_id)
        if receiver is None or not receiver.is_active:
            raise NotFoundError(f"User {receiver_id} not found")
        sender = session.get(User, sender_id)

        row = friendship_between(session, sender_id, receiver_id)
        if row is not None:
            if row.status == FriendshipStatus.ACCEPTED:
                raise ConflictError("You are already friends")
            if row.status == FriendshipStatus.PENDING:
                raise ConflictError("A friend request is already pending")
            if row.status == FriendshipStatus.BLOCKED:
                raise ForbiddenError("Friend requests are blocked between these users")
            row.sender_id = sender_id
            row.receiver_id = receiver_id
            row.status = FriendshipStatus.PENDING.value
            row.requested_at = now
            row.responded_at = None
            row.updated_at = now
        else:
            row = Friendship(
                sender_id=sender_id,
                receiver_id=receiver_id,
                status=FriendshipStatus.PENDING.value,
                requested_at=now,
            )
            session.add(row)
        session.flush()
        session.refresh(row)
        payload = serialize_friendship(row, sender_id)
        sender_name = sender.username if sender else "Someone"
        sender_avatar = sender.avatar_url if sender else None

    create_notification(engine, notifier, NotificationDraft(
        user_id=receiver_id,
        type=NotificationType.FRIEND_REQUEST,
        title="New friend request",
        message=f"{sender_name} sent you a friend request.",
        image_url=sender_avatar,
        related_entity_type=EntityType.USER,
        related_entity_id=sender_id,
        action_url=f"/profile/{sender_id}",
        triggered_by_user_id=sender_id,
    ))
    logger.info("Friend request %d: %d → %d", payload["id"], sender_id, receiver_id)
    return payload


def accept(engine: Engine, notifier: Notifier, user_id: int, friendship_id: int) -> dict:
    """Receiver accepts a pending request; the sender is notified."""
    now = datetime.now(UTC)
    with get_session(engine) as session:
        row = _get(session, friendship_id)
        if row.receiver_id != user_id:
            raise ForbiddenError("Only the receiver can accept a friend request")
        _require_pending(row)
        row.status = FriendshipStatus.ACCEPTED.value
        row.responded_at = now
        row.friends_since = now
        session.flush()
        payload = serialize_friendship(row, user_id)
        sender_id = row.sender_id
        accepter_avatar = row.receiver.avatar_url if row.receiver else None

    create_notification(engine, notifier, NotificationDraft(
        user_id=sender_id,
        type=NotificationType.FRIEND_REQUEST_ACCEPTED,
        title="Friend request accepted",
        message=f"{payload['receiver'].get('username') or 'Someone'} accepted your friend request.",
        image_url=accepter_avatar,
        related_entity_type=EntityType.USER,
        related_entity_id=user_id,
        action_url=f"/profile/{user_id}",
        triggered_by_user_id=user_id,
    ))
    return payload


def decline(engine: Engine, user_id: int, friendship_id: int) -> dict:
    with get_session(engine) as session:
        row = _get(session, friendship_id)
        if row.receiver_id != user_id:
            raise ForbiddenError("Only the receiver can decline a friend request")
        _require_pending(row)
        row.status = FriendshipStatus.DECLINED.value
        row.responded_at = datetime.now(UTC)
        session.flush()
        return serialize_friendship(row, user_id)


def cancel(engine: Engine, user_id: int, friendship_id: int) -> dict:
    with get_session(engine) as session:
        row = _get(session, friendship_id)
        if row.sender_id != user_id:
            raise ForbiddenError("Only the sender can cancel a friend request")
        _require_pending(row)
        row.status = FriendshipStatus.CANCELLED.value
        row.responded_at = datetime.now(UTC)
        session.flush()
        return serialize_friendship(row, user_id)


# ---------------------------------------------------------------------------
# Friendships & blocks
# ---------------------------------------------------------------------------
def remove(engine: Engine, user_id: int, friend_id: int) -> None:
    with get_session(engine) as session:
        row = friendship_between(session, user_id, friend_id, accepted_only=True)
        if row is None:
            raise NotFoundError("You are not friends with this user")
        session.delete(row)
    logger.info("Friendship between %d and %d removed", user_id, friend_id)


def block(engine: Engine, user_id: int, target_id: int) -> dict:
    if user_id == target_id:
        raise ValidationError("You cannot block yourself")
    now = datetime.now(UTC)
    with get_session(engine) as session:
        if session.get(User, target_id) is None:
            raise NotFoundError(f"User {target_id} not found")
        row = friendship_between(session, user_id, target_id)
        if row is None:
            row = Friendship(sender_id=user_id, receiver_id=target_id, requested_at=now)
            session.add(row)
        row.status = FriendshipStatus.BLOCKED.value
        row.is_blocked = True
        row.blocked_by_id = user_id
        row.blocked_at = now
        row.friends_since = None
        session.flush()
        session.refresh(row)
        return serialize_friendship(row, user_id)


def unblock(engine: Engine, user_id: int, target_id: int) -> None:
    """Lift a block placed by *user_id*.  The pair starts over from scratch."""
    with get_session(engine) as session:
        row = friendship_between(session, user_id, target_id)
        if (
            row is None
            or row.status != FriendshipStatus.BLOCKED
            or row.blocked_by_id != user_id
        ):
            raise NotFoundError("You have not blocked this user")
        session.delete(row)


def list_friends(engine: Engine, user_id: int) -> list[dict]:
    with get_session(engine) as session:
        rows = session.scalars(
            select(Friendship)
            .where(
                or_(Friendship.sender_id == user_id, Friendship.receiver_id == user_id),
                Friendship.status == FriendshipStatus.ACCEPTED.value,
            )
            .order_by(Friendship.friends_since.desc(), Friendship.id.desc())
        ).all()
        friends = []
        for row in rows:
            friend = row.receiver if row.sender_id == user_id else row.sender
            if friend is None:
                continue
            friends.append({
                **friend.summary(),
                "is_online": friend.is_online,
                "last_active_at": iso_utc(friend.last_active_at),
                "friendship_id": row.id,
                "friends_since": iso_utc(row.friends_since),
            })
        return friends


def _pending(engine: Engine, user_id: int, *, incoming: bool) -> list[dict]:
    column = Friendship.receiver_id if incoming else Friendship.sender_id
    with get_session(engine) as session:
        rows = session.scalars(
            select(Friendship)
            .where(column == user_id, Friendship.status == FriendshipStatus.PENDING.value)
            .order_by(Friendship.requested_at.desc(), Friendship.id.desc())
        ).all()
        return [serialize_friendship(r, user_id) for r in rows]


def incoming_requests(engine: Engine, user_id: int) -> list[dict]:
    return _pending(engine, user_id, incoming=True)


def sent_requests(engine: Engine, user_id: int) -> list[dict]:
    return _pending(engine, user_id, incoming=False)


def status_between(engine: Engine, user_id: int, other_id: int) -> dict:
    with get_session(engine) as session:
        row = friendship_between(session, user_id, other_id)
        if row is None:
            return {"status": "none", "friendship_id": None, "is_sender": False}
        return {
            "status": row.status,
            "friendship_id": row.id,
            "is_sender": row.sender_id == user_id,
            "blocked_by_me": row.blocked_by_id == user_id if row.is_blocked else False,
        }
