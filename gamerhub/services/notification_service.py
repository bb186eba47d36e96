"""
gamerhub.services.notification_service — Notification write path
==================================================================

Any feature that wants to alert a user builds a :class:`NotificationDraft`
and hands it to :func:`create_notification` (or one of the ``notify_*``
creators below, which fill in title/message/URL and skip self-notification).

The write path:

    1. Persist the row.
    2. Count the target user's unread notifications (``is_read = false``).
    3. After commit, push ``receive_notification`` and then
       ``unread_count_updated`` to the user's private group.

Pushes go through a :class:`~gamerhub.realtime.notifier.Notifier`.  When the
user has no live connection the events are simply dropped; the row stays
queryable through the REST endpoints.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.orm import Session, selectinload

from gamerhub.constants import as_utc, iso_utc
from gamerhub.database.engine import get_session
from gamerhub.database.models import (
    EntityType,
    Notification,
    NotificationPriority,
    NotificationType,
    User,
)
from gamerhub.realtime.notifier import Notifier
from gamerhub.services.errors import NotFoundError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Draft
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class NotificationDraft:
    """Everything needed to create one notification row."""

    user_id: int
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    related_entity_type: EntityType | None = None
    related_entity_id: int | None = None
    action_url: str | None = None
    triggered_by_user_id: int | None = None
    image_url: str | None = None
    expires_at: datetime | None = None
    metadata: dict | None = None


# ---------------------------------------------------------------------------
# Entity references
# ---------------------------------------------------------------------------
_ENTITY_FOR_TYPE: dict[NotificationType, EntityType] = {
    NotificationType.LIKE_ON_COMMENT: EntityType.COMMENT,
    NotificationType.DISLIKE_ON_COMMENT: EntityType.COMMENT,
    NotificationType.LIKE_ON_FORUM_TOPIC: EntityType.FORUM_TOPIC,
    NotificationType.LIKE_ON_BLOG_POST: EntityType.BLOG_POST,
    NotificationType.LIKE_ON_GUIDE: EntityType.GUIDE,
    NotificationType.LIKE_ON_USER: EntityType.USER,
    NotificationType.COMMENT_ON_FORUM_TOPIC: EntityType.FORUM_TOPIC,
    NotificationType.COMMENT_ON_BLOG_POST: EntityType.BLOG_POST,
    NotificationType.COMMENT_ON_GUIDE: EntityType.GUIDE,
}

_ENTITY_LABELS: dict[EntityType, str] = {
    EntityType.COMMENT: "Comment",
    EntityType.FORUM_TOPIC: "Forum topic",
    EntityType.BLOG_POST: "Blog post",
    EntityType.GUIDE: "Guide",
    EntityType.GAME: "Game",
    EntityType.USER: "Profile",
    EntityType.CONTENT: "Content",
}

_ENTITY_PATHS: dict[EntityType, str] = {
    EntityType.FORUM_TOPIC: "/forum/topic/{id}",
    EntityType.BLOG_POST: "/blogs/{id}",
    EntityType.GUIDE: "/guides/{id}",
    EntityType.GAME: "/games/{id}",
    EntityType.COMMENT: "/comments/{id}",
    EntityType.USER: "/profile/{id}",
}

# "forum_topic", "ForumTopic" and "forumtopic" all resolve to FORUM_TOPIC
_ENTITY_ALIASES: dict[str, EntityType] = {
    e.value.replace("_", ""): e for e in EntityType
}

GAME_ACTIVITY_LABELS: dict[str, str] = {
    "playing": "playing",
    "played": "played",
    "plan_to_play": "plan to play",
    "not_played": "not played",
    "wont_play": "won't play",
    "dropped": "dropped",
}


def entity_type_for(notification_type: NotificationType | str) -> EntityType:
    """Which kind of entity a like/comment notification points at."""
    try:
        kind = NotificationType(notification_type)
    except ValueError:
        return EntityType.CONTENT
    return _ENTITY_FOR_TYPE.get(kind, EntityType.CONTENT)


def _coerce_entity(entity_type: EntityType | str) -> EntityType | None:
    if isinstance(entity_type, EntityType):
        return entity_type
    return _ENTITY_ALIASES.get(str(entity_type).lower().replace("_", ""))


def entity_url(entity_type: EntityType | str, entity_id: int) -> str:
    """Front-end path for an entity reference."""
    kind = _coerce_entity(entity_type)
    if kind in _ENTITY_PATHS:
        return _ENTITY_PATHS[kind].format(id=entity_id)
    slug = kind.value if kind is not None else str(entity_type).lower()
    return f"/{slug}/{entity_id}"


def truncate_text(text: str | None, max_length: int) -> str | None:
    """Cut *text* to *max_length* characters, ending in ``...`` when cut."""
    if not text or len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def serialize_notification(n: Notification) -> dict:
    trigger = n.triggered_by
    return {
        "id": n.id,
        "user_id": n.user_id,
        "type": n.type,
        "priority": n.priority,
        "title": n.title,
        "message": n.message,
        "image_url": n.image_url,
        "is_read": n.is_read,
        "is_archived": n.is_archived,
        "related_entity_type": n.related_entity_type,
        "related_entity_id": n.related_entity_id,
        "action_url": n.action_url,
        "triggered_by": (
            {"id": trigger.id, "username": trigger.username, "avatar_url": trigger.avatar_url}
            if trigger is not None
            else None
        ),
        "created_at": iso_utc(n.created_at),
        "read_at": iso_utc(n.read_at),
        "expires_at": iso_utc(n.expires_at),
        "metadata": n.metadata_,
    }


def _row_from(draft: NotificationDraft, now: datetime) -> Notification:
    return Notification(
        user_id=draft.user_id,
        type=NotificationType(draft.type).value,
        priority=NotificationPriority(draft.priority).value,
        title=draft.title,
        message=draft.message,
        image_url=draft.image_url,
        related_entity_type=(
            EntityType(draft.related_entity_type).value
            if draft.related_entity_type is not None
            else None
        ),
        related_entity_id=draft.related_entity_id,
        action_url=draft.action_url,
        triggered_by_user_id=draft.triggered_by_user_id,
        expires_at=draft.expires_at,
        metadata_=draft.metadata,
        created_at=now,
    )


def _unread_count(session: Session, user_id: int) -> int:
    return session.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    ) or 0


def _owned(session: Session, user_id: int, notification_id: int) -> Notification:
    row = session.get(Notification, notification_id)
    if row is None or row.user_id != user_id:
        raise NotFoundError(f"Notification {notification_id} not found")
    return row


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------
def _create_many(
    engine: Engine, notifier: Notifier, drafts: list[NotificationDraft]
) -> list[dict]:
    if not drafts:
        return []
    now = datetime.now(UTC)
    with get_session(engine) as session:
        rows = [_row_from(d, now) for d in drafts]
        session.add_all(rows)
        session.flush()
        counts = {uid: _unread_count(session, uid) for uid in {r.user_id for r in rows}}
        payloads = [serialize_notification(r) for r in rows]

    for payload in payloads:
        user_id = payload["user_id"]
        notifier.send_notification_to_user(user_id, payload)
        notifier.send_unread_count_update(user_id, counts[user_id])
    return payloads


def create_notification(
    engine: Engine, notifier: Notifier, draft: NotificationDraft
) -> dict:
    """Persist one notification and push it plus the new unread count."""
    payload = _create_many(engine, notifier, [draft])[0]
    logger.debug("Notification %d (%s) created for user %d",
                 payload["id"], payload["type"], draft.user_id)
    return payload


def notify_multiple_users(
    engine: Engine, notifier: Notifier, user_ids: Iterable[int], draft: NotificationDraft
) -> list[dict]:
    """Fan *draft* out to every id in *user_ids* (duplicates ignored)."""
    drafts = [replace(draft, user_id=uid) for uid in dict.fromkeys(user_ids)]
    payloads = _create_many(engine, notifier, drafts)
    logger.info("Notification %s fanned out to %d users", draft.type, len(payloads))
    return payloads


def notify_followers(
    engine: Engine,
    notifier: Notifier,
    user_id: int,
    notification_type: NotificationType,
    title: str,
    message: str,
    action_url: str | None = None,
) -> list[dict]:
    """Notify every active follower of *user_id* who kept notifications on."""
    from gamerhub.services.follow_service import follower_ids

    recipients = [uid for uid in follower_ids(engine, user_id, notifications_only=True)
                  if uid != user_id]
    draft = NotificationDraft(
        user_id=0,
        type=notification_type,
        title=title,
        message=message,
        action_url=action_url,
        triggered_by_user_id=user_id,
    )
    return notify_multiple_users(engine, notifier, recipients, draft)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_notifications(
    engine: Engine, user_id: int, page: int = 1, page_size: int = 20
) -> dict:
    """Non-archived notifications, newest first."""
    page = max(page, 1)
    with get_session(engine) as session:
        base = (
            Notification.user_id == user_id,
            Notification.is_archived.is_(False),
        )
        total = session.scalar(
            select(func.count()).select_from(Notification).where(*base)
        ) or 0
        rows = session.scalars(
            select(Notification)
            .options(selectinload(Notification.triggered_by))
            .where(*base)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        return {
            "total": total,
            "page": page,
            "page_size": page_size,
            "items": [serialize_notification(n) for n in rows],
        }


def unread_notifications(engine: Engine, user_id: int) -> list[dict]:
    with get_session(engine) as session:
        rows = session.scalars(
            select(Notification)
            .options(selectinload(Notification.triggered_by))
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        ).all()
        return [serialize_notification(n) for n in rows]


def unread_count(engine: Engine, user_id: int) -> int:
    with get_session(engine) as session:
        return _unread_count(session, user_id)


def recent(engine: Engine, user_id: int, count: int = 5) -> list[dict]:
    with get_session(engine) as session:
        rows = session.scalars(
            select(Notification)
            .options(selectinload(Notification.triggered_by))
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(count)
        ).all()
        return [serialize_notification(n) for n in rows]


def get_notification(engine: Engine, user_id: int, notification_id: int) -> dict:
    with get_session(engine) as session:
        return serialize_notification(_owned(session, user_id, notification_id))


def stats(engine: Engine, user_id: int) -> dict:
    """Per-user counters for the notification centre."""
    now = datetime.now(UTC)
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_ago = now - timedelta(days=7)
    mine = Notification.user_id == user_id

    def _count(session: Session, *where) -> int:
        return session.scalar(
            select(func.count()).select_from(Notification).where(mine, *where)
        ) or 0

    with get_session(engine) as session:
        last = session.scalar(select(func.max(Notification.created_at)).where(mine))
        by_type = {
            kind: n
            for kind, n in session.execute(
                select(Notification.type, func.count())
                .where(mine)
                .group_by(Notification.type)
            ).all()
        }
        return {
            "total": _count(session),
            "unread": _count(session, Notification.is_read.is_(False)),
            "today": _count(session, Notification.created_at >= today),
            "week": _count(session, Notification.created_at >= week_ago),
            "archived": _count(session, Notification.is_archived.is_(True)),
            "last_notification_at": iso_utc(as_utc(last)),
            "by_type": by_type,
        }


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def mark_as_read(
    engine: Engine, notifier: Notifier, user_id: int, notification_id: int
) -> int:
    """Mark one notification read; pushes and returns the new unread count."""
    with get_session(engine) as session:
        row = _owned(session, user_id, notification_id)
        if not row.is_read:
            row.is_read = True
            row.read_at = datetime.now(UTC)
            session.flush()
        count = _unread_count(session, user_id)
    notifier.send_unread_count_update(user_id, count)
    return count


def mark_all_as_read(engine: Engine, notifier: Notifier, user_id: int) -> int:
    """Mark every unread notification read; pushes a zero count."""
    with get_session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.now(UTC))
        )
        changed = result.rowcount or 0
    notifier.send_unread_count_update(user_id, 0)
    return changed


def archive(engine: Engine, user_id: int, notification_id: int) -> dict:
    with get_session(engine) as session:
        row = _owned(session, user_id, notification_id)
        row.is_archived = True
        session.flush()
        return serialize_notification(row)


def delete_notification(
    engine: Engine, notifier: Notifier, user_id: int, notification_id: int
) -> None:
    """Delete one notification; re-syncs the count if it was unread."""
    with get_session(engine) as session:
        row = _owned(session, user_id, notification_id)
        was_unread = not row.is_read
        session.delete(row)
        session.flush()
        count = _unread_count(session, user_id)
    if was_unread:
        notifier.send_unread_count_update(user_id, count)


def delete_old_for_user(engine: Engine, user_id: int, days_old: int = 30) -> int:
    cutoff = datetime.now(UTC) - timedelta(days=days_old)
    with get_session(engine) as session:
        result = session.execute(
            delete(Notification).where(
                Notification.user_id == user_id,
                Notification.created_at < cutoff,
            )
        )
        return result.rowcount or 0


# ---------------------------------------------------------------------------
# Creators
#
# Each one returns the created payload, or None when nothing was created
# (self-notification, duplicate profile view).
# ---------------------------------------------------------------------------
def _user(engine: Engine, user_id: int) -> User | None:
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is not None:
            session.expunge(user)
        return user


def _name(user: User | None) -> str:
    return user.username if user is not None else "Someone"


def notify_like(
    engine: Engine,
    notifier: Notifier,
    target_user_id: int,
    trigger_user_id: int,
    like_type: NotificationType,
    entity_id: int,
    entity_title: str,
) -> dict | None:
    if target_user_id == trigger_user_id:
        return None
    trigger = _user(engine, trigger_user_id)
    kind = entity_type_for(like_type)
    label = _ENTITY_LABELS[kind]
    if kind is EntityType.USER:
        title = "Your profile was liked"
        message = f"{_name(trigger)} liked your profile"
    else:
        title = f"Your {label.lower()} was liked"
        message = f'{_name(trigger)} liked your {label.lower()}: "{truncate_text(entity_title, 50)}"'
    return create_notification(engine, notifier, NotificationDraft(
        user_id=target_user_id,
        type=like_type,
        priority=NotificationPriority.LOW,
        title=title,
        message=message,
        image_url=trigger.avatar_url if trigger else None,
        related_entity_type=kind,
        related_entity_id=entity_id,
        action_url=entity_url(kind, entity_id),
        triggered_by_user_id=trigger_user_id,
    ))


def notify_comment(
    engine: Engine,
    notifier: Notifier,
    target_user_id: int,
    trigger_user_id: int,
    comment_type: NotificationType,
    entity_id: int,
    entity_title: str,
    comment_preview: str,
) -> dict | None:
    if target_user_id == trigger_user_id:
        return None
    trigger = _user(engine, trigger_user_id)
    kind = entity_type_for(comment_type)
    label = _ENTITY_LABELS[kind].lower()
    return create_notification(engine, notifier, NotificationDraft(
        user_id=target_user_id,
        type=comment_type,
        priority=NotificationPriority.NORMAL,
        title=f"New comment on your {label}",
        message=f'{_name(trigger)} commented on your {label}: "{truncate_text(comment_preview, 80)}"',
        image_url=trigger.avatar_url if trigger else None,
        related_entity_type=kind,
        related_entity_id=entity_id,
        action_url=entity_url(kind, entity_id),
        triggered_by_user_id=trigger_user_id,
        metadata={"entity_title": entity_title},
    ))


def notify_reply(
    engine: Engine,
    notifier: Notifier,
    target_user_id: int,
    trigger_user_id: int,
    comment_id: int,
    parent_comment_id: int,
    reply_preview: str,
) -> dict | None:
    if target_user_id == trigger_user_id:
        return None
    trigger = _user(engine, trigger_user_id)
    return create_notification(engine, notifier, NotificationDraft(
        user_id=target_user_id,
        type=NotificationType.REPLY_TO_COMMENT,
        title="New reply to your comment",
        message=f'{_name(trigger)} replied to your comment: "{truncate_text(reply_preview, 80)}"',
        image_url=trigger.avatar_url if trigger else None,
        related_entity_type=EntityType.COMMENT,
        related_entity_id=comment_id,
        action_url=entity_url(EntityType.COMMENT, comment_id),
        triggered_by_user_id=trigger_user_id,
        metadata={"parent_comment_id": parent_comment_id},
    ))


def notify_best_answer(
    engine: Engine,
    notifier: Notifier,
    target_user_id: int,
    trigger_user_id: int,
    forum_topic_id: int,
    topic_title: str,
) -> dict | None:
    if target_user_id == trigger_user_id:
        return None
    return create_notification(engine, notifier, NotificationDraft(
        user_id=target_user_id,
        type=NotificationType.BEST_ANSWER_SELECTED,
        priority=NotificationPriority.HIGH,
        title="\U0001f3c6 Best answer selected!",
        message=f'Congratulations! Your answer in "{truncate_text(topic_title, 50)}" was chosen as the best answer.',
        related_entity_type=EntityType.FORUM_TOPIC,
        related_entity_id=forum_topic_id,
        action_url=entity_url(EntityType.FORUM_TOPIC, forum_topic_id),
        triggered_by_user_id=trigger_user_id,
    ))


def notify_user_followed(
    engine: Engine, notifier: Notifier, target_user_id: int, follower_user_id: int
) -> dict | None:
    if target_user_id == follower_user_id:
        return None
    follower = _user(engine, follower_user_id)
    return create_notification(engine, notifier, NotificationDraft(
        user_id=target_user_id,
        type=NotificationType.USER_FOLLOWED,
        title="New follower",
        message=f"{_name(follower)} started following you.",
        image_url=follower.avatar_url if follower else None,
        related_entity_type=EntityType.USER,
        related_entity_id=follower_user_id,
        action_url=entity_url(EntityType.USER, follower_user_id),
        triggered_by_user_id=follower_user_id,
    ))


def notify_user_mentioned(
    engine: Engine,
    notifier: Notifier,
    target_user_id: int,
    trigger_user_id: int,
    entity_id: int,
    entity_type: EntityType | str,
    mention_context: str,
) -> dict | None:
    if target_user_id == trigger_user_id:
        return None
    trigger = _user(engine, trigger_user_id)
    kind = _coerce_entity(entity_type) or EntityType.CONTENT
    return create_notification(engine, notifier, NotificationDraft(
        user_id=target_user_id,
        type=NotificationType.USER_MENTIONED,
        title="You were mentioned",
        message=(
            f"{_name(trigger)} mentioned you in a {_ENTITY_LABELS[kind].lower()}: "
            f'"{truncate_text(mention_context, 80)}"'
        ),
        image_url=trigger.avatar_url if trigger else None,
        related_entity_type=kind,
        related_entity_id=entity_id,
        action_url=entity_url(kind, entity_id),
        triggered_by_user_id=trigger_user_id,
    ))


def notify_favorite(
    engine: Engine,
    notifier: Notifier,
    target_user_id: int,
    trigger_user_id: int,
    entity_type: EntityType | str,
    entity_id: int,
    entity_title: str,
) -> dict | None:
    if target_user_id == trigger_user_id:
        return None
    trigger = _user(engine, trigger_user_id)
    kind = _coerce_entity(entity_type) or EntityType.CONTENT
    return create_notification(engine, notifier, NotificationDraft(
        user_id=target_user_id,
        type=NotificationType.CONTENT_ADDED_TO_FAVORITES,
        priority=NotificationPriority.LOW,
        title="Your content was added to favorites",
        message=(
            f"{_name(trigger)} added your {_ENTITY_LABELS[kind].lower()} to favorites: "
            f'"{truncate_text(entity_title, 50)}"'
        ),
        image_url=trigger.avatar_url if trigger else None,
        related_entity_type=kind,
        related_entity_id=entity_id,
        action_url=entity_url(kind, entity_id),
        triggered_by_user_id=trigger_user_id,
    ))


def notify_game_activity(
    engine: Engine,
    notifier: Notifier,
    target_user_id: int,
    activity: str,
    game_id: int,
    game_name: str,
) -> dict:
    label = GAME_ACTIVITY_LABELS.get(activity, "updated")
    return create_notification(engine, notifier, NotificationDraft(
        user_id=target_user_id,
        type=NotificationType.GAME_STATUS_CHANGED,
        priority=NotificationPriority.LOW,
        title="\U0001f3ae Game status updated",
        message=f'Your status for "{game_name}" is now "{label}".',
        related_entity_type=EntityType.GAME,
        related_entity_id=game_id,
        action_url=entity_url(EntityType.GAME, game_id),
    ))


def notify_system(
    engine: Engine,
    notifier: Notifier,
    user_id: int,
    title: str,
    message: str,
    priority: NotificationPriority = NotificationPriority.NORMAL,
) -> dict:
    return create_notification(engine, notifier, NotificationDraft(
        user_id=user_id,
        type=NotificationType.SYSTEM_NOTIFICATION,
        priority=priority,
        title=title,
        message=message,
    ))


def notify_admin(
    engine: Engine,
    notifier: Notifier,
    user_id: int,
    title: str,
    message: str,
    admin_id: int | None = None,
    priority: NotificationPriority = NotificationPriority.HIGH,
) -> dict:
    return create_notification(engine, notifier, NotificationDraft(
        user_id=user_id,
        type=NotificationType.ADMIN_MESSAGE,
        priority=priority,
        title=title,
        message=message,
        triggered_by_user_id=admin_id,
    ))


def notify_profile_view(
    engine: Engine, notifier: Notifier, profile_owner_id: int, viewer_user_id: int
) -> dict | None:
    """At most one notification per viewer per owner per UTC day."""
    if profile_owner_id == viewer_user_id:
        return None
    start_of_day = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    with get_session(engine) as session:
        already = session.scalar(
            select(Notification.id).where(
                Notification.user_id == profile_owner_id,
                Notification.triggered_by_user_id == viewer_user_id,
                Notification.type == NotificationType.PROFILE_VIEWED.value,
                Notification.created_at >= start_of_day,
            ).limit(1)
        )
    if already is not None:
        return None
    viewer = _user(engine, viewer_user_id)
    if viewer is None:
        return None
    return create_notification(engine, notifier, NotificationDraft(
        user_id=profile_owner_id,
        type=NotificationType.PROFILE_VIEWED,
        priority=NotificationPriority.LOW,
        title="Someone viewed your profile",
        message=f"{viewer.username} viewed your profile",
        image_url=viewer.avatar_url,
        related_entity_type=EntityType.USER,
        related_entity_id=viewer_user_id,
        action_url=entity_url(EntityType.USER, viewer_user_id),
        triggered_by_user_id=viewer_user_id,
    ))


def notify_comment_pinned(
    engine: Engine,
    notifier: Notifier,
    comment_owner_id: int,
    trigger_user_id: int,
    comment_id: int,
    comment_content: str,
) -> dict | None:
    if comment_owner_id == trigger_user_id:
        return None
    trigger = _user(engine, trigger_user_id)
    return create_notification(engine, notifier, NotificationDraft(
        user_id=comment_owner_id,
        type=NotificationType.COMMENT_PINNED,
        priority=NotificationPriority.HIGH,
        title="Your comment was pinned",
        message=f'{_name(trigger)} pinned your comment: "{truncate_text(comment_content, 60)}"',
        image_url=trigger.avatar_url if trigger else None,
        related_entity_type=EntityType.COMMENT,
        related_entity_id=comment_id,
        action_url=entity_url(EntityType.COMMENT, comment_id),
        triggered_by_user_id=trigger_user_id,
    ))
