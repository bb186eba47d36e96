"""
gamerhub.constants — Shared Constants & Helpers
================================================

Group naming, hub event names and field limits.  Import from here instead
of spelling group names or event strings inline in hubs and services.
"""

from __future__ import annotations

from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Field limits
# ---------------------------------------------------------------------------
MAX_MESSAGE_LENGTH = 2000
MAX_EMOJI_LENGTH = 10
MAX_GROUP_TITLE_LENGTH = 100


# ---------------------------------------------------------------------------
# Broadcast groups
# ---------------------------------------------------------------------------
def user_group(user_id: int) -> str:
    """Private group holding every live connection of one user."""
    return f"user:{user_id}"


def conversation_group(conversation_id: int) -> str:
    return f"conversation:{conversation_id}"


# ---------------------------------------------------------------------------
# Server → client event names
# ---------------------------------------------------------------------------
EVENT_RECEIVE_MESSAGE = "receive_message"
EVENT_MESSAGE_READ = "message_read"
EVENT_REACTION_UPDATE = "reaction_update"
EVENT_USER_TYPING = "user_typing"
EVENT_USER_STOPPED_TYPING = "user_stopped_typing"
EVENT_MESSAGE_ERROR = "message_error"

EVENT_RECEIVE_NOTIFICATION = "receive_notification"
EVENT_UNREAD_COUNT_UPDATED = "unread_count_updated"
EVENT_RECEIVE_SYSTEM_NOTIFICATION = "receive_system_notification"
EVENT_USER_ONLINE_STATUS_CHANGED = "user_online_status_changed"


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------
def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def iso_utc(value: datetime | None) -> str | None:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""
    value = as_utc(value)
    if value is None:
        return None
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
