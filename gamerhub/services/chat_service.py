"""
gamerhub.services.chat_service — Chat write path
==================================================

Synchronous database work behind :class:`~gamerhub.realtime.chat_hub.ChatHub`.
Every function opens its own session, returns a small result object (or
``None`` for "nothing happened") and never publishes anything itself: the
hub decides what to broadcast.

Sending a message is one transaction: the message insert and the
conversation's denormalized ``last_message_id`` / ``last_message_at``
pointer update commit together or not at all.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gamerhub.constants import MAX_EMOJI_LENGTH, MAX_MESSAGE_LENGTH, iso_utc
from gamerhub.database.engine import get_session
from gamerhub.database.models import (
    Conversation,
    ConversationParticipant,
    ConversationType,
    Message,
    MessageRead,
    MessageReaction,
    MessageStatus,
    MessageType,
    User,
)
from gamerhub.services.friendship_service import friendship_between

logger = logging.getLogger(__name__)

NOT_FRIENDS_MESSAGE = "You can only send messages to your friends."


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
class SendStatus(enum.StrEnum):
    SENT = "sent"
    NOT_PARTICIPANT = "not_participant"
    NOT_FRIENDS = "not_friends"
    INVALID = "invalid"


@dataclass(frozen=True, slots=True)
class SendResult:
    status: SendStatus
    payload: dict | None = None

    @property
    def ok(self) -> bool:
        return self.status is SendStatus.SENT


@dataclass(frozen=True, slots=True)
class ReadReceipt:
    message_id: int
    conversation_id: int
    sender_id: int
    user_id: int
    read_at: datetime

    @property
    def notify(self) -> bool:
        """Senders are not told about reads of their own message."""
        return self.sender_id != self.user_id

    def payload(self) -> dict:
        return {
            "message_id": self.message_id,
            "user_id": self.user_id,
            "read_at": iso_utc(self.read_at),
        }


@dataclass(frozen=True, slots=True)
class ReactionUpdate:
    message_id: int
    conversation_id: int
    added: bool
    reactions: list[dict] = field(default_factory=list)

    def payload(self) -> dict:
        return {"message_id": self.message_id, "reactions": self.reactions}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def classify_media(media_url: str | None, media_type: str | None) -> MessageType:
    """Pick the message type from a MIME-ish hint.  No media → text.

    ``image/*`` wins over the gif check, so ``image/gif`` is an image; a bare
    ``gif`` hint is a gif.
    """
    if not media_url:
        return MessageType.TEXT
    hint = (media_type or "").lower()
    if hint.startswith("image/"):
        return MessageType.IMAGE
    if "gif" in hint:
        return MessageType.GIF
    if hint.startswith("video/"):
        return MessageType.VIDEO
    return MessageType.TEXT


def user_summary(user: User | None, user_id: int | None = None) -> dict:
    if user is None:
        return {"id": user_id, "username": None, "avatar_url": None, "display_name": None}
    return user.summary()


def _reply_summary(reply: Message | None) -> dict | None:
    if reply is None:
        return None
    sender = reply.sender
    return {
        "id": reply.id,
        "content": reply.content,
        "media_url": reply.media_url,
        "sender": {
            "id": reply.sender_id,
            "username": sender.username if sender else None,
            "avatar_url": sender.avatar_url if sender else None,
        },
    }


def serialize_message(message: Message, reply: Message | None = None) -> dict:
    """Wire shape of one message, as broadcast in ``receive_message``."""
    if reply is None and message.reply_to_message_id is not None:
        reply = message.reply_to
        if reply is not None and reply.is_deleted:
            reply = None
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "content": message.content,
        "type": message.type,
        "media_url": message.media_url,
        "media_type": message.media_type,
        "reply_to_message": _reply_summary(reply),
        "sender": user_summary(message.sender, message.sender_id),
        "created_at": iso_utc(message.created_at),
        "is_edited": message.is_edited,
    }


def group_reactions(rows: list[tuple[MessageReaction, str | None]]) -> list[dict]:
    """Group ``(reaction, username)`` rows by emoji, first-seen order."""
    grouped: dict[str, dict] = {}
    for reaction, username in rows:
        entry = grouped.setdefault(
            reaction.emoji, {"emoji": reaction.emoji, "count": 0, "users": []}
        )
        entry["count"] += 1
        entry["users"].append({"user_id": reaction.user_id, "username": username})
    return list(grouped.values())


def _reaction_rows(session: Session, message_id: int) -> list[tuple[MessageReaction, str | None]]:
    return [
        (reaction, username)
        for reaction, username in session.execute(
            select(MessageReaction, User.username)
            .outerjoin(User, User.id == MessageReaction.user_id)
            .where(MessageReaction.message_id == message_id)
            .order_by(MessageReaction.created_at, MessageReaction.id)
        ).all()
    ]


def _active_participant(
    session: Session, user_id: int, conversation_id: int
) -> ConversationParticipant | None:
    """Participant row for an active member of an active conversation."""
    return session.scalar(
        select(ConversationParticipant)
        .join(Conversation, Conversation.id == ConversationParticipant.conversation_id)
        .where(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
            ConversationParticipant.is_active.is_(True),
            Conversation.is_active.is_(True),
        )
    )


def _live_message(session: Session, message_id: int) -> Message | None:
    message = session.get(Message, message_id)
    if message is None or message.is_deleted:
        return None
    return message


# ---------------------------------------------------------------------------
# Membership queries
# ---------------------------------------------------------------------------
def is_active_participant(engine: Engine, user_id: int, conversation_id: int) -> bool:
    with get_session(engine) as session:
        return _active_participant(session, user_id, conversation_id) is not None


def active_conversation_ids(engine: Engine, user_id: int) -> list[int]:
    """Conversations whose group a freshly connected user should join."""
    with get_session(engine) as session:
        return list(
            session.scalars(
                select(ConversationParticipant.conversation_id)
                .join(Conversation, Conversation.id == ConversationParticipant.conversation_id)
                .where(
                    ConversationParticipant.user_id == user_id,
                    ConversationParticipant.is_active.is_(True),
                    Conversation.is_active.is_(True),
                )
                .order_by(ConversationParticipant.conversation_id)
            ).all()
        )


def typing_identity(engine: Engine, user_id: int, conversation_id: int) -> dict | None:
    """Payload for ``user_typing``, or None if the caller may not type here."""
    with get_session(engine) as session:
        if _active_participant(session, user_id, conversation_id) is None:
            return None
        user = session.get(User, user_id)
        return {
            "conversation_id": conversation_id,
            "user_id": user_id,
            "username": user.username if user else None,
        }


# ---------------------------------------------------------------------------
# Send
# ---------------------------------------------------------------------------
def send_message(
    engine: Engine,
    user_id: int,
    conversation_id: int,
    content: str | None,
    media_url: str | None = None,
    media_type: str | None = None,
    reply_to_message_id: int | None = None,
) -> SendResult:
    """Persist a message and move the conversation's last-message pointer.

    Returns a :class:`SendResult` whose ``payload`` is the broadcast shape
    when the status is ``SENT``.  Nothing is written for any other status.
    """
    with get_session(engine) as session:
        participant = _active_participant(session, user_id, conversation_id)
        if participant is None:
            return SendResult(SendStatus.NOT_PARTICIPANT)
        conversation = participant.conversation

        if conversation.type == ConversationType.DIRECT:
            other_id = session.scalar(
                select(ConversationParticipant.user_id)
                .where(
                    ConversationParticipant.conversation_id == conversation_id,
                    ConversationParticipant.user_id != user_id,
                    ConversationParticipant.is_active.is_(True),
                )
                .limit(1)
            )
            if other_id is not None and not friendship_between(
                session, user_id, other_id, accepted_only=True
            ):
                logger.warning(
                    "User %d tried to message %d in conversation %d without a friendship",
                    user_id, other_id, conversation_id,
                )
                return SendResult(SendStatus.NOT_FRIENDS)

        has_text = bool(content and content.strip())
        if not has_text and not media_url:
            return SendResult(SendStatus.INVALID)
        if content and len(content) > MAX_MESSAGE_LENGTH:
            return SendResult(SendStatus.INVALID)

        reply = None
        if reply_to_message_id is not None:
            reply = _live_message(session, reply_to_message_id)
            if reply is not None and reply.conversation_id != conversation_id:
                reply = None

        now = datetime.now(UTC)
        message = Message(
            conversation_id=conversation_id,
            sender_id=user_id,
            content=content or None,
            type=classify_media(media_url, media_type).value,
            media_url=media_url,
            media_type=media_type,
            reply_to_message_id=reply.id if reply else None,
            status=MessageStatus.SENT.value,
            created_at=now,
            updated_at=now,
        )
        session.add(message)
        session.flush()

        conversation.last_message_id = message.id
        conversation.last_message_at = now
        conversation.updated_at = now

        payload = serialize_message(message, reply)

    logger.info("Message %d sent by user %d in conversation %d",
                payload["id"], user_id, conversation_id)
    return SendResult(SendStatus.SENT, payload)


# ---------------------------------------------------------------------------
# Read receipts
# ---------------------------------------------------------------------------
def mark_message_read(engine: Engine, user_id: int, message_id: int) -> ReadReceipt | None:
    """Record the first read of *message_id* by *user_id*.

    Returns a receipt only when a new row was written; re-reads, unknown
    messages and non-participants return None.
    """
    try:
        with get_session(engine) as session:
            message = _live_message(session, message_id)
            if message is None:
                return None
            if _active_participant(session, user_id, message.conversation_id) is None:
                return None

            existing = session.scalar(
                select(MessageRead.id).where(
                    MessageRead.message_id == message_id,
                    MessageRead.user_id == user_id,
                )
            )
            if existing is not None:
                return None

            now = datetime.now(UTC)
            session.add(MessageRead(message_id=message_id, user_id=user_id, read_at=now))
            receipt = ReadReceipt(
                message_id=message_id,
                conversation_id=message.conversation_id,
                sender_id=message.sender_id,
                user_id=user_id,
                read_at=now,
            )
    except IntegrityError:
        # A concurrent call recorded the same read first.
        logger.debug("Duplicate read of message %d by user %d", message_id, user_id)
        return None
    return receipt


# ---------------------------------------------------------------------------
# Reactions
# ---------------------------------------------------------------------------
def toggle_reaction(
    engine: Engine, user_id: int, message_id: int, emoji: str
) -> ReactionUpdate | None:
    """Add the reaction if absent, remove it if present.

    Returns the message's full regrouped reaction set, or None when the
    caller may not react (or the emoji is unusable).
    """
    if not emoji or len(emoji) > MAX_EMOJI_LENGTH:
        return None
    try:
        with get_session(engine) as session:
            message = _live_message(session, message_id)
            if message is None:
                return None
            if _active_participant(session, user_id, message.conversation_id) is None:
                return None

            existing = session.scalar(
                select(MessageReaction).where(
                    MessageReaction.message_id == message_id,
                    MessageReaction.user_id == user_id,
                    MessageReaction.emoji == emoji,
                )
            )
            if existing is not None:
                session.delete(existing)
                added = False
            else:
                session.add(
                    MessageReaction(
                        message_id=message_id,
                        user_id=user_id,
                        emoji=emoji,
                        created_at=datetime.now(UTC),
                    )
                )
                added = True
            session.flush()

            update = ReactionUpdate(
                message_id=message_id,
                conversation_id=message.conversation_id,
                added=added,
                reactions=group_reactions(_reaction_rows(session, message_id)),
            )
    except IntegrityError:
        logger.debug("Concurrent toggle of %r on message %d by user %d", emoji, message_id, user_id)
        return None
    return update


# ---------------------------------------------------------------------------
# Presence
# ---------------------------------------------------------------------------
def touch_activity(engine: Engine, user_id: int) -> bool:
    """Heartbeat: mark the user online and bump ``last_active_at``."""
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return False
        user.last_active_at = datetime.now(UTC)
        user.is_online = True
        return True


def mark_offline(engine: Engine, user_id: int) -> bool:
    with get_session(engine) as session:
        user = session.get(User, user_id)
        if user is None:
            return False
        user.last_active_at = datetime.now(UTC)
        user.is_online = False
        return True
