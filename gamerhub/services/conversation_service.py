"""
gamerhub.services.conversation_service — Conversation management
==================================================================

REST-side operations on conversations and their messages: listing with
unread counts, history, starting direct chats, group membership, clearing
and soft-deleting messages, and read pointers.

Conversations are never hard-deleted; a group whose last member leaves is
deactivated.  Unread messages for a participant are the non-deleted
messages from other users created after their ``last_read_at``.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, exists, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from gamerhub.constants import MAX_GROUP_TITLE_LENGTH, iso_utc
from gamerhub.database.engine import get_session
from gamerhub.database.models import (
    Conversation,
    ConversationParticipant,
    ConversationType,
    Message,
    MessageReaction,
    ParticipantRole,
    User,
)
from gamerhub.services.chat_service import group_reactions, serialize_message
from gamerhub.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from gamerhub.services.friendship_service import friendship_between

logger = logging.getLogger(__name__)

DEFAULT_GROUP_TITLE = "Group chat"
DEFAULT_DIRECT_TITLE = "Direct message"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _load(session: Session, conversation_id: int) -> Conversation | None:
    return session.scalar(
        select(Conversation)
        .options(
            selectinload(Conversation.participants).selectinload(ConversationParticipant.user),
            selectinload(Conversation.last_message).selectinload(Message.sender),
        )
        .where(Conversation.id == conversation_id)
    )


def _membership(conversation: Conversation, user_id: int) -> ConversationParticipant | None:
    for p in conversation.participants:
        if p.user_id == user_id and p.is_active:
            return p
    return None


def _require_member(
    session: Session, user_id: int, conversation_id: int
) -> tuple[Conversation, ConversationParticipant]:
    conversation = _load(session, conversation_id)
    if conversation is None or not conversation.is_active:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    participant = _membership(conversation, user_id)
    if participant is None:
        raise ForbiddenError("You are not a participant of this conversation")
    return conversation, participant


def _title(conversation: Conversation, user_id: int) -> str:
    if conversation.type == ConversationType.GROUP:
        return conversation.title or DEFAULT_GROUP_TITLE
    for p in conversation.participants:
        if p.user_id != user_id and p.is_active and p.user is not None:
            return p.user.display_name
    return DEFAULT_DIRECT_TITLE


def _participants(conversation: Conversation) -> list[dict]:
    return [
        {
            **p.user.summary(),
            "role": p.role,
            "joined_at": iso_utc(p.joined_at),
        }
        for p in sorted(conversation.participants, key=lambda p: (p.joined_at, p.id))
        if p.is_active and p.user is not None
    ]


def _last_message(conversation: Conversation) -> dict | None:
    m = conversation.last_message
    if m is None or m.is_deleted:
        return None
    return {
        "id": m.id,
        "content": m.content,
        "type": m.type,
        "media_url": m.media_url,
        "sender": {
            "id": m.sender_id,
            "username": m.sender.username if m.sender else None,
            "avatar_url": m.sender.avatar_url if m.sender else None,
        },
        "created_at": iso_utc(m.created_at),
    }


def _unread_filter(participant: ConversationParticipant):
    clauses = [
        Message.conversation_id == participant.conversation_id,
        Message.sender_id != participant.user_id,
        Message.is_deleted.is_(False),
    ]
    if participant.last_read_at is not None:
        clauses.append(Message.created_at > participant.last_read_at)
    return clauses


def _unread_count(session: Session, participant: ConversationParticipant) -> int:
    return session.scalar(
        select(func.count()).select_from(Message).where(*_unread_filter(participant))
    ) or 0


def _summary(session: Session, conversation: Conversation, participant: ConversationParticipant) -> dict:
    return {
        "id": conversation.id,
        "type": conversation.type,
        "title": _title(conversation, participant.user_id),
        "description": conversation.description,
        "group_image_url": conversation.group_image_url,
        "participants": _participants(conversation),
        "last_message": _last_message(conversation),
        "unread_count": _unread_count(session, participant),
        "last_message_at": iso_utc(conversation.last_message_at),
        "created_at": iso_utc(conversation.created_at),
    }


def _my_conversations(session: Session, user_id: int):
    return session.scalars(
        select(Conversation)
        .join(ConversationParticipant, ConversationParticipant.conversation_id == Conversation.id)
        .options(
            selectinload(Conversation.participants).selectinload(ConversationParticipant.user),
            selectinload(Conversation.last_message).selectinload(Message.sender),
        )
        .where(
            ConversationParticipant.user_id == user_id,
            ConversationParticipant.is_active.is_(True),
            Conversation.is_active.is_(True),
        )
    ).unique().all()


def _sort_key(item: dict) -> str:
    return item["last_message_at"] or item["created_at"] or ""


# ---------------------------------------------------------------------------
# Listing & history
# ---------------------------------------------------------------------------
def list_conversations(engine: Engine, user_id: int) -> list[dict]:
    """Every active conversation of *user_id*, most recently active first."""
    with get_session(engine) as session:
        items = []
        for conversation in _my_conversations(session, user_id):
            participant = _membership(conversation, user_id)
            if participant is not None:
                items.append(_summary(session, conversation, participant))
    return sorted(items, key=_sort_key, reverse=True)


def get_conversation(
    engine: Engine, user_id: int, conversation_id: int, skip: int = 0, take: int = 50
) -> dict:
    """Conversation header plus a page of non-deleted messages, oldest first."""
    with get_session(engine) as session:
        conversation, participant = _require_member(session, user_id, conversation_id)
        messages = session.scalars(
            select(Message)
            .options(
                selectinload(Message.sender),
                selectinload(Message.reply_to).selectinload(Message.sender),
            )
            .where(Message.conversation_id == conversation_id, Message.is_deleted.is_(False))
            .order_by(Message.created_at, Message.id)
            .offset(max(skip, 0))
            .limit(take)
        ).all()

        reactions: dict[int, list] = {m.id: [] for m in messages}
        if messages:
            for reaction, username in session.execute(
                select(MessageReaction, User.username)
                .outerjoin(User, User.id == MessageReaction.user_id)
                .where(MessageReaction.message_id.in_(list(reactions)))
                .order_by(MessageReaction.created_at, MessageReaction.id)
            ).all():
                reactions[reaction.message_id].append((reaction, username))

        return {
            **_summary(session, conversation, participant),
            "messages": [
                {
                    **serialize_message(m),
                    "edited_at": iso_utc(m.edited_at),
                    "reactions": group_reactions(reactions[m.id]),
                }
                for m in messages
            ],
        }


def search_conversations(engine: Engine, user_id: int, query: str) -> list[dict]:
    """Match group titles and other participants' names."""
    term = (query or "").strip()
    if not term:
        raise ValidationError("A search term is required")
    pattern = f"%{term.lower()}%"
    name_match = exists().where(
        ConversationParticipant.conversation_id == Conversation.id,
        ConversationParticipant.is_active.is_(True),
        ConversationParticipant.user_id != user_id,
        User.id == ConversationParticipant.user_id,
        or_(
            func.lower(User.username).like(pattern),
            func.lower(func.coalesce(User.first_name, "")).like(pattern),
            func.lower(func.coalesce(User.last_name, "")).like(pattern),
        ),
    )
    with get_session(engine) as session:
        mine = select(ConversationParticipant.conversation_id).where(
            ConversationParticipant.user_id == user_id,
            ConversationParticipant.is_active.is_(True),
        )
        rows = session.scalars(
            select(Conversation)
            .options(
                selectinload(Conversation.participants).selectinload(ConversationParticipant.user),
                selectinload(Conversation.last_message).selectinload(Message.sender),
            )
            .where(
                Conversation.id.in_(mine),
                Conversation.is_active.is_(True),
                or_(func.lower(func.coalesce(Conversation.title, "")).like(pattern), name_match),
            )
        ).all()
        results = []
        for conversation in rows:
            participant = _membership(conversation, user_id)
            if participant is not None:
                results.append(_summary(session, conversation, participant))
    return sorted(results, key=_sort_key, reverse=True)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
def _find_direct(session: Session, user_a: int, user_b: int) -> Conversation | None:
    a = select(ConversationParticipant.conversation_id).where(
        ConversationParticipant.user_id == user_a
    )
    b = select(ConversationParticipant.conversation_id).where(
        ConversationParticipant.user_id == user_b
    )
    return session.scalars(
        select(Conversation)
        .where(
            Conversation.type == ConversationType.DIRECT.value,
            Conversation.is_active.is_(True),
            Conversation.id.in_(a),
            Conversation.id.in_(b),
        )
        .order_by(Conversation.id)
        .limit(1)
    ).first()


def start_direct_conversation(engine: Engine, user_id: int, target_id: int) -> dict:
    """Open (or reuse) the 1:1 conversation with a friend."""
    if user_id == target_id:
        raise ValidationError("You cannot start a conversation with yourself")
    with get_session(engine) as session:
        if session.get(User, user_id) is None:
            raise NotFoundError("Current user not found")
        target = session.get(User, target_id)
        if target is None or not target.is_active:
            raise NotFoundError(f"User {target_id} not found")
        if friendship_between(session, user_id, target_id, accepted_only=True) is None:
            raise ForbiddenError("You can only message your friends")

        existing = _find_direct(session, user_id, target_id)
        if existing is not None:
            for p in existing.participants:
                if not p.is_active:
                    p.is_active = True
                    p.left_at = None
            return {"conversation_id": existing.id, "created": False}

        now = datetime.now(UTC)
        conversation = Conversation(
            type=ConversationType.DIRECT.value,
            created_by_id=user_id,
            created_at=now,
            updated_at=now,
        )
        conversation.participants = [
            ConversationParticipant(user_id=uid, role=ParticipantRole.MEMBER.value, joined_at=now)
            for uid in (user_id, target_id)
        ]
        session.add(conversation)
        session.flush()
        conversation_id = conversation.id

    logger.info("Direct conversation %d created between %d and %d",
                conversation_id, user_id, target_id)
    return {"conversation_id": conversation_id, "created": True}


def create_group_conversation(
    engine: Engine,
    user_id: int,
    title: str,
    participant_ids: list[int],
    description: str | None = None,
    group_image_url: str | None = None,
) -> dict:
    """Create a group owned by *user_id* with *participant_ids* as members."""
    title = (title or "").strip()
    if not title:
        raise ValidationError("A group title is required")
    if len(title) > MAX_GROUP_TITLE_LENGTH:
        raise ValidationError(f"Group title must be at most {MAX_GROUP_TITLE_LENGTH} characters")
    members = [uid for uid in dict.fromkeys(participant_ids) if uid != user_id]
    if not members:
        raise ValidationError("At least one other participant is required")

    with get_session(engine) as session:
        found = set(session.scalars(select(User.id).where(User.id.in_(members))).all())
        missing = sorted(set(members) - found)
        if missing:
            raise ValidationError("Some users were not found", details={"missing": missing})

        now = datetime.now(UTC)
        conversation = Conversation(
            type=ConversationType.GROUP.value,
            title=title,
            description=description,
            group_image_url=group_image_url,
            created_by_id=user_id,
            created_at=now,
            updated_at=now,
        )
        conversation.participants = [
            ConversationParticipant(user_id=user_id, role=ParticipantRole.OWNER.value, joined_at=now)
        ] + [
            ConversationParticipant(user_id=uid, role=ParticipantRole.MEMBER.value, joined_at=now)
            for uid in members
        ]
        session.add(conversation)
        session.flush()
        conversation_id = conversation.id

    logger.info("Group conversation %d (%r) created by user %d", conversation_id, title, user_id)
    return {"conversation_id": conversation_id, "participant_ids": [user_id, *members]}


# ---------------------------------------------------------------------------
# Group membership
# ---------------------------------------------------------------------------
def _require_group(conversation: Conversation) -> None:
    if conversation.type != ConversationType.GROUP:
        raise ValidationError("This only applies to group conversations")


def add_participant(engine: Engine, user_id: int, conversation_id: int, new_user_id: int) -> dict:
    """Owner/admin adds a user; a former participant is reactivated."""
    with get_session(engine) as session:
        conversation = _load(session, conversation_id)
        if conversation is None or not conversation.is_active:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        _require_group(conversation)
        me = _membership(conversation, user_id)
        if me is None or me.role not in (ParticipantRole.OWNER, ParticipantRole.ADMIN):
            raise ForbiddenError("Only the group owner or an admin can add participants")
        if session.get(User, new_user_id) is None:
            raise NotFoundError(f"User {new_user_id} not found")

        now = datetime.now(UTC)
        existing = next((p for p in conversation.participants if p.user_id == new_user_id), None)
        if existing is not None and existing.is_active:
            raise ConflictError("User is already in this conversation")
        if existing is not None:
            existing.is_active = True
            existing.joined_at = now
            existing.left_at = None
            existing.role = ParticipantRole.MEMBER.value
        else:
            conversation.participants.append(
                ConversationParticipant(
                    user_id=new_user_id, role=ParticipantRole.MEMBER.value, joined_at=now
                )
            )
        conversation.updated_at = now

    logger.info("User %d added to conversation %d by %d", new_user_id, conversation_id, user_id)
    return {"conversation_id": conversation_id, "user_id": new_user_id}


def leave_conversation(engine: Engine, user_id: int, conversation_id: int) -> dict:
    """Leave a group.  An owner hands over first; the last one out deactivates it."""
    with get_session(engine) as session:
        conversation = _load(session, conversation_id)
        if conversation is None or not conversation.is_active:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        me = _membership(conversation, user_id)
        if me is None:
            raise NotFoundError("You are not in this conversation")
        if conversation.type == ConversationType.DIRECT:
            raise ValidationError("You cannot leave a direct conversation")

        now = datetime.now(UTC)
        others = [p for p in conversation.participants if p.is_active and p.user_id != user_id]
        new_owner_id = None
        if me.role == ParticipantRole.OWNER and others:
            successor = next((p for p in others if p.role == ParticipantRole.ADMIN), None)
            if successor is None:
                successor = min(others, key=lambda p: (p.joined_at, p.id))
            successor.role = ParticipantRole.OWNER.value
            new_owner_id = successor.user_id
            logger.info("Ownership of conversation %d passed from %d to %d",
                        conversation_id, user_id, new_owner_id)

        me.is_active = False
        me.left_at = now
        if not others:
            conversation.is_active = False
            logger.info("Conversation %d deactivated: last member %d left", conversation_id, user_id)
        conversation.updated_at = now
        still_active = conversation.is_active

    return {
        "conversation_id": conversation_id,
        "new_owner_id": new_owner_id,
        "conversation_active": still_active,
    }


def kick_participant(engine: Engine, user_id: int, conversation_id: int, target_id: int) -> dict:
    with get_session(engine) as session:
        conversation = _load(session, conversation_id)
        if conversation is None or not conversation.is_active:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        _require_group(conversation)
        me = _membership(conversation, user_id)
        if me is None or me.role != ParticipantRole.OWNER:
            raise ForbiddenError("Only the group owner can remove participants")
        if target_id == user_id:
            raise ValidationError("You cannot remove yourself; leave the conversation instead")
        target = _membership(conversation, target_id)
        if target is None:
            raise NotFoundError("That user is not in this conversation")
        target.is_active = False
        target.left_at = datetime.now(UTC)

    logger.info("User %d removed from conversation %d by owner %d", target_id, conversation_id, user_id)
    return {"conversation_id": conversation_id, "user_id": target_id}


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
def clear_messages(engine: Engine, user_id: int, conversation_id: int) -> int:
    """Soft-delete every message in the conversation.  Returns rows touched."""
    with get_session(engine) as session:
        conversation, _ = _require_member(session, user_id, conversation_id)
        now = datetime.now(UTC)
        result = session.execute(
            update(Message)
            .where(Message.conversation_id == conversation_id, Message.is_deleted.is_(False))
            .values(is_deleted=True, deleted_at=now)
        )
        conversation.updated_at = now
        cleared = result.rowcount or 0
    logger.info("User %d cleared %d messages in conversation %d", user_id, cleared, conversation_id)
    return cleared


def delete_message(engine: Engine, user_id: int, message_id: int) -> dict:
    """Sender soft-deletes one of their own messages."""
    with get_session(engine) as session:
        message = session.get(Message, message_id)
        if message is None or message.is_deleted:
            raise NotFoundError(f"Message {message_id} not found")
        if message.sender_id != user_id:
            raise ForbiddenError("You can only delete your own messages")
        message.is_deleted = True
        message.deleted_at = datetime.now(UTC)
        return {"message_id": message_id, "conversation_id": message.conversation_id}


def mark_conversation_read(engine: Engine, user_id: int, conversation_id: int) -> dict:
    """Move the caller's read pointer to the newest message."""
    with get_session(engine) as session:
        _, participant = _require_member(session, user_id, conversation_id)
        latest_id = session.scalar(
            select(Message.id)
            .where(Message.conversation_id == conversation_id, Message.is_deleted.is_(False))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        )
        participant.last_read_at = datetime.now(UTC)
        if latest_id is not None:
            participant.last_read_message_id = latest_id
        return {"conversation_id": conversation_id, "last_read_message_id": latest_id}


def total_unread_message_count(engine: Engine, user_id: int) -> int:
    with get_session(engine) as session:
        participants = session.scalars(
            select(ConversationParticipant)
            .join(Conversation, Conversation.id == ConversationParticipant.conversation_id)
            .where(
                ConversationParticipant.user_id == user_id,
                ConversationParticipant.is_active.is_(True),
                Conversation.is_active.is_(True),
            )
        ).all()
        return sum(_unread_count(session, p) for p in participants)
