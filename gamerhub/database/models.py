"""
gamerhub.database.models — SQLAlchemy 2.0 Data Models
======================================================

Social, chat and notification slice of the GamerHub schema.

Tables:
- users                     — Community member profiles
- friendships               — One row per user pair, status-driven lifecycle
- follows                   — Asymmetric follow graph with per-edge opt-out
- conversations             — Direct / group chats with a denormalized last-message pointer
- conversation_participants — Membership rows, reactivated on rejoin
- messages                  — Chat messages (text and/or media, optional reply)
- message_reads             — First-read receipts, unique per (message, user)
- message_reactions         — Emoji reactions, unique per (message, user, emoji)
- notifications             — Per-user alerts with tagged-union entity references
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all GamerHub ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class FriendshipStatus(enum.StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


class ConversationType(enum.StrEnum):
    DIRECT = "direct"
    GROUP = "group"


class ParticipantRole(enum.StrEnum):
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


class MessageType(enum.StrEnum):
    TEXT = "text"
    IMAGE = "image"
    GIF = "gif"
    VIDEO = "video"
    AUDIO = "audio"
    FILE = "file"
    SYSTEM = "system"  # joins, leaves, renames
    LINK = "link"


class MessageStatus(enum.StrEnum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class NotificationPriority(enum.StrEnum):
    LOW = "low"            # likes, favorites
    NORMAL = "normal"      # comments, replies
    HIGH = "high"          # moderation, best answers
    CRITICAL = "critical"  # system messages, bans


class EntityType(enum.StrEnum):
    """Discriminator half of the (type, id) reference a notification points at."""
    COMMENT = "comment"
    FORUM_TOPIC = "forum_topic"
    BLOG_POST = "blog_post"
    GUIDE = "guide"
    GAME = "game"
    USER = "user"
    CONTENT = "content"


class NotificationType(enum.StrEnum):
    """Every kind of alert a feature may raise."""
    # Likes & reactions
    LIKE_ON_COMMENT = "like_on_comment"
    LIKE_ON_FORUM_TOPIC = "like_on_forum_topic"
    LIKE_ON_BLOG_POST = "like_on_blog_post"
    LIKE_ON_GUIDE = "like_on_guide"
    DISLIKE_ON_COMMENT = "dislike_on_comment"
    LIKE_ON_USER = "like_on_user"
    # Comments & replies
    COMMENT_ON_FORUM_TOPIC = "comment_on_forum_topic"
    COMMENT_ON_BLOG_POST = "comment_on_blog_post"
    COMMENT_ON_GUIDE = "comment_on_guide"
    REPLY_TO_COMMENT = "reply_to_comment"
    BEST_ANSWER_SELECTED = "best_answer_selected"
    # Forum
    FORUM_TOPIC_CREATED = "forum_topic_created"
    FORUM_TOPIC_LOCKED = "forum_topic_locked"
    FORUM_TOPIC_PINNED = "forum_topic_pinned"
    # Content
    BLOG_POST_PUBLISHED = "blog_post_published"
    GUIDE_PUBLISHED = "guide_published"
    CONTENT_APPROVED = "content_approved"
    CONTENT_REJECTED = "content_rejected"
    CONTENT_FEATURED = "content_featured"
    # Social
    USER_FOLLOWED = "user_followed"
    USER_MENTIONED = "user_mentioned"
    NEW_FOLLOWER_CONTENT = "new_follower_content"
    PROFILE_VIEWED = "profile_viewed"
    COMMENT_PINNED = "comment_pinned"
    FRIEND_REQUEST = "friend_request"
    FRIEND_REQUEST_ACCEPTED = "friend_request_accepted"
    # Favorites
    CONTENT_ADDED_TO_FAVORITES = "content_added_to_favorites"
    FAVORITE_CONTENT_UPDATED = "favorite_content_updated"
    # Games
    GAME_RATING_ADDED = "game_rating_added"
    GAME_ADDED_TO_LIST = "game_added_to_list"
    GAME_STATUS_CHANGED = "game_status_changed"
    # Moderation
    CONTENT_REPORTED = "content_reported"
    REPORT_RESOLVED = "report_resolved"
    USER_WARNED = "user_warned"
    USER_BANNED = "user_banned"
    USER_UNBANNED = "user_unbanned"
    # System & admin
    SYSTEM_NOTIFICATION = "system_notification"
    ADMIN_MESSAGE = "admin_message"
    WELCOME = "welcome"
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    LEVEL_UP = "level_up"
    # Special events
    CONTEST_ANNOUNCEMENT = "contest_announcement"
    SPECIAL_EVENT = "special_event"
    MAINTENANCE = "maintenance"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    first_name: Mapped[str | None] = mapped_column(String(50), default=None)
    last_name: Mapped[str | None] = mapped_column(String(50), default=None)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False)
    last_active_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.username

    def summary(self) -> dict:
        """Public fields embedded in messages, friend lists and follows."""
        return {
            "id": self.id,
            "username": self.username,
            "avatar_url": self.avatar_url,
            "display_name": self.display_name,
        }

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


# ---------------------------------------------------------------------------
# Friendships — one row per user pair
# ---------------------------------------------------------------------------
class Friendship(Base):
    """Friend request / friendship between two users.

    The row is reused when a declined or cancelled request is sent again,
    so there is at most one row per unordered pair.
    """
    __tablename__ = "friendships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sender_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=FriendshipStatus.PENDING.value
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    friends_since: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    blocked_by_id: Mapped[int | None] = mapped_column(Integer, default=None)
    blocked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    sender: Mapped[User] = relationship(foreign_keys=[sender_id])
    receiver: Mapped[User] = relationship(foreign_keys=[receiver_id])

    __table_args__ = (
        Index("ix_friendships_sender", "sender_id", "status"),
        Index("ix_friendships_receiver", "receiver_id", "status"),
    )

    def other_user_id(self, user_id: int) -> int:
        return self.receiver_id if self.sender_id == user_id else self.sender_id

    def __repr__(self) -> str:
        return (
            f"<Friendship id={self.id} {self.sender_id}->{self.receiver_id} "
            f"status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------
class Follow(Base):
    __tablename__ = "follows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    follower_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    following_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    followed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    unfollowed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    follower: Mapped[User] = relationship(foreign_keys=[follower_id])
    following: Mapped[User] = relationship(foreign_keys=[following_id])

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        Index("ix_follows_following_active", "following_id", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<Follow {self.follower_id}->{self.following_id} active={self.is_active}>"


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------
class Conversation(Base):
    """A direct (1:1) or group chat.

    ``last_message_id`` / ``last_message_at`` are denormalized and kept in
    sync by :mod:`gamerhub.services.chat_service` inside the same
    transaction as the message insert.  Conversations are deactivated,
    never hard-deleted.
    """
    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str | None] = mapped_column(String(100), default=None)
    description: Mapped[str | None] = mapped_column(String(500), default=None)
    group_image_url: Mapped[str | None] = mapped_column(String(500), default=None)
    last_message_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey(
            "messages.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_conversations_last_message_id",
        ),
        nullable=True,
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    participants: Mapped[list[ConversationParticipant]] = relationship(
        back_populates="conversation", cascade="all, delete-orphan"
    )
    messages: Mapped[list[Message]] = relationship(
        back_populates="conversation",
        foreign_keys="Message.conversation_id",
        cascade="all, delete-orphan",
    )
    last_message: Mapped[Message | None] = relationship(
        foreign_keys=[last_message_id], post_update=True
    )

    def __repr__(self) -> str:
        return f"<Conversation id={self.id} type={self.type} active={self.is_active}>"


class ConversationParticipant(Base):
    __tablename__ = "conversation_participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ParticipantRole.MEMBER.value
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    left_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    last_read_message_id: Mapped[int | None] = mapped_column(Integer, default=None)
    notifications_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    is_muted: Mapped[bool] = mapped_column(Boolean, default=False)
    muted_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    conversation: Mapped[Conversation] = relationship(back_populates="participants")
    user: Mapped[User] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "conversation_id", "user_id", name="uq_participants_conversation_user"
        ),
        Index("ix_participants_user_active", "user_id", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<ConversationParticipant conversation={self.conversation_id} "
            f"user={self.user_id} role={self.role} active={self.is_active}>"
        )


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
class Message(Base):
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    content: Mapped[str | None] = mapped_column(String(2000), default=None)
    type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MessageType.TEXT.value
    )
    media_url: Mapped[str | None] = mapped_column(String(500), default=None)
    media_type: Mapped[str | None] = mapped_column(String(50), default=None)
    reply_to_message_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MessageStatus.SENT.value
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    is_edited: Mapped[bool] = mapped_column(Boolean, default=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    conversation: Mapped[Conversation] = relationship(
        back_populates="messages", foreign_keys=[conversation_id]
    )
    sender: Mapped[User] = relationship()
    reply_to: Mapped[Message | None] = relationship(remote_side=[id])
    reads: Mapped[list[MessageRead]] = relationship(
        back_populates="message", cascade="all, delete-orphan"
    )
    reactions: Mapped[list[MessageReaction]] = relationship(
        back_populates="message", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_messages_conversation_time", "conversation_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Message id={self.id} conversation={self.conversation_id} "
            f"sender={self.sender_id} type={self.type}>"
        )


class MessageRead(Base):
    __tablename__ = "message_reads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    message: Mapped[Message] = relationship(back_populates="reads")

    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_reads_message_user"),
    )

    def __repr__(self) -> str:
        return f"<MessageRead message={self.message_id} user={self.user_id}>"


class MessageReaction(Base):
    __tablename__ = "message_reactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    emoji: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    message: Mapped[Message] = relationship(back_populates="reactions")
    user: Mapped[User] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "message_id", "user_id", "emoji", name="uq_message_reactions_message_user_emoji"
        ),
    )

    def __repr__(self) -> str:
        return f"<MessageReaction message={self.message_id} user={self.user_id} {self.emoji}>"


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
class Notification(Base):
    """An alert addressed to one user.

    Only ``is_read`` / ``read_at`` / ``is_archived`` change after insert;
    rows are pruned by :mod:`gamerhub.services.retention_service`.
    """
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[str] = mapped_column(
        String(20), nullable=False, default=NotificationPriority.NORMAL.value
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    related_entity_type: Mapped[str | None] = mapped_column(String(30), default=None)
    related_entity_id: Mapped[int | None] = mapped_column(Integer, default=None)
    action_url: Mapped[str | None] = mapped_column(String(500), default=None)
    triggered_by_user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)

    user: Mapped[User] = relationship(foreign_keys=[user_id])
    triggered_by: Mapped[User | None] = relationship(foreign_keys=[triggered_by_user_id])

    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
        Index("ix_notifications_user_time", "user_id", "created_at"),
        Index("ix_notifications_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification id={self.id} user={self.user_id} "
            f"type={self.type} read={self.is_read}>"
        )
