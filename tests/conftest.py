"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of gamerhub.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from gamerhub.database.engine import get_session  # noqa: E402
from gamerhub.database.models import (  # noqa: E402
    Base,
    Conversation,
    ConversationParticipant,
    ConversationType,
    Friendship,
    FriendshipStatus,
    ParticipantRole,
    User,
)

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all GamerHub tables.

    JSONB columns are transparently mapped to TEXT for SQLite compatibility.
    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used by the hubs).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Async helper (no pytest-asyncio)
# ---------------------------------------------------------------------------
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------
def make_token(user_id: int | str, **claims) -> str:
    """Create a user JWT carrying the id in ``userId``."""
    import jwt

    from gamerhub.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode({"userId": str(user_id), **claims}, JWT_SECRET, algorithm=JWT_ALGORITHM)


def make_admin_token(sub: str = "99999", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from gamerhub.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def admin_token():
    return make_admin_token()


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------
def make_user(engine: Engine, username: str, **fields) -> int:
    with get_session(engine) as session:
        user = User(username=username, **fields)
        session.add(user)
        session.flush()
        return user.id


def make_friends(
    engine: Engine, a: int, b: int, status: FriendshipStatus = FriendshipStatus.ACCEPTED
) -> int:
    with get_session(engine) as session:
        row = Friendship(sender_id=a, receiver_id=b, status=status.value)
        session.add(row)
        session.flush()
        return row.id


def make_conversation(
    engine: Engine,
    user_ids: list[int],
    kind: ConversationType = ConversationType.DIRECT,
    title: str | None = None,
) -> int:
    """Conversation with every id as an active participant; the first one owns groups."""
    with get_session(engine) as session:
        conversation = Conversation(type=kind.value, title=title, created_by_id=user_ids[0])
        for i, uid in enumerate(user_ids):
            role = ParticipantRole.OWNER if kind is ConversationType.GROUP and i == 0 \
                else ParticipantRole.MEMBER
            conversation.participants.append(
                ConversationParticipant(user_id=uid, role=role.value)
            )
        session.add(conversation)
        session.flush()
        return conversation.id


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------
class FakeWebSocket:
    """Records frames sent to it; optionally fails the first N sends."""

    def __init__(self, fail_times: int = 0) -> None:
        self.sent: list[dict] = []
        self.fail_times = fail_times
        self.attempts = 0

    async def send_json(self, frame: dict) -> None:
        self.attempts += 1
        if self.attempts <= self.fail_times:
            raise ConnectionResetError("socket closed")
        self.sent.append(frame)

    def events(self, event_type: str | None = None) -> list[dict]:
        return [f for f in self.sent if event_type is None or f["type"] == event_type]


@pytest.fixture
def client():
    """Create a FastAPI TestClient with raise_server_exceptions=False."""
    from fastapi.testclient import TestClient

    from gamerhub.api.main import app

    return TestClient(app, raise_server_exceptions=False)
