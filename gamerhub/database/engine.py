"""
gamerhub.database.engine — Database Connection & Async Helper
==============================================================

The hubs run on the ``asyncio`` event loop while SQLAlchemy + psycopg2 is
**synchronous**.  Calling the database directly from a hub method would
freeze every WebSocket served by the process until the query returns.

The bridge:

    1. A client invokes a hub method  (async world).
    2. The hub calls ``await run_db(some_function, engine, arg1, arg2)``.
    3. ``run_db`` ships the synchronous function to a **thread pool** via
       ``asyncio.to_thread()``.
    4. The DB work happens on a background thread; the event loop stays free.
    5. The result is awaited back in the hub, which then publishes events.

REST routes are plain ``def`` endpoints, so FastAPI already runs them on
its own thread pool and they call services directly.

Usage::

    from gamerhub.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    result = await run_db(send_message, engine, user_id, conversation_id, "hi")
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from gamerhub.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
# One API process serves both hubs and the REST routes from the same pool.
POOL_OPTIONS = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 10,
    "pool_recycle": 3600,
}


def create_db_engine(url: str | None = None) -> Engine:
    """Build the process-wide :class:`Engine`.

    *url* defaults to ``DATABASE_URL``.  PostgreSQL gets the pooled
    settings in :data:`POOL_OPTIONS`; a ``sqlite:`` URL (local hacking on a
    file database) gets SQLite's own pool and may be shared across the
    ``run_db`` worker threads.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at the GamerHub database."
        )

    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(url, pool_pre_ping=True, **POOL_OPTIONS)
    logger.info(
        "Database engine created → %s (%s)",
        engine.url.host or engine.url.database, engine.dialect.name,
    )
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create any missing chat, social and notification tables.

    Alembic owns the production schema (``alembic upgrade head``); this only
    fills the gaps on a fresh dev or test database.
    """
    Base.metadata.create_all(engine)
    logger.info("Schema ready: %d tables", len(Base.metadata.tables))


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Unit of work: commit when the block exits normally, roll back and
    re-raise when it doesn't.

    Usage::

        with get_session(engine) as session:
            session.add(Notification(user_id=7, type="welcome"))
            # commit happens automatically on block exit
    """
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Hub methods and the cleanup loop reach the services only through this
    wrapper, e.g. ``await run_db(chat_service.mark_offline, engine, uid)``.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
