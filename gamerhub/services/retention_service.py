"""
gamerhub.services.retention_service — Notification Cleanup
============================================================

Periodic pruning of the ``notifications`` table.

    - Expired rows: ``expires_at`` in the past, read or not.
    - Old rows: already read and older than ``notification_retention_days``
      (default 90).  Unread notifications are never aged out.
    - Runs as a background asyncio task started by the API lifespan every
      ``cleanup_interval_minutes``, or ad-hoc through the admin endpoint.

**Deletion is batched** to avoid locking the table for too long:
rows are removed in chunks of ``BATCH_SIZE``, one transaction per chunk.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, func, select

from gamerhub.config import GamerHubConfig
from gamerhub.constants import iso_utc
from gamerhub.database.engine import get_session, run_db
from gamerhub.database.models import Notification

logger = logging.getLogger(__name__)

# How many rows to delete in each batch (avoids long-held row locks)
BATCH_SIZE = 5_000


def _delete_in_batches(engine: Engine, *criteria, label: str) -> int:
    deleted = 0
    while True:
        with get_session(engine) as session:
            # Find IDs of rows to delete (bounded batch)
            ids = session.scalars(
                select(Notification.id).where(*criteria).limit(BATCH_SIZE)
            ).all()

            if not ids:
                break

            result = session.execute(
                delete(Notification).where(Notification.id.in_(ids))
            )
            deleted += result.rowcount  # type: ignore[operator]
            logger.info(
                "Retention: deleted %d %s notifications (total so far: %d)",
                result.rowcount, label, deleted,
            )
    return deleted


def purge_expired_notifications(engine: Engine) -> int:
    """Delete every notification whose ``expires_at`` has passed."""
    now = datetime.now(UTC)
    return _delete_in_batches(
        engine,
        Notification.expires_at.is_not(None),
        Notification.expires_at < now,
        label="expired",
    )


def purge_old_notifications(engine: Engine, days_to_keep: int = 90) -> int:
    """Delete *read* notifications created more than ``days_to_keep`` days ago."""
    cutoff = datetime.now(UTC) - timedelta(days=days_to_keep)
    return _delete_in_batches(
        engine,
        Notification.is_read.is_(True),
        Notification.created_at < cutoff,
        label="old read",
    )


def run_notification_cleanup(engine: Engine, cfg: GamerHubConfig) -> dict[str, int]:
    """Run both purges.

    Returns a summary dict: ``{"expired_deleted": N, "old_deleted": M}``.
    """
    expired = purge_expired_notifications(engine)
    old = purge_old_notifications(engine, cfg.notification_retention_days)
    logger.info(
        "Notification cleanup complete — %d expired, %d old removed "
        "(retention_days=%d)",
        expired, old, cfg.notification_retention_days,
    )
    return {"expired_deleted": expired, "old_deleted": old}


def get_notification_stats(engine: Engine) -> dict:
    """Return notification table statistics for the health dashboard."""
    now = datetime.now(UTC)
    with get_session(engine) as session:
        total = session.scalar(
            select(func.count()).select_from(Notification)
        ) or 0

        unread = session.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.is_read.is_(False)
            )
        ) or 0

        expired = session.scalar(
            select(func.count()).select_from(Notification).where(
                Notification.expires_at.is_not(None), Notification.expires_at < now
            )
        ) or 0

        oldest = session.scalar(select(func.min(Notification.created_at)))
        newest = session.scalar(select(func.max(Notification.created_at)))

    return {
        "total_notifications": total,
        "unread_notifications": unread,
        "expired_notifications": expired,
        "oldest_notification": iso_utc(oldest),
        "newest_notification": iso_utc(newest),
    }


# ---------------------------------------------------------------------------
# Background loop
# ---------------------------------------------------------------------------
class CleanupLoop:
    """Runs :func:`run_notification_cleanup` every ``cleanup_interval_minutes``."""

    def __init__(self, engine: Engine, cfg: GamerHubConfig) -> None:
        self.engine = engine
        self.cfg = cfg
        self._task: asyncio.Task | None = None

    @property
    def interval(self) -> float:
        return max(self.cfg.cleanup_interval_minutes, 1) * 60.0

    async def run_once(self) -> dict[str, int]:
        return await run_db(run_notification_cleanup, self.engine, self.cfg)

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start the background cleanup task."""
        if self._task is not None:
            return
        loop = loop or asyncio.get_running_loop()

        async def _cleanup_loop() -> None:
            while True:
                await asyncio.sleep(self.interval)
                try:
                    await self.run_once()
                except Exception:
                    logger.exception("Notification cleanup error")

        self._task = loop.create_task(_cleanup_loop(), name="notification-cleanup")

    def stop(self) -> None:
        """Cancel the cleanup task."""
        if self._task:
            self._task.cancel()
            self._task = None
