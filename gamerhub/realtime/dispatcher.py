"""
gamerhub.realtime.dispatcher — Best-effort outbound event queue
================================================================

Hubs and services never ``await`` a socket send on the write path.  They
enqueue an event addressed to a group, a single connection or everyone,
and a background task on the event loop delivers it.

- Group membership is resolved when the event is delivered, not when it is
  published.
- Connections are served concurrently and every send is bounded by
  ``send_timeout``; a socket that stops reading cannot hold up the others.
- A failing or timed-out send is re-queued for that connection only, up to
  ``max_attempts`` tries spaced ``retry_delay`` seconds apart, then logged
  and dropped.  A target that disconnected in the meantime is dropped.
- Publishing is safe from worker threads: the queue is guarded by a lock and
  the drain task is woken with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field

from gamerhub.realtime.protocol import HubEvent
from gamerhub.realtime.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


@dataclass
class _Broadcast:
    """Fan-out request, expanded to connections at delivery time."""

    frame: dict
    group: str | None = None       # None → every connection on the hub
    exclude: frozenset[str] = frozenset()


@dataclass
class _Delivery:
    """One frame for one connection (direct sends and retries)."""

    conn_id: str
    frame: dict
    attempts: int = 0
    not_before: float = field(default=0.0)


class EventDispatcher:
    """Queue of outbound frames for one hub, drained by a background task."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        send_timeout: float = 5.0,
    ) -> None:
        self.registry = registry
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.send_timeout = send_timeout
        self._lock = threading.Lock()
        self._queue: deque[_Broadcast | _Delivery] = deque()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None
        self._drain_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Publishing (any thread)
    # ------------------------------------------------------------------
    def publish_to_group(
        self, group: str, event: str, data=None, exclude: Iterable[str] = ()
    ) -> None:
        frame = HubEvent(type=event, data=data).frame()
        self._enqueue(_Broadcast(frame=frame, group=group, exclude=frozenset(exclude)))

    def publish_to_connection(self, conn_id: str, event: str, data=None) -> None:
        frame = HubEvent(type=event, data=data).frame()
        self._enqueue(_Delivery(conn_id=conn_id, frame=frame))

    def publish_to_all(self, event: str, data=None) -> None:
        frame = HubEvent(type=event, data=data).frame()
        self._enqueue(_Broadcast(frame=frame))

    def pending(self) -> int:
        with self._lock:
            return len(self._queue)

    def _enqueue(self, item: _Broadcast | _Delivery) -> None:
        with self._lock:
            self._queue.append(item)
        loop, wakeup = self._loop, self._wakeup
        if loop is not None and wakeup is not None and not loop.is_closed():
            loop.call_soon_threadsafe(wakeup.set)

    # ------------------------------------------------------------------
    # Delivery (event loop)
    # ------------------------------------------------------------------
    async def drain_once(self) -> int:
        """Deliver everything currently queued.  Returns frames delivered.

        Connections are served concurrently; frames for one connection go out
        in publish order.  Each send is bounded by ``send_timeout`` so a
        client that stops reading only delays its own frames.  Retries that
        are not yet due, and failures that happen during this pass, stay
        queued for the next pass.
        """
        with self._lock:
            batch = list(self._queue)
            self._queue.clear()

        now = time.monotonic()
        requeue: list[_Delivery] = []
        per_conn: dict[str, list[_Delivery]] = {}
        for item in batch:
            if isinstance(item, _Delivery):
                if item.not_before > now:
                    requeue.append(item)
                    continue
                targets = [item]
            else:
                members = (
                    self.registry.all_connections()
                    if item.group is None
                    else self.registry.group_members(item.group)
                )
                targets = [
                    _Delivery(conn_id=c.id, frame=item.frame)
                    for c in members
                    if c.id not in item.exclude
                ]
            for delivery in targets:
                per_conn.setdefault(delivery.conn_id, []).append(delivery)

        counts = await asyncio.gather(
            *(self._deliver(conn_id, items, requeue) for conn_id, items in per_conn.items())
        )

        if requeue:
            with self._lock:
                self._queue.extend(requeue)
        return sum(counts)

    async def _deliver(
        self, conn_id: str, items: list[_Delivery], requeue: list[_Delivery]
    ) -> int:
        """Send *items* to one connection in order; stop at the first failure."""
        conn = self.registry.get(conn_id)
        if conn is None:
            return 0  # disconnected since publish
        delivered = 0
        for index, delivery in enumerate(items):
            delivery.attempts += 1
            try:
                await asyncio.wait_for(conn.send(delivery.frame), timeout=self.send_timeout)
                delivered += 1
                continue
            except Exception as exc:
                reason = "timed out" if isinstance(exc, asyncio.TimeoutError) else "failed"
                if delivery.attempts >= self.max_attempts:
                    logger.error(
                        "[%s] Dropping %s for connection %s after %d attempts (%s)",
                        self.registry.name,
                        delivery.frame.get("type"),
                        conn_id,
                        delivery.attempts,
                        reason,
                    )
                else:
                    logger.warning(
                        "[%s] Send of %s to connection %s %s (attempt %d/%d)",
                        self.registry.name,
                        delivery.frame.get("type"),
                        conn_id,
                        reason,
                        delivery.attempts,
                        self.max_attempts,
                    )
                    delivery.not_before = time.monotonic() + self.retry_delay
                    requeue.append(delivery)
            # later frames wait for the next pass so the order is kept
            not_before = time.monotonic() + self.retry_delay
            for later in items[index + 1:]:
                later.not_before = not_before
                requeue.append(later)
            break
        return delivered

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Start the background drain task on *loop* (default: running loop)."""
        if self._drain_task is not None:
            return
        loop = loop or asyncio.get_running_loop()
        self._loop = loop
        self._wakeup = asyncio.Event()

        async def _drain_loop() -> None:
            while True:
                if not self.pending():
                    await self._wakeup.wait()
                self._wakeup.clear()
                try:
                    await self.drain_once()
                except Exception:
                    logger.exception("[%s] Dispatcher drain error", self.registry.name)
                if self.pending():
                    await asyncio.sleep(self.retry_delay)

        self._drain_task = loop.create_task(
            _drain_loop(), name=f"{self.registry.name}-dispatch"
        )

    def is_running_on(self, loop: asyncio.AbstractEventLoop) -> bool:
        return (
            self._drain_task is not None
            and not self._drain_task.done()
            and self._loop is loop
        )

    def stop(self) -> None:
        """Cancel the drain task.  Queued events stay queued."""
        if self._drain_task:
            loop_open = self._loop is not None and not self._loop.is_closed()
            if loop_open and not self._drain_task.done():
                self._drain_task.cancel()
            self._drain_task = None
        self._loop = None
        self._wakeup = None
