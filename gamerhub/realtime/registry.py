"""
gamerhub.realtime.registry — Connection Registry & Broadcast Groups
=====================================================================

In-memory, per-hub bookkeeping of live WebSocket connections:

* ``user_id → {connection ids}`` so a user stays online while *any* of
  their tabs or devices is connected (no last-write-wins overwrite).
* ``group name → {connection ids}`` for fan-out (``user:{id}``,
  ``conversation:{id}``, ad-hoc topics).

State is process-local and rebuilt from scratch on restart: clients simply
reconnect and re-register.  Every method takes the same
:class:`threading.Lock`, so the registry can be read from worker threads
(services asking "is this user online?") as well as from the event loop.
"""

from __future__ import annotations

import threading
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class Connection:
    """One live transport.  ``user_id`` is ``None`` for anonymous sockets."""

    websocket: Any
    user_id: int | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    async def send(self, frame: dict) -> None:
        await self.websocket.send_json(frame)


class ConnectionRegistry:
    """Thread-safe map of users, connections and groups for one hub."""

    def __init__(self, name: str = "hub") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._connections: dict[str, Connection] = {}
        self._by_user: dict[int, set[str]] = defaultdict(set)
        self._groups: dict[str, set[str]] = defaultdict(set)
        self._memberships: dict[str, set[str]] = defaultdict(set)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------
    def register(self, conn: Connection) -> bool:
        """Track *conn*.  Returns True when it is the user's first connection."""
        if conn.user_id is None:
            return False
        with self._lock:
            self._connections[conn.id] = conn
            first = not self._by_user[conn.user_id]
            self._by_user[conn.user_id].add(conn.id)
            return first

    def unregister(self, conn: Connection) -> set[str]:
        """Forget *conn* and drop it from every group.  Returns the groups it left."""
        with self._lock:
            if self._connections.pop(conn.id, None) is None:
                return set()
            if conn.user_id is not None:
                ids = self._by_user.get(conn.user_id)
                if ids is not None:
                    ids.discard(conn.id)
                    if not ids:
                        del self._by_user[conn.user_id]
            left = self._memberships.pop(conn.id, set())
            for group in left:
                members = self._groups.get(group)
                if members is None:
                    continue
                members.discard(conn.id)
                if not members:
                    del self._groups[group]
            return left

    def get(self, conn_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(conn_id)

    def all_connections(self) -> list[Connection]:
        with self._lock:
            return list(self._connections.values())

    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    # ------------------------------------------------------------------
    # Presence
    # ------------------------------------------------------------------
    def user_connections(self, user_id: int) -> list[Connection]:
        with self._lock:
            return [self._connections[c] for c in self._by_user.get(user_id, ())]

    def is_online(self, user_id: int) -> bool:
        with self._lock:
            return bool(self._by_user.get(user_id))

    def online_users(self) -> list[int]:
        with self._lock:
            return sorted(self._by_user)

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------
    def add_to_group(self, conn_id: str, group: str) -> bool:
        """Add a registered connection to *group*.  Unknown ids are ignored."""
        with self._lock:
            if conn_id not in self._connections:
                return False
            self._groups[group].add(conn_id)
            self._memberships[conn_id].add(group)
            return True

    def remove_from_group(self, conn_id: str, group: str) -> None:
        with self._lock:
            members = self._groups.get(group)
            if members is not None:
                members.discard(conn_id)
                if not members:
                    del self._groups[group]
            groups = self._memberships.get(conn_id)
            if groups is not None:
                groups.discard(group)

    def group_members(self, group: str) -> list[Connection]:
        """Snapshot of the connections currently in *group*."""
        with self._lock:
            return [
                self._connections[c]
                for c in self._groups.get(group, ())
                if c in self._connections
            ]

    def groups_of(self, conn_id: str) -> set[str]:
        with self._lock:
            return set(self._memberships.get(conn_id, ()))
