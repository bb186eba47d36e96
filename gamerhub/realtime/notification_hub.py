"""
gamerhub.realtime.notification_hub — Notification Hub
=======================================================

Push-only endpoint.  Every authenticated connection joins its private
``user:{id}`` group on connect; services publish into it through
:class:`~gamerhub.realtime.notifier.HubNotifier`.  Clients may also join
ad-hoc topic groups (e.g. ``forum_topic:12`` for comment typing indicators).

There is no grace period here: a closed socket leaves every group at once.
"""

from __future__ import annotations

import logging

from gamerhub.constants import user_group
from gamerhub.realtime.hub import Hub, hub_method
from gamerhub.realtime.registry import Connection

logger = logging.getLogger(__name__)


class NotificationHub(Hub):
    name = "notifications"

    async def on_connected(self, conn: Connection) -> None:
        self.registry.add_to_group(conn.id, user_group(conn.user_id))

    @hub_method
    async def join_group(self, conn: Connection, group_name: str) -> None:
        if not group_name:
            return
        if group_name.startswith("user:") and group_name != user_group(conn.user_id):
            logger.warning(
                "[notifications] User %d tried to join private group %s", conn.user_id, group_name
            )
            return
        self.registry.add_to_group(conn.id, group_name)
        logger.debug("[notifications] Connection %s joined %s", conn.id, group_name)

    @hub_method
    async def leave_group(self, conn: Connection, group_name: str) -> None:
        self.registry.remove_from_group(conn.id, group_name)
