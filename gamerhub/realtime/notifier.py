"""
gamerhub.realtime.notifier — Push façade for services
=======================================================

Services depend on the small :class:`Notifier` surface, not on the hub.
:class:`HubNotifier` enqueues events on the notification hub's dispatcher
and therefore never blocks or raises on a dead socket; :class:`NullNotifier`
does nothing and is what batch jobs and most unit tests pass in.

All methods are synchronous and safe to call from worker threads.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Protocol

from gamerhub.constants import (
    EVENT_RECEIVE_NOTIFICATION,
    EVENT_RECEIVE_SYSTEM_NOTIFICATION,
    EVENT_UNREAD_COUNT_UPDATED,
    EVENT_USER_ONLINE_STATUS_CHANGED,
    EVENT_USER_STOPPED_TYPING,
    EVENT_USER_TYPING,
    iso_utc,
    user_group,
)

if TYPE_CHECKING:
    from gamerhub.realtime.notification_hub import NotificationHub


class Notifier(Protocol):
    def send_notification_to_user(self, user_id: int, payload: dict) -> None: ...
    def send_notification_to_users(self, user_ids: Iterable[int], payload: dict) -> None: ...
    def send_unread_count_update(self, user_id: int, count: int) -> None: ...
    def send_system_notification(self, message: str, title: str | None = None) -> None: ...
    def send_online_status_update(self, user_id: int, is_online: bool) -> None: ...
    def send_typing_indicator(
        self, user_id: int, entity_type: str, entity_id: int, is_typing: bool
    ) -> None: ...
    def online_users(self) -> list[int]: ...
    def is_user_online(self, user_id: int) -> bool: ...


class HubNotifier:
    """Publishes through a :class:`NotificationHub`."""

    def __init__(self, hub: NotificationHub) -> None:
        self.hub = hub

    @property
    def _dispatcher(self):
        return self.hub.dispatcher

    def send_notification_to_user(self, user_id: int, payload: dict) -> None:
        self._dispatcher.publish_to_group(
            user_group(user_id), EVENT_RECEIVE_NOTIFICATION, payload
        )

    def send_notification_to_users(self, user_ids: Iterable[int], payload: dict) -> None:
        for user_id in dict.fromkeys(user_ids):
            self.send_notification_to_user(user_id, payload)

    def send_unread_count_update(self, user_id: int, count: int) -> None:
        self._dispatcher.publish_to_group(
            user_group(user_id), EVENT_UNREAD_COUNT_UPDATED, {"count": count}
        )

    def send_system_notification(self, message: str, title: str | None = None) -> None:
        self._dispatcher.publish_to_all(
            EVENT_RECEIVE_SYSTEM_NOTIFICATION,
            {
                "title": title or "System Notification",
                "message": message,
                "created_at": iso_utc(datetime.now(UTC)),
            },
        )

    def send_online_status_update(self, user_id: int, is_online: bool) -> None:
        self._dispatcher.publish_to_all(
            EVENT_USER_ONLINE_STATUS_CHANGED,
            {"user_id": user_id, "is_online": is_online},
        )

    def send_typing_indicator(
        self, user_id: int, entity_type: str, entity_id: int, is_typing: bool
    ) -> None:
        """Typing in a comment thread or similar, not in chat conversations."""
        event = EVENT_USER_TYPING if is_typing else EVENT_USER_STOPPED_TYPING
        self._dispatcher.publish_to_group(
            f"{entity_type}:{entity_id}",
            event,
            {"user_id": user_id, "entity_type": entity_type, "entity_id": entity_id},
        )

    def online_users(self) -> list[int]:
        return self.hub.registry.online_users()

    def is_user_online(self, user_id: int) -> bool:
        return self.hub.registry.is_online(user_id)


class NullNotifier:
    """Same surface as :class:`HubNotifier`; drops everything."""

    def send_notification_to_user(self, user_id: int, payload: dict) -> None:
        pass

    def send_notification_to_users(self, user_ids: Iterable[int], payload: dict) -> None:
        pass

    def send_unread_count_update(self, user_id: int, count: int) -> None:
        pass

    def send_system_notification(self, message: str, title: str | None = None) -> None:
        pass

    def send_online_status_update(self, user_id: int, is_online: bool) -> None:
        pass

    def send_typing_indicator(
        self, user_id: int, entity_type: str, entity_id: int, is_typing: bool
    ) -> None:
        pass

    def online_users(self) -> list[int]:
        return []

    def is_user_online(self, user_id: int) -> bool:
        return False
