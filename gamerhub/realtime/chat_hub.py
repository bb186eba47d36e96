"""
gamerhub.realtime.chat_hub — Chat Hub
=======================================

Client-callable methods for live chat.  Each one resolves the caller from
the connection, does its database work through :func:`run_db` and then
publishes on the hub's dispatcher:

======================  ==============================================
Method                  Publishes
======================  ==============================================
``send_message``        ``receive_message`` to ``conversation:{id}``
                        (or ``message_error`` to the caller only)
``mark_message_read``   ``message_read`` (first read, reader ≠ sender)
``toggle_reaction``     ``reaction_update`` with the full regrouped set
``send_typing``         ``user_typing`` to everyone but the caller
``stop_typing``         ``user_stopped_typing`` to everyone but the caller
======================  ==============================================

Presence: a user stays online while any chat connection is open.  When the
last one closes the hub waits ``presence_grace_seconds`` (a page reload
reconnects well within that) before persisting ``is_online = false``.
A connection opened during the wait cancels the pending check, so a user
with several tabs or a quick reconnect is announced online once and
offline once, through the notifier as ``user_online_status_changed``.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import Engine

from gamerhub.constants import (
    EVENT_MESSAGE_ERROR,
    EVENT_MESSAGE_READ,
    EVENT_REACTION_UPDATE,
    EVENT_RECEIVE_MESSAGE,
    EVENT_USER_STOPPED_TYPING,
    EVENT_USER_TYPING,
    conversation_group,
    user_group,
)
from gamerhub.database.engine import run_db
from gamerhub.realtime.hub import Hub, hub_method
from gamerhub.realtime.notifier import Notifier, NullNotifier
from gamerhub.realtime.registry import Connection
from gamerhub.services import chat_service
from gamerhub.services.chat_service import NOT_FRIENDS_MESSAGE, SendStatus

logger = logging.getLogger(__name__)


class ChatHub(Hub):
    name = "chat"

    def __init__(
        self,
        engine: Engine,
        *,
        presence_grace_seconds: float = 5.0,
        notifier: Notifier | None = None,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        send_timeout: float = 5.0,
    ) -> None:
        super().__init__(
            engine,
            max_attempts=max_attempts,
            retry_delay=retry_delay,
            send_timeout=send_timeout,
        )
        self.presence_grace_seconds = presence_grace_seconds
        # presence changes are announced on the notification hub
        self.notifier = notifier or NullNotifier()
        self._announced_online: set[int] = set()
        # user id -> token of the latest pending offline check
        self._offline_checks: dict[int, object] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def on_connected(self, conn: Connection) -> None:
        self._offline_checks.pop(conn.user_id, None)
        self.registry.add_to_group(conn.id, user_group(conn.user_id))
        if conn.user_id not in self._announced_online:
            self._announced_online.add(conn.user_id)
            self.notifier.send_online_status_update(conn.user_id, True)
        conversation_ids = await run_db(
            chat_service.active_conversation_ids, self.engine, conn.user_id
        )
        for conversation_id in conversation_ids:
            self.registry.add_to_group(conn.id, conversation_group(conversation_id))
        logger.info(
            "[chat] User %d joined %d conversation groups", conn.user_id, len(conversation_ids)
        )

    async def on_disconnected(self, conn: Connection) -> None:
        self.registry.unregister(conn)
        if self.registry.is_online(conn.user_id):
            return
        # a reconnect clears the token; a later disconnect replaces it
        token = object()
        self._offline_checks[conn.user_id] = token
        if self.presence_grace_seconds > 0:
            await asyncio.sleep(self.presence_grace_seconds)
        if self._offline_checks.get(conn.user_id) is not token:
            return
        del self._offline_checks[conn.user_id]
        self._announced_online.discard(conn.user_id)
        await run_db(chat_service.mark_offline, self.engine, conn.user_id)
        self.notifier.send_online_status_update(conn.user_id, False)
        logger.info("[chat] User %d is now offline", conn.user_id)

    # ------------------------------------------------------------------
    # Group membership driven by REST changes
    # ------------------------------------------------------------------
    def join_user_to_conversation(self, user_id: int, conversation_id: int) -> int:
        """Put every live chat connection of *user_id* into the conversation group."""
        group = conversation_group(conversation_id)
        joined = 0
        for conn in self.registry.user_connections(user_id):
            joined += self.registry.add_to_group(conn.id, group)
        return joined

    def remove_user_from_conversation(self, user_id: int, conversation_id: int) -> None:
        group = conversation_group(conversation_id)
        for conn in self.registry.user_connections(user_id):
            self.registry.remove_from_group(conn.id, group)

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------
    @hub_method
    async def join_conversation(self, conn: Connection, conversation_id: int) -> None:
        allowed = await run_db(
            chat_service.is_active_participant, self.engine, conn.user_id, conversation_id
        )
        if not allowed:
            return
        self.registry.add_to_group(conn.id, conversation_group(conversation_id))
        logger.info("[chat] User %d joined conversation %d", conn.user_id, conversation_id)

    @hub_method
    async def leave_conversation(self, conn: Connection, conversation_id: int) -> None:
        self.registry.remove_from_group(conn.id, conversation_group(conversation_id))
        logger.info("[chat] User %d left conversation %d", conn.user_id, conversation_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    @hub_method
    async def send_message(
        self,
        conn: Connection,
        conversation_id: int,
        content: str | None = None,
        media_url: str | None = None,
        media_type: str | None = None,
        reply_to_message_id: int | None = None,
    ) -> None:
        result = await run_db(
            chat_service.send_message,
            self.engine,
            conn.user_id,
            conversation_id,
            content,
            media_url,
            media_type,
            reply_to_message_id,
        )
        if result.status is SendStatus.NOT_FRIENDS:
            self.dispatcher.publish_to_connection(
                conn.id, EVENT_MESSAGE_ERROR, {"message": NOT_FRIENDS_MESSAGE}
            )
            return
        if not result.ok:
            return
        self.dispatcher.publish_to_group(
            conversation_group(conversation_id), EVENT_RECEIVE_MESSAGE, result.payload
        )

    @hub_method
    async def mark_message_read(self, conn: Connection, message_id: int) -> None:
        receipt = await run_db(
            chat_service.mark_message_read, self.engine, conn.user_id, message_id
        )
        if receipt is None or not receipt.notify:
            return
        self.dispatcher.publish_to_group(
            conversation_group(receipt.conversation_id), EVENT_MESSAGE_READ, receipt.payload()
        )

    @hub_method
    async def toggle_reaction(self, conn: Connection, message_id: int, emoji: str) -> None:
        update = await run_db(
            chat_service.toggle_reaction, self.engine, conn.user_id, message_id, emoji
        )
        if update is None:
            return
        self.dispatcher.publish_to_group(
            conversation_group(update.conversation_id), EVENT_REACTION_UPDATE, update.payload()
        )

    # ------------------------------------------------------------------
    # Typing & presence
    # ------------------------------------------------------------------
    @hub_method
    async def send_typing(self, conn: Connection, conversation_id: int) -> None:
        identity = await run_db(
            chat_service.typing_identity, self.engine, conn.user_id, conversation_id
        )
        if identity is None:
            return
        self.dispatcher.publish_to_group(
            conversation_group(conversation_id), EVENT_USER_TYPING, identity, exclude=[conn.id]
        )

    @hub_method
    async def stop_typing(self, conn: Connection, conversation_id: int) -> None:
        self.dispatcher.publish_to_group(
            conversation_group(conversation_id),
            EVENT_USER_STOPPED_TYPING,
            {"conversation_id": conversation_id, "user_id": conn.user_id},
            exclude=[conn.id],
        )

    @hub_method
    async def update_activity(self, conn: Connection) -> None:
        await run_db(chat_service.touch_activity, self.engine, conn.user_id)
