"""
tests/test_chat_hub.py — Chat Hub End-to-End (fake sockets)
============================================================

Drives :class:`ChatHub` the way the WebSocket route does: connect with
claims, feed JSON frames to ``invoke`` and drain the dispatcher.
"""

from __future__ import annotations

import asyncio
import json
import logging
from unittest.mock import MagicMock, call, patch

import pytest
from conftest import FakeWebSocket, make_conversation, make_friends, make_user, run_async

from gamerhub.database.engine import get_session
from gamerhub.database.models import (
    Conversation,
    ConversationType,
    FriendshipStatus,
    Message,
    MessageReaction,
    MessageRead,
    User,
)
from gamerhub.realtime.chat_hub import ChatHub
from gamerhub.services import chat_service
from gamerhub.services.chat_service import NOT_FRIENDS_MESSAGE


def _frame(target: str, **arguments) -> str:
    return json.dumps({"target": target, "arguments": arguments})


@pytest.fixture
def hub(db_engine) -> ChatHub:
    return ChatHub(db_engine, presence_grace_seconds=0, retry_delay=0)


@pytest.fixture
def friends(db_engine):
    a = make_user(db_engine, "ash")
    b = make_user(db_engine, "brock")
    make_friends(db_engine, a, b)
    conv = make_conversation(db_engine, [a, b])
    return a, b, conv


class TestConnect:
    def test_joins_private_and_conversation_groups(self, hub, friends):
        a, _, conv = friends

        async def scenario():
            return await hub.connect(FakeWebSocket(), {"userId": str(a)})

        conn = run_async(scenario())
        assert hub.registry.groups_of(conn.id) == {f"user:{a}", f"conversation:{conv}"}

    def test_claim_fallback_order(self, hub, friends):
        a, _, _ = friends

        async def scenario():
            return await hub.connect(FakeWebSocket(), {"sub": "not-a-number", "nameid": str(a)})

        assert run_async(scenario()).user_id == a

    def test_anonymous_connection_is_excluded(self, hub, friends):
        _, _, conv = friends
        ws = FakeWebSocket()

        async def scenario():
            conn = await hub.connect(ws, {})
            await hub.invoke(conn, _frame("send_message", conversation_id=conv, content="hi"))
            await hub.dispatcher.drain_once()
            return conn

        conn = run_async(scenario())
        assert not conn.is_authenticated
        assert hub.registry.connection_count() == 0
        assert ws.sent == []


class TestSendMessage:
    def test_friend_receives_broadcast_and_pointer_moves(self, hub, db_engine, friends):
        a, b, conv = friends
        ws_a, ws_b = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            conn_a = await hub.connect(ws_a, {"userId": a})
            await hub.connect(ws_b, {"userId": b})
            await hub.invoke(conn_a, _frame("send_message", conversation_id=conv, content="hello"))
            await hub.dispatcher.drain_once()

        run_async(scenario())

        [event] = ws_b.events("receive_message")
        data = event["data"]
        assert data["sender"]["id"] == a
        assert data["content"] == "hello"
        assert isinstance(data["id"], int)
        assert ws_a.events("receive_message")  # the sender's own tabs see it too

        with get_session(db_engine) as session:
            assert session.get(Conversation, conv).last_message_id == data["id"]

    def test_not_friends_emits_single_caller_error(self, hub, db_engine):
        a = make_user(db_engine, "misty")
        b = make_user(db_engine, "gary")
        make_friends(db_engine, a, b, FriendshipStatus.DECLINED)
        conv = make_conversation(db_engine, [a, b])
        ws_a, ws_b = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            conn_a = await hub.connect(ws_a, {"userId": a})
            await hub.connect(ws_b, {"userId": b})
            await hub.invoke(conn_a, _frame("send_message", conversation_id=conv, content="hey"))
            await hub.dispatcher.drain_once()

        run_async(scenario())

        assert ws_a.sent == [{"type": "message_error", "data": {"message": NOT_FRIENDS_MESSAGE}}]
        assert ws_b.sent == []
        with get_session(db_engine) as session:
            assert session.query(Message).count() == 0

    def test_outsider_send_is_silent_noop(self, hub, db_engine, friends):
        _, b, conv = friends
        eve = make_user(db_engine, "eve")
        ws_eve, ws_b = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            conn = await hub.connect(ws_eve, {"userId": eve})
            await hub.connect(ws_b, {"userId": b})
            await hub.invoke(conn, _frame("send_message", conversation_id=conv, content="spam"))
            await hub.invoke(conn, _frame("join_conversation", conversation_id=conv))
            await hub.dispatcher.drain_once()
            return conn

        conn = run_async(scenario())
        assert ws_eve.sent == [] and ws_b.sent == []
        assert f"conversation:{conv}" not in hub.registry.groups_of(conn.id)
        with get_session(db_engine) as session:
            assert session.query(Message).count() == 0


class TestReadsAndReactions:
    def test_read_receipt_broadcast_once(self, hub, db_engine, friends):
        a, b, conv = friends
        ws_a, ws_b = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            conn_a = await hub.connect(ws_a, {"userId": a})
            conn_b = await hub.connect(ws_b, {"userId": b})
            await hub.invoke(conn_a, _frame("send_message", conversation_id=conv, content="yo"))
            await hub.dispatcher.drain_once()
            message_id = ws_b.events("receive_message")[0]["data"]["id"]
            await hub.invoke(conn_b, _frame("mark_message_read", message_id=message_id))
            await hub.invoke(conn_b, _frame("mark_message_read", message_id=message_id))
            await hub.dispatcher.drain_once()

        run_async(scenario())

        assert len(ws_a.events("message_read")) == 1
        with get_session(db_engine) as session:
            assert session.query(MessageRead).count() == 1

    def test_double_toggle_leaves_no_reaction(self, hub, db_engine):
        owner, c, d = (make_user(db_engine, n) for n in ("owner", "cilan", "dawn"))
        conv = make_conversation(db_engine, [owner, c, d], ConversationType.GROUP, "league")
        ws_c = FakeWebSocket()

        async def scenario():
            conn_owner = await hub.connect(FakeWebSocket(), {"userId": owner})
            conn_c = await hub.connect(ws_c, {"userId": c})
            await hub.invoke(conn_owner, _frame("send_message", conversation_id=conv, content="M"))
            await hub.dispatcher.drain_once()
            message_id = ws_c.events("receive_message")[0]["data"]["id"]
            await hub.invoke(conn_c, _frame("toggle_reaction", message_id=message_id, emoji="👍"))
            await hub.invoke(conn_c, _frame("toggle_reaction", message_id=message_id, emoji="👍"))
            await hub.dispatcher.drain_once()
            return message_id

        message_id = run_async(scenario())

        updates = ws_c.events("reaction_update")
        assert [u["data"]["reactions"] for u in updates] == [
            [{"emoji": "👍", "count": 1, "users": [{"user_id": c, "username": "cilan"}]}],
            [],
        ]
        with get_session(db_engine) as session:
            assert session.query(MessageReaction).filter_by(message_id=message_id).count() == 0


class TestTyping:
    def test_typing_excludes_caller(self, hub, friends):
        a, b, conv = friends
        ws_a, ws_b = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            conn_a = await hub.connect(ws_a, {"userId": a})
            await hub.connect(ws_b, {"userId": b})
            await hub.invoke(conn_a, _frame("send_typing", conversation_id=conv))
            await hub.invoke(conn_a, _frame("stop_typing", conversation_id=conv))
            await hub.dispatcher.drain_once()

        run_async(scenario())

        assert ws_a.sent == []
        assert [f["type"] for f in ws_b.sent] == ["user_typing", "user_stopped_typing"]
        assert ws_b.sent[0]["data"] == {"conversation_id": conv, "user_id": a, "username": "ash"}

    def test_caller_other_tab_sees_typing(self, hub, friends):
        a, _, conv = friends
        tab_1, tab_2 = FakeWebSocket(), FakeWebSocket()

        async def scenario():
            conn_1 = await hub.connect(tab_1, {"userId": a})
            await hub.connect(tab_2, {"userId": a})
            await hub.invoke(conn_1, _frame("send_typing", conversation_id=conv))
            await hub.dispatcher.drain_once()

        run_async(scenario())
        assert tab_1.sent == []
        assert len(tab_2.events("user_typing")) == 1


class TestPresence:
    def test_offline_only_after_last_connection(self, hub, db_engine, friends):
        a, _, _ = friends

        async def scenario():
            tab_1 = await hub.connect(FakeWebSocket(), {"userId": a})
            tab_2 = await hub.connect(FakeWebSocket(), {"userId": a})
            await hub.invoke(tab_1, _frame("update_activity"))
            await hub.disconnect(tab_1)
            with get_session(db_engine) as session:
                still_online = session.get(User, a).is_online
            await hub.disconnect(tab_2)
            return still_online

        assert run_async(scenario()) is True
        with get_session(db_engine) as session:
            assert session.get(User, a).is_online is False
        assert not hub.registry.is_online(a)

    def test_presence_announced_once_per_user(self, db_engine, friends):
        a, _, _ = friends
        notifier = MagicMock()
        hub = ChatHub(db_engine, presence_grace_seconds=0, notifier=notifier, retry_delay=0)

        async def scenario():
            tab_1 = await hub.connect(FakeWebSocket(), {"userId": a})
            tab_2 = await hub.connect(FakeWebSocket(), {"userId": a})
            await hub.disconnect(tab_1)
            await hub.disconnect(tab_2)

        run_async(scenario())
        assert notifier.send_online_status_update.call_args_list == [
            call(a, True),
            call(a, False),
        ]

    def test_reconnect_within_grace_announces_once(self, db_engine, friends):
        a, _, _ = friends
        notifier = MagicMock()
        hub = ChatHub(db_engine, presence_grace_seconds=0.3, notifier=notifier, retry_delay=0)

        async def scenario():
            tab_1 = await hub.connect(FakeWebSocket(), {"userId": a})
            first_close = asyncio.ensure_future(hub.disconnect(tab_1))
            await asyncio.sleep(0.05)
            tab_2 = await hub.connect(FakeWebSocket(), {"userId": a})
            await asyncio.sleep(0.05)
            await asyncio.gather(first_close, hub.disconnect(tab_2))

        with patch.object(
            chat_service, "mark_offline", wraps=chat_service.mark_offline
        ) as mark_offline:
            run_async(scenario())

        assert notifier.send_online_status_update.call_args_list == [
            call(a, True),
            call(a, False),
        ]
        mark_offline.assert_called_once_with(db_engine, a)

    def test_reconnect_within_grace_stays_online(self, db_engine, friends):
        a, _, _ = friends
        notifier = MagicMock()
        hub = ChatHub(db_engine, presence_grace_seconds=0.1, notifier=notifier, retry_delay=0)

        async def scenario():
            tab_1 = await hub.connect(FakeWebSocket(), {"userId": a})
            await hub.invoke(tab_1, _frame("update_activity"))
            first_close = asyncio.ensure_future(hub.disconnect(tab_1))
            await asyncio.sleep(0.02)
            await hub.connect(FakeWebSocket(), {"userId": a})
            await first_close

        run_async(scenario())
        assert notifier.send_online_status_update.call_args_list == [call(a, True)]
        assert hub.registry.is_online(a)
        with get_session(db_engine) as session:
            assert session.get(User, a).is_online is True


class TestInvokeRobustness:
    def test_unknown_target_logged(self, hub, friends, caplog):
        a, _, _ = friends

        async def scenario():
            conn = await hub.connect(FakeWebSocket(), {"userId": a})
            await hub.invoke(conn, _frame("drop_tables"))

        with caplog.at_level(logging.WARNING, logger="gamerhub.realtime.hub"):
            run_async(scenario())
        assert "Unknown hub method" in caplog.text

    def test_bad_arguments_logged(self, hub, friends, caplog):
        a, _, _ = friends

        async def scenario():
            conn = await hub.connect(FakeWebSocket(), {"userId": a})
            await hub.invoke(conn, _frame("send_message", bogus=1))

        with caplog.at_level(logging.WARNING, logger="gamerhub.realtime.hub"):
            run_async(scenario())
        assert "Bad arguments" in caplog.text

    def test_malformed_frame_logged(self, hub, friends, caplog):
        a, _, _ = friends

        async def scenario():
            conn = await hub.connect(FakeWebSocket(), {"userId": a})
            await hub.invoke(conn, "not json")

        with caplog.at_level(logging.WARNING, logger="gamerhub.realtime.hub"):
            run_async(scenario())
        assert "Malformed frame" in caplog.text

    def test_methods_registered(self, hub):
        assert hub.methods == [
            "join_conversation",
            "leave_conversation",
            "mark_message_read",
            "send_message",
            "send_typing",
            "stop_typing",
            "toggle_reaction",
            "update_activity",
        ]


class TestRestMembershipSync:
    def test_join_and_remove_user_from_conversation(self, hub, friends):
        a, _, _ = friends

        async def scenario():
            return await hub.connect(FakeWebSocket(), {"userId": a})

        conn = run_async(scenario())
        assert hub.join_user_to_conversation(a, 77) == 1
        assert "conversation:77" in hub.registry.groups_of(conn.id)
        hub.remove_user_from_conversation(a, 77)
        assert "conversation:77" not in hub.registry.groups_of(conn.id)
