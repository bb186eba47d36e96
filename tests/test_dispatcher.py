"""
tests/test_dispatcher.py — Outbound Event Queue
================================================

Delivery targeting, exclusion, late membership resolution and the bounded
retry policy for failing or stalled sockets.
"""

from __future__ import annotations

import asyncio

from conftest import FakeWebSocket, run_async

from gamerhub.realtime.dispatcher import EventDispatcher
from gamerhub.realtime.registry import Connection, ConnectionRegistry


def _setup(
    *sockets: FakeWebSocket,
    max_attempts: int = 3,
    retry_delay: float = 0.0,
    send_timeout: float = 5.0,
):
    reg = ConnectionRegistry("test")
    conns = []
    for i, ws in enumerate(sockets, start=1):
        conn = Connection(websocket=ws, user_id=i)
        reg.register(conn)
        reg.add_to_group(conn.id, "room")
        conns.append(conn)
    disp = EventDispatcher(
        reg, max_attempts=max_attempts, retry_delay=retry_delay, send_timeout=send_timeout
    )
    return reg, disp, conns


class StalledWebSocket(FakeWebSocket):
    """A client that stopped reading: sends never complete."""

    async def send_json(self, frame: dict) -> None:
        self.attempts += 1
        await asyncio.Event().wait()


class TestTargeting:
    def test_group_broadcast_reaches_members(self):
        a, b = FakeWebSocket(), FakeWebSocket()
        _, disp, _ = _setup(a, b)

        disp.publish_to_group("room", "ping", {"n": 1})
        delivered = run_async(disp.drain_once())

        assert delivered == 2
        assert a.sent == [{"type": "ping", "data": {"n": 1}}]
        assert b.sent == a.sent

    def test_exclude_skips_caller(self):
        a, b = FakeWebSocket(), FakeWebSocket()
        _, disp, (conn_a, _) = _setup(a, b)

        disp.publish_to_group("room", "user_typing", {"user_id": 1}, exclude=[conn_a.id])
        run_async(disp.drain_once())

        assert a.sent == []
        assert len(b.sent) == 1

    def test_direct_send(self):
        a, b = FakeWebSocket(), FakeWebSocket()
        _, disp, (conn_a, _) = _setup(a, b)

        disp.publish_to_connection(conn_a.id, "message_error", {"message": "nope"})
        run_async(disp.drain_once())

        assert a.events("message_error")
        assert b.sent == []

    def test_publish_to_all(self):
        a, b = FakeWebSocket(), FakeWebSocket()
        reg, disp, _ = _setup(a, b)
        outsider = FakeWebSocket()
        reg.register(Connection(websocket=outsider, user_id=9))

        disp.publish_to_all("receive_system_notification", {"message": "restart"})
        run_async(disp.drain_once())

        assert len(a.sent) == len(b.sent) == len(outsider.sent) == 1

    def test_membership_resolved_at_delivery(self):
        a = FakeWebSocket()
        reg, disp, _ = _setup(a)
        late = Connection(websocket=FakeWebSocket(), user_id=5)

        disp.publish_to_group("room", "ping")
        reg.register(late)
        reg.add_to_group(late.id, "room")
        run_async(disp.drain_once())

        assert len(late.websocket.sent) == 1

    def test_disconnected_target_is_dropped(self):
        a = FakeWebSocket()
        reg, disp, (conn_a,) = _setup(a)

        disp.publish_to_connection(conn_a.id, "ping")
        reg.unregister(conn_a)

        assert run_async(disp.drain_once()) == 0
        assert disp.pending() == 0


class TestRetries:
    def test_transient_failure_is_retried(self):
        flaky = FakeWebSocket(fail_times=1)
        _, disp, _ = _setup(flaky)

        disp.publish_to_group("room", "ping")
        assert run_async(disp.drain_once()) == 0
        assert disp.pending() == 1

        assert run_async(disp.drain_once()) == 1
        assert flaky.sent == [{"type": "ping", "data": None}]
        assert disp.pending() == 0

    def test_gives_up_after_max_attempts(self):
        dead = FakeWebSocket(fail_times=100)
        _, disp, _ = _setup(dead, max_attempts=3)

        disp.publish_to_group("room", "ping")
        for _ in range(5):
            run_async(disp.drain_once())

        assert dead.attempts == 3
        assert disp.pending() == 0

    def test_failure_does_not_block_other_members(self):
        dead, healthy = FakeWebSocket(fail_times=100), FakeWebSocket()
        _, disp, _ = _setup(dead, healthy, max_attempts=1)

        disp.publish_to_group("room", "ping")
        run_async(disp.drain_once())

        assert len(healthy.sent) == 1
        assert disp.pending() == 0

    def test_retry_waits_for_delay(self):
        flaky = FakeWebSocket(fail_times=1)
        _, disp, _ = _setup(flaky, retry_delay=60.0)

        disp.publish_to_group("room", "ping")
        run_async(disp.drain_once())
        run_async(disp.drain_once())

        assert flaky.attempts == 1
        assert disp.pending() == 1

    def test_frames_for_one_connection_keep_their_order(self):
        flaky = FakeWebSocket(fail_times=1)
        _, disp, _ = _setup(flaky)

        disp.publish_to_group("room", "first")
        disp.publish_to_group("room", "second")
        assert run_async(disp.drain_once()) == 0
        assert disp.pending() == 2

        assert run_async(disp.drain_once()) == 2
        assert [f["type"] for f in flaky.sent] == ["first", "second"]


class TestStalledSockets:
    def test_stalled_socket_does_not_hold_up_others(self):
        stalled, healthy = StalledWebSocket(), FakeWebSocket()
        _, disp, _ = _setup(stalled, healthy, send_timeout=0.05)

        disp.publish_to_group("room", "ping")
        delivered = run_async(asyncio.wait_for(disp.drain_once(), 1.0))

        assert delivered == 1
        assert healthy.sent == [{"type": "ping", "data": None}]
        assert stalled.attempts == 1
        assert disp.pending() == 1

    def test_timed_out_send_is_dropped_after_max_attempts(self):
        stalled = StalledWebSocket()
        _, disp, _ = _setup(stalled, max_attempts=2, send_timeout=0.01)

        disp.publish_to_group("room", "ping")
        for _ in range(4):
            run_async(asyncio.wait_for(disp.drain_once(), 1.0))

        assert stalled.attempts == 2
        assert disp.pending() == 0

    def test_sends_run_concurrently(self):
        sockets = [StalledWebSocket() for _ in range(5)]
        _, disp, _ = _setup(*sockets, max_attempts=1, send_timeout=0.2)

        disp.publish_to_group("room", "ping")
        # five sequential timeouts would need a full second
        run_async(asyncio.wait_for(disp.drain_once(), 0.8))

        assert all(ws.attempts == 1 for ws in sockets)
        assert disp.pending() == 0



class TestBackgroundTask:
    def test_started_dispatcher_delivers_without_manual_drain(self):
        ws = FakeWebSocket()
        _, disp, _ = _setup(ws)

        async def scenario():
            disp.start()
            disp.publish_to_group("room", "ping")
            for _ in range(50):
                if ws.sent:
                    break
                await asyncio.sleep(0.01)
            disp.stop()

        run_async(scenario())
        assert ws.sent == [{"type": "ping", "data": None}]

    def test_is_running_on(self):
        _, disp, _ = _setup(FakeWebSocket())

        async def scenario():
            loop = asyncio.get_running_loop()
            assert not disp.is_running_on(loop)
            disp.start(loop)
            assert disp.is_running_on(loop)
            disp.stop()
            assert not disp.is_running_on(loop)

        run_async(scenario())
