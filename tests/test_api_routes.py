"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================

REST endpoints and the chat WebSocket through the FastAPI TestClient,
backed by the in-memory SQLite engine.

These tests verify:
- Auth guards (missing/invalid token, admin-only endpoints)
- ServiceError → ``{"error": {...}}`` mapping
- Health endpoints
- Conversation, notification and social-graph round trips
- A live chat exchange over ``/hubs/chat``
"""

from __future__ import annotations

import pytest
from conftest import make_admin_token, make_conversation, make_friends, make_token, make_user
from fastapi.testclient import TestClient

from gamerhub.config import GamerHubConfig
from gamerhub.realtime.chat_hub import ChatHub
from gamerhub.realtime.notification_hub import NotificationHub
from gamerhub.services import chat_service


@pytest.fixture
def api(db_engine):
    """TestClient with the engine, config and hubs swapped for test doubles.

    Overrides are keyed on the dependency objects ``main`` was built with.
    """
    from gamerhub.api import main

    chat = ChatHub(db_engine, presence_grace_seconds=0, retry_delay=0)
    notifications = NotificationHub(db_engine, retry_delay=0)
    cfg = GamerHubConfig(community_name="Test", api_port=8000, notification_retention_days=7)
    main.app.dependency_overrides.update({
        main.get_engine: lambda: db_engine,
        main.get_config: lambda: cfg,
        main.get_chat_hub: lambda: chat,
        main.get_notification_hub: lambda: notifications,
    })
    client = TestClient(main.app, raise_server_exceptions=False)
    yield client
    main.app.dependency_overrides.clear()


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _as(user_id: int) -> dict:
    return _auth(make_token(user_id))


# ===========================================================================
# Health
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_realtime_health(self, api):
        resp = api.get("/api/health/realtime")
        assert resp.status_code == 200
        assert resp.json() == {
            "chat": {"connections": 0, "online_users": 0, "pending_events": 0},
            "notifications": {"connections": 0, "online_users": 0, "pending_events": 0},
        }


# ===========================================================================
# Auth guards
# ===========================================================================
class TestAuthGuards:
    PROTECTED_GET_ENDPOINTS = [
        "/api/auth/me",
        "/api/conversations",
        "/api/conversations/unread-count",
        "/api/messages/unread-count",
        "/api/notifications",
        "/api/notifications/unread-count",
        "/api/friendships",
    ]

    ADMIN_POST_ENDPOINTS = [
        "/api/notifications/system",
        "/api/notifications/admin",
        "/api/notifications/cleanup",
    ]

    @pytest.mark.parametrize("endpoint", PROTECTED_GET_ENDPOINTS)
    def test_no_token_returns_401(self, api, endpoint):
        resp = api.get(endpoint)
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", PROTECTED_GET_ENDPOINTS)
    def test_invalid_token_returns_401(self, api, endpoint):
        resp = api.get(endpoint, headers=_auth("invalid.jwt.token"))
        assert resp.status_code == 401

    def test_token_without_user_id_returns_401(self, api):
        resp = api.get("/api/conversations", headers=_auth(make_token("not-a-number")))
        assert resp.status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_POST_ENDPOINTS)
    def test_non_admin_returns_403(self, api, endpoint):
        resp = api.post(endpoint, json={}, headers=_as(1))
        assert resp.status_code == 403

    def test_me_reports_identity(self, api, db_engine):
        uid = make_user(db_engine, "sabrina", first_name="Sabrina")
        resp = api.get("/api/auth/me", headers=_as(uid))
        assert resp.status_code == 200
        assert resp.json() == {
            "id": uid,
            "username": "sabrina",
            "display_name": "Sabrina",
            "avatar_url": None,
            "is_admin": False,
        }

    def test_me_for_admin_token(self, api, admin_token):
        body = api.get("/api/auth/me", headers=_auth(admin_token)).json()
        assert body["is_admin"] is True
        assert body["username"] == "FixtureAdmin"


# ===========================================================================
# Error mapping
# ===========================================================================
class TestServiceErrors:
    def test_not_found_shape(self, api, db_engine):
        uid = make_user(db_engine, "a")
        resp = api.get("/api/conversations/404", headers=_as(uid))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    def test_validation_details_included(self, api, db_engine):
        uid = make_user(db_engine, "a")
        resp = api.post(
            "/api/conversations/group",
            json={"title": "Raid", "participant_ids": [404]},
            headers=_as(uid),
        )
        assert resp.status_code == 400
        assert resp.json() == {
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Some users were not found",
                "details": {"missing": [404]},
            }
        }

    def test_forbidden_direct_without_friendship(self, api, db_engine):
        a, b = make_user(db_engine, "a"), make_user(db_engine, "b")
        resp = api.post("/api/conversations/direct", json={"user_id": b}, headers=_as(a))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "FORBIDDEN"

    def test_conflict(self, api, db_engine):
        a, b = make_user(db_engine, "a"), make_user(db_engine, "b")
        api.post(f"/api/follows/{b}", headers=_as(a))
        resp = api.post(f"/api/follows/{b}", headers=_as(a))
        assert resp.status_code == 409


# ===========================================================================
# Conversations
# ===========================================================================
class TestConversationRoutes:
    def test_group_lifecycle(self, api, db_engine):
        owner, m1 = make_user(db_engine, "owner"), make_user(db_engine, "m1")

        created = api.post(
            "/api/conversations/group",
            json={"title": "Speedrun", "participant_ids": [m1]},
            headers=_as(owner),
        )
        assert created.status_code == 201
        conv = created.json()["conversation_id"]

        listed = api.get("/api/conversations", headers=_as(m1)).json()["conversations"]
        assert [c["title"] for c in listed] == ["Speedrun"]

        left = api.post(f"/api/conversations/{conv}/leave", headers=_as(owner)).json()
        assert left["new_owner_id"] == m1

    def test_search_requires_term(self, api, db_engine):
        uid = make_user(db_engine, "a")
        assert api.get("/api/conversations/search?q=", headers=_as(uid)).status_code == 400

    def test_read_and_clear(self, api, db_engine):
        a, b = make_user(db_engine, "a"), make_user(db_engine, "b")
        make_friends(db_engine, a, b)
        conv = make_conversation(db_engine, [a, b])

        chat_service.send_message(db_engine, a, conv, "hi")

        assert api.get("/api/messages/unread-count", headers=_as(b)).json() == {"count": 1}
        api.post(f"/api/conversations/{conv}/read", headers=_as(b))
        assert api.get("/api/conversations/unread-count", headers=_as(b)).json() == {"count": 0}

        cleared = api.delete(f"/api/conversations/{conv}/messages", headers=_as(a)).json()
        assert cleared == {"conversation_id": conv, "cleared": 1}


# ===========================================================================
# Notifications
# ===========================================================================
class TestNotificationRoutes:
    def test_admin_notification_then_read(self, api, db_engine):
        admin = make_user(db_engine, "root")
        target = make_user(db_engine, "dawn")
        token = make_admin_token(sub=str(admin), username="root")

        created = api.post(
            "/api/notifications/admin",
            json={"user_id": target, "title": "Hi", "message": "Be nice"},
            headers=_auth(token),
        )
        assert created.status_code == 200
        nid = created.json()["id"]
        assert created.json()["priority"] == "high"
        assert created.json()["triggered_by"]["id"] == admin

        assert api.get("/api/notifications/unread-count", headers=_as(target)).json() == {"count": 1}
        read = api.post(f"/api/notifications/{nid}/read", headers=_as(target)).json()
        assert read == {"id": nid, "unread_count": 0}

    def test_system_broadcast_has_no_row(self, api, db_engine, admin_token):
        uid = make_user(db_engine, "dawn")
        resp = api.post(
            "/api/notifications/system",
            json={"title": "Restart", "message": "Back in 5"},
            headers=_auth(admin_token),
        )
        assert resp.json() == {"broadcast": True}
        assert api.get("/api/notifications", headers=_as(uid)).json()["total"] == 0

    def test_system_notification_for_one_user(self, api, db_engine, admin_token):
        uid = make_user(db_engine, "dawn")
        resp = api.post(
            "/api/notifications/system",
            json={"title": "Welcome", "message": "GLHF", "user_id": uid, "priority": "low"},
            headers=_auth(admin_token),
        ).json()
        assert resp["broadcast"] is False
        assert resp["notification"]["priority"] == "low"

    def test_cleanup_returns_counts_and_stats(self, api, admin_token):
        body = api.post("/api/notifications/cleanup", headers=_auth(admin_token)).json()
        assert body["expired_deleted"] == 0
        assert body["old_deleted"] == 0
        assert body["stats"]["total_notifications"] == 0

    def test_other_users_notification_is_404(self, api, db_engine, admin_token):
        owner, eve = make_user(db_engine, "dawn"), make_user(db_engine, "eve")
        nid = api.post(
            "/api/notifications/system",
            json={"title": "t", "message": "m", "user_id": owner},
            headers=_auth(admin_token),
        ).json()["notification"]["id"]
        assert api.get(f"/api/notifications/{nid}", headers=_as(eve)).status_code == 404
        assert api.delete(f"/api/notifications/{nid}", headers=_as(owner)).json() == {
            "id": nid, "deleted": True,
        }


# ===========================================================================
# Social graph
# ===========================================================================
class TestSocialRoutes:
    def test_friend_request_flow(self, api, db_engine):
        a, b = make_user(db_engine, "a"), make_user(db_engine, "b")

        sent = api.post("/api/friendships/requests", json={"user_id": b}, headers=_as(a))
        assert sent.status_code == 201
        fid = sent.json()["id"]

        incoming = api.get("/api/friendships/requests/incoming", headers=_as(b)).json()
        assert [r["id"] for r in incoming["requests"]] == [fid]

        assert api.post(f"/api/friendships/requests/{fid}/accept", headers=_as(b)).status_code == 200
        friends = api.get("/api/friendships", headers=_as(a)).json()["friends"]
        assert [f["id"] for f in friends] == [b]
        assert api.get(f"/api/friendships/status/{b}", headers=_as(a)).json()["status"] == "accepted"

    def test_follow_stats(self, api, db_engine):
        a, b = make_user(db_engine, "a"), make_user(db_engine, "b")
        assert api.post(f"/api/follows/{b}", headers=_as(a)).status_code == 201
        stats = api.get(f"/api/follows/{b}/stats", headers=_as(a)).json()
        assert stats["followers"] == 1
        assert stats["is_following"] is True


# ===========================================================================
# WebSocket hub
# ===========================================================================
class TestChatWebSocket:
    def test_message_round_trip(self, api, db_engine):
        a, b = make_user(db_engine, "ash"), make_user(db_engine, "brock")
        make_friends(db_engine, a, b)
        conv = make_conversation(db_engine, [a, b])

        with api.websocket_connect(f"/hubs/chat?access_token={make_token(a)}") as ws:
            ws.send_json({
                "target": "send_message",
                "arguments": {"conversation_id": conv, "content": "hello"},
            })
            frame = ws.receive_json()

        assert frame["type"] == "receive_message"
        assert frame["data"]["content"] == "hello"
        assert frame["data"]["sender"]["id"] == a
