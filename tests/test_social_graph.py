"""
tests/test_social_graph.py — Friendships & Follows
===================================================

Friend request lifecycle (send, accept, decline, cancel, re-send), blocks,
and the soft-deleted follow graph with its notification switch.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import make_user

from gamerhub.database.engine import get_session
from gamerhub.database.models import Friendship, FriendshipStatus, NotificationType
from gamerhub.services import follow_service, friendship_service
from gamerhub.services.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def users(db_engine):
    return make_user(db_engine, "red"), make_user(db_engine, "blue")


def _pushed_types(notifier) -> list[str]:
    return [c.args[1]["type"] for c in notifier.send_notification_to_user.call_args_list]


# ---------------------------------------------------------------------------
# Friend requests
# ---------------------------------------------------------------------------
class TestFriendRequests:
    def test_send_notifies_receiver(self, db_engine, notifier, users):
        red, blue = users
        request = friendship_service.send_request(db_engine, notifier, red, blue)

        assert request["status"] == "pending"
        assert request["friend"]["id"] == blue
        assert _pushed_types(notifier) == [NotificationType.FRIEND_REQUEST.value]
        assert notifier.send_notification_to_user.call_args.args[0] == blue

    def test_accept_makes_friends_and_notifies_sender(self, db_engine, notifier, users):
        red, blue = users
        fid = friendship_service.send_request(db_engine, notifier, red, blue)["id"]
        notifier.reset_mock()

        accepted = friendship_service.accept(db_engine, notifier, blue, fid)

        assert accepted["status"] == "accepted"
        assert accepted["friends_since"] is not None
        assert friendship_service.are_friends(db_engine, red, blue)
        assert friendship_service.are_friends(db_engine, blue, red)
        assert _pushed_types(notifier) == [NotificationType.FRIEND_REQUEST_ACCEPTED.value]
        assert notifier.send_notification_to_user.call_args.args[0] == red

    def test_only_receiver_may_accept(self, db_engine, notifier, users):
        red, blue = users
        fid = friendship_service.send_request(db_engine, notifier, red, blue)["id"]
        with pytest.raises(ForbiddenError):
            friendship_service.accept(db_engine, notifier, red, fid)
        with pytest.raises(ForbiddenError):
            friendship_service.decline(db_engine, red, fid)
        with pytest.raises(ForbiddenError):
            friendship_service.cancel(db_engine, blue, fid)

    def test_duplicate_pending_request(self, db_engine, notifier, users):
        red, blue = users
        friendship_service.send_request(db_engine, notifier, red, blue)
        with pytest.raises(ConflictError):
            friendship_service.send_request(db_engine, notifier, blue, red)

    def test_already_friends(self, db_engine, notifier, users):
        red, blue = users
        fid = friendship_service.send_request(db_engine, notifier, red, blue)["id"]
        friendship_service.accept(db_engine, notifier, blue, fid)
        with pytest.raises(ConflictError):
            friendship_service.send_request(db_engine, notifier, red, blue)

    def test_declined_request_can_be_resent_on_same_row(self, db_engine, notifier, users):
        red, blue = users
        fid = friendship_service.send_request(db_engine, notifier, red, blue)["id"]
        friendship_service.decline(db_engine, blue, fid)

        again = friendship_service.send_request(db_engine, notifier, blue, red)

        assert again["id"] == fid
        assert again["status"] == "pending"
        assert again["sender"]["id"] == blue
        with get_session(db_engine) as session:
            assert session.query(Friendship).count() == 1

    def test_cancelled_request_is_no_longer_pending(self, db_engine, notifier, users):
        red, blue = users
        fid = friendship_service.send_request(db_engine, notifier, red, blue)["id"]
        friendship_service.cancel(db_engine, red, fid)
        with pytest.raises(ValidationError):
            friendship_service.accept(db_engine, notifier, blue, fid)
        assert friendship_service.incoming_requests(db_engine, blue) == []

    def test_self_and_unknown_targets(self, db_engine, notifier, users):
        red, _ = users
        with pytest.raises(ValidationError):
            friendship_service.send_request(db_engine, notifier, red, red)
        with pytest.raises(NotFoundError):
            friendship_service.send_request(db_engine, notifier, red, 404)
        with pytest.raises(NotFoundError):
            friendship_service.accept(db_engine, notifier, red, 404)

    def test_incoming_and_sent_lists(self, db_engine, notifier, users):
        red, blue = users
        fid = friendship_service.send_request(db_engine, notifier, red, blue)["id"]
        assert [r["id"] for r in friendship_service.incoming_requests(db_engine, blue)] == [fid]
        assert [r["id"] for r in friendship_service.sent_requests(db_engine, red)] == [fid]
        assert friendship_service.sent_requests(db_engine, blue) == []


# ---------------------------------------------------------------------------
# Friends & blocks
# ---------------------------------------------------------------------------
class TestFriendsAndBlocks:
    def _befriend(self, db_engine, notifier, a, b) -> int:
        fid = friendship_service.send_request(db_engine, notifier, a, b)["id"]
        friendship_service.accept(db_engine, notifier, b, fid)
        return fid

    def test_list_friends_from_both_sides(self, db_engine, notifier, users):
        red, blue = users
        fid = self._befriend(db_engine, notifier, red, blue)

        [friend] = friendship_service.list_friends(db_engine, red)
        assert friend["id"] == blue
        assert friend["friendship_id"] == fid
        assert friend["is_online"] is False
        assert [f["id"] for f in friendship_service.list_friends(db_engine, blue)] == [red]

    def test_remove_friend(self, db_engine, notifier, users):
        red, blue = users
        self._befriend(db_engine, notifier, red, blue)
        friendship_service.remove(db_engine, blue, red)
        assert not friendship_service.are_friends(db_engine, red, blue)
        with pytest.raises(NotFoundError):
            friendship_service.remove(db_engine, blue, red)

    def test_block_ends_friendship_and_stops_requests(self, db_engine, notifier, users):
        red, blue = users
        self._befriend(db_engine, notifier, red, blue)

        blocked = friendship_service.block(db_engine, red, blue)

        assert blocked["status"] == "blocked"
        assert not friendship_service.are_friends(db_engine, red, blue)
        with pytest.raises(ForbiddenError):
            friendship_service.send_request(db_engine, notifier, blue, red)
        status = friendship_service.status_between(db_engine, red, blue)
        assert status["status"] == "blocked"
        assert status["blocked_by_me"] is True
        assert friendship_service.status_between(db_engine, blue, red)["blocked_by_me"] is False

    def test_only_blocker_can_unblock(self, db_engine, users):
        red, blue = users
        friendship_service.block(db_engine, red, blue)
        with pytest.raises(NotFoundError):
            friendship_service.unblock(db_engine, blue, red)

        friendship_service.unblock(db_engine, red, blue)

        assert friendship_service.status_between(db_engine, red, blue) == {
            "status": "none", "friendship_id": None, "is_sender": False,
        }

    def test_block_stranger_creates_row(self, db_engine, users):
        red, blue = users
        friendship_service.block(db_engine, blue, red)
        with get_session(db_engine) as session:
            row = session.query(Friendship).one()
            assert row.status == FriendshipStatus.BLOCKED
            assert row.blocked_by_id == blue

    def test_cannot_block_self(self, db_engine, users):
        red, _ = users
        with pytest.raises(ValidationError):
            friendship_service.block(db_engine, red, red)


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------
class TestFollows:
    def test_follow_notifies_target(self, db_engine, notifier, users):
        red, blue = users
        edge = follow_service.follow(db_engine, notifier, red, blue)

        assert edge["id"] == blue
        assert edge["notifications_enabled"] is True
        assert follow_service.is_following(db_engine, red, blue)
        assert _pushed_types(notifier) == [NotificationType.USER_FOLLOWED.value]

    def test_follow_twice_conflicts(self, db_engine, notifier, users):
        red, blue = users
        follow_service.follow(db_engine, notifier, red, blue)
        with pytest.raises(ConflictError):
            follow_service.follow(db_engine, notifier, red, blue)

    def test_self_follow_and_unknown_target(self, db_engine, notifier, users):
        red, _ = users
        with pytest.raises(ValidationError):
            follow_service.follow(db_engine, notifier, red, red)
        with pytest.raises(NotFoundError):
            follow_service.follow(db_engine, notifier, red, 404)

    def test_unfollow_then_refollow_reuses_edge(self, db_engine, notifier, users):
        red, blue = users
        follow_service.follow(db_engine, notifier, red, blue)
        follow_service.unfollow(db_engine, red, blue)

        assert not follow_service.is_following(db_engine, red, blue)
        assert follow_service.follow_stats(db_engine, blue) == {"followers": 0, "following": 0}
        with pytest.raises(NotFoundError):
            follow_service.unfollow(db_engine, red, blue)

        follow_service.follow(db_engine, notifier, red, blue)
        assert follow_service.follow_stats(db_engine, blue) == {"followers": 1, "following": 0}
        assert follow_service.follow_stats(db_engine, red) == {"followers": 0, "following": 1}

    def test_notification_switch_filters_follower_ids(self, db_engine, notifier, users):
        red, blue = users
        green = make_user(db_engine, "green")
        follow_service.follow(db_engine, notifier, red, blue)
        follow_service.follow(db_engine, notifier, green, blue)

        updated = follow_service.set_notifications(db_engine, green, blue, False)

        assert updated["notifications_enabled"] is False
        assert follow_service.follower_ids(db_engine, blue) == [red, green]
        assert follow_service.follower_ids(db_engine, blue, notifications_only=True) == [red]

    def test_followers_and_following_pages(self, db_engine, notifier, users):
        red, blue = users
        follow_service.follow(db_engine, notifier, red, blue)
        assert [f["id"] for f in follow_service.followers(db_engine, blue)] == [red]
        assert [f["id"] for f in follow_service.following(db_engine, red)] == [blue]
        assert follow_service.followers(db_engine, blue, page=2) == []
