"""Tests for live recomputation of the friends list and leaderboard.

Covers: initial publication, recompute on new posts and friendship changes,
subscription replacement, stale-result suppression, stop semantics.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from foodfriends.models import Post, Relationship, UserProfile
from foodfriends.services.coordinator import CoordinatorState, FriendActivityCoordinator
from foodfriends.store.base import Subscription
from foodfriends.store.memory import InMemoryStore

NOW = datetime(2026, 5, 20, 12, 0, tzinfo=timezone.utc)
ME = UserProfile(user_id="me", name="Me")


def _clock() -> datetime:
    return NOW


def _accepted(a: str, b: str) -> Relationship:
    return Relationship(participants=[a, b], requester_id=a, status="accepted")


def _post(user_id: str, days_ago: int = 0) -> Post:
    return Post(user_id=user_id, created_at=NOW - timedelta(days=days_ago))


def _seed(store: InMemoryStore, *user_ids: str) -> InMemoryStore:
    store.users["me"] = ME
    for uid in user_ids:
        store.users[uid] = UserProfile(user_id=uid, name=uid.title())
    return store


def _coordinator(store: InMemoryStore, published: list) -> FriendActivityCoordinator:
    return FriendActivityCoordinator(store, ME, published.append, clock=_clock, tz=timezone.utc)


class ManualPostsStore(InMemoryStore):
    """Post subscriptions never deliver on their own; tests fire them by hand."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.post_listeners: list[dict] = []

    def subscribe_posts_by_owners(self, owner_ids, on_change, on_error=None, since=None):
        entry = {"owner_ids": set(owner_ids), "on_change": on_change, "active": True}
        self.post_listeners.append(entry)
        return Subscription(lambda: entry.update(active=False))


class SlowProfileStore(InMemoryStore):
    """Profile reads for gated users block until the test opens the gate."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gates: dict[str, asyncio.Event] = {}

    async def get_profile(self, user_id):
        gate = self.gates.get(user_id)
        if gate is not None:
            await gate.wait()
        return await super().get_profile(user_id)


class CountingStore(InMemoryStore):
    """Records how many post subscriptions were live each time a new one was opened."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.live_at_subscribe: list[int] = []

    def subscribe_posts_by_owners(self, *args, **kwargs):
        self.live_at_subscribe.append(self.active_post_subscriptions)
        return super().subscribe_posts_by_owners(*args, **kwargs)


# ── Publication ──────────────────────────────────────────────────────────

class TestPublication:
    @pytest.mark.asyncio
    async def test_initial_view(self):
        store = _seed(InMemoryStore(clock=_clock), "ana", "ben")
        await store.add_relationship(_accepted("me", "ana"))
        await store.add_relationship(_accepted("ben", "me"))
        for post in [_post("ana", 0), _post("ana", 1), _post("ben", 3), _post("me", 0)]:
            await store.add_post(post)

        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()

        view = published[-1]
        assert [(f.user_id, f.streak) for f in view.friends] == [("ana", 2), ("ben", 0)]
        assert [(e.user_id, e.post_count, e.rank) for e in view.leaderboard] == [
            ("ana", 2, 1), ("ben", 1, 2), ("me", 1, 3),
        ]
        assert coord.state is CoordinatorState.RELATIONSHIPS_AND_ACTIVITY
        assert coord.friend_ids == frozenset({"ana", "ben"})
        assert coord.latest is view
        coord.stop()

    @pytest.mark.asyncio
    async def test_no_friends_shows_only_self(self):
        store = _seed(InMemoryStore(clock=_clock))
        await store.add_post(_post("me"))
        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()

        view = published[-1]
        assert view.friends == []
        assert [(e.user_id, e.post_count, e.is_current_user) for e in view.leaderboard] == [("me", 1, True)]
        coord.stop()

    @pytest.mark.asyncio
    async def test_new_post_republishes(self):
        store = _seed(InMemoryStore(clock=_clock), "ana")
        await store.add_relationship(_accepted("me", "ana"))
        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()
        assert published[-1].friends[0].streak == 0

        await store.add_post(_post("ana"))
        await coord.wait_until_settled()
        assert published[-1].friends[0].streak == 1
        assert published[-1].leaderboard[0].user_id == "ana"
        coord.stop()

    @pytest.mark.asyncio
    async def test_new_friend_appears(self):
        store = _seed(InMemoryStore(clock=_clock), "ana", "ben")
        await store.add_relationship(_accepted("me", "ana"))
        await store.add_post(_post("ben"))
        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()
        assert [f.user_id for f in published[-1].friends] == ["ana"]

        await store.add_relationship(_accepted("ben", "me"))
        await coord.wait_until_settled()
        assert [f.user_id for f in published[-1].friends] == ["ben", "ana"]
        coord.stop()

    @pytest.mark.asyncio
    async def test_zone_less_post_time_still_publishes(self):
        store = _seed(InMemoryStore(clock=_clock), "ana")
        await store.add_relationship(_accepted("me", "ana"))
        await store.add_post(_post("ana"))
        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()
        count = len(published)

        await store.add_post(Post(user_id="ana", created_at=datetime(2026, 5, 19, 9, 0)))
        await coord.wait_until_settled()
        assert len(published) > count
        assert published[-1].friends[0].streak == 2
        assert published[-1].leaderboard[0].post_count == 2
        coord.stop()

    @pytest.mark.asyncio
    async def test_friend_without_profile_left_out(self):
        store = _seed(InMemoryStore(clock=_clock))
        await store.add_relationship(_accepted("me", "ghost"))
        await store.add_post(_post("ghost"))
        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()
        assert published[-1].friends == []
        assert [e.user_id for e in published[-1].leaderboard] == ["me"]
        coord.stop()


# ── Subscription management ──────────────────────────────────────────────

class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_old_activity_subscription_closed_before_new_one(self):
        store = _seed(CountingStore(clock=_clock), "ana", "ben", "cat")
        coord = _coordinator(store, [])
        coord.start()
        await store.add_relationship(_accepted("me", "ana"))
        await store.add_relationship(_accepted("me", "ben"))
        rel = await store.add_relationship(_accepted("cat", "me"))
        await store.delete_relationship(rel.id)
        await coord.wait_until_settled()

        assert len(store.live_at_subscribe) == 5
        assert store.live_at_subscribe == [0, 0, 0, 0, 0]
        assert store.active_post_subscriptions == 1
        coord.stop()

    @pytest.mark.asyncio
    async def test_stop_releases_everything(self):
        store = _seed(InMemoryStore(clock=_clock), "ana")
        await store.add_relationship(_accepted("me", "ana"))
        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()
        assert store.active_relationship_subscriptions == 1
        assert store.active_post_subscriptions == 1

        coord.stop()
        assert coord.state is CoordinatorState.IDLE
        assert store.active_relationship_subscriptions == 0
        assert store.active_post_subscriptions == 0

        count = len(published)
        await store.add_post(_post("ana"))
        await coord.wait_until_settled()
        assert len(published) == count

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        store = _seed(InMemoryStore(clock=_clock))
        coord = _coordinator(store, [])
        coord.stop()
        coord.start()
        coord.stop()
        coord.stop()
        assert coord.state is CoordinatorState.IDLE

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_subscription(self):
        store = _seed(InMemoryStore(clock=_clock))
        coord = _coordinator(store, [])
        coord.start()
        coord.start()
        assert store.active_relationship_subscriptions == 1
        coord.stop()

    @pytest.mark.asyncio
    async def test_unavailable_store_publishes_nothing(self):
        store = _seed(InMemoryStore(clock=_clock))
        store.unavailable = True
        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()
        assert published == []
        assert coord.state is CoordinatorState.RELATIONSHIPS
        coord.stop()


# ── Stale results ────────────────────────────────────────────────────────

class TestStaleResults:
    @pytest.mark.asyncio
    async def test_late_snapshot_from_replaced_query_ignored(self):
        store = _seed(ManualPostsStore(clock=_clock), "x", "y")
        published = []
        coord = _coordinator(store, published)
        coord.start()

        rel_x = await store.add_relationship(_accepted("me", "x"))
        await store.delete_relationship(rel_x.id)
        await store.add_relationship(_accepted("me", "y"))

        first = store.post_listeners[1]
        latest = store.post_listeners[-1]
        assert first["owner_ids"] == {"me", "x"}
        assert latest["owner_ids"] == {"me", "y"}
        assert not first["active"]

        latest["on_change"]([_post("y")])
        first["on_change"]([_post("x"), _post("x", 1)])
        await coord.wait_until_settled()

        assert len(published) == 1
        view = published[0]
        assert [f.user_id for f in view.friends] == ["y"]
        assert {e.user_id for e in view.leaderboard} == {"y", "me"}

    @pytest.mark.asyncio
    async def test_slow_recompute_for_old_friend_set_dropped(self):
        store = _seed(SlowProfileStore(clock=_clock), "x", "y")
        await store.add_post(_post("x"))
        await store.add_post(_post("y"))
        store.gates["x"] = asyncio.Event()

        published = []
        coord = _coordinator(store, published)
        coord.start()
        await coord.wait_until_settled()

        rel_x = await store.add_relationship(_accepted("me", "x"))
        await asyncio.sleep(0)
        await store.delete_relationship(rel_x.id)
        await store.add_relationship(_accepted("me", "y"))

        store.gates["x"].set()
        await coord.wait_until_settled()

        assert [f.user_id for f in published[-1].friends] == ["y"]
        for view in published:
            assert "x" not in {e.user_id for e in view.leaderboard}

    @pytest.mark.asyncio
    async def test_only_newest_activity_event_published(self):
        store = _seed(SlowProfileStore(clock=_clock), "x")
        await store.add_relationship(_accepted("me", "x"))
        store.gates["x"] = asyncio.Event()

        published = []
        coord = _coordinator(store, published)
        coord.start()
        await asyncio.sleep(0)
        await store.add_post(_post("x"))
        await asyncio.sleep(0)

        store.gates["x"].set()
        await coord.wait_until_settled()

        assert len(published) == 1
        assert published[0].leaderboard[0].post_count == 1
        coord.stop()


class TestTimeZone:
    def test_defaults_to_configured_zone(self, monkeypatch):
        monkeypatch.setenv("LOCAL_TIMEZONE", "Europe/Lisbon")
        coord = FriendActivityCoordinator(InMemoryStore(), ME, [].append)
        assert coord.tz.key == "Europe/Lisbon"

    def test_explicit_zone_wins(self, monkeypatch):
        monkeypatch.setenv("LOCAL_TIMEZONE", "Europe/Lisbon")
        coord = FriendActivityCoordinator(InMemoryStore(), ME, [].append, tz=timezone.utc)
        assert coord.tz is timezone.utc
