"""Tests for the home feed and likes."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from foodfriends.models import Post, Relationship, UserProfile
from foodfriends.services.feed import (
    FeedCoordinator,
    apply_like_state,
    build_feed,
    load_feed,
    toggle_like,
)
from foodfriends.store.memory import InMemoryStore

NOW = datetime(2026, 5, 20, 12, 0, tzinfo=timezone.utc)
DAY = timedelta(hours=24)
ME = UserProfile(user_id="me", name="Me")


def _clock() -> datetime:
    return NOW


def _post(pid: str, user_id: str, hours_ago: float, **kwargs) -> Post:
    return Post(id=pid, user_id=user_id, created_at=NOW - timedelta(hours=hours_ago), **kwargs)


async def _store_with_friends() -> InMemoryStore:
    store = InMemoryStore(clock=_clock)
    store.users = {
        "me": ME,
        "ana": UserProfile(user_id="ana", name="Ana", avatar_url="https://img/ana.png"),
        "ben": UserProfile(user_id="ben", name="Ben"),
    }
    await store.add_relationship(Relationship(participants=["me", "ana"], requester_id="me", status="accepted"))
    await store.add_relationship(Relationship(participants=["me", "ben"], requester_id="me", status="pending"))
    for post in [
        _post("p1", "ana", 2),
        _post("p2", "ana", 30),
        _post("p3", "me", 1),
        _post("p4", "ben", 1),
        _post("p5", "ana", 0.5),
    ]:
        store.posts[post.id] = post
    return store


# ── Feed assembly ────────────────────────────────────────────────────────

class TestBuildFeed:
    def test_newest_first_within_window(self):
        posts = [_post("old", "ana", 25), _post("a", "ana", 5), _post("b", "ana", 1)]
        feed = build_feed(posts, {}, NOW - DAY)
        assert [i.post.id for i in feed] == ["b", "a"]

    def test_pending_timestamp_excluded(self):
        feed = build_feed([Post(id="p", user_id="ana")], {}, NOW - DAY)
        assert feed == []

    def test_author_profile_preferred(self):
        ana = UserProfile(user_id="ana", name="Ana", avatar_url="https://img/new.png")
        feed = build_feed([_post("p", "ana", 1, user_name="Old", user_avatar="https://img/old.png")], {"ana": ana}, NOW - DAY)
        assert feed[0].author_name == "Ana"
        assert feed[0].author_avatar == "https://img/new.png"

    def test_falls_back_to_denormalized_author(self):
        feed = build_feed([_post("p", "ana", 1, user_name="Old", user_avatar="https://img/old.png")], {}, NOW - DAY)
        assert feed[0].author_name == "Old"
        assert feed[0].author_avatar == "https://img/old.png"


class TestLoadFeed:
    @pytest.mark.asyncio
    async def test_only_accepted_friends_in_window(self):
        store = await _store_with_friends()
        feed = await load_feed(store, "me", NOW, window=DAY)
        assert [i.post.id for i in feed] == ["p5", "p1"]
        assert feed[0].author_name == "Ana"

    @pytest.mark.asyncio
    async def test_no_friends_no_query(self):
        store = InMemoryStore(clock=_clock)
        assert await load_feed(store, "me", NOW, window=DAY) == []
        assert store.post_queries == 0

    @pytest.mark.asyncio
    async def test_default_window_from_settings(self, monkeypatch):
        monkeypatch.setenv("FEED_WINDOW_HOURS", "48")
        store = await _store_with_friends()
        feed = await load_feed(store, "me", NOW)
        assert [i.post.id for i in feed] == ["p5", "p1", "p2"]


class TestFeedCoordinator:
    @pytest.mark.asyncio
    async def test_publishes_live_feed(self):
        store = await _store_with_friends()
        published = []
        coord = FeedCoordinator(store, ME, published.append, clock=_clock, window=DAY)
        coord.start()
        await coord.wait_until_settled()
        assert [i.post.id for i in published[-1]] == ["p5", "p1"]

        await store.add_post(Post(user_id="ana", description="lunch"))
        await coord.wait_until_settled()
        assert len(published[-1]) == 3
        assert published[-1][0].post.description == "lunch"
        coord.stop()

    @pytest.mark.asyncio
    async def test_own_posts_do_not_republish(self):
        store = await _store_with_friends()
        published = []
        coord = FeedCoordinator(store, ME, published.append, clock=_clock, window=DAY)
        coord.start()
        await coord.wait_until_settled()
        count = len(published)
        await store.add_post(Post(user_id="me"))
        await coord.wait_until_settled()
        assert len(published) == count
        coord.stop()

    @pytest.mark.asyncio
    async def test_no_friends_publishes_empty_without_query(self):
        store = InMemoryStore(clock=_clock)
        store.users["me"] = ME
        published = []
        coord = FeedCoordinator(store, ME, published.append, clock=_clock, window=DAY)
        coord.start()
        await coord.wait_until_settled()
        assert published == [[]]
        assert store.post_queries == 0
        assert store.active_post_subscriptions == 0
        coord.stop()


# ── Likes ────────────────────────────────────────────────────────────────

class TestLikes:
    def test_apply_like_state_idempotent(self):
        post = _post("p", "ana", 1)
        liked = apply_like_state(apply_like_state(post, "me", True), "me", True)
        assert liked.liked_by == ["me"]
        assert liked.likes == 1
        unliked = apply_like_state(apply_like_state(liked, "me", False), "me", False)
        assert unliked.liked_by == []
        assert unliked.likes == 0

    @pytest.mark.asyncio
    async def test_toggle_like_round_trip(self):
        store = await _store_with_friends()
        post = store.posts["p1"]

        liked = await toggle_like(store, post, "me")
        assert liked.is_liked_by("me")
        assert store.posts["p1"].liked_by == ["me"]
        assert store.posts["p1"].likes == 1

        unliked = await toggle_like(store, liked, "me")
        assert not unliked.is_liked_by("me")
        assert store.posts["p1"].likes == 0

    @pytest.mark.asyncio
    async def test_stale_local_copy_does_not_double_count(self):
        store = await _store_with_friends()
        post = store.posts["p1"]
        await toggle_like(store, post, "me")
        # A second client still showing the unliked post likes it again
        await toggle_like(store, post, "me")
        assert store.posts["p1"].liked_by == ["me"]
        assert store.posts["p1"].likes == 1

    @pytest.mark.asyncio
    async def test_failed_write_returns_original(self):
        store = await _store_with_friends()
        post = store.posts["p1"]
        store.unavailable = True
        result = await toggle_like(store, post, "me")
        assert result is post

    @pytest.mark.asyncio
    async def test_missing_post_returns_original(self):
        store = InMemoryStore()
        post = Post(id="gone", user_id="ana")
        assert await toggle_like(store, post, "me") is post
