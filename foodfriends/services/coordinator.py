"""Live recomputation of friend-derived views.

A coordinator watches the viewer's friendships. Each friendship change
replaces the activity (posts) subscription for the new friend set, and each
activity change recomputes the view and hands it to the single consumer.

State machine::

    IDLE --start()--> RELATIONSHIPS --friends resolved--> RELATIONSHIPS_AND_ACTIVITY
      ^                                                          |
      +--------------------------- stop() -----------------------+

Two counters guard publication. ``generation`` changes whenever the activity
subscription is replaced (or the coordinator stops); results computed for an
older generation are dropped. ``sequence`` changes on every activity event,
so a slow recompute never overwrites the result of a newer event.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from foodfriends.config import get_settings
from foodfriends.errors import StoreUnavailableError
from foodfriends.logging_config import log_context
from foodfriends.models import Post, Relationship, UserProfile
from foodfriends.services.activity import group_activity
from foodfriends.services.friend_list import FriendView, compose_friend_list
from foodfriends.services.leaderboard import LeaderboardEntry, build_leaderboard
from foodfriends.services.relationships import extract_friend_ids
from foodfriends.services.streaks import streaks_by_user
from foodfriends.store.base import DocumentStore, Subscription

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CoordinatorState(str, Enum):
    IDLE = "idle"
    RELATIONSHIPS = "relationships"
    RELATIONSHIPS_AND_ACTIVITY = "relationships+activity"


class LiveRecomputationCoordinator(ABC, Generic[T]):
    """Base machinery shared by the friends/leaderboard and feed views.

    Subclasses choose whose posts to watch and how to turn them into a view.
    Must be started from inside a running event loop.
    """

    def __init__(
        self,
        store: DocumentStore,
        viewer: UserProfile,
        publish: Callable[[T], None],
        clock: Callable[[], datetime] = _utcnow,
        tz: tzinfo | None = None,
    ):
        self.store = store
        self.viewer = viewer
        self.clock = clock
        self.tz = tz if tz is not None else get_settings().tz
        self.latest: Optional[T] = None
        self._publish = publish
        self._state = CoordinatorState.IDLE
        self._generation = 0
        self._sequence = 0
        self._friend_ids: frozenset[str] = frozenset()
        self._relationship_sub: Optional[Subscription] = None
        self._activity_sub: Optional[Subscription] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def state(self) -> CoordinatorState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def friend_ids(self) -> frozenset[str]:
        return self._friend_ids

    # ── Lifecycle ──

    def start(self) -> None:
        if self._state is not CoordinatorState.IDLE:
            logger.debug("Coordinator already running for viewer=%s", self.viewer.user_id)
            return
        self._loop = asyncio.get_running_loop()
        self._state = CoordinatorState.RELATIONSHIPS
        logger.debug("Coordinator starting for viewer=%s", self.viewer.user_id)
        self._relationship_sub = self.store.subscribe_relationships(
            self.viewer.user_id, self._on_relationships, self._on_error
        )

    def stop(self) -> None:
        """Release both subscriptions. In-flight recomputes finish but are not published."""
        if self._state is CoordinatorState.IDLE:
            return
        self._state = CoordinatorState.IDLE
        self._generation += 1
        self._teardown_activity()
        if self._relationship_sub is not None:
            self._relationship_sub.unsubscribe()
            self._relationship_sub = None
        logger.debug("Coordinator stopped for viewer=%s", self.viewer.user_id)

    async def wait_until_settled(self) -> None:
        """Wait for every recompute scheduled so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Event handling ──

    def _teardown_activity(self) -> None:
        if self._activity_sub is not None:
            self._activity_sub.unsubscribe()
            self._activity_sub = None

    def _on_relationships(self, relationships: list[Relationship]) -> None:
        if self._state is CoordinatorState.IDLE:
            return
        friend_ids = frozenset(extract_friend_ids(relationships, self.viewer.user_id))

        # The old subscription must be gone before the new one can deliver.
        self._teardown_activity()
        self._generation += 1
        generation = self._generation
        self._friend_ids = friend_ids

        owner_ids = self._owner_ids(friend_ids)
        if not owner_ids:
            self._state = CoordinatorState.RELATIONSHIPS
            self._schedule(generation, friend_ids, [])
            return

        self._state = CoordinatorState.RELATIONSHIPS_AND_ACTIVITY
        self._activity_sub = self.store.subscribe_posts_by_owners(
            owner_ids,
            lambda posts: self._on_activity(generation, friend_ids, posts),
            self._on_error,
            since=self._since(),
        )

    def _on_activity(self, generation: int, friend_ids: frozenset[str], posts: list[Post]) -> None:
        if generation != self._generation:
            logger.debug("Ignoring activity for superseded generation=%d", generation)
            return
        self._schedule(generation, friend_ids, posts)

    def _on_error(self, exc: Exception) -> None:
        logger.warning("Live query failed for viewer=%s: %s", self.viewer.user_id, exc)

    def _schedule(self, generation: int, friend_ids: frozenset[str], posts: list[Post]) -> None:
        self._sequence += 1
        task = self._loop.create_task(self._run(generation, self._sequence, friend_ids, posts))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, generation: int, sequence: int, friend_ids: frozenset[str], posts: list[Post]) -> None:
        try:
            result = await self._recompute(friend_ids, posts)
        except Exception:
            logger.exception("Recompute failed for viewer=%s", self.viewer.user_id)
            return
        if generation != self._generation or sequence != self._sequence:
            logger.debug(
                "Discarding stale result",
                extra=log_context(generation=generation, current=self._generation),
            )
            return
        self.latest = result
        self._publish(result)

    # ── Subclass hooks ──

    @abstractmethod
    def _owner_ids(self, friend_ids: frozenset[str]) -> set[str]:
        """Users whose posts feed the view. Empty means no activity subscription."""

    def _since(self) -> Optional[datetime]:
        return None

    @abstractmethod
    async def _recompute(self, friend_ids: frozenset[str], posts: list[Post]) -> T:
        """Build the view for one activity snapshot."""

    async def _friend_profiles(self, friend_ids: frozenset[str]) -> dict[str, UserProfile]:
        if not friend_ids:
            return {}
        try:
            return await self.store.get_profiles(friend_ids)
        except StoreUnavailableError as e:
            logger.warning("Profile lookup failed for viewer=%s: %s", self.viewer.user_id, e)
            return {}


# ── Friends & leaderboard ────────────────────────────────────────────────

@dataclass
class FriendActivityView:
    friends: list[FriendView] = field(default_factory=list)
    leaderboard: list[LeaderboardEntry] = field(default_factory=list)


class FriendActivityCoordinator(LiveRecomputationCoordinator[FriendActivityView]):
    """Keeps the friends list (by streak) and the leaderboard (by post count) live."""

    def _owner_ids(self, friend_ids: frozenset[str]) -> set[str]:
        return set(friend_ids) | {self.viewer.user_id}

    async def _recompute(self, friend_ids: frozenset[str], posts: list[Post]) -> FriendActivityView:
        snapshot = group_activity(posts, self._owner_ids(friend_ids))
        streaks = streaks_by_user(snapshot.post_dates_by_user, self.clock(), self.tz)
        profiles = await self._friend_profiles(friend_ids)
        friends = compose_friend_list(friend_ids, profiles, streaks)
        leaderboard = build_leaderboard(
            [profiles[f.user_id] for f in friends],
            snapshot.post_count_by_user,
            self.viewer,
        )
        return FriendActivityView(friends=friends, leaderboard=leaderboard)
