"""Home feed: friends' posts from the trailing window, plus likes.

Only accepted friends' posts appear, never the viewer's own. Each post is
joined with the author's current profile, falling back to the name and
avatar denormalized onto the post when the profile is missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional

from foodfriends.config import get_settings
from foodfriends.errors import NotFoundError, StoreUnavailableError
from foodfriends.models import Post, UserProfile
from foodfriends.services.coordinator import LiveRecomputationCoordinator
from foodfriends.services.relationships import get_accepted_friend_ids
from foodfriends.store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class FeedItem:
    post: Post
    author_name: Optional[str]
    author_avatar: Optional[str]


def build_feed(
    posts: Iterable[Post],
    authors: Mapping[str, UserProfile],
    since: datetime,
) -> list[FeedItem]:
    """Newest-first feed items for posts created at or after ``since``."""
    recent = [p for p in posts if p.created_at is not None and p.created_at >= since]
    recent.sort(key=lambda p: p.created_at, reverse=True)
    items = []
    for post in recent:
        author = authors.get(post.user_id)
        items.append(
            FeedItem(
                post=post,
                author_name=author.name if author else post.user_name,
                author_avatar=author.avatar_url if author else post.user_avatar,
            )
        )
    return items


async def load_feed(
    store: DocumentStore,
    viewer_id: str,
    now: datetime,
    window: timedelta | None = None,
) -> list[FeedItem]:
    """One-shot feed read. Store failures yield an empty feed."""
    window = window or get_settings().feed_window
    friend_ids = await get_accepted_friend_ids(store, viewer_id)
    if not friend_ids:
        return []
    since = now - window
    try:
        posts = await store.get_posts_by_owners(friend_ids, since=since)
        authors = await store.get_profiles({p.user_id for p in posts})
    except StoreUnavailableError as e:
        logger.warning("Feed query failed for viewer=%s: %s", viewer_id, e)
        return []
    return build_feed(posts, authors, since)


class FeedCoordinator(LiveRecomputationCoordinator[list[FeedItem]]):
    """Live feed; an empty friend set publishes an empty feed without a posts query."""

    def __init__(self, *args, window: timedelta | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.window = window or get_settings().feed_window

    def _owner_ids(self, friend_ids: frozenset[str]) -> set[str]:
        return set(friend_ids)

    def _since(self) -> Optional[datetime]:
        return self.clock() - self.window

    async def _recompute(self, friend_ids: frozenset[str], posts: list[Post]) -> list[FeedItem]:
        if not friend_ids:
            return []
        authors = await self._friend_profiles(frozenset(p.user_id for p in posts) & friend_ids)
        # The subscription's lower bound is fixed when it is created; re-apply it now.
        return build_feed(posts, authors, self.clock() - self.window)


# ── Likes ────────────────────────────────────────────────────────────────

def apply_like_state(post: Post, user_id: str, liked: bool) -> Post:
    return post.with_like_state(user_id, liked)


async def toggle_like(store: DocumentStore, post: Post, user_id: str) -> Post:
    """Flip ``user_id``'s like on ``post`` and return the locally updated post.

    The write is fire-and-forget: if it fails the error is logged and the
    unchanged post is returned so the caller can roll back its display.
    """
    liked = not post.is_liked_by(user_id)
    try:
        await store.set_like_state(post.id, user_id, liked)
    except (StoreUnavailableError, NotFoundError) as e:
        logger.error("Failed to update like on post=%s: %s", post.id, e)
        return post
    return apply_like_state(post, user_id, liked)
