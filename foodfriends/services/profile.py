"""Profile screen summary: own posts, current streak and friend count.

Post ordering and the streak come from one post query rather than two
separate listeners over the same data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Optional

from foodfriends.config import get_settings
from foodfriends.errors import StoreUnavailableError
from foodfriends.models import Post, UserProfile
from foodfriends.services.activity import group_activity
from foodfriends.services.relationships import get_accepted_friend_ids
from foodfriends.services.streaks import streak_for
from foodfriends.store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class ProfileSummary:
    profile: Optional[UserProfile]
    posts: list[Post] = field(default_factory=list)
    post_count: int = 0
    streak: int = 0
    friend_count: int = 0


def _newest_first_key(post: Post) -> tuple[int, float]:
    # Posts still awaiting a server timestamp go last.
    if post.created_at is None:
        return (1, 0.0)
    ts = post.created_at if post.created_at.tzinfo else post.created_at.replace(tzinfo=timezone.utc)
    return (0, -ts.timestamp())


async def load_profile_summary(
    store: DocumentStore,
    user_id: str,
    now: datetime,
    tz: tzinfo | None = None,
) -> ProfileSummary:
    try:
        profile = await store.get_profile(user_id)
        posts = await store.get_posts_by_owners([user_id])
    except StoreUnavailableError as e:
        logger.warning("Profile load failed for user=%s: %s", user_id, e)
        return ProfileSummary(profile=None)

    snapshot = group_activity(posts, [user_id])
    friend_ids = await get_accepted_friend_ids(store, user_id)
    return ProfileSummary(
        profile=profile,
        posts=sorted(posts, key=_newest_first_key),
        post_count=snapshot.post_count_by_user.get(user_id, 0),
        streak=streak_for(snapshot.post_dates_by_user.get(user_id, []), now, tz or get_settings().tz),
        friend_count=len(friend_ids),
    )
