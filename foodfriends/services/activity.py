"""Activity collection: per-user post counts and post dates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from foodfriends.errors import StoreUnavailableError
from foodfriends.models import Post
from foodfriends.store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class ActivitySnapshot:
    """Posts grouped by owner. Date lists carry no ordering guarantee."""

    post_count_by_user: dict[str, int] = field(default_factory=dict)
    post_dates_by_user: dict[str, list[datetime]] = field(default_factory=dict)


def group_activity(posts: Iterable[Post], user_ids: Iterable[str] | None = None) -> ActivitySnapshot:
    """Group posts by owner, skipping posts whose server timestamp is still pending.

    When ``user_ids`` is given, posts by anyone else are ignored.
    """
    wanted = set(user_ids) if user_ids is not None else None
    snapshot = ActivitySnapshot()
    for post in posts:
        if wanted is not None and post.user_id not in wanted:
            continue
        if post.created_at is None:
            continue
        snapshot.post_count_by_user[post.user_id] = snapshot.post_count_by_user.get(post.user_id, 0) + 1
        snapshot.post_dates_by_user.setdefault(post.user_id, []).append(post.created_at)
    return snapshot


async def collect(store: DocumentStore, user_ids: Iterable[str]) -> ActivitySnapshot:
    """Query and group all posts owned by ``user_ids``.

    An empty id set returns an empty snapshot without touching the store,
    since an ``in`` query over an empty list is rejected.
    """
    ids = set(user_ids)
    if not ids:
        return ActivitySnapshot()
    try:
        posts = await store.get_posts_by_owners(ids)
    except StoreUnavailableError as e:
        logger.warning("Posts query failed for %d users: %s", len(ids), e)
        return ActivitySnapshot()
    return group_activity(posts, ids)
