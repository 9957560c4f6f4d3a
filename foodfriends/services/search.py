from __future__ import annotations

import logging

from foodfriends.errors import StoreUnavailableError
from foodfriends.models import UserProfile
from foodfriends.services.relationships import get_connected_user_ids
from foodfriends.store.base import DocumentStore

logger = logging.getLogger(__name__)


async def search_users(store: DocumentStore, current_user_id: str, text: str) -> list[UserProfile]:
    """Find users whose name starts with ``text`` (case-insensitive).

    Excludes the current user and anyone already connected to them by a
    pending or accepted friendship. Blank input returns nothing without a query.
    """
    prefix = text.strip().lower()
    if not prefix:
        return []
    try:
        matches = await store.search_profiles(prefix)
    except StoreUnavailableError as e:
        logger.warning("User search failed for %r: %s", prefix, e)
        return []
    connected = await get_connected_user_ids(store, current_user_id)
    return [
        u for u in matches
        if u.user_id != current_user_id and u.user_id not in connected
    ]
