"""Friend-request notifications.

Accepting or declining is handled by
:func:`foodfriends.services.relationships.respond_to_friend_request`; this
module reads and acknowledges notifications.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from foodfriends.errors import StoreUnavailableError
from foodfriends.models import Notification, NotificationType
from foodfriends.store.base import DocumentStore

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created(n: Notification) -> datetime:
    if n.created_at is None:
        return _EPOCH
    if n.created_at.tzinfo is None:
        return n.created_at.replace(tzinfo=timezone.utc)
    return n.created_at


async def list_unread_notifications(store: DocumentStore, user_id: str) -> list[Notification]:
    """Unread notifications for ``user_id``, newest first."""
    try:
        notifications = await store.get_unread_notifications(user_id)
    except StoreUnavailableError as e:
        logger.warning("Notifications query failed for user=%s: %s", user_id, e)
        return []
    return sorted(notifications, key=_created, reverse=True)


async def mark_notification_read(store: DocumentStore, notification_id: str) -> None:
    await store.mark_notification_read(notification_id)


def describe(notification: Notification) -> str:
    """Display text for a notification, e.g. ``"Ana sent you a friend request"``."""
    sender = notification.sender_name or "Someone"
    if notification.type == NotificationType.FRIEND_REQUEST:
        return f"{sender} sent you a friend request"
    if notification.type == NotificationType.FRIEND_REQUEST_ACCEPTED:
        return f"{sender} accepted your friend request"
    return f"{sender} declined your friend request"
