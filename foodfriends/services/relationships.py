"""Friendship records: accepted-friend resolution and the request lifecycle.

Reads fail soft and return empty results when the store is unreachable.
Request writes are user-initiated and propagate errors to the caller.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from foodfriends.errors import DuplicateRelationshipError, StoreUnavailableError
from foodfriends.logging_config import log_context
from foodfriends.models import (
    Notification,
    NotificationType,
    Relationship,
    RelationshipStatus,
    UserProfile,
)
from foodfriends.store.base import DocumentStore

logger = logging.getLogger(__name__)


def extract_friend_ids(relationships: Iterable[Relationship], self_id: str) -> set[str]:
    """Other participants of every accepted relationship involving ``self_id``.

    Duplicate accepted records for the same pair collapse to one id.
    """
    friend_ids: set[str] = set()
    for rel in relationships:
        if not rel.is_accepted or not rel.involves(self_id):
            continue
        other = rel.other_participant(self_id)
        if other:
            friend_ids.add(other)
    return friend_ids


async def get_accepted_friend_ids(store: DocumentStore, self_id: str) -> set[str]:
    try:
        relationships = await store.get_relationships(self_id)
    except StoreUnavailableError as e:
        logger.warning("Friendships query failed for user=%s: %s", self_id, e)
        return set()
    return extract_friend_ids(relationships, self_id)


async def get_connected_user_ids(store: DocumentStore, self_id: str) -> set[str]:
    """Ids of users with any relationship (pending or accepted) to ``self_id``."""
    try:
        relationships = await store.get_relationships(self_id)
    except StoreUnavailableError as e:
        logger.warning("Friendships query failed for user=%s: %s", self_id, e)
        return set()
    return {
        other
        for rel in relationships
        if (other := rel.other_participant(self_id))
    }


def _notification(
    recipient_id: str,
    kind: NotificationType,
    sender: UserProfile,
) -> Notification:
    return Notification(
        user_id=recipient_id,
        type=kind,
        sender_id=sender.user_id,
        sender_name=sender.name,
        sender_avatar=sender.avatar_url,
        read=False,
    )


async def send_friend_request(
    store: DocumentStore,
    sender: UserProfile,
    recipient_id: str,
) -> Relationship:
    """Create a pending relationship and notify the recipient.

    The existence check and the insert are separate operations; two users
    sending each other requests at the same moment can still end up with two
    records for the pair.
    """
    if recipient_id == sender.user_id:
        raise ValueError("cannot send a friend request to yourself")

    existing = await store.get_relationships(sender.user_id)
    if any(rel.involves(recipient_id) for rel in existing):
        raise DuplicateRelationshipError(
            f"relationship already exists between {sender.user_id} and {recipient_id}"
        )

    relationship = await store.add_relationship(
        Relationship(
            participants=[sender.user_id, recipient_id],
            requester_id=sender.user_id,
            status=RelationshipStatus.PENDING,
        )
    )
    await store.add_notification(_notification(recipient_id, NotificationType.FRIEND_REQUEST, sender))
    logger.info(
        "Friend request sent",
        extra=log_context(sender=sender.user_id, recipient=recipient_id),
    )
    return relationship


async def find_pending_request(
    store: DocumentStore,
    self_id: str,
    requester_id: str,
) -> Optional[Relationship]:
    for rel in await store.get_relationships(self_id):
        if rel.requester_id == requester_id and rel.involves(requester_id) and not rel.is_accepted:
            return rel
    return None


async def respond_to_friend_request(
    store: DocumentStore,
    current_user: UserProfile,
    notification: Notification,
    accept: bool,
) -> Optional[Relationship]:
    """Accept or decline the request behind ``notification``.

    Accepting flips the relationship to accepted; declining deletes it, so
    only the reply notification records that it ever existed. The original
    notification is marked read either way. Returns the updated relationship
    when accepted, otherwise ``None``.
    """
    rel = await find_pending_request(store, current_user.user_id, notification.sender_id)
    result: Optional[Relationship] = None
    if rel is not None:
        if accept:
            await store.update_relationship_status(rel.id, RelationshipStatus.ACCEPTED)
            await store.add_notification(
                _notification(notification.sender_id, NotificationType.FRIEND_REQUEST_ACCEPTED, current_user)
            )
            result = rel.model_copy(update={"status": RelationshipStatus.ACCEPTED.value})
        else:
            await store.delete_relationship(rel.id)
            await store.add_notification(
                _notification(notification.sender_id, NotificationType.FRIEND_REQUEST_DECLINED, current_user)
            )
    else:
        logger.warning(
            "No friendship found for request from %s to %s",
            notification.sender_id, current_user.user_id,
        )

    await store.mark_notification_read(notification.id)
    return result


async def remove_friend(store: DocumentStore, self_id: str, friend_id: str) -> bool:
    """Delete the accepted relationship with ``friend_id``. Returns False if none exists."""
    for rel in await store.get_relationships(self_id):
        if rel.is_accepted and rel.involves(friend_id) and rel.involves(self_id):
            await store.delete_relationship(rel.id)
            logger.info("Friend removed", extra=log_context(user=self_id, friend=friend_id))
            return True
    return False
