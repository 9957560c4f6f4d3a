"""Abstract document-store interface.

Every backing store (Firestore, in-memory) implements this interface so the
aggregation services and coordinators can treat them uniformly. Reads and
writes are coroutines; live queries are callback subscriptions whose
callbacks run on the event loop.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Iterable, Optional

from foodfriends.models import (
    Chat,
    ChatMessage,
    Comment,
    LastMessage,
    Notification,
    Post,
    Relationship,
    RelationshipStatus,
    UserProfile,
)

OnRelationships = Callable[[list[Relationship]], None]
OnPosts = Callable[[list[Post]], None]
OnError = Callable[[Exception], None]


class Subscription:
    """Handle for a live query. ``unsubscribe`` is the only cancellation primitive."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._cancel()


def require_owner_ids(owner_ids: Iterable[str]) -> list[str]:
    """Normalize owner ids for an ``in`` query; an empty list is rejected."""
    ids = sorted(set(owner_ids))
    if not ids:
        raise ValueError("owner_ids must not be empty")
    return ids


class DocumentStore(ABC):
    """Interface that each document store must implement."""

    # ── Users ──

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """Point read of a user document; ``None`` when absent."""

    async def get_profiles(self, user_ids: Iterable[str]) -> dict[str, UserProfile]:
        """Resolve several profiles concurrently, dropping ids without a document."""
        ids = list(dict.fromkeys(user_ids))
        found = await asyncio.gather(*(self.get_profile(uid) for uid in ids))
        return {uid: p for uid, p in zip(ids, found) if p is not None}

    @abstractmethod
    async def search_profiles(self, prefix: str) -> list[UserProfile]:
        """Profiles whose ``name_search`` starts with ``prefix`` (already lowercased)."""

    @abstractmethod
    async def create_profile(self, profile: UserProfile) -> UserProfile:
        """Create or overwrite the user document keyed by ``profile.user_id``."""

    # ── Relationships ──

    @abstractmethod
    async def get_relationships(self, participant_id: str) -> list[Relationship]:
        """All relationship records (any status) involving ``participant_id``."""

    @abstractmethod
    def subscribe_relationships(
        self,
        participant_id: str,
        on_change: OnRelationships,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        """Live version of ``get_relationships``; ``on_change`` receives the full result set."""

    @abstractmethod
    async def add_relationship(self, relationship: Relationship) -> Relationship:
        """Insert a relationship and return it with its assigned id."""

    @abstractmethod
    async def update_relationship_status(self, relationship_id: str, status: RelationshipStatus) -> None:
        """Change the status of an existing relationship."""

    @abstractmethod
    async def delete_relationship(self, relationship_id: str) -> None:
        """Delete a relationship record."""

    # ── Posts ──

    @abstractmethod
    async def get_posts_by_owners(
        self, owner_ids: Iterable[str], since: Optional[datetime] = None
    ) -> list[Post]:
        """Posts owned by any of ``owner_ids`` (non-empty), optionally created at or after ``since``."""

    @abstractmethod
    def subscribe_posts_by_owners(
        self,
        owner_ids: Iterable[str],
        on_change: OnPosts,
        on_error: Optional[OnError] = None,
        since: Optional[datetime] = None,
    ) -> Subscription:
        """Live version of ``get_posts_by_owners``. Callers must not pass an empty id list."""

    @abstractmethod
    async def get_post(self, post_id: str) -> Optional[Post]:
        """Point read of a post."""

    @abstractmethod
    async def add_post(self, post: Post) -> Post:
        """Insert a post; a missing ``created_at`` becomes the server timestamp."""

    @abstractmethod
    async def set_like_state(self, post_id: str, user_id: str, liked: bool) -> None:
        """Add or remove ``user_id`` from the post's ``liked_by`` and keep ``likes`` in step."""

    # ── Comments ──

    @abstractmethod
    async def add_comment(self, comment: Comment) -> Comment:
        """Append a comment under ``comment.post_id``."""

    @abstractmethod
    async def get_comments(self, post_id: str) -> list[Comment]:
        """Comments on a post, oldest first."""

    # ── Notifications ──

    @abstractmethod
    async def add_notification(self, notification: Notification) -> Notification:
        """Insert a notification."""

    @abstractmethod
    async def get_unread_notifications(self, user_id: str) -> list[Notification]:
        """Unread notifications addressed to ``user_id`` (unordered)."""

    @abstractmethod
    async def mark_notification_read(self, notification_id: str) -> None:
        """Flag a notification as read."""

    # ── Chats ──

    @abstractmethod
    async def get_chats(self, user_id: str) -> list[Chat]:
        """Chats that ``user_id`` participates in (unordered)."""

    @abstractmethod
    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        """Point read of a chat."""

    @abstractmethod
    async def add_chat(self, chat: Chat) -> Chat:
        """Insert a chat; missing timestamps become the server timestamp."""

    @abstractmethod
    async def add_message(self, chat_id: str, message: ChatMessage) -> ChatMessage:
        """Append a message to a chat."""

    @abstractmethod
    async def get_messages(self, chat_id: str) -> list[ChatMessage]:
        """Messages in a chat, newest first."""

    @abstractmethod
    async def record_last_message(self, chat_id: str, last_message: LastMessage, receiver_id: str) -> None:
        """Set ``last_message``, bump ``updated_at`` and increment the receiver's unread count."""

    @abstractmethod
    async def reset_unread(self, chat_id: str, user_id: str) -> None:
        """Zero the unread count of ``user_id`` in a chat."""
