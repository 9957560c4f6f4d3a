"""Dict-backed document store with live listeners.

Used by the test suite and for local development without Firestore. Every
write re-runs the affected live queries and hands the full result set to
their callbacks, the same shape a Firestore snapshot listener delivers.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from foodfriends.errors import NotFoundError, StoreUnavailableError
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
from foodfriends.store.base import (
    DocumentStore,
    OnError,
    OnPosts,
    OnRelationships,
    Subscription,
    require_owner_ids,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _RelationshipListener:
    participant_id: str
    on_change: OnRelationships
    on_error: Optional[OnError]


@dataclass
class _PostListener:
    owner_ids: frozenset[str]
    since: Optional[datetime]
    on_change: OnPosts
    on_error: Optional[OnError]


class InMemoryStore(DocumentStore):
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self.clock = clock
        self.users: dict[str, UserProfile] = {}
        self.relationships: dict[str, Relationship] = {}
        self.posts: dict[str, Post] = {}
        self.comments: dict[str, list[Comment]] = {}
        self.notifications: dict[str, Notification] = {}
        self.chats: dict[str, Chat] = {}
        self.messages: dict[str, list[ChatMessage]] = {}

        # Set to simulate an unreachable backend; reads and writes raise.
        self.unavailable = False
        # Number of post queries issued (one-shot reads and subscriptions).
        self.post_queries = 0

        self._ids = itertools.count(1)
        self._listener_ids = itertools.count(1)
        self._relationship_listeners: dict[int, _RelationshipListener] = {}
        self._post_listeners: dict[int, _PostListener] = {}

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    def _check_available(self) -> None:
        if self.unavailable:
            raise StoreUnavailableError("in-memory store marked unavailable")

    # ── Users ──

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        self._check_available()
        return self.users.get(user_id)

    async def search_profiles(self, prefix: str) -> list[UserProfile]:
        self._check_available()
        return [u for u in self.users.values() if u.name_search.startswith(prefix)]

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        self._check_available()
        if profile.created_at is None:
            profile = profile.model_copy(update={"created_at": self.clock(), "updated_at": self.clock()})
        self.users[profile.user_id] = profile
        return profile

    # ── Relationships ──

    def _relationships_for(self, participant_id: str) -> list[Relationship]:
        return [r for r in self.relationships.values() if r.involves(participant_id)]

    async def get_relationships(self, participant_id: str) -> list[Relationship]:
        self._check_available()
        return self._relationships_for(participant_id)

    def subscribe_relationships(
        self,
        participant_id: str,
        on_change: OnRelationships,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        key = next(self._listener_ids)
        listener = _RelationshipListener(participant_id, on_change, on_error)
        self._relationship_listeners[key] = listener
        self._deliver_relationships(listener)
        return Subscription(lambda: self._relationship_listeners.pop(key, None))

    def _deliver_relationships(self, listener: _RelationshipListener) -> None:
        if self.unavailable:
            if listener.on_error:
                listener.on_error(StoreUnavailableError("in-memory store marked unavailable"))
            return
        listener.on_change(self._relationships_for(listener.participant_id))

    def _notify_relationships(self, touched: Iterable[str]) -> None:
        touched = set(touched)
        for listener in list(self._relationship_listeners.values()):
            if listener.participant_id in touched:
                self._deliver_relationships(listener)

    async def add_relationship(self, relationship: Relationship) -> Relationship:
        self._check_available()
        updates = {"id": relationship.id or self._new_id("rel")}
        if relationship.created_at is None:
            updates["created_at"] = self.clock()
        relationship = relationship.model_copy(update=updates)
        self.relationships[relationship.id] = relationship
        self._notify_relationships(relationship.participants)
        return relationship

    async def update_relationship_status(self, relationship_id: str, status: RelationshipStatus) -> None:
        self._check_available()
        current = self.relationships.get(relationship_id)
        if current is None:
            raise NotFoundError("friendships", relationship_id)
        self.relationships[relationship_id] = current.model_copy(update={"status": RelationshipStatus(status).value})
        self._notify_relationships(current.participants)

    async def delete_relationship(self, relationship_id: str) -> None:
        self._check_available()
        removed = self.relationships.pop(relationship_id, None)
        if removed is not None:
            self._notify_relationships(removed.participants)

    # ── Posts ──

    def _posts_for(self, owner_ids: frozenset[str], since: Optional[datetime]) -> list[Post]:
        posts = [p for p in self.posts.values() if p.user_id in owner_ids]
        if since is not None:
            posts = [p for p in posts if p.created_at is not None and p.created_at >= since]
        return posts

    async def get_posts_by_owners(
        self, owner_ids: Iterable[str], since: Optional[datetime] = None
    ) -> list[Post]:
        ids = frozenset(require_owner_ids(owner_ids))
        self.post_queries += 1
        self._check_available()
        return self._posts_for(ids, since)

    def subscribe_posts_by_owners(
        self,
        owner_ids: Iterable[str],
        on_change: OnPosts,
        on_error: Optional[OnError] = None,
        since: Optional[datetime] = None,
    ) -> Subscription:
        ids = frozenset(require_owner_ids(owner_ids))
        self.post_queries += 1
        key = next(self._listener_ids)
        listener = _PostListener(ids, since, on_change, on_error)
        self._post_listeners[key] = listener
        self._deliver_posts(listener)
        return Subscription(lambda: self._post_listeners.pop(key, None))

    def _deliver_posts(self, listener: _PostListener) -> None:
        if self.unavailable:
            if listener.on_error:
                listener.on_error(StoreUnavailableError("in-memory store marked unavailable"))
            return
        listener.on_change(self._posts_for(listener.owner_ids, listener.since))

    def _notify_posts(self, owner_id: str) -> None:
        for listener in list(self._post_listeners.values()):
            if owner_id in listener.owner_ids:
                self._deliver_posts(listener)

    @property
    def active_post_subscriptions(self) -> int:
        return len(self._post_listeners)

    @property
    def active_relationship_subscriptions(self) -> int:
        return len(self._relationship_listeners)

    async def get_post(self, post_id: str) -> Optional[Post]:
        self._check_available()
        return self.posts.get(post_id)

    async def add_post(self, post: Post) -> Post:
        self._check_available()
        updates = {"id": post.id or self._new_id("post")}
        if post.created_at is None:
            updates["created_at"] = self.clock()
        post = post.model_copy(update=updates)
        self.posts[post.id] = post
        self._notify_posts(post.user_id)
        return post

    async def set_like_state(self, post_id: str, user_id: str, liked: bool) -> None:
        self._check_available()
        post = self.posts.get(post_id)
        if post is None:
            raise NotFoundError("posts", post_id)
        self.posts[post_id] = post.with_like_state(user_id, liked)
        self._notify_posts(post.user_id)

    # ── Comments ──

    async def add_comment(self, comment: Comment) -> Comment:
        self._check_available()
        post = self.posts.get(comment.post_id)
        if post is None:
            raise NotFoundError("posts", comment.post_id)
        updates = {"id": comment.id or self._new_id("comment")}
        if comment.created_at is None:
            updates["created_at"] = self.clock()
        comment = comment.model_copy(update=updates)
        self.comments.setdefault(comment.post_id, []).append(comment)
        return comment

    async def get_comments(self, post_id: str) -> list[Comment]:
        self._check_available()
        return sorted(self.comments.get(post_id, []), key=lambda c: c.created_at or datetime.min.replace(tzinfo=timezone.utc))

    # ── Notifications ──

    async def add_notification(self, notification: Notification) -> Notification:
        self._check_available()
        updates = {"id": notification.id or self._new_id("notif")}
        if notification.created_at is None:
            updates["created_at"] = self.clock()
        notification = notification.model_copy(update=updates)
        self.notifications[notification.id] = notification
        return notification

    async def get_unread_notifications(self, user_id: str) -> list[Notification]:
        self._check_available()
        return [n for n in self.notifications.values() if n.user_id == user_id and not n.read]

    async def mark_notification_read(self, notification_id: str) -> None:
        self._check_available()
        current = self.notifications.get(notification_id)
        if current is None:
            raise NotFoundError("notifications", notification_id)
        self.notifications[notification_id] = current.model_copy(update={"read": True})

    # ── Chats ──

    async def get_chats(self, user_id: str) -> list[Chat]:
        self._check_available()
        return [c for c in self.chats.values() if user_id in c.participants]

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        self._check_available()
        return self.chats.get(chat_id)

    async def add_chat(self, chat: Chat) -> Chat:
        self._check_available()
        now = self.clock()
        chat = chat.model_copy(update={
            "id": chat.id or self._new_id("chat"),
            "created_at": chat.created_at or now,
            "updated_at": chat.updated_at or now,
        })
        self.chats[chat.id] = chat
        self.messages.setdefault(chat.id, [])
        return chat

    async def add_message(self, chat_id: str, message: ChatMessage) -> ChatMessage:
        self._check_available()
        if chat_id not in self.chats:
            raise NotFoundError("chats", chat_id)
        updates = {"id": message.id or self._new_id("msg")}
        if message.created_at is None:
            updates["created_at"] = self.clock()
        message = message.model_copy(update=updates)
        self.messages.setdefault(chat_id, []).append(message)
        return message

    async def get_messages(self, chat_id: str) -> list[ChatMessage]:
        self._check_available()
        return list(reversed(self.messages.get(chat_id, [])))

    async def record_last_message(self, chat_id: str, last_message: LastMessage, receiver_id: str) -> None:
        self._check_available()
        chat = self.chats.get(chat_id)
        if chat is None:
            raise NotFoundError("chats", chat_id)
        now = self.clock()
        unread = dict(chat.unread_count)
        unread[receiver_id] = unread.get(receiver_id, 0) + 1
        if last_message.timestamp is None:
            last_message = last_message.model_copy(update={"timestamp": now})
        self.chats[chat_id] = chat.model_copy(update={
            "last_message": last_message,
            "updated_at": now,
            "unread_count": unread,
        })

    async def reset_unread(self, chat_id: str, user_id: str) -> None:
        self._check_available()
        chat = self.chats.get(chat_id)
        if chat is None:
            raise NotFoundError("chats", chat_id)
        unread = dict(chat.unread_count)
        unread[user_id] = 0
        self.chats[chat_id] = chat.model_copy(update={"unread_count": unread})
