"""Cloud Firestore implementation of the document store.

Wraps the ``firebase_admin`` Firestore client. The SDK is blocking, so one-shot
reads and writes run in a worker thread via ``asyncio.to_thread``. Snapshot
listeners fire on SDK threads; their results are handed back to the event
loop with ``call_soon_threadsafe`` so subscribers never see cross-thread
callbacks.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, TypeVar

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from foodfriends.config import Settings, get_settings
from foodfriends.errors import NotFoundError, StoreUnavailableError
from foodfriends.models import (
    Chat,
    ChatMessage,
    Comment,
    LastMessage,
    Notification,
    Post,
    Record,
    Relationship,
    RelationshipStatus,
    UserProfile,
    parse_documents,
)
from foodfriends.store.base import (
    DocumentStore,
    OnError,
    OnPosts,
    OnRelationships,
    Subscription,
    require_owner_ids,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound=Record)

USERS = "users"
FRIENDSHIPS = "friendships"
POSTS = "posts"
COMMENTS = "comments"
NOTIFICATIONS = "notifications"
CHATS = "chats"
MESSAGES = "messages"

_TIMESTAMP_FIELDS = ("createdAt", "updatedAt")


def initialize_app(settings: Settings | None = None) -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    settings = settings or get_settings()
    if settings.firebase_credentials_path:
        cred = credentials.Certificate(settings.firebase_credentials_path)
    else:
        cred = credentials.ApplicationDefault()
    options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
    app = firebase_admin.initialize_app(cred, options)
    logger.info("Firebase initialized for project: %s", settings.firebase_project_id or "<default>")
    return app


def _to_write(record: Record) -> dict[str, Any]:
    """Document payload for a new record; unset timestamps become server timestamps."""
    data = record.to_document()
    for key in _TIMESTAMP_FIELDS:
        if key in data and data[key] is None:
            data[key] = firestore.SERVER_TIMESTAMP
    return data


def _chunks(ids: list[str], size: int) -> list[list[str]]:
    return [ids[i:i + size] for i in range(0, len(ids), size)]


class FirestoreStore(DocumentStore):
    def __init__(self, client: Any = None, settings: Settings | None = None):
        self.settings = settings or get_settings()
        if client is None:
            client = firestore.client(initialize_app(self.settings))
        self._db = client

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except (google_exceptions.GoogleAPIError, google_exceptions.RetryError) as e:
            raise StoreUnavailableError(str(e)) from e

    async def _query(self, cls: type[R], query: Any) -> list[R]:
        snaps = await self._call(lambda: list(query.stream()))
        return parse_documents(cls, ((s.id, s.to_dict()) for s in snaps))

    async def _get(self, cls: type[R], ref: Any) -> Optional[R]:
        snap = await self._call(ref.get)
        if not snap.exists:
            return None
        found = parse_documents(cls, [(snap.id, snap.to_dict())])
        return found[0] if found else None

    async def _add(self, collection: Any, record: R) -> R:
        _, ref = await self._call(collection.add, _to_write(record))
        return record.model_copy(update={"id": ref.id})

    def _listen(
        self,
        queries: list[Any],
        parse: Callable[[list[Any]], list[Any]],
        on_change: Callable[[list[Any]], None],
        on_error: Optional[OnError],
    ) -> Subscription:
        """Attach snapshot listeners to ``queries`` and deliver their union on the loop.

        ``on_error`` only hears about snapshots that fail to parse. The client
        library gives ``on_snapshot`` no error callback: a watch stream that
        closes on a backend error stops delivering without telling us, and
        the last delivered result stays current until the caller resubscribes.
        """
        loop = asyncio.get_running_loop()
        latest: dict[int, list[Any]] = {}
        watches: list[Any] = []
        subscription = Subscription(lambda: [w.unsubscribe() for w in watches])

        def deliver(index: int, docs: list[Any]) -> None:
            if not subscription.active:
                return
            latest[index] = docs
            if len(latest) < len(queries):
                return
            try:
                merged = parse([d for chunk in latest.values() for d in chunk])
            except Exception as e:
                logger.exception("Failed to parse snapshot")
                if on_error:
                    on_error(e)
                return
            on_change(merged)

        for index, query in enumerate(queries):
            def on_snapshot(docs, _changes, _read_time, index=index):
                loop.call_soon_threadsafe(deliver, index, list(docs))

            watches.append(query.on_snapshot(on_snapshot))
        return subscription

    # ── Users ──

    async def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return await self._get(UserProfile, self._db.collection(USERS).document(user_id))

    async def search_profiles(self, prefix: str) -> list[UserProfile]:
        query = (
            self._db.collection(USERS)
            .where(filter=FieldFilter("nameSearch", ">=", prefix))
            .where(filter=FieldFilter("nameSearch", "<=", prefix + "\uf8ff"))
        )
        return await self._query(UserProfile, query)

    async def create_profile(self, profile: UserProfile) -> UserProfile:
        ref = self._db.collection(USERS).document(profile.user_id)
        await self._call(ref.set, _to_write(profile))
        return profile

    # ── Relationships ──

    def _relationships_query(self, participant_id: str) -> Any:
        return self._db.collection(FRIENDSHIPS).where(
            filter=FieldFilter("participants", "array_contains", participant_id)
        )

    async def get_relationships(self, participant_id: str) -> list[Relationship]:
        return await self._query(Relationship, self._relationships_query(participant_id))

    def subscribe_relationships(
        self,
        participant_id: str,
        on_change: OnRelationships,
        on_error: Optional[OnError] = None,
    ) -> Subscription:
        return self._listen(
            [self._relationships_query(participant_id)],
            lambda docs: parse_documents(Relationship, ((d.id, d.to_dict()) for d in docs)),
            on_change,
            on_error,
        )

    async def add_relationship(self, relationship: Relationship) -> Relationship:
        return await self._add(self._db.collection(FRIENDSHIPS), relationship)

    async def update_relationship_status(self, relationship_id: str, status: RelationshipStatus) -> None:
        ref = self._db.collection(FRIENDSHIPS).document(relationship_id)
        try:
            await self._call(ref.update, {"status": RelationshipStatus(status).value})
        except StoreUnavailableError as e:
            if isinstance(e.__cause__, google_exceptions.NotFound):
                raise NotFoundError(FRIENDSHIPS, relationship_id) from e
            raise

    async def delete_relationship(self, relationship_id: str) -> None:
        await self._call(self._db.collection(FRIENDSHIPS).document(relationship_id).delete)

    # ── Posts ──

    def _posts_queries(self, owner_ids: Iterable[str], since: Optional[datetime]) -> list[Any]:
        ids = require_owner_ids(owner_ids)
        queries = []
        for chunk in _chunks(ids, self.settings.firestore_in_limit):
            query = self._db.collection(POSTS).where(filter=FieldFilter("userId", "in", chunk))
            if since is not None:
                query = query.where(filter=FieldFilter("createdAt", ">=", since))
            queries.append(query)
        return queries

    async def get_posts_by_owners(
        self, owner_ids: Iterable[str], since: Optional[datetime] = None
    ) -> list[Post]:
        posts: list[Post] = []
        for query in self._posts_queries(owner_ids, since):
            posts.extend(await self._query(Post, query))
        return posts

    def subscribe_posts_by_owners(
        self,
        owner_ids: Iterable[str],
        on_change: OnPosts,
        on_error: Optional[OnError] = None,
        since: Optional[datetime] = None,
    ) -> Subscription:
        return self._listen(
            self._posts_queries(owner_ids, since),
            lambda docs: parse_documents(Post, ((d.id, d.to_dict()) for d in docs)),
            on_change,
            on_error,
        )

    async def get_post(self, post_id: str) -> Optional[Post]:
        return await self._get(Post, self._db.collection(POSTS).document(post_id))

    async def add_post(self, post: Post) -> Post:
        return await self._add(self._db.collection(POSTS), post)

    async def set_like_state(self, post_id: str, user_id: str, liked: bool) -> None:
        ref = self._db.collection(POSTS).document(post_id)

        @firestore.transactional
        def update(transaction):
            snap = ref.get(transaction=transaction)
            if not snap.exists:
                raise NotFoundError(POSTS, post_id)
            post = Post.from_document(snap.id, snap.to_dict()).with_like_state(user_id, liked)
            transaction.update(ref, {"likedBy": post.liked_by, "likes": post.likes})

        await self._call(update, self._db.transaction())

    # ── Comments ──

    def _comments(self, post_id: str) -> Any:
        return self._db.collection(POSTS).document(post_id).collection(COMMENTS)

    async def add_comment(self, comment: Comment) -> Comment:
        return await self._add(self._comments(comment.post_id), comment)

    async def get_comments(self, post_id: str) -> list[Comment]:
        query = self._comments(post_id).order_by("createdAt", direction=firestore.Query.ASCENDING)
        comments = await self._query(Comment, query)
        return [c.model_copy(update={"post_id": post_id}) for c in comments]

    # ── Notifications ──

    async def add_notification(self, notification: Notification) -> Notification:
        return await self._add(self._db.collection(NOTIFICATIONS), notification)

    async def get_unread_notifications(self, user_id: str) -> list[Notification]:
        query = (
            self._db.collection(NOTIFICATIONS)
            .where(filter=FieldFilter("userId", "==", user_id))
            .where(filter=FieldFilter("read", "==", False))
        )
        return await self._query(Notification, query)

    async def mark_notification_read(self, notification_id: str) -> None:
        await self._call(self._db.collection(NOTIFICATIONS).document(notification_id).update, {"read": True})

    # ── Chats ──

    async def get_chats(self, user_id: str) -> list[Chat]:
        query = self._db.collection(CHATS).where(filter=FieldFilter("participants", "array_contains", user_id))
        return await self._query(Chat, query)

    async def get_chat(self, chat_id: str) -> Optional[Chat]:
        return await self._get(Chat, self._db.collection(CHATS).document(chat_id))

    async def add_chat(self, chat: Chat) -> Chat:
        return await self._add(self._db.collection(CHATS), chat)

    async def add_message(self, chat_id: str, message: ChatMessage) -> ChatMessage:
        return await self._add(self._db.collection(CHATS).document(chat_id).collection(MESSAGES), message)

    async def get_messages(self, chat_id: str) -> list[ChatMessage]:
        query = (
            self._db.collection(CHATS).document(chat_id).collection(MESSAGES)
            .order_by("createdAt", direction=firestore.Query.DESCENDING)
        )
        return await self._query(ChatMessage, query)

    async def record_last_message(self, chat_id: str, last_message: LastMessage, receiver_id: str) -> None:
        ref = self._db.collection(CHATS).document(chat_id)
        await self._call(ref.update, {
            "lastMessage": {
                "text": last_message.text,
                "sender": last_message.sender,
                "timestamp": last_message.timestamp or firestore.SERVER_TIMESTAMP,
            },
            "updatedAt": firestore.SERVER_TIMESTAMP,
            f"unreadCount.{receiver_id}": firestore.Increment(1),
        })

    async def reset_unread(self, chat_id: str, user_id: str) -> None:
        await self._call(self._db.collection(CHATS).document(chat_id).update, {f"unreadCount.{user_id}": 0})
