"""Typed records for documents read from and written to the store.

Raw documents use the mobile client's camelCase field names; records expose
snake_case attributes and accept either spelling. Missing optional fields are
resolved to defaults here and nowhere else.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Iterable, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)

R = TypeVar("R", bound="Record")


def _as_utc(value: datetime) -> datetime:
    # Zone-less values are read as UTC so every instant compares with every other
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


Timestamp = Annotated[datetime, AfterValidator(_as_utc)]


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    id: str = ""

    @classmethod
    def from_document(cls: type[R], doc_id: str, data: dict[str, Any] | None) -> R:
        return cls.model_validate({**(data or {}), "id": doc_id})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id"})


def parse_documents(cls: type[R], docs: Iterable[tuple[str, dict[str, Any] | None]]) -> list[R]:
    """Build records from ``(doc_id, data)`` pairs, skipping malformed documents."""
    records: list[R] = []
    for doc_id, data in docs:
        try:
            records.append(cls.from_document(doc_id, data))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed %s document %s: %s",
                cls.__name__, doc_id, e.errors()[0].get("msg", "invalid"),
            )
    return records


# ── Users ───────────────────────────────────────────────────────────────

class UserProfile(Record):
    user_id: str = Field(default="", alias="userId")
    name: str = ""
    name_search: str = Field(default="", alias="nameSearch")
    email: Optional[str] = None
    avatar_url: Optional[str] = Field(default=None, alias="avatarUrl")
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")
    updated_at: Optional[Timestamp] = Field(default=None, alias="updatedAt")

    @model_validator(mode="after")
    def _fill_keys(self):
        if not self.user_id:
            self.user_id = self.id
        if not self.id:
            self.id = self.user_id
        if not self.name_search:
            self.name_search = self.name.lower()
        return self


# ── Friendships ─────────────────────────────────────────────────────────

class RelationshipStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class Relationship(Record):
    participants: list[str]
    requester_id: str = Field(default="", alias="requesterId")
    status: RelationshipStatus = RelationshipStatus.PENDING
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")

    @field_validator("participants")
    @classmethod
    def exactly_two(cls, v):
        if len(v) != 2:
            raise ValueError("participants must hold exactly two user ids")
        return v

    @property
    def is_accepted(self) -> bool:
        return self.status == RelationshipStatus.ACCEPTED

    def involves(self, user_id: str) -> bool:
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str | None:
        for pid in self.participants:
            if pid != user_id:
                return pid
        return None


# ── Posts ───────────────────────────────────────────────────────────────

class Post(Record):
    user_id: str = Field(alias="userId")
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")
    image_url: str = Field(default="", alias="imageUrl")
    image_id: str = Field(default="", alias="imageId")
    description: str = ""
    likes: int = 0
    liked_by: list[str] = Field(default_factory=list, alias="likedBy")
    comments: int = 0
    shares: int = 0
    user_name: Optional[str] = Field(default=None, alias="userName")
    user_avatar: Optional[str] = Field(default=None, alias="userAvatar")

    @field_validator("likes", "comments", "shares", mode="before")
    @classmethod
    def none_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator("liked_by", mode="before")
    @classmethod
    def none_is_empty(cls, v):
        return [] if v is None else v

    def is_liked_by(self, user_id: str) -> bool:
        return user_id in self.liked_by

    def with_like_state(self, user_id: str, liked: bool) -> "Post":
        """Return a copy with ``user_id`` added to or removed from ``liked_by``.

        Idempotent: liking twice or unliking a post that was never liked
        changes nothing. ``likes`` always equals ``len(liked_by)``.
        """
        liked_by = [uid for uid in self.liked_by if uid != user_id]
        if liked:
            if user_id in self.liked_by:
                liked_by = list(self.liked_by)
            else:
                liked_by.append(user_id)
        return self.model_copy(update={"liked_by": liked_by, "likes": len(liked_by)})


class Comment(Record):
    post_id: str = ""
    user_id: str = Field(alias="userId")
    text: str
    user_name: Optional[str] = Field(default=None, alias="userName")
    user_avatar: Optional[str] = Field(default=None, alias="userAvatar")
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude={"id", "post_id"})


# ── Notifications ───────────────────────────────────────────────────────

class NotificationType(str, Enum):
    FRIEND_REQUEST = "friendRequest"
    FRIEND_REQUEST_ACCEPTED = "friendRequestAccepted"
    FRIEND_REQUEST_DECLINED = "friendRequestDeclined"


class Notification(Record):
    user_id: str = Field(alias="userId")
    type: NotificationType
    sender_id: str = Field(alias="senderId")
    sender_name: Optional[str] = Field(default=None, alias="senderName")
    sender_avatar: Optional[str] = Field(default=None, alias="senderAvatar")
    read: bool = False
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")


# ── Chats ───────────────────────────────────────────────────────────────

class LastMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = ""
    sender: str = ""
    timestamp: Optional[Timestamp] = None


class Chat(Record):
    type: str = "direct"
    participants: list[str]
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")
    updated_at: Optional[Timestamp] = Field(default=None, alias="updatedAt")
    last_message: Optional[LastMessage] = Field(default=None, alias="lastMessage")
    unread_count: dict[str, int] = Field(default_factory=dict, alias="unreadCount")

    @field_validator("unread_count", mode="before")
    @classmethod
    def none_is_empty(cls, v):
        return {} if v is None else v

    def other_participant(self, user_id: str) -> str | None:
        for pid in self.participants:
            if pid != user_id:
                return pid
        return None

    def unread_for(self, user_id: str) -> int:
        return self.unread_count.get(user_id, 0)


class ChatMessage(Record):
    # Shared-post messages were historically written with ``senderId``
    sender: str
    text: Optional[str] = None
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    original_user_name: Optional[str] = Field(default=None, alias="originalUserName")
    sender_name: Optional[str] = Field(default=None, alias="senderName")
    sender_avatar: Optional[str] = Field(default=None, alias="senderAvatar")
    created_at: Optional[Timestamp] = Field(default=None, alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def _sender_alias(cls, data):
        if isinstance(data, dict) and "sender" not in data and "senderId" in data:
            data = {**data, "sender": data["senderId"]}
        return data

    @property
    def is_shared_post(self) -> bool:
        return bool(self.image_url) and not self.text
