"""Direct messaging between friends, including sharing a post into a chat."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from foodfriends.errors import NotFoundError, StoreUnavailableError
from foodfriends.logging_config import log_context
from foodfriends.models import Chat, ChatMessage, LastMessage, Post, UserProfile
from foodfriends.services.relationships import get_accepted_friend_ids
from foodfriends.store.base import DocumentStore
from foodfriends.validators import MessageInput

logger = logging.getLogger(__name__)

SHARED_POST_TEXT = "Shared a post"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ChatSummary:
    chat_id: str
    other_user_id: Optional[str]
    name: Optional[str]
    avatar_url: Optional[str]
    last_message: Optional[LastMessage]
    unread_count: int
    updated_at: Optional[datetime]


def _direct_chat_with(chats: list[Chat], other_id: str) -> Optional[Chat]:
    for chat in chats:
        if chat.type == "direct" and other_id in chat.participants:
            return chat
    return None


async def find_or_create_direct_chat(store: DocumentStore, user_id: str, other_id: str) -> Chat:
    if user_id == other_id:
        raise ValueError("cannot open a chat with yourself")
    existing = _direct_chat_with(await store.get_chats(user_id), other_id)
    if existing is not None:
        return existing
    chat = await store.add_chat(Chat(type="direct", participants=[user_id, other_id]))
    logger.info("Direct chat created", extra=log_context(chat=chat.id, user=user_id))
    return chat


async def _receiver_of(store: DocumentStore, chat_id: str, sender_id: str) -> str:
    chat = await store.get_chat(chat_id)
    if chat is None:
        raise NotFoundError("chats", chat_id)
    if sender_id not in chat.participants:
        raise ValueError(f"user {sender_id} is not a participant of chat {chat_id}")
    receiver = chat.other_participant(sender_id)
    if receiver is None:
        raise ValueError(f"chat {chat_id} has no other participant")
    return receiver


async def send_message(store: DocumentStore, sender: UserProfile, data: MessageInput) -> ChatMessage:
    """Append a text message and bump the receiver's unread count."""
    receiver_id = await _receiver_of(store, data.chat_id, sender.user_id)
    message = await store.add_message(
        data.chat_id,
        ChatMessage(
            sender=sender.user_id,
            text=data.text,
            sender_name=sender.name,
            sender_avatar=sender.avatar_url,
        ),
    )
    await store.record_last_message(
        data.chat_id,
        LastMessage(text=data.text, sender=sender.user_id),
        receiver_id,
    )
    return message


async def share_post(store: DocumentStore, sender: UserProfile, friend_id: str, post: Post) -> Chat:
    """Send ``post``'s image into the direct chat with ``friend_id``, creating the chat if needed."""
    chat = await find_or_create_direct_chat(store, sender.user_id, friend_id)
    await store.add_message(
        chat.id,
        ChatMessage(
            sender=sender.user_id,
            image_url=post.image_url,
            original_user_name=post.user_name,
        ),
    )
    await store.record_last_message(
        chat.id,
        LastMessage(text=SHARED_POST_TEXT, sender=sender.user_id),
        friend_id,
    )
    logger.info("Post shared", extra=log_context(post=post.id, chat=chat.id))
    return chat


async def mark_chat_read(store: DocumentStore, chat_id: str, user_id: str) -> None:
    await store.reset_unread(chat_id, user_id)


async def list_messages(store: DocumentStore, chat_id: str) -> list[ChatMessage]:
    try:
        return await store.get_messages(chat_id)
    except StoreUnavailableError as e:
        logger.warning("Messages query failed for chat=%s: %s", chat_id, e)
        return []


def _updated(summary: ChatSummary) -> datetime:
    ts = summary.updated_at
    if ts is None:
        return _EPOCH
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


async def list_chats(store: DocumentStore, user_id: str) -> list[ChatSummary]:
    """Chat summaries for the messages screen, most recently updated first."""
    try:
        chats = await store.get_chats(user_id)
        others = {c.other_participant(user_id) for c in chats} - {None}
        profiles = await store.get_profiles(others)
    except StoreUnavailableError as e:
        logger.warning("Chats query failed for user=%s: %s", user_id, e)
        return []

    summaries = []
    for chat in chats:
        other_id = chat.other_participant(user_id)
        profile = profiles.get(other_id) if other_id else None
        summaries.append(
            ChatSummary(
                chat_id=chat.id,
                other_user_id=other_id,
                name=profile.name if profile else None,
                avatar_url=profile.avatar_url if profile else None,
                last_message=chat.last_message,
                unread_count=chat.unread_for(user_id),
                updated_at=chat.updated_at,
            )
        )
    return sorted(summaries, key=_updated, reverse=True)


async def available_chat_partners(store: DocumentStore, user_id: str) -> list[UserProfile]:
    """Accepted friends the user has no direct chat with yet, sorted by name."""
    friend_ids = await get_accepted_friend_ids(store, user_id)
    try:
        chats = await store.get_chats(user_id)
        already = {c.other_participant(user_id) for c in chats if c.type == "direct"}
        candidates = friend_ids - already
        if not candidates:
            return []
        profiles = await store.get_profiles(candidates)
    except StoreUnavailableError as e:
        logger.warning("Chat partner lookup failed for user=%s: %s", user_id, e)
        return []
    return sorted(profiles.values(), key=lambda p: p.name_search)
