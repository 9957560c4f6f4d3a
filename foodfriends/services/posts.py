"""Post creation and comments.

The image itself is uploaded to object storage by the caller; posts only
carry its download URL and storage id.
"""

from __future__ import annotations

import logging

from foodfriends.errors import StoreUnavailableError
from foodfriends.logging_config import log_context
from foodfriends.models import Comment, Post, UserProfile
from foodfriends.store.base import DocumentStore
from foodfriends.validators import CommentInput, PostCreateInput

logger = logging.getLogger(__name__)


async def create_post(store: DocumentStore, author: UserProfile, data: PostCreateInput) -> Post:
    """Write a new post with zeroed counters and a pending server timestamp."""
    post = await store.add_post(
        Post(
            user_id=author.user_id,
            user_name=author.name,
            user_avatar=author.avatar_url,
            image_url=data.image_url,
            image_id=data.image_id,
            description=data.description,
            likes=0,
            liked_by=[],
            comments=0,
            shares=0,
        )
    )
    logger.info("Post created", extra=log_context(user=author.user_id, post=post.id))
    return post


async def add_comment(store: DocumentStore, author: UserProfile, data: CommentInput) -> Comment:
    return await store.add_comment(
        Comment(
            post_id=data.post_id,
            user_id=author.user_id,
            user_name=author.name,
            user_avatar=author.avatar_url,
            text=data.text,
        )
    )


async def list_comments(store: DocumentStore, post_id: str) -> list[Comment]:
    try:
        return await store.get_comments(post_id)
    except StoreUnavailableError as e:
        logger.warning("Comments query failed for post=%s: %s", post_id, e)
        return []
