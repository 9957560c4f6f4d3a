"""Leaderboard of friends plus the current user, ranked by post count."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from foodfriends.models import UserProfile


@dataclass
class LeaderboardEntry:
    user_id: str
    name: str
    avatar_url: Optional[str]
    post_count: int
    is_current_user: bool
    rank: int = 0


def build_leaderboard(
    friends: Sequence[UserProfile],
    post_count_by_user: Mapping[str, int],
    current_user: UserProfile,
) -> list[LeaderboardEntry]:
    """Rank friends and the current user by total post count.

    Args:
        friends: Friend profiles, in display order. Must not contain the
                 current user.
        post_count_by_user: Post totals; users without posts count 0.
        current_user: Appended after all friends before ranking.

    Ties keep their input order (stable sort), so a friend tied with the
    current user ranks above them. Returns entries with rank 1 = most posts.
    """
    entries = [
        LeaderboardEntry(
            user_id=friend.user_id,
            name=friend.name,
            avatar_url=friend.avatar_url,
            post_count=post_count_by_user.get(friend.user_id, 0),
            is_current_user=False,
        )
        for friend in friends
    ]
    entries.append(
        LeaderboardEntry(
            user_id=current_user.user_id,
            name=current_user.name,
            avatar_url=current_user.avatar_url,
            post_count=post_count_by_user.get(current_user.user_id, 0),
            is_current_user=True,
        )
    )

    ranked = sorted(entries, key=lambda e: e.post_count, reverse=True)
    for i, entry in enumerate(ranked):
        entry.rank = i + 1
    return ranked
