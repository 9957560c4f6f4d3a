from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from foodfriends.models import UserProfile


@dataclass
class FriendView:
    user_id: str
    name: str
    avatar_url: Optional[str]
    streak: int


def compose_friend_list(
    friend_ids: Iterable[str],
    profiles: Mapping[str, UserProfile],
    streaks: Mapping[str, int],
) -> list[FriendView]:
    """Join friend ids with their profiles and streaks, highest streak first.

    Ids without a profile are dropped. Ids are visited in sorted order so
    equal streaks come out in a stable, repeatable order.
    """
    views = [
        FriendView(
            user_id=fid,
            name=profiles[fid].name,
            avatar_url=profiles[fid].avatar_url,
            streak=streaks.get(fid, 0),
        )
        for fid in sorted(set(friend_ids))
        if fid in profiles
    ]
    return sorted(views, key=lambda v: v.streak, reverse=True)
