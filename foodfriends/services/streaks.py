"""Posting streak calculation.

A streak counts consecutive calendar days, ending at the most recent post
day, on which a user posted. It expires once the most recent post is older
than yesterday, however long the chain was.
"""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from typing import Iterable, Mapping


def local_date(instant: datetime, tz: tzinfo | None = None) -> date:
    """Calendar date of ``instant`` in ``tz`` (or system local time).

    Naive datetimes are taken to already be local.
    """
    if instant.tzinfo is None:
        return instant.date()
    return instant.astimezone(tz).date()


def calendar_day_difference(later: datetime, earlier: datetime, tz: tzinfo | None = None) -> int:
    """Whole calendar days between the local dates of two instants.

    23:59 and 00:01 the next day are one day apart, not zero.
    """
    return (local_date(later, tz) - local_date(earlier, tz)).days


def streak_for(dates: Iterable[datetime], now: datetime, tz: tzinfo | None = None) -> int:
    """Compute the current consecutive-day posting streak.

    Args:
        dates: Post creation instants, in any order, duplicates allowed.
        now: Reference instant for expiry.
        tz: Zone defining calendar days; ``None`` uses system local time.

    Returns 0 when there are no posts or the latest post was two or more
    calendar days before ``now``.
    """
    ordered = sorted(dates, reverse=True)
    if not ordered:
        return 0

    streak = 1
    cursor = ordered[0]
    for d in ordered[1:]:
        gap = calendar_day_difference(cursor, d, tz)
        if gap == 0:
            continue
        if gap == 1:
            streak += 1
            cursor = d
        else:
            break

    if calendar_day_difference(now, ordered[0], tz) > 1:
        streak = 0
    return streak


def streaks_by_user(
    dates_by_user: Mapping[str, Iterable[datetime]],
    now: datetime,
    tz: tzinfo | None = None,
) -> dict[str, int]:
    """Apply ``streak_for`` to every user in an activity snapshot."""
    return {user_id: streak_for(dates, now, tz) for user_id, dates in dates_by_user.items()}
