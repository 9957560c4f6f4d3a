"""Tests for posting streak calculation.

Covers: calendar-day differences, chain scanning, same-day posts, expiry,
time zones, per-user mapping.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from foodfriends.services.streaks import (
    calendar_day_difference,
    local_date,
    streak_for,
    streaks_by_user,
)

NOW = datetime(2026, 3, 15, 21, 0)


def _days_ago(n: int, hour: int = 12) -> datetime:
    return (NOW - timedelta(days=n)).replace(hour=hour, minute=0)


# ── Calendar days ────────────────────────────────────────────────────────

class TestCalendarDayDifference:
    def test_midnight_crossing_is_one_day(self):
        late = datetime(2026, 3, 14, 23, 59)
        early_next = datetime(2026, 3, 15, 0, 1)
        assert calendar_day_difference(early_next, late) == 1

    def test_same_day_is_zero(self):
        assert calendar_day_difference(datetime(2026, 3, 15, 23, 0), datetime(2026, 3, 15, 1, 0)) == 0

    def test_ignores_elapsed_hours(self):
        # 47 hours apart but only one calendar day
        assert calendar_day_difference(datetime(2026, 3, 15, 23, 0), datetime(2026, 3, 14, 0, 0)) == 1

    def test_local_date_uses_zone(self):
        instant = datetime(2026, 3, 15, 2, 0, tzinfo=timezone.utc)
        assert local_date(instant, timezone(timedelta(hours=-5))).day == 14
        assert local_date(instant, timezone.utc).day == 15


# ── Streaks ──────────────────────────────────────────────────────────────

class TestStreakFor:
    def test_empty(self):
        assert streak_for([], NOW) == 0

    def test_single_post_today(self):
        assert streak_for([_days_ago(0)], NOW) == 1

    def test_single_post_yesterday_still_counts(self):
        assert streak_for([_days_ago(1)], NOW) == 1

    def test_gap_breaks_chain(self):
        dates = [_days_ago(0), _days_ago(1), _days_ago(3)]
        assert streak_for(dates, NOW) == 2

    def test_same_day_posts_count_once(self):
        dates = [_days_ago(0, hour=8), _days_ago(0, hour=20), _days_ago(1, hour=9)]
        assert streak_for(dates, NOW) == 2

    def test_expiry_overrides_chain_length(self):
        dates = [_days_ago(3), _days_ago(4), _days_ago(5)]
        assert streak_for(dates, NOW) == 0

    def test_long_chain_expires(self):
        dates = [_days_ago(n) for n in range(3, 13)]
        assert streak_for(dates, NOW) == 0

    def test_unordered_input(self):
        dates = [_days_ago(2), _days_ago(0), _days_ago(1)]
        assert streak_for(dates, NOW) == 3

    def test_midnight_posts_continue_chain(self):
        dates = [datetime(2026, 3, 14, 23, 59), datetime(2026, 3, 15, 0, 1)]
        assert streak_for(dates, NOW) == 2

    def test_timezone_changes_day_boundaries(self):
        dates = [
            datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc),
            datetime(2026, 3, 11, 0, 30, tzinfo=timezone.utc),
        ]
        now = datetime(2026, 3, 11, 1, 0, tzinfo=timezone.utc)
        assert streak_for(dates, now, timezone.utc) == 2
        # Both fall on the evening of the 10th five hours west of UTC
        assert streak_for(dates, now, timezone(timedelta(hours=-5))) == 1


class TestStreaksByUser:
    def test_maps_each_user(self):
        result = streaks_by_user(
            {
                "ana": [_days_ago(0), _days_ago(1)],
                "ben": [_days_ago(4)],
            },
            NOW,
        )
        assert result == {"ana": 2, "ben": 0}

    def test_empty_snapshot(self):
        assert streaks_by_user({}, NOW) == {}
