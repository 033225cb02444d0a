"""Streak arithmetic over a sparse set of calendar dates (no I/O)."""
from datetime import date, timedelta
from typing import Collection, Iterable

STREAK_MAX_DAYS = 10000

# streak length -> achievement code
ACHIEVEMENT_THRESHOLDS = {
    7: "streak_7",
    15: "streak_15",
    30: "streak_30",
    50: "streak_50",
    100: "streak_100",
}


def count_streak(dates: Collection[date], anchor: date | None, limit: int = STREAK_MAX_DAYS) -> int:
    """
    Length of the unbroken run of days ending at ``anchor``.

    The anchor itself always counts, whether or not it is in ``dates``; the walk
    then steps back one day at a time and stops at the first missing day.
    No anchor means no completions, so the streak is 0. Runs longer than
    ``limit`` report ``limit``.
    """
    if anchor is None:
        return 0

    streak = 1
    d = anchor - timedelta(days=1)
    while d in dates:
        if streak >= limit:
            return limit
        streak += 1
        d -= timedelta(days=1)
    return streak


def longest_run(dates: Iterable[date], limit: int = STREAK_MAX_DAYS) -> int:
    """Longest run of consecutive days anywhere in ``dates``."""
    best = 0
    run = 0
    prev = None
    for d in sorted(set(dates)):
        if prev is not None and (d - prev).days == 1:
            run += 1
        else:
            run = 1
        best = max(best, run)
        prev = d
    return min(best, limit)


def achievements_for(streak: int) -> list[dict]:
    """Achievement reached exactly at this streak length (at most one)."""
    code = ACHIEVEMENT_THRESHOLDS.get(streak)
    if code is None:
        return []
    return [{"type": code, "message": f"{streak} days in a row!"}]
