"""Consecutive-day streaks over arbitrary completion events."""

from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta, tzinfo

from mnemos.core.models import StreakInfo


def to_local_date(value: date | datetime, tz: tzinfo | None = None) -> date:
    """Calendar day of a timestamp in the learner's timezone.

    Plain dates pass through untouched; naive datetimes are taken as UTC.
    """
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(tz or UTC).date()


def streaks(
    completions: Iterable[date | datetime],
    today: date | None = None,
    tz: tzinfo | None = None,
) -> StreakInfo:
    """Compute current and longest streaks.

    Current streak counts consecutive days ending today or yesterday (so the
    streak doesn't break mid-day before any activity is logged). Longest is
    the maximum run anywhere in the set.
    """
    days = {to_local_date(c, tz) for c in completions}
    if not days:
        return StreakInfo(current=0, longest=0)

    if today is None:
        today = datetime.now(tz or UTC).date()

    # Current streak: walk backwards from today (or yesterday)
    current = 0
    check = today
    if check not in days:
        check -= timedelta(days=1)
    while check in days:
        current += 1
        check -= timedelta(days=1)

    # Longest streak: iterate sorted dates
    ordered = sorted(days)
    longest = 1
    run = 1
    for prev, cur in zip(ordered, ordered[1:]):
        if cur - prev == timedelta(days=1):
            run += 1
            longest = max(longest, run)
        else:
            run = 1

    return StreakInfo(current=current, longest=longest)
