"""SM-2 review scheduler."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from enum import IntEnum

from mnemos.core.errors import InvalidInput
from mnemos.core.models import ReviewSchedule, StreakInfo
from mnemos.core.stores import ScheduleStore
from mnemos.core.streaks import streaks

logger = logging.getLogger(__name__)

INITIAL_EASINESS = 2.5
MIN_EASINESS = 1.3
SECOND_INTERVAL = 6
PASSING_QUALITY = 3


class ReviewQuality(IntEnum):
    """SM-2 recall grades."""

    BLACKOUT = 0  # No recall at all
    WRONG = 1  # Wrong, answer felt familiar once shown
    WRONG_EASY = 2  # Wrong, but the answer seemed easy to recall
    HARD = 3  # Correct with serious difficulty
    GOOD = 4  # Correct after hesitation
    PERFECT = 5  # Correct with no hesitation


@dataclass
class ReviewResult:
    """Result of submitting one review."""

    schedule: ReviewSchedule
    quality: int
    is_new: bool

    @property
    def next_review_in(self) -> str:
        """Human label for the interval, e.g. ``"6 days"``."""
        days = self.schedule.interval
        return f"{days} day{'s' if days != 1 else ''}"


@dataclass
class DueQueue:
    """Schedules due for review, earliest first."""

    schedules: list[ReviewSchedule]
    due_today: int

    @property
    def question_ids(self) -> list[str]:
        return [s.question_id for s in self.schedules]


def _validate_quality(quality: int) -> int:
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidInput(f"Quality must be an integer 0-5, got {quality!r}")
    if not 0 <= quality <= 5:
        raise InvalidInput(f"Quality must be 0-5, got {quality}")
    return int(quality)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def next_easiness(easiness: float, quality: int) -> float:
    """Classic SM-2 ease update, floored at 1.3."""
    miss = 5 - quality
    return max(MIN_EASINESS, easiness + (0.1 - miss * (0.08 + miss * 0.02)))


def schedule(
    existing: ReviewSchedule | None,
    quality: int,
    *,
    user_id: str = "",
    question_id: str = "",
    today: date | None = None,
) -> ReviewSchedule:
    """Compute the next spaced-repetition state for one (user, question) pair.

    A first-ever review starts the item at ease 2.5 with a one-day interval.
    Afterwards a failed recall (quality < 3) restarts the short cycle, and a
    successful one walks the 1 day, 6 days, ``interval * ease`` progression.

    Args:
        existing: The stored schedule, or None if the pair was never reviewed
        quality: Recall grade 0-5
        user_id: Owner, used when ``existing`` is None
        question_id: Question, used when ``existing`` is None
        today: Review date (default: the current UTC date)

    Raises:
        InvalidInput: quality is not an integer in [0, 5]
    """
    quality = _validate_quality(quality)
    today = today or datetime.now(UTC).date()

    if existing is None:
        return ReviewSchedule(
            user_id=user_id,
            question_id=question_id,
            easiness_factor=INITIAL_EASINESS,
            interval=1,
            repetitions=1,
            next_review_date=today + timedelta(days=1),
            last_review_date=today,
            last_quality=quality,
        )

    easiness = next_easiness(existing.easiness_factor, quality)

    if quality < PASSING_QUALITY:
        repetitions = 0
        interval = 1
    else:
        repetitions = existing.repetitions + 1
        if repetitions == 1:
            interval = 1
        elif repetitions == 2:
            interval = SECOND_INTERVAL
        else:
            interval = _round_half_up(existing.interval * easiness)

    return existing.model_copy(
        update={
            "easiness_factor": easiness,
            "interval": interval,
            "repetitions": repetitions,
            "next_review_date": today + timedelta(days=interval),
            "last_review_date": today,
            "last_quality": quality,
        }
    )


class ReviewScheduler:
    """Applies :func:`schedule` against a :class:`ScheduleStore`.

    Review, due and streak dates default to the current date in ``tz``
    (UTC when unset), not the host clock's local date.
    """

    def __init__(self, store: ScheduleStore, tz: tzinfo | None = None):
        self.store = store
        self.tz = tz

    def today(self) -> date:
        return datetime.now(self.tz or UTC).date()

    def review(
        self,
        user_id: str,
        question_id: str,
        quality: int,
        today: date | None = None,
    ) -> ReviewResult:
        """Submit a review and persist the new schedule.

        Concurrent reviews of the same pair are last-write-wins; store
        failures propagate so the schedule is never silently lost.
        """
        quality = _validate_quality(quality)

        # 1. Load current state
        existing = self.store.get(user_id, question_id)

        # 2. Compute the next state
        updated = schedule(
            existing,
            quality,
            user_id=user_id,
            question_id=question_id,
            today=today or self.today(),
        )

        # 3. Save and log
        self.store.upsert(user_id, question_id, updated)
        self.store.log_review(updated)
        logger.info(
            "Scheduled %s/%s: q=%d ef=%.2f interval=%d next=%s",
            user_id,
            question_id,
            quality,
            updated.easiness_factor,
            updated.interval,
            updated.next_review_date,
        )

        return ReviewResult(schedule=updated, quality=quality, is_new=existing is None)

    def get_schedule(self, user_id: str, question_id: str) -> ReviewSchedule | None:
        return self.store.get(user_id, question_id)

    def due(self, user_id: str, as_of: date | None = None) -> DueQueue:
        """Schedules due on or before ``as_of``, earliest first."""
        as_of = as_of or self.today()
        due = sorted(
            self.store.list_due(user_id, as_of),
            key=lambda s: (s.next_review_date, s.question_id),
        )
        due_today = sum(1 for s in due if s.next_review_date == as_of)
        return DueQueue(schedules=due, due_today=due_today)

    def streaks(self, user_id: str, today: date | None = None) -> StreakInfo:
        """Review-activity streaks from the review log."""
        return streaks(self.store.review_dates(user_id), today=today or self.today())
