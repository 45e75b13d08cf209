"""Progress analytics: latest-attempt statistics, trends and mastery.

Every aggregate here is built on :func:`latest_attempts`, which keeps only
the most recent attempt per question: accuracy reflects current mastery.
Time figures are the exception and sum over every attempt, since they
measure effort invested rather than mastery.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Sequence
from datetime import date, datetime, timedelta, tzinfo

from mnemos.core.attempts import AttemptLog
from mnemos.core.errors import DependencyUnavailable, InvalidInput
from mnemos.core.models import (
    UNCATEGORIZED,
    AttemptRecord,
    CategoryStat,
    DomainMastery,
    MasteryLevel,
    PerformanceMetrics,
    ProgressStats,
    ReadinessLevel,
    SessionResults,
    TrendPoint,
    as_utc,
    utcnow,
)
from mnemos.core.stores import QuestionLookup
from mnemos.core.streaks import streaks, to_local_date

logger = logging.getLogger(__name__)

CategoryOf = Callable[[str], str | None]

DEFAULT_WINDOW_DAYS = 7
DEFAULT_HORIZON_DAYS = 30

# Mastery bands (accuracy %), highest first
MASTERY_THRESHOLDS = [
    (90.0, MasteryLevel.MASTERY),
    (75.0, MasteryLevel.PROFICIENT),
    (60.0, MasteryLevel.DEVELOPING),
]
MIN_ATTEMPTS_FOR_MASTERY = 10
WEAK_AREA_ACCURACY = 70.0
IMPROVEMENT_SAMPLE = 50

# Readiness bands (pass probability), highest first
READINESS_THRESHOLDS = [
    (85, ReadinessLevel.READY),
    (70, ReadinessLevel.ON_TRACK),
    (50, ReadinessLevel.DEVELOPING),
]


def round_half_up(value: float, digits: int = 0) -> float:
    """Round .5 away from zero for non-negative values (``round`` uses banker's)."""
    scale = 10**digits
    return math.floor(value * scale + 0.5) / scale


def accuracy_of(correct: int, attempted: int) -> float:
    """Percentage rounded to one decimal, 0.0 when nothing was attempted."""
    if attempted <= 0:
        return 0.0
    return round_half_up(correct / attempted * 100, 1)


def latest_attempts(records: Iterable[AttemptRecord]) -> list[AttemptRecord]:
    """Keep the most recent attempt per question, oldest first.

    Equal timestamps are resolved by the higher attempt number.
    """
    latest: dict[str, AttemptRecord] = {}
    for record in records:
        existing = latest.get(record.question_id)
        if existing is None or _recency(record) > _recency(existing):
            latest[record.question_id] = record
    return sorted(latest.values(), key=_recency)


def _recency(record: AttemptRecord) -> tuple[datetime, int]:
    return as_utc(record.attempted_at), record.attempt_number or 0


def _resolve_category(category_of: CategoryOf | None, question_id: str) -> str:
    if category_of is None:
        return UNCATEGORIZED
    return category_of(question_id) or UNCATEGORIZED


def category_breakdown(
    latest: Sequence[AttemptRecord], category_of: CategoryOf | None = None
) -> list[CategoryStat]:
    """Per-category accuracy of deduplicated attempts, sorted by category."""
    buckets: dict[str, list[int]] = {}
    for record in latest:
        category = _resolve_category(category_of, record.question_id)
        counts = buckets.setdefault(category, [0, 0])
        counts[0] += 1
        if record.is_correct:
            counts[1] += 1

    return [
        CategoryStat(
            category=category,
            attempted=attempted,
            correct=correct,
            accuracy=accuracy_of(correct, attempted),
        )
        for category, (attempted, correct) in sorted(buckets.items())
    ]


def compute_stats(
    records: Sequence[AttemptRecord], category_of: CategoryOf | None = None
) -> ProgressStats:
    """Overall and per-category statistics for one learner's attempts."""
    latest = latest_attempts(records)
    attempted = len(latest)
    correct = sum(1 for r in latest if r.is_correct)

    total_time = sum(r.time_spent_seconds for r in records)
    average_time = int(round_half_up(total_time / len(records))) if records else 0

    return ProgressStats(
        total_attempted=attempted,
        total_correct=correct,
        total_incorrect=attempted - correct,
        accuracy=accuracy_of(correct, attempted),
        average_time_per_question=average_time,
        total_time_spent=total_time,
        category_stats=category_breakdown(latest, category_of),
    )


def compute_trend(
    records: Sequence[AttemptRecord],
    window_days: int = DEFAULT_WINDOW_DAYS,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    tz: tzinfo | None = None,
) -> list[TrendPoint]:
    """Rolling accuracy per active calendar day.

    Day D's accuracy covers the calendar window [D - window_days + 1, D];
    days without attempts count as zero inside a window but produce no
    point of their own. Only the last ``horizon_days`` points are returned.
    """
    if window_days < 1:
        raise InvalidInput(f"window_days must be >= 1, got {window_days}")
    if horizon_days < 1:
        raise InvalidInput(f"horizon_days must be >= 1, got {horizon_days}")

    # Group by date: day -> [attempted, correct]
    by_day: dict[date, list[int]] = {}
    for record in latest_attempts(records):
        day = to_local_date(record.attempted_at, tz)
        counts = by_day.setdefault(day, [0, 0])
        counts[0] += 1
        if record.is_correct:
            counts[1] += 1

    points: list[TrendPoint] = []
    for day in sorted(by_day):
        window_attempted = 0
        window_correct = 0
        for offset in range(window_days):
            counts = by_day.get(day - timedelta(days=offset))
            if counts:
                window_attempted += counts[0]
                window_correct += counts[1]

        points.append(
            TrendPoint(
                date=day,
                accuracy=accuracy_of(window_correct, window_attempted),
                attempted=by_day[day][0],
            )
        )

    return points[-horizon_days:]


def mastery_level(accuracy: float, attempted: int) -> MasteryLevel:
    """Mastery band for a category's accuracy."""
    if attempted < MIN_ATTEMPTS_FOR_MASTERY:
        return MasteryLevel.INSUFFICIENT_DATA
    for threshold, level in MASTERY_THRESHOLDS:
        if accuracy >= threshold:
            return level
    return MasteryLevel.NOVICE


def questions_to_next_level(accuracy: float, attempted: int, correct: int) -> int:
    """Correct answers in a row needed to reach the next mastery band.

    Solves ``(correct + x) / (attempted + x) = target`` for x.
    """
    if attempted < MIN_ATTEMPTS_FOR_MASTERY:
        return MIN_ATTEMPTS_FOR_MASTERY - attempted

    target = None
    for threshold, _level in reversed(MASTERY_THRESHOLDS):
        if accuracy < threshold:
            target = threshold
            break
    if target is None:
        return 0  # Already at mastery

    needed = math.ceil((target * attempted - 100 * correct) / (100 - target))
    return max(0, needed)


def pass_probability(
    overall_accuracy: float,
    domains: Sequence[DomainMastery],
    total_attempted: int,
    weak_area_count: int,
) -> int:
    """Weighted 0-100 readiness score.

    Up to 40 points for overall accuracy, 30 for the share of rated domains
    at proficient or better, 20 for volume and 10 for having few weak areas.
    """
    score = 0.0

    # Overall accuracy (40 points)
    if overall_accuracy >= 75:
        score += 40
    elif overall_accuracy >= 70:
        score += 30
    elif overall_accuracy >= 65:
        score += 20
    elif overall_accuracy >= 60:
        score += 10

    # Domain coverage (30 points)
    rated = [d for d in domains if d.mastery_level != MasteryLevel.INSUFFICIENT_DATA]
    if rated:
        strong = sum(
            1
            for d in rated
            if d.mastery_level in (MasteryLevel.PROFICIENT, MasteryLevel.MASTERY)
        )
        score += strong / len(rated) * 30

    # Volume (20 points)
    if total_attempted >= 1000:
        score += 20
    elif total_attempted >= 500:
        score += 15
    elif total_attempted >= 250:
        score += 10
    elif total_attempted >= 100:
        score += 5

    # Weak areas (10 points)
    if weak_area_count == 0:
        score += 10
    elif weak_area_count <= 2:
        score += 5

    return int(round_half_up(score))


def readiness_level(probability: int) -> ReadinessLevel:
    for threshold, level in READINESS_THRESHOLDS:
        if probability >= threshold:
            return level
    return ReadinessLevel.NOT_READY


def compute_performance(
    records: Sequence[AttemptRecord],
    category_of: CategoryOf | None = None,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> PerformanceMetrics:
    """Extended dashboard metrics: first-try accuracy, recency, mastery."""
    now = as_utc(now or utcnow())
    latest = latest_attempts(records)
    stats = compute_stats(records, category_of)

    # First attempt accuracy
    first_tries = [r for r in records if r.attempt_number == 1]
    first_correct = sum(1 for r in first_tries if r.is_correct)

    # 7-day metrics
    cutoff = now - timedelta(days=7)
    recent = [r for r in latest if as_utc(r.attempted_at) >= cutoff]
    recent_correct = sum(1 for r in recent if r.is_correct)

    # Improvement rate (compare first 50 vs last 50)
    improvement = 0.0
    if len(latest) >= 2 * IMPROVEMENT_SAMPLE:
        first_correct_n = sum(1 for r in latest[:IMPROVEMENT_SAMPLE] if r.is_correct)
        last_correct_n = sum(1 for r in latest[-IMPROVEMENT_SAMPLE:] if r.is_correct)
        improvement = round((last_correct_n - first_correct_n) / IMPROVEMENT_SAMPLE * 100, 1)

    # Study-day streaks
    study_days = streaks(
        (r.attempted_at for r in records), today=to_local_date(now, tz), tz=tz
    )

    # Domain mastery
    domains: list[DomainMastery] = []
    for stat in stats.category_stats:
        raw_accuracy = stat.correct / stat.attempted * 100
        domains.append(
            DomainMastery(
                domain=stat.category,
                accuracy=stat.accuracy,
                attempted=stat.attempted,
                correct=stat.correct,
                mastery_level=mastery_level(raw_accuracy, stat.attempted),
                questions_to_next_level=questions_to_next_level(
                    raw_accuracy, stat.attempted, stat.correct
                ),
            )
        )

    ranked = sorted(
        (d for d in domains if d.mastery_level != MasteryLevel.INSUFFICIENT_DATA),
        key=lambda d: d.accuracy,
        reverse=True,
    )
    weak_areas = [
        d
        for d in domains
        if d.accuracy < WEAK_AREA_ACCURACY and d.attempted >= MIN_ATTEMPTS_FOR_MASTERY
    ]

    probability = pass_probability(
        stats.accuracy, domains, stats.total_attempted, len(weak_areas)
    )

    return PerformanceMetrics(
        overall_accuracy=stats.accuracy,
        first_attempt_accuracy=accuracy_of(first_correct, len(first_tries)),
        total_attempted=stats.total_attempted,
        total_correct=stats.total_correct,
        total_incorrect=stats.total_incorrect,
        seven_day_accuracy=accuracy_of(recent_correct, len(recent)),
        seven_day_attempted=len(recent),
        improvement_rate=improvement,
        current_streak=study_days.current,
        longest_streak=study_days.longest,
        domain_mastery=domains,
        strongest_domain=ranked[0].domain if ranked else None,
        weakest_domain=ranked[-1].domain if ranked else None,
        weak_area_count=len(weak_areas),
        pass_probability=probability,
        readiness_level=readiness_level(probability),
        average_time_per_question=stats.average_time_per_question,
    )


def compute_session_results(
    latest: Sequence[AttemptRecord], category_of: CategoryOf | None = None
) -> SessionResults:
    """Score a session from its already-scoped latest attempts.

    Unlike lifetime stats, session time counts only the scored attempts.
    """
    attempted = len(latest)
    correct = sum(1 for r in latest if r.is_correct)
    total_time = sum(r.time_spent_seconds for r in latest)
    average_time = total_time / attempted if attempted else 0

    return SessionResults(
        attempted=attempted,
        correct=correct,
        incorrect=attempted - correct,
        accuracy=accuracy_of(correct, attempted),
        total_time_seconds=total_time,
        average_time_seconds=int(round_half_up(average_time)),
        by_domain=category_breakdown(latest, category_of),
    )


class ProgressAnalyzer:
    """Store-backed analytics that degrade to empty results on read failures."""

    def __init__(
        self,
        attempts: AttemptLog,
        questions: QuestionLookup | None = None,
        tz: tzinfo | None = None,
    ):
        self.attempts = attempts
        self.questions = questions
        self.tz = tz

    def category_of(self, question_id: str) -> str | None:
        if self.questions is None:
            return None
        return self.questions.category(question_id)

    def stats(self, user_id: str) -> ProgressStats:
        try:
            return compute_stats(self.attempts.query(user_id), self.category_of)
        except DependencyUnavailable as e:
            logger.warning("Stats unavailable for %s, returning zeroed result: %s", user_id, e)
            return ProgressStats()

    def trend(
        self,
        user_id: str,
        window_days: int = DEFAULT_WINDOW_DAYS,
        horizon_days: int = DEFAULT_HORIZON_DAYS,
    ) -> list[TrendPoint]:
        try:
            records = self.attempts.query(user_id)
        except DependencyUnavailable as e:
            logger.warning("Trend unavailable for %s, returning empty series: %s", user_id, e)
            return []
        return compute_trend(records, window_days, horizon_days, tz=self.tz)

    def performance(self, user_id: str, now: datetime | None = None) -> PerformanceMetrics:
        try:
            return compute_performance(
                self.attempts.query(user_id), self.category_of, now=now, tz=self.tz
            )
        except DependencyUnavailable as e:
            logger.warning("Metrics unavailable for %s, returning zeroed result: %s", user_id, e)
            return PerformanceMetrics()
