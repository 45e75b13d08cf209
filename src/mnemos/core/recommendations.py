"""Question recommendations for recommended-mode practice sessions.

Each candidate gets a priority score from three signals: how weak its domain
is, how long ago it was last answered, and whether that answer was wrong.
Selection then takes the highest scores while capping any single domain.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime

from mnemos.core.errors import InvalidInput
from mnemos.core.metrics import CategoryOf, category_breakdown, latest_attempts
from mnemos.core.models import (
    UNCATEGORIZED,
    AttemptRecord,
    RecommendationReason,
    RecommendedQuestion,
    as_utc,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 20
MAX_DOMAIN_SHARE = 0.4
MIN_DOMAINS = 3


def _domain_points(accuracy: float | None) -> int:
    if accuracy is None:
        return 5  # Domain not practiced yet
    if accuracy < 70:
        return 40
    if accuracy < 75:
        return 20
    if accuracy < 80:
        return 10
    return 0


def _recency_points(days_since: float | None) -> int:
    if days_since is None:
        return 5
    if days_since > 14:
        return 20
    if days_since > 7:
        return 15
    if days_since > 3:
        return 10
    if days_since > 1:
        return 5
    return -5


def priority_score(
    question_id: str,
    domain: str,
    last: AttemptRecord | None,
    domain_accuracy: dict[str, float],
    now: datetime,
) -> RecommendedQuestion:
    """Score one candidate question."""
    accuracy = domain_accuracy.get(domain)
    score = _domain_points(accuracy)
    reason = RecommendationReason.NEW
    if accuracy is not None and accuracy < 70:
        reason = RecommendationReason.WEAK_AREA

    days_since = None
    if last is not None:
        days_since = (now - as_utc(last.attempted_at)).total_seconds() / 86400
    score += _recency_points(days_since)
    if days_since is not None and days_since > 14 and score < 40:
        reason = RecommendationReason.SPACED_REPETITION

    # Previous outcome
    if last is not None:
        if not last.is_correct:
            score += 10
        elif last.attempt_number == 1:
            score -= 5

    return RecommendedQuestion(
        question_id=question_id, priority_score=score, reason=reason, domain=domain
    )


def select_questions(
    scored: Sequence[RecommendedQuestion], count: int
) -> list[RecommendedQuestion]:
    """Pick up to ``count`` questions, highest priority first.

    No domain may take more than 40% of the picks while other domains still
    have candidates; if fewer than three domains made it in, unpicked domains
    are added next. Remaining slots are then filled by score alone.
    """
    ranked = sorted(scored, key=lambda q: (-q.priority_score, q.question_id))
    cap = count * MAX_DOMAIN_SHARE

    selected: list[RecommendedQuestion] = []
    per_domain: dict[str, int] = {}
    for candidate in ranked:
        if len(selected) >= count:
            break
        if per_domain.get(candidate.domain, 0) >= cap:
            continue
        selected.append(candidate)
        per_domain[candidate.domain] = per_domain.get(candidate.domain, 0) + 1

    if len(per_domain) < MIN_DOMAINS:
        for candidate in ranked:
            if len(selected) >= count:
                break
            if candidate.domain not in per_domain:
                selected.append(candidate)
                per_domain[candidate.domain] = 1

    # Top up when the cap left slots empty (e.g. a single-domain bank)
    chosen = {q.question_id for q in selected}
    for candidate in ranked:
        if len(selected) >= count:
            break
        if candidate.question_id not in chosen:
            selected.append(candidate)
            chosen.add(candidate.question_id)

    return selected


def recommend_questions(
    records: Sequence[AttemptRecord],
    candidates: Iterable[str],
    category_of: CategoryOf | None = None,
    count: int = DEFAULT_COUNT,
    now: datetime | None = None,
) -> list[RecommendedQuestion]:
    """Recommend practice questions from ``candidates`` for one learner.

    Raises:
        InvalidInput: count is below 1
    """
    if count < 1:
        raise InvalidInput(f"count must be >= 1, got {count}")
    now = as_utc(now or utcnow())

    latest = latest_attempts(records)
    last_by_question = {r.question_id: r for r in latest}
    domain_accuracy = {
        stat.category: stat.accuracy for stat in category_breakdown(latest, category_of)
    }

    scored = []
    for question_id in dict.fromkeys(candidates):
        domain = (category_of(question_id) if category_of else None) or UNCATEGORIZED
        scored.append(
            priority_score(
                question_id, domain, last_by_question.get(question_id), domain_accuracy, now
            )
        )

    picks = select_questions(scored, count)
    logger.debug("Recommended %d of %d candidate(s)", len(picks), len(scored))
    return picks
