"""Pydantic models for Mnemos attempts, schedules, sessions and analytics."""

from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Annotated
from uuid import uuid4

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Interpret a naive datetime as UTC, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UNCATEGORIZED = "Uncategorized"

# A single choice or a multi-select answer
Answer = str | list[str]


class SessionMode(StrEnum):
    """How the questions of a practice session were chosen."""

    RECOMMENDED = "recommended"
    TIMED = "timed"
    CUSTOM = "custom"
    EXAM_SIMULATION = "exam_simulation"
    WELLNESS = "wellness"


class SessionStatus(StrEnum):
    """Practice session states. COMPLETED and ABANDONED are terminal."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.IN_PROGRESS


class Outcome(StrEnum):
    """History filter on attempt outcome."""

    ALL = "all"
    CORRECT = "correct"
    INCORRECT = "incorrect"


class MasteryLevel(StrEnum):
    """Per-domain mastery bands."""

    INSUFFICIENT_DATA = "insufficient_data"
    NOVICE = "novice"
    DEVELOPING = "developing"
    PROFICIENT = "proficient"
    MASTERY = "mastery"


class ReadinessLevel(StrEnum):
    """Exam readiness bands derived from the pass probability."""

    NOT_READY = "not_ready"
    DEVELOPING = "developing"
    ON_TRACK = "on_track"
    READY = "ready"


class RecommendationReason(StrEnum):
    """Main reason a question was picked for practice."""

    NEW = "new"
    WEAK_AREA = "weak_area"
    SPACED_REPETITION = "spaced_repetition"


class WellnessType(StrEnum):
    """Kinds of wellness exercises. Declaration order breaks favorite ties."""

    BREATHING = "breathing"
    MUSCLE_RELAXATION = "muscle_relaxation"
    MEDITATION = "meditation"
    STUDY_BREAK = "study_break"


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------


class AttemptRecord(BaseModel):
    """One learner's answer to one question at one point in time.

    ``id`` and ``attempt_number`` are assigned by the attempt store on
    append; records are immutable afterwards.
    """

    id: str | None = None
    user_id: str
    question_id: str
    attempted_at: datetime = Field(default_factory=utcnow)
    selected_answer: Answer
    is_correct: bool
    time_spent_seconds: int = Field(default=0, ge=0)
    attempt_number: int | None = Field(default=None, ge=1)


class ReviewSchedule(BaseModel):
    """Spaced-repetition state of one (user, question) pair."""

    user_id: str
    question_id: str
    easiness_factor: float = Field(default=2.5, ge=1.3)
    interval: int = Field(default=0, ge=0)  # days
    repetitions: int = Field(default=0, ge=0)
    next_review_date: date
    last_review_date: date
    last_quality: int = Field(ge=0, le=5)


class DomainResult(BaseModel):
    """Accuracy for one question category."""

    category: str
    attempted: int
    correct: int
    accuracy: float


# Same shape, named for the progress dashboard
CategoryStat = DomainResult


class SessionResults(BaseModel):
    """Session-scoped score, written once when a session completes."""

    attempted: int
    correct: int
    incorrect: int
    accuracy: float
    total_time_seconds: int
    average_time_seconds: int
    by_domain: list[DomainResult] = Field(default_factory=list)


class PracticeSession(BaseModel):
    """A bounded ordered sequence of questions worked through together."""

    id: Annotated[str, Field(default_factory=lambda: str(uuid4()))]
    user_id: str
    mode: SessionMode = SessionMode.RECOMMENDED
    questions: list[str]
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
    status: SessionStatus = SessionStatus.IN_PROGRESS
    current_question_index: int = Field(default=0, ge=0)
    results: SessionResults | None = None


class WellnessSession(BaseModel):
    """A breathing/relaxation/study-break exercise."""

    id: Annotated[str, Field(default_factory=lambda: str(uuid4()))]
    user_id: str
    type: WellnessType
    exercise_name: str
    technique: str | None = None  # e.g. "4-7-8", "box"
    duration_seconds: int = Field(default=0, ge=0)
    completed: bool = False
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None


# ---------------------------------------------------------------------------
# Derived read models (recomputed on every request, never persisted)
# ---------------------------------------------------------------------------


class TrendPoint(BaseModel):
    """One calendar day's rolling accuracy snapshot."""

    date: date
    accuracy: float = Field(ge=0, le=100)
    attempted: int


class ProgressStats(BaseModel):
    """Lifetime accuracy and effort figures for one learner."""

    total_attempted: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    accuracy: float = 0.0
    average_time_per_question: int = 0
    total_time_spent: int = 0
    category_stats: list[CategoryStat] = Field(default_factory=list)


class StreakInfo(BaseModel):
    """Consecutive-day activity streaks."""

    current: int = 0
    longest: int = 0


class SessionProgress(BaseModel):
    """Cursor position inside a practice session."""

    current: int
    total: int
    answered: int
    remaining: int


class DomainMastery(BaseModel):
    """Mastery band for one category and the distance to the next band."""

    domain: str
    accuracy: float
    attempted: int
    correct: int
    mastery_level: MasteryLevel
    questions_to_next_level: int


class PerformanceMetrics(BaseModel):
    """Extended dashboard metrics built on top of ProgressStats."""

    overall_accuracy: float = 0.0
    first_attempt_accuracy: float = 0.0
    total_attempted: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    seven_day_accuracy: float = 0.0
    seven_day_attempted: int = 0
    improvement_rate: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0
    domain_mastery: list[DomainMastery] = Field(default_factory=list)
    strongest_domain: str | None = None
    weakest_domain: str | None = None
    weak_area_count: int = 0
    pass_probability: int = Field(default=0, ge=0, le=100)
    readiness_level: ReadinessLevel = ReadinessLevel.NOT_READY
    average_time_per_question: int = 0


class RecommendedQuestion(BaseModel):
    """One question picked for a recommended practice session."""

    question_id: str
    priority_score: int
    reason: RecommendationReason
    domain: str


class WellnessStats(BaseModel):
    """Aggregates over a learner's completed wellness sessions."""

    total_sessions: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    favorite_exercise: WellnessType | None = None
    total_minutes: int = 0
    last_session_at: datetime | None = None
    sessions_by_type: dict[WellnessType, int] = Field(
        default_factory=lambda: {t: 0 for t in WellnessType}
    )
