"""Core library for Mnemos."""

from mnemos.core.attempts import AttemptLog, check_answer
from mnemos.core.errors import DependencyUnavailable, InvalidInput, MnemosError, NotFound
from mnemos.core.metrics import (
    ProgressAnalyzer,
    compute_performance,
    compute_stats,
    compute_trend,
    latest_attempts,
    pass_probability,
    readiness_level,
)
from mnemos.core.models import (
    AttemptRecord,
    CategoryStat,
    Outcome,
    PerformanceMetrics,
    PracticeSession,
    ProgressStats,
    ReadinessLevel,
    RecommendationReason,
    RecommendedQuestion,
    ReviewSchedule,
    SessionMode,
    SessionProgress,
    SessionResults,
    SessionStatus,
    StreakInfo,
    TrendPoint,
    WellnessSession,
    WellnessStats,
    WellnessType,
)
from mnemos.core.recommendations import recommend_questions
from mnemos.core.scheduler import ReviewQuality, ReviewResult, ReviewScheduler, schedule
from mnemos.core.sessions import SessionLifecycle
from mnemos.core.storage import MnemosStorage
from mnemos.core.streaks import streaks
from mnemos.core.wellness import WellnessTracker

__all__ = [
    # Models
    "AttemptRecord",
    "CategoryStat",
    "Outcome",
    "PerformanceMetrics",
    "PracticeSession",
    "ProgressStats",
    "ReadinessLevel",
    "RecommendationReason",
    "RecommendedQuestion",
    "ReviewSchedule",
    "SessionMode",
    "SessionProgress",
    "SessionResults",
    "SessionStatus",
    "StreakInfo",
    "TrendPoint",
    "WellnessSession",
    "WellnessStats",
    "WellnessType",
    # Errors
    "DependencyUnavailable",
    "InvalidInput",
    "MnemosError",
    "NotFound",
    # Engine
    "AttemptLog",
    "check_answer",
    "ProgressAnalyzer",
    "compute_performance",
    "compute_stats",
    "compute_trend",
    "latest_attempts",
    "pass_probability",
    "readiness_level",
    "recommend_questions",
    "ReviewQuality",
    "ReviewResult",
    "ReviewScheduler",
    "schedule",
    "SessionLifecycle",
    "streaks",
    "WellnessTracker",
    # Storage
    "MnemosStorage",
]
