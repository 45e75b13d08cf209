"""Wellness exercise tracking (breathing, relaxation, study breaks)."""

from __future__ import annotations

import logging
from datetime import date, tzinfo

from mnemos.core.errors import DependencyUnavailable, InvalidInput, NotFound
from mnemos.core.models import (
    WellnessSession,
    WellnessStats,
    WellnessType,
    as_utc,
    utcnow,
)
from mnemos.core.stores import WellnessStore
from mnemos.core.streaks import streaks

logger = logging.getLogger(__name__)


class WellnessTracker:
    """Starts and completes wellness sessions and summarizes them."""

    def __init__(self, store: WellnessStore, tz: tzinfo | None = None):
        self.store = store
        self.tz = tz

    def start(
        self,
        user_id: str,
        exercise_type: WellnessType | str,
        exercise_name: str,
        duration_seconds: int,
        technique: str | None = None,
    ) -> WellnessSession:
        try:
            exercise_type = WellnessType(exercise_type)
        except ValueError as e:
            raise InvalidInput(f"Unknown exercise type: {exercise_type}") from e
        if duration_seconds < 0:
            raise InvalidInput("Duration cannot be negative")

        return self.store.create(
            WellnessSession(
                user_id=user_id,
                type=exercise_type,
                exercise_name=exercise_name,
                technique=technique,
                duration_seconds=duration_seconds,
            )
        )

    def complete(self, session_id: str, user_id: str) -> WellnessSession:
        """Mark an exercise as done.

        Raises:
            NotFound: unknown session
            InvalidInput: already completed
        """
        session = self.store.get(session_id, user_id)
        if session is None:
            raise NotFound(f"Wellness session not found: {session_id}")
        if session.completed:
            raise InvalidInput(f"Wellness session {session_id} is already completed")

        updated = self.store.update(session_id, user_id, completed=True, completed_at=utcnow())
        logger.info("Completed %s exercise %s for %s", updated.type, session_id, user_id)
        return updated

    def stats(self, user_id: str, today: date | None = None) -> WellnessStats:
        try:
            sessions = [s for s in self.store.completed(user_id) if s.completed]
        except DependencyUnavailable as e:
            logger.warning("Wellness stats unavailable for %s: %s", user_id, e)
            return WellnessStats()

        if not sessions:
            return WellnessStats()

        finished_at = [as_utc(s.completed_at or s.started_at) for s in sessions]
        streak = streaks(finished_at, today=today, tz=self.tz)

        by_type = {t: 0 for t in WellnessType}
        for s in sessions:
            by_type[s.type] += 1
        # max() keeps the first of equal counts, i.e. declaration order
        favorite = max(WellnessType, key=lambda t: by_type[t])

        total_seconds = sum(s.duration_seconds for s in sessions)

        return WellnessStats(
            total_sessions=len(sessions),
            current_streak=streak.current,
            longest_streak=streak.longest,
            favorite_exercise=favorite,
            total_minutes=int(total_seconds / 60 + 0.5),
            last_session_at=max(finished_at),
            sessions_by_type=by_type,
        )
