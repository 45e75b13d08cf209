"""Persistence contracts the engine reads and writes through.

The engine never talks to a database directly. Any object satisfying these
protocols can back it; ``mnemos.core.storage`` ships the SQLite versions.
Adapters signal backend failures by raising
:class:`~mnemos.core.errors.DependencyUnavailable`.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any, Protocol

from mnemos.core.models import (
    Answer,
    AttemptRecord,
    PracticeSession,
    ReviewSchedule,
    SessionStatus,
    WellnessSession,
)


class AttemptStore(Protocol):
    """Append-only log of answer attempts."""

    def append(self, record: AttemptRecord) -> AttemptRecord:
        """Persist a record, assigning ``id`` and ``attempt_number``.

        Counting prior attempts for the pair and inserting must happen
        atomically so attempt numbers stay gapless and unique.
        """
        ...

    def query(
        self, user_id: str, question_ids: Iterable[str] | None = None
    ) -> list[AttemptRecord]:
        """All of a user's attempts, oldest first, optionally per question."""
        ...


class ScheduleStore(Protocol):
    """One review schedule per (user, question), last write wins."""

    def get(self, user_id: str, question_id: str) -> ReviewSchedule | None: ...

    def upsert(self, user_id: str, question_id: str, schedule: ReviewSchedule) -> None: ...

    def list_due(self, user_id: str, as_of: date) -> list[ReviewSchedule]:
        """Schedules with ``next_review_date <= as_of``, earliest first."""
        ...

    def log_review(self, schedule: ReviewSchedule) -> None:
        """Append one review event for activity tracking."""
        ...

    def review_dates(self, user_id: str) -> list[date]: ...


class SessionStore(Protocol):
    """Practice session rows scoped to their owner."""

    def create(self, session: PracticeSession) -> PracticeSession: ...

    def get(self, session_id: str, user_id: str) -> PracticeSession | None: ...

    def update(
        self,
        session_id: str,
        user_id: str,
        expected_status: SessionStatus | None = None,
        **fields: Any,
    ) -> PracticeSession:
        """Write mutable fields. With ``expected_status``, only while the row still has it.

        Raises InvalidInput when the stored status no longer matches.
        """
        ...

    def list_for_user(self, user_id: str) -> list[PracticeSession]: ...


class QuestionLookup(Protocol):
    """Read-only question metadata. Every method tolerates unknown ids."""

    def question_ids(self) -> list[str]: ...

    def category(self, question_id: str) -> str | None: ...

    def correct_answer(self, question_id: str) -> Answer | None: ...


class WellnessStore(Protocol):
    """Wellness exercise rows scoped to their owner."""

    def create(self, session: WellnessSession) -> WellnessSession: ...

    def get(self, session_id: str, user_id: str) -> WellnessSession | None: ...

    def update(self, session_id: str, user_id: str, **fields: Any) -> WellnessSession: ...

    def completed(self, user_id: str) -> Sequence[WellnessSession]: ...
