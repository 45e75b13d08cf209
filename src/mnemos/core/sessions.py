"""Practice session lifecycle.

A session is created in_progress and ends exactly once, either completed
(results written) or abandoned (no results). Terminal sessions accept no
further transitions.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from mnemos.core.attempts import AttemptLog
from mnemos.core.errors import InvalidInput, NotFound
from mnemos.core.metrics import compute_session_results, latest_attempts
from mnemos.core.models import (
    AttemptRecord,
    PracticeSession,
    RecommendedQuestion,
    SessionMode,
    SessionProgress,
    SessionStatus,
    as_utc,
    utcnow,
)
from mnemos.core.recommendations import DEFAULT_COUNT, recommend_questions
from mnemos.core.stores import QuestionLookup, SessionStore

logger = logging.getLogger(__name__)


def session_progress(session: PracticeSession) -> SessionProgress:
    """Cursor position derived from ``current_question_index``."""
    total = len(session.questions)
    answered = session.current_question_index
    return SessionProgress(
        current=answered + 1,
        total=total,
        answered=answered,
        remaining=total - answered,
    )


def session_scoped_attempts(
    session: PracticeSession, records: Sequence[AttemptRecord]
) -> list[AttemptRecord]:
    """Latest attempt per session question, made since the session started.

    Earlier attempts on the same questions belong to lifetime history and do
    not count. There is no upper bound: attempts made after the learner
    stopped but before completion is recorded are included.
    """
    questions = set(session.questions)
    started_at = as_utc(session.started_at)
    scoped = [
        r
        for r in records
        if r.user_id == session.user_id
        and r.question_id in questions
        and as_utc(r.attempted_at) >= started_at
    ]
    return latest_attempts(scoped)


class SessionLifecycle:
    """Creates, advances and closes practice sessions."""

    def __init__(
        self,
        store: SessionStore,
        attempts: AttemptLog,
        questions: QuestionLookup | None = None,
    ):
        self.store = store
        self.attempts = attempts
        self.questions = questions

    def create(
        self,
        user_id: str,
        mode: SessionMode | str,
        question_ids: Sequence[str],
    ) -> PracticeSession:
        """Start a new session over a fixed question list.

        Raises:
            InvalidInput: no questions, or an unknown mode
        """
        if not question_ids:
            raise InvalidInput("No questions provided")
        try:
            mode = SessionMode(mode)
        except ValueError as e:
            raise InvalidInput(f"Unknown session mode: {mode}") from e

        session = self.store.create(
            PracticeSession(
                user_id=user_id,
                mode=mode,
                questions=list(question_ids),
                started_at=utcnow(),
            )
        )
        logger.info(
            "Started %s session %s for %s with %d question(s)",
            session.mode,
            session.id,
            user_id,
            len(session.questions),
        )
        return session

    def recommend(
        self, user_id: str, count: int = DEFAULT_COUNT, now: datetime | None = None
    ) -> list[RecommendedQuestion]:
        """Rank the question bank for ``user_id`` by practice priority.

        Raises:
            InvalidInput: count below 1, or no question bank to pick from
            DependencyUnavailable: attempts or questions could not be read
        """
        if self.questions is None:
            raise InvalidInput("No question bank configured")
        return recommend_questions(
            self.attempts.query(user_id),
            self.questions.question_ids(),
            self._category_of,
            count=count,
            now=now,
        )

    def create_recommended(
        self, user_id: str, count: int = DEFAULT_COUNT, now: datetime | None = None
    ) -> PracticeSession:
        """Start a recommended-mode session over the top ``count`` picks."""
        picks = self.recommend(user_id, count, now)
        if not picks:
            raise InvalidInput("No questions available to recommend")
        return self.create(
            user_id, SessionMode.RECOMMENDED, [p.question_id for p in picks]
        )

    def get(self, session_id: str, user_id: str) -> PracticeSession:
        """Load a session owned by ``user_id``.

        Raises:
            NotFound: unknown id, or the session belongs to someone else
        """
        session = self.store.get(session_id, user_id)
        if session is None:
            raise NotFound(f"Session not found: {session_id}")
        return session

    def progress(self, session_id: str, user_id: str) -> SessionProgress:
        return session_progress(self.get(session_id, user_id))

    def current_question(self, session_id: str, user_id: str) -> str | None:
        """Question under the cursor, or None once every question was passed."""
        session = self.get(session_id, user_id)
        if session.current_question_index >= len(session.questions):
            return None
        return session.questions[session.current_question_index]

    def advance(
        self, session_id: str, user_id: str, to_index: int | None = None
    ) -> PracticeSession:
        """Move the cursor forward by one, or to ``to_index``.

        The cursor never moves backwards and stops at ``len(questions)``.

        Raises:
            NotFound: unknown session
            InvalidInput: terminal session, or a backwards/out-of-range index
        """
        session = self._require_in_progress(session_id, user_id)
        target = session.current_question_index + 1 if to_index is None else to_index

        if target < session.current_question_index:
            raise InvalidInput(
                f"Cannot move back from question {session.current_question_index} to {target}"
            )
        if target > len(session.questions):
            raise InvalidInput(
                f"Question index {target} is past the end of a "
                f"{len(session.questions)}-question session"
            )

        return self.store.update(
            session_id,
            user_id,
            expected_status=SessionStatus.IN_PROGRESS,
            current_question_index=target,
        )

    def complete(self, session_id: str, user_id: str) -> PracticeSession:
        """Score the session and close it.

        Results are computed before anything is written, so a failure while
        reading attempts leaves the session in_progress. Completing twice is
        rejected, keeping the first results authoritative; the final write
        only applies while the row is still in_progress, so an overlapping
        complete or abandon cannot overwrite it.

        Raises:
            NotFound: unknown session
            InvalidInput: the session is already completed or abandoned
            DependencyUnavailable: attempts could not be read or the update failed
        """
        session = self._require_in_progress(session_id, user_id)

        records = self.attempts.query(user_id, session.questions)
        results = compute_session_results(
            session_scoped_attempts(session, records), self._category_of
        )

        updated = self.store.update(
            session_id,
            user_id,
            expected_status=SessionStatus.IN_PROGRESS,
            status=SessionStatus.COMPLETED,
            completed_at=utcnow(),
            results=results,
        )
        logger.info(
            "Completed session %s: %d/%d correct (%.1f%%)",
            session_id,
            results.correct,
            results.attempted,
            results.accuracy,
        )
        return updated

    def abandon(self, session_id: str, user_id: str) -> PracticeSession:
        """Close the session without results."""
        self._require_in_progress(session_id, user_id)
        updated = self.store.update(
            session_id,
            user_id,
            expected_status=SessionStatus.IN_PROGRESS,
            status=SessionStatus.ABANDONED,
        )
        logger.info("Abandoned session %s", session_id)
        return updated

    def list_sessions(self, user_id: str) -> list[PracticeSession]:
        """A user's sessions, most recent first."""
        sessions = self.store.list_for_user(user_id)
        return sorted(sessions, key=lambda s: as_utc(s.started_at), reverse=True)

    def _require_in_progress(self, session_id: str, user_id: str) -> PracticeSession:
        session = self.get(session_id, user_id)
        if session.status.is_terminal:
            raise InvalidInput(f"Session {session_id} is already {session.status}")
        return session

    def _category_of(self, question_id: str) -> str | None:
        if self.questions is None:
            return None
        return self.questions.category(question_id)
