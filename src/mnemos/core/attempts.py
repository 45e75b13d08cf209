"""Attempt log: grading and recording answers, reading them back."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from mnemos.core.errors import InvalidInput, NotFound
from mnemos.core.models import Answer, AttemptRecord, Outcome, utcnow
from mnemos.core.stores import AttemptStore, QuestionLookup

logger = logging.getLogger(__name__)


def check_answer(correct_answer: Answer, selected_answer: Answer) -> bool:
    """Grade a selection against the key.

    Multi-select answers match when both sides hold the same options; a
    single value never matches a list or vice versa.
    """
    if isinstance(correct_answer, list) and isinstance(selected_answer, list):
        if len(selected_answer) != len(correct_answer):
            return False
        return set(selected_answer) == set(correct_answer)
    if isinstance(correct_answer, str) and isinstance(selected_answer, str):
        return selected_answer == correct_answer
    return False


class AttemptLog:
    """Typed facade over an :class:`AttemptStore`."""

    def __init__(self, store: AttemptStore, questions: QuestionLookup | None = None):
        self.store = store
        self.questions = questions

    def record(self, record: AttemptRecord) -> AttemptRecord:
        """Append an already-graded attempt."""
        saved = self.store.append(record)
        logger.info(
            "Recorded attempt %s for %s/%s (correct=%s)",
            saved.attempt_number,
            saved.user_id,
            saved.question_id,
            saved.is_correct,
        )
        return saved

    def submit(
        self,
        user_id: str,
        question_id: str,
        selected_answer: Answer,
        time_spent_seconds: int = 0,
        is_correct: bool | None = None,
    ) -> AttemptRecord:
        """Grade (unless ``is_correct`` is given) and record one answer.

        Raises:
            InvalidInput: blank question id, empty answer or negative time
            NotFound: grading was needed but the question has no answer key
        """
        if not question_id or not question_id.strip():
            raise InvalidInput("Question ID is required")
        if not selected_answer:
            raise InvalidInput("An answer is required")
        if time_spent_seconds < 0:
            raise InvalidInput("Time spent cannot be negative")

        if is_correct is None:
            key = self.questions.correct_answer(question_id) if self.questions else None
            if key is None:
                raise NotFound(f"Question not found: {question_id}")
            is_correct = check_answer(key, selected_answer)

        return self.record(
            AttemptRecord(
                user_id=user_id,
                question_id=question_id,
                attempted_at=utcnow(),
                selected_answer=selected_answer,
                is_correct=is_correct,
                time_spent_seconds=time_spent_seconds,
            )
        )

    def query(
        self, user_id: str, question_ids: Iterable[str] | None = None
    ) -> list[AttemptRecord]:
        """All attempts of a user, oldest first."""
        return self.store.query(user_id, question_ids)

    def history(
        self,
        user_id: str,
        outcome: Outcome = Outcome.ALL,
        limit: int = 50,
    ) -> tuple[list[AttemptRecord], int]:
        """Most recent attempts first, and the total count after filtering."""
        records = self.store.query(user_id)
        if outcome == Outcome.CORRECT:
            records = [r for r in records if r.is_correct]
        elif outcome == Outcome.INCORRECT:
            records = [r for r in records if not r.is_correct]

        records.sort(key=lambda r: (r.attempted_at, r.attempt_number or 0), reverse=True)
        return records[: max(limit, 0)], len(records)
