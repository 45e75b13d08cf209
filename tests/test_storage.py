"""Tests for the SQLite storage layer."""

import sqlite3
import tempfile
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest
from mnemos.core.errors import DependencyUnavailable, InvalidInput, NotFound
from mnemos.core.models import (
    AttemptRecord,
    PracticeSession,
    ReviewSchedule,
    SessionMode,
    SessionResults,
    SessionStatus,
    WellnessSession,
    WellnessType,
)
from mnemos.core.storage import MnemosStorage

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage(temp_dir):
    """Create a MnemosStorage instance for tests."""
    return MnemosStorage(temp_dir / ".mnemos")


def _attempt(question_id="q1", user_id="u1", at=BASE, **overrides):
    return AttemptRecord(
        user_id=user_id,
        question_id=question_id,
        attempted_at=at,
        selected_answer=overrides.pop("selected_answer", "B"),
        is_correct=overrides.pop("is_correct", True),
        **overrides,
    )


def _schedule(**overrides):
    defaults = dict(
        user_id="u1",
        question_id="q1",
        easiness_factor=2.5,
        interval=1,
        repetitions=1,
        next_review_date=date(2024, 5, 2),
        last_review_date=date(2024, 5, 1),
        last_quality=4,
    )
    defaults.update(overrides)
    return ReviewSchedule(**defaults)


class TestMnemosStorage:
    """Tests for the combined storage manager."""

    def test_creates_database_file(self, temp_dir):
        state_dir = temp_dir / "nested" / ".mnemos"
        MnemosStorage(state_dir)
        assert (state_dir / "mnemos.db").exists()

    def test_reopen_keeps_data(self, temp_dir):
        MnemosStorage(temp_dir / ".mnemos").attempts.append(_attempt())
        reopened = MnemosStorage(temp_dir / ".mnemos")
        assert len(reopened.attempts.query("u1")) == 1

    def test_unopenable_state_dir(self, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(DependencyUnavailable):
            MnemosStorage(blocker / ".mnemos")


class TestAttemptDatabase:
    """Tests for the append-only attempt log."""

    def test_append_assigns_id_and_number(self, storage):
        saved = storage.attempts.append(_attempt())
        assert saved.id is not None
        assert saved.attempt_number == 1

    def test_numbers_are_per_pair(self, storage):
        numbers = [storage.attempts.append(_attempt("q1")).attempt_number for _ in range(3)]
        assert numbers == [1, 2, 3]
        assert storage.attempts.append(_attempt("q2")).attempt_number == 1
        assert storage.attempts.append(_attempt("q1", user_id="u2")).attempt_number == 1

    def test_caller_supplied_number_is_ignored(self, storage):
        storage.attempts.append(_attempt())
        saved = storage.attempts.append(_attempt(attempt_number=7))
        assert saved.attempt_number == 2

    def test_concurrent_appends_stay_gapless(self, storage):
        with ThreadPoolExecutor(max_workers=8) as pool:
            saved = list(pool.map(lambda _: storage.attempts.append(_attempt()), range(20)))

        assert sorted(r.attempt_number for r in saved) == list(range(1, 21))

    def test_query_oldest_first(self, storage):
        storage.attempts.append(_attempt("q2", at=BASE + timedelta(hours=2)))
        storage.attempts.append(_attempt("q1", at=BASE))
        storage.attempts.append(_attempt("q3", at=BASE + timedelta(hours=1)))

        records = storage.attempts.query("u1")
        assert [r.question_id for r in records] == ["q1", "q3", "q2"]

    def test_query_by_question(self, storage):
        storage.attempts.append(_attempt("q1"))
        storage.attempts.append(_attempt("q2"))
        storage.attempts.append(_attempt("q3"))

        records = storage.attempts.query("u1", ["q1", "q3"])
        assert {r.question_id for r in records} == {"q1", "q3"}
        assert storage.attempts.query("u1", []) == []

    def test_multi_select_answer_preserved(self, storage):
        storage.attempts.append(_attempt(selected_answer=["A", "C"]))
        [record] = storage.attempts.query("u1")
        assert record.selected_answer == ["A", "C"]
        assert record.attempted_at == BASE

    def test_read_failure_raises_dependency_unavailable(self, storage):
        with sqlite3.connect(storage.attempts.db_path) as conn:
            conn.execute("DROP TABLE attempts")

        with pytest.raises(DependencyUnavailable):
            storage.attempts.query("u1")

    def test_write_failure_raises_dependency_unavailable(self, storage):
        with sqlite3.connect(storage.attempts.db_path) as conn:
            conn.execute("DROP TABLE attempts")

        with pytest.raises(DependencyUnavailable):
            storage.attempts.append(_attempt())


class TestScheduleDatabase:
    """Tests for schedule persistence."""

    def test_get_missing(self, storage):
        assert storage.schedules.get("u1", "q1") is None

    def test_upsert_and_get(self, storage):
        storage.schedules.upsert("u1", "q1", _schedule())
        stored = storage.schedules.get("u1", "q1")
        assert stored == _schedule()

    def test_last_write_wins(self, storage):
        storage.schedules.upsert("u1", "q1", _schedule(interval=1))
        storage.schedules.upsert("u1", "q1", _schedule(interval=6, repetitions=2))

        stored = storage.schedules.get("u1", "q1")
        assert stored.interval == 6
        assert stored.repetitions == 2

    def test_list_due(self, storage):
        storage.schedules.upsert("u1", "q1", _schedule(question_id="q1"))
        storage.schedules.upsert(
            "u1", "q2", _schedule(question_id="q2", next_review_date=date(2024, 4, 30))
        )
        storage.schedules.upsert(
            "u1", "q3", _schedule(question_id="q3", next_review_date=date(2024, 6, 1))
        )

        due = storage.schedules.list_due("u1", date(2024, 5, 2))
        assert [s.question_id for s in due] == ["q2", "q1"]

    def test_review_log(self, storage):
        storage.schedules.log_review(_schedule(last_review_date=date(2024, 5, 1)))
        storage.schedules.log_review(_schedule(last_review_date=date(2024, 5, 1)))
        storage.schedules.log_review(_schedule(last_review_date=date(2024, 5, 3)))

        assert storage.schedules.review_count("u1") == 3
        assert storage.schedules.review_dates("u1") == [date(2024, 5, 1), date(2024, 5, 3)]


class TestSessionDatabase:
    """Tests for practice session persistence."""

    def test_create_and_get(self, storage):
        session = PracticeSession(user_id="u1", mode=SessionMode.TIMED, questions=["q1", "q2"])
        storage.sessions.create(session)

        loaded = storage.sessions.get(session.id, "u1")
        assert loaded.questions == ["q1", "q2"]
        assert loaded.mode == SessionMode.TIMED
        assert loaded.status == SessionStatus.IN_PROGRESS
        assert loaded.results is None

    def test_get_scoped_to_owner(self, storage):
        session = storage.sessions.create(PracticeSession(user_id="u1", questions=["q1"]))
        assert storage.sessions.get(session.id, "u2") is None

    def test_update_results(self, storage):
        session = storage.sessions.create(PracticeSession(user_id="u1", questions=["q1"]))
        results = SessionResults(
            attempted=1,
            correct=1,
            incorrect=0,
            accuracy=100.0,
            total_time_seconds=30,
            average_time_seconds=30,
        )
        storage.sessions.update(
            session.id, "u1", status=SessionStatus.COMPLETED, completed_at=BASE, results=results
        )

        loaded = storage.sessions.get(session.id, "u1")
        assert loaded.status == SessionStatus.COMPLETED
        assert loaded.completed_at == BASE
        assert loaded.results == results

    def test_immutable_fields_rejected(self, storage):
        session = storage.sessions.create(PracticeSession(user_id="u1", questions=["q1"]))
        with pytest.raises(InvalidInput):
            storage.sessions.update(session.id, "u1", questions=["q9"])

    def test_update_missing(self, storage):
        with pytest.raises(NotFound):
            storage.sessions.update("nope", "u1", current_question_index=1)

    def test_update_with_expected_status(self, storage):
        session = storage.sessions.create(PracticeSession(user_id="u1", questions=["q1", "q2"]))
        updated = storage.sessions.update(
            session.id, "u1", expected_status=SessionStatus.IN_PROGRESS, current_question_index=1
        )
        assert updated.current_question_index == 1

    def test_update_rejected_when_status_changed(self, storage):
        session = storage.sessions.create(PracticeSession(user_id="u1", questions=["q1"]))
        storage.sessions.update(session.id, "u1", status=SessionStatus.ABANDONED)

        with pytest.raises(InvalidInput):
            storage.sessions.update(
                session.id,
                "u1",
                expected_status=SessionStatus.IN_PROGRESS,
                status=SessionStatus.COMPLETED,
                completed_at=BASE,
            )

        loaded = storage.sessions.get(session.id, "u1")
        assert loaded.status == SessionStatus.ABANDONED
        assert loaded.completed_at is None


class TestQuestionCatalog:
    """Tests for question metadata."""

    def test_unknown_question(self, storage):
        assert storage.questions.category("q1") is None
        assert storage.questions.correct_answer("q1") is None

    def test_fields_set_independently(self, storage):
        storage.questions.set_category("q1", "Security")
        storage.questions.set_correct_answer("q1", ["A", "D"])
        storage.questions.set_category("q1", "Networking")

        assert storage.questions.category("q1") == "Networking"
        assert storage.questions.correct_answer("q1") == ["A", "D"]

    def test_question_ids_sorted(self, storage):
        assert storage.questions.question_ids() == []
        storage.questions.set_category("q2", "Security")
        storage.questions.set_correct_answer("q1", "A")
        assert storage.questions.question_ids() == ["q1", "q2"]


class TestWellnessDatabase:
    """Tests for wellness session persistence."""

    def test_completed_only(self, storage):
        done = storage.wellness.create(
            WellnessSession(user_id="u1", type=WellnessType.BREATHING, exercise_name="Box")
        )
        storage.wellness.create(
            WellnessSession(user_id="u1", type=WellnessType.MEDITATION, exercise_name="Scan")
        )
        storage.wellness.update(done.id, "u1", completed=True, completed_at=BASE)

        [completed] = storage.wellness.completed("u1")
        assert completed.id == done.id
        assert completed.completed_at == BASE
