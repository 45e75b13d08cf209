"""SQLite adapters for the engine's persistence contracts."""

import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from mnemos.core.errors import DependencyUnavailable, InvalidInput, NotFound
from mnemos.core.models import (
    Answer,
    AttemptRecord,
    PracticeSession,
    ReviewSchedule,
    SessionResults,
    SessionStatus,
    WellnessSession,
    as_utc,
)

logger = logging.getLogger(__name__)


def _ts(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    return as_utc(datetime.fromisoformat(value)) if value else None


class SQLiteStore:
    """Base for tables living in one SQLite file.

    Every ``sqlite3.Error`` is rolled back and re-raised as
    :class:`DependencyUnavailable`.
    """

    SCHEMA = ""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DependencyUnavailable(f"Cannot create {db_path.parent}: {e}") from e
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._connection() as conn:
            conn.executescript(self.SCHEMA)

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=10.0)
        except sqlite3.Error as e:
            raise DependencyUnavailable(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise DependencyUnavailable(f"Database error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


class AttemptDatabase(SQLiteStore):
    """Append-only attempt log."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS attempts (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            question_id TEXT NOT NULL,
            attempted_at TEXT NOT NULL,
            selected_answer TEXT NOT NULL,
            is_correct INTEGER NOT NULL,
            time_spent_seconds INTEGER NOT NULL DEFAULT 0,
            attempt_number INTEGER NOT NULL,
            UNIQUE (user_id, question_id, attempt_number)
        );

        CREATE INDEX IF NOT EXISTS idx_attempts_user ON attempts(user_id, question_id);
    """

    def append(self, record: AttemptRecord) -> AttemptRecord:
        """Insert a record, numbering it after the pair's existing attempts.

        The count and the insert share one IMMEDIATE transaction, so two
        writers on the same pair serialize on the database write lock.
        """
        with self._connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            prior = conn.execute(
                "SELECT COUNT(*) FROM attempts WHERE user_id = ? AND question_id = ?",
                (record.user_id, record.question_id),
            ).fetchone()[0]
            saved = record.model_copy(
                update={
                    "id": record.id or f"attempt-{uuid4().hex}",
                    "attempt_number": prior + 1,
                }
            )
            conn.execute(
                """
                INSERT INTO attempts (
                    id, user_id, question_id, attempted_at, selected_answer,
                    is_correct, time_spent_seconds, attempt_number
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    saved.id,
                    saved.user_id,
                    saved.question_id,
                    _ts(saved.attempted_at),
                    json.dumps(saved.selected_answer),
                    int(saved.is_correct),
                    saved.time_spent_seconds,
                    saved.attempt_number,
                ),
            )
        return saved

    def query(
        self, user_id: str, question_ids: Iterable[str] | None = None
    ) -> list[AttemptRecord]:
        """A user's attempts, oldest first."""
        sql = "SELECT * FROM attempts WHERE user_id = ?"
        params: list[Any] = [user_id]
        if question_ids is not None:
            ids = list(dict.fromkeys(question_ids))
            if not ids:
                return []
            sql += f" AND question_id IN ({', '.join('?' for _ in ids)})"
            params.extend(ids)

        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()

        records = [self._row_to_record(row) for row in rows]
        records.sort(key=lambda r: (r.attempted_at, r.attempt_number or 0))
        return records

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> AttemptRecord:
        return AttemptRecord(
            id=row["id"],
            user_id=row["user_id"],
            question_id=row["question_id"],
            attempted_at=_parse_ts(row["attempted_at"]),
            selected_answer=json.loads(row["selected_answer"]),
            is_correct=bool(row["is_correct"]),
            time_spent_seconds=row["time_spent_seconds"],
            attempt_number=row["attempt_number"],
        )


class ScheduleDatabase(SQLiteStore):
    """SM-2 schedules keyed by (user, question) plus an append-only review log."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS review_schedules (
            user_id TEXT NOT NULL,
            question_id TEXT NOT NULL,
            easiness_factor REAL NOT NULL DEFAULT 2.5,
            interval_days INTEGER NOT NULL DEFAULT 0,
            repetitions INTEGER NOT NULL DEFAULT 0,
            next_review_date TEXT NOT NULL,
            last_review_date TEXT NOT NULL,
            last_quality INTEGER NOT NULL,
            updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (user_id, question_id)
        );

        -- Review log (append-only, feeds activity streaks)
        CREATE TABLE IF NOT EXISTS review_logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            question_id TEXT NOT NULL,
            reviewed_on TEXT NOT NULL,
            quality INTEGER NOT NULL,
            easiness_factor REAL NOT NULL,
            interval_days INTEGER NOT NULL,
            logged_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE INDEX IF NOT EXISTS idx_review_schedules_due
            ON review_schedules(user_id, next_review_date);
        CREATE INDEX IF NOT EXISTS idx_review_logs_user ON review_logs(user_id, reviewed_on);
    """

    def get(self, user_id: str, question_id: str) -> ReviewSchedule | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM review_schedules WHERE user_id = ? AND question_id = ?",
                (user_id, question_id),
            ).fetchone()
            return self._row_to_schedule(row) if row else None

    def upsert(self, user_id: str, question_id: str, schedule: ReviewSchedule) -> None:
        """Insert or overwrite the pair's schedule (last write wins)."""
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO review_schedules (
                    user_id, question_id, easiness_factor, interval_days, repetitions,
                    next_review_date, last_review_date, last_quality, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(user_id, question_id) DO UPDATE SET
                    easiness_factor = excluded.easiness_factor,
                    interval_days = excluded.interval_days,
                    repetitions = excluded.repetitions,
                    next_review_date = excluded.next_review_date,
                    last_review_date = excluded.last_review_date,
                    last_quality = excluded.last_quality,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    user_id,
                    question_id,
                    schedule.easiness_factor,
                    schedule.interval,
                    schedule.repetitions,
                    schedule.next_review_date.isoformat(),
                    schedule.last_review_date.isoformat(),
                    schedule.last_quality,
                ),
            )

    def list_due(self, user_id: str, as_of: date) -> list[ReviewSchedule]:
        """Schedules due on or before ``as_of``, earliest first."""
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM review_schedules
                WHERE user_id = ? AND next_review_date <= ?
                ORDER BY next_review_date ASC, question_id ASC
                """,
                (user_id, as_of.isoformat()),
            ).fetchall()
            return [self._row_to_schedule(row) for row in rows]

    def log_review(self, schedule: ReviewSchedule) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO review_logs (
                    user_id, question_id, reviewed_on, quality, easiness_factor, interval_days
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    schedule.user_id,
                    schedule.question_id,
                    schedule.last_review_date.isoformat(),
                    schedule.last_quality,
                    schedule.easiness_factor,
                    schedule.interval,
                ),
            )

    def review_dates(self, user_id: str) -> list[date]:
        """Distinct days with at least one review."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT DISTINCT reviewed_on FROM review_logs WHERE user_id = ? ORDER BY reviewed_on",
                (user_id,),
            ).fetchall()
            return [date.fromisoformat(row["reviewed_on"]) for row in rows]

    def review_count(self, user_id: str) -> int:
        with self._connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM review_logs WHERE user_id = ?", (user_id,)
            ).fetchone()[0]

    @staticmethod
    def _row_to_schedule(row: sqlite3.Row) -> ReviewSchedule:
        return ReviewSchedule(
            user_id=row["user_id"],
            question_id=row["question_id"],
            easiness_factor=row["easiness_factor"],
            interval=row["interval_days"],
            repetitions=row["repetitions"],
            next_review_date=date.fromisoformat(row["next_review_date"]),
            last_review_date=date.fromisoformat(row["last_review_date"]),
            last_quality=row["last_quality"],
        )


class SessionDatabase(SQLiteStore):
    """Practice session rows."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS practice_sessions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            mode TEXT NOT NULL,
            questions TEXT NOT NULL,
            started_at TEXT NOT NULL,
            completed_at TEXT,
            status TEXT NOT NULL DEFAULT 'in_progress',
            current_question_index INTEGER NOT NULL DEFAULT 0,
            results TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_practice_sessions_user ON practice_sessions(user_id);
    """

    # Fields fixed at creation
    _IMMUTABLE = {"id", "user_id", "mode", "questions", "started_at"}

    def create(self, session: PracticeSession) -> PracticeSession:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO practice_sessions (
                    id, user_id, mode, questions, started_at, completed_at,
                    status, current_question_index, results
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                self._session_params(session),
            )
        return session

    def get(self, session_id: str, user_id: str) -> PracticeSession | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM practice_sessions WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            ).fetchone()
            return self._row_to_session(row) if row else None

    def update(
        self,
        session_id: str,
        user_id: str,
        expected_status: SessionStatus | None = None,
        **fields: Any,
    ) -> PracticeSession:
        """Overwrite mutable fields of a session and return the stored row.

        With ``expected_status`` the write only applies while the stored row
        still has that status, checked in the UPDATE itself.

        Raises:
            InvalidInput: an immutable field, or the status changed meanwhile
            NotFound: unknown session
        """
        frozen = self._IMMUTABLE & fields.keys()
        if frozen:
            raise InvalidInput(f"Cannot change {', '.join(sorted(frozen))} of a session")

        current = self.get(session_id, user_id)
        if current is None:
            raise NotFound(f"Session not found: {session_id}")
        updated = PracticeSession.model_validate({**current.model_dump(), **fields})

        query = """
            UPDATE practice_sessions
            SET completed_at = ?, status = ?, current_question_index = ?, results = ?
            WHERE id = ? AND user_id = ?
        """
        params = [
            _ts(updated.completed_at),
            updated.status.value,
            updated.current_question_index,
            updated.results.model_dump_json() if updated.results else None,
            session_id,
            user_id,
        ]
        if expected_status is not None:
            query += " AND status = ?"
            params.append(SessionStatus(expected_status).value)

        with self._connection() as conn:
            cursor = conn.execute(query, params)
            changed = cursor.rowcount

        if changed == 0:
            if expected_status is not None:
                raise InvalidInput(f"Session {session_id} is no longer {expected_status}")
            raise NotFound(f"Session not found: {session_id}")
        return updated

    def list_for_user(self, user_id: str) -> list[PracticeSession]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM practice_sessions WHERE user_id = ?", (user_id,)
            ).fetchall()
            return [self._row_to_session(row) for row in rows]

    @staticmethod
    def _session_params(session: PracticeSession) -> tuple:
        return (
            session.id,
            session.user_id,
            session.mode.value,
            json.dumps(session.questions),
            _ts(session.started_at),
            _ts(session.completed_at),
            session.status.value,
            session.current_question_index,
            session.results.model_dump_json() if session.results else None,
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> PracticeSession:
        results = row["results"]
        return PracticeSession(
            id=row["id"],
            user_id=row["user_id"],
            mode=row["mode"],
            questions=json.loads(row["questions"]),
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
            status=row["status"],
            current_question_index=row["current_question_index"],
            results=SessionResults.model_validate_json(results) if results else None,
        )


class QuestionCatalog(SQLiteStore):
    """Question metadata: category and answer key."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS questions (
            question_id TEXT PRIMARY KEY,
            category TEXT,
            correct_answer TEXT
        );
    """

    def question_ids(self) -> list[str]:
        """Every question id in the bank, sorted."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT question_id FROM questions ORDER BY question_id"
            ).fetchall()
            return [row["question_id"] for row in rows]

    def category(self, question_id: str) -> str | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT category FROM questions WHERE question_id = ?", (question_id,)
            ).fetchone()
            return row["category"] if row else None

    def correct_answer(self, question_id: str) -> Answer | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT correct_answer FROM questions WHERE question_id = ?", (question_id,)
            ).fetchone()
            if row is None or row["correct_answer"] is None:
                return None
            return json.loads(row["correct_answer"])

    def set_category(self, question_id: str, category: str | None) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO questions (question_id, category) VALUES (?, ?)
                ON CONFLICT(question_id) DO UPDATE SET category = excluded.category
                """,
                (question_id, category),
            )

    def set_correct_answer(self, question_id: str, answer: Answer) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO questions (question_id, correct_answer) VALUES (?, ?)
                ON CONFLICT(question_id) DO UPDATE SET correct_answer = excluded.correct_answer
                """,
                (question_id, json.dumps(answer)),
            )


class WellnessDatabase(SQLiteStore):
    """Wellness exercise rows."""

    SCHEMA = """
        CREATE TABLE IF NOT EXISTS wellness_sessions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            type TEXT NOT NULL,
            exercise_name TEXT NOT NULL,
            technique TEXT,
            duration_seconds INTEGER NOT NULL DEFAULT 0,
            completed INTEGER NOT NULL DEFAULT 0,
            started_at TEXT NOT NULL,
            completed_at TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_wellness_sessions_user ON wellness_sessions(user_id);
    """

    def create(self, session: WellnessSession) -> WellnessSession:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT INTO wellness_sessions (
                    id, user_id, type, exercise_name, technique, duration_seconds,
                    completed, started_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    session.id,
                    session.user_id,
                    session.type.value,
                    session.exercise_name,
                    session.technique,
                    session.duration_seconds,
                    int(session.completed),
                    _ts(session.started_at),
                    _ts(session.completed_at),
                ),
            )
        return session

    def get(self, session_id: str, user_id: str) -> WellnessSession | None:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM wellness_sessions WHERE id = ? AND user_id = ?",
                (session_id, user_id),
            ).fetchone()
            return self._row_to_session(row) if row else None

    def update(self, session_id: str, user_id: str, **fields: Any) -> WellnessSession:
        current = self.get(session_id, user_id)
        if current is None:
            raise NotFound(f"Wellness session not found: {session_id}")
        updated = WellnessSession.model_validate({**current.model_dump(), **fields})

        with self._connection() as conn:
            conn.execute(
                """
                UPDATE wellness_sessions
                SET completed = ?, completed_at = ?, duration_seconds = ?
                WHERE id = ? AND user_id = ?
                """,
                (
                    int(updated.completed),
                    _ts(updated.completed_at),
                    updated.duration_seconds,
                    session_id,
                    user_id,
                ),
            )
        return updated

    def completed(self, user_id: str) -> list[WellnessSession]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM wellness_sessions
                WHERE user_id = ? AND completed = 1
                ORDER BY completed_at ASC
                """,
                (user_id,),
            ).fetchall()
            return [self._row_to_session(row) for row in rows]

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> WellnessSession:
        return WellnessSession(
            id=row["id"],
            user_id=row["user_id"],
            type=row["type"],
            exercise_name=row["exercise_name"],
            technique=row["technique"],
            duration_seconds=row["duration_seconds"],
            completed=bool(row["completed"]),
            started_at=_parse_ts(row["started_at"]),
            completed_at=_parse_ts(row["completed_at"]),
        )


class MnemosStorage:
    """Combined storage manager: every store backed by one database file."""

    def __init__(self, state_dir: Path | None = None):
        if state_dir is None:
            state_dir = Path.cwd() / ".mnemos"

        self.state_dir = state_dir
        db_path = state_dir / "mnemos.db"

        self.attempts = AttemptDatabase(db_path)
        self.schedules = ScheduleDatabase(db_path)
        self.sessions = SessionDatabase(db_path)
        self.questions = QuestionCatalog(db_path)
        self.wellness = WellnessDatabase(db_path)
        logger.debug("Opened storage at %s", db_path)
