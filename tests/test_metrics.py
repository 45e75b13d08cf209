"""Tests for progress statistics, trends and performance metrics."""

import tempfile
from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from mnemos.core.attempts import AttemptLog
from mnemos.core.errors import DependencyUnavailable, InvalidInput
from mnemos.core.metrics import (
    ProgressAnalyzer,
    accuracy_of,
    compute_performance,
    compute_stats,
    compute_trend,
    latest_attempts,
    mastery_level,
    pass_probability,
    questions_to_next_level,
    readiness_level,
    round_half_up,
)
from mnemos.core.models import (
    AttemptRecord,
    DomainMastery,
    MasteryLevel,
    PerformanceMetrics,
    ProgressStats,
    ReadinessLevel,
)
from mnemos.core.storage import MnemosStorage

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _attempt(question_id, is_correct, at=BASE, number=1, seconds=0, user_id="u1"):
    return AttemptRecord(
        user_id=user_id,
        question_id=question_id,
        attempted_at=at,
        selected_answer="A",
        is_correct=is_correct,
        time_spent_seconds=seconds,
        attempt_number=number,
    )


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage(temp_dir):
    return MnemosStorage(temp_dir / ".mnemos")


@pytest.fixture
def analyzer(storage):
    return ProgressAnalyzer(AttemptLog(storage.attempts, storage.questions), storage.questions)


class TestRounding:
    def test_round_half_up(self):
        assert round_half_up(0.5) == 1
        assert round_half_up(2.5) == 3
        assert round_half_up(12.25, 1) == 12.3

    def test_accuracy_of(self):
        assert accuracy_of(2, 3) == 66.7
        assert accuracy_of(1, 3) == 33.3
        assert accuracy_of(1, 8) == 12.5
        assert accuracy_of(1, 6) == 16.7
        assert accuracy_of(0, 0) == 0.0


class TestLatestAttempts:
    def test_keeps_most_recent_per_question(self):
        records = [
            _attempt("q1", False, BASE, 1),
            _attempt("q1", True, BASE + timedelta(hours=1), 2),
            _attempt("q2", False, BASE, 1),
        ]
        latest = latest_attempts(records)
        assert {r.question_id: r.is_correct for r in latest} == {"q1": True, "q2": False}

    def test_equal_timestamps_prefer_higher_attempt_number(self):
        records = [_attempt("q1", False, BASE, 2), _attempt("q1", True, BASE, 1)]
        [latest] = latest_attempts(records)
        assert latest.attempt_number == 2
        assert not latest.is_correct


class TestComputeStats:
    def test_empty(self):
        stats = compute_stats([])
        assert stats == ProgressStats()

    def test_retry_counts_once(self):
        """Wrong then right on one question is one attempted, one correct."""
        records = [
            _attempt("q1", False, BASE, 1, seconds=10),
            _attempt("q1", True, BASE + timedelta(minutes=5), 2, seconds=20),
        ]
        stats = compute_stats(records)
        assert stats.total_attempted == 1
        assert stats.total_correct == 1
        assert stats.total_incorrect == 0
        assert stats.accuracy == 100.0
        # Time covers every attempt
        assert stats.total_time_spent == 30
        assert stats.average_time_per_question == 15

    def test_average_time_rounds_half_up(self):
        records = [_attempt("q1", True, seconds=2), _attempt("q2", True, seconds=3)]
        assert compute_stats(records).average_time_per_question == 3

    def test_accuracy_one_decimal(self):
        records = [_attempt("q1", True), _attempt("q2", True), _attempt("q3", False)]
        stats = compute_stats(records)
        assert stats.accuracy == 66.7
        assert stats.total_incorrect == 1

    def test_category_breakdown(self):
        categories = {"q1": "Networking", "q2": "Networking", "q3": "Security"}
        records = [
            _attempt("q1", True),
            _attempt("q2", False),
            _attempt("q3", True),
            _attempt("q4", False),
        ]
        stats = compute_stats(records, categories.get)
        by_name = {c.category: c for c in stats.category_stats}

        assert [c.category for c in stats.category_stats] == [
            "Networking",
            "Security",
            "Uncategorized",
        ]
        assert by_name["Networking"].attempted == 2
        assert by_name["Networking"].accuracy == 50.0
        assert by_name["Security"].accuracy == 100.0
        assert by_name["Uncategorized"].correct == 0

    def test_category_counts_add_up(self):
        records = [_attempt(f"q{i}", i % 2 == 0) for i in range(7)]
        stats = compute_stats(records, lambda qid: "Even" if int(qid[1:]) % 2 == 0 else None)
        assert sum(c.attempted for c in stats.category_stats) == stats.total_attempted
        assert sum(c.correct for c in stats.category_stats) == stats.total_correct


class TestComputeTrend:
    def test_single_day(self):
        records = [_attempt("q1", True), _attempt("q2", True), _attempt("q3", False)]
        [point] = compute_trend(records)
        assert point.date == date(2024, 5, 1)
        assert point.accuracy == 66.7
        assert point.attempted == 3

    def test_empty(self):
        assert compute_trend([]) == []

    def test_window_includes_earlier_days(self):
        day3 = BASE + timedelta(days=2)
        records = [
            _attempt("q1", True, BASE),
            _attempt("q2", True, BASE),
            _attempt("q3", False, day3),
            _attempt("q4", False, day3),
        ]
        points = compute_trend(records, window_days=7)
        assert [p.date for p in points] == [date(2024, 5, 1), date(2024, 5, 3)]
        assert points[0].accuracy == 100.0
        assert points[1].accuracy == 50.0
        # attempted is the day's own count, not the window's
        assert points[1].attempted == 2

    def test_window_of_one_day(self):
        day3 = BASE + timedelta(days=2)
        records = [_attempt("q1", True, BASE), _attempt("q2", False, day3)]
        points = compute_trend(records, window_days=1)
        assert [p.accuracy for p in points] == [100.0, 0.0]

    def test_days_outside_window_drop_out(self):
        later = BASE + timedelta(days=9)
        records = [_attempt("q1", True, BASE), _attempt("q2", False, later)]
        points = compute_trend(records, window_days=7)
        assert points[-1].date == date(2024, 5, 10)
        assert points[-1].accuracy == 0.0

    def test_horizon_keeps_last_points(self):
        records = [
            _attempt(f"q{i}", True, BASE + timedelta(days=i)) for i in range(5)
        ]
        points = compute_trend(records, horizon_days=2)
        assert [p.date for p in points] == [date(2024, 5, 4), date(2024, 5, 5)]

    def test_superseded_attempts_leave_no_point(self):
        records = [
            _attempt("q1", False, BASE, 1),
            _attempt("q1", True, BASE + timedelta(days=1), 2),
        ]
        [point] = compute_trend(records)
        assert point.date == date(2024, 5, 2)
        assert point.accuracy == 100.0

    def test_points_ascending_and_bounded(self):
        records = [
            _attempt(f"q{i}", i % 3 != 0, BASE + timedelta(days=i % 4, hours=i))
            for i in range(20)
        ]
        points = compute_trend(records)
        dates = [p.date for p in points]
        assert dates == sorted(set(dates))
        assert all(0 <= p.accuracy <= 100 for p in points)

    @pytest.mark.parametrize("window,horizon", [(0, 30), (7, 0), (-1, 5)])
    def test_invalid_window_or_horizon(self, window, horizon):
        with pytest.raises(InvalidInput):
            compute_trend([_attempt("q1", True)], window_days=window, horizon_days=horizon)


class TestMastery:
    def test_levels(self):
        assert mastery_level(95.0, 9) == MasteryLevel.INSUFFICIENT_DATA
        assert mastery_level(95.0, 10) == MasteryLevel.MASTERY
        assert mastery_level(80.0, 10) == MasteryLevel.PROFICIENT
        assert mastery_level(60.0, 10) == MasteryLevel.DEVELOPING
        assert mastery_level(50.0, 20) == MasteryLevel.NOVICE

    def test_questions_to_next_level(self):
        assert questions_to_next_level(40.0, 4, 2) == 6
        # 6/10 -> 12/16 reaches 75%
        assert questions_to_next_level(60.0, 10, 6) == 6
        assert questions_to_next_level(95.0, 20, 19) == 0


class TestComputePerformance:
    def test_empty(self):
        metrics = compute_performance([], now=BASE)
        assert metrics.total_attempted == 0
        assert metrics.first_attempt_accuracy == 0.0
        assert metrics.strongest_domain is None
        assert metrics.pass_probability == 10
        assert metrics.readiness_level == ReadinessLevel.NOT_READY

    def test_first_attempt_accuracy(self):
        records = [
            _attempt("q1", False, BASE, 1),
            _attempt("q1", True, BASE + timedelta(minutes=1), 2),
            _attempt("q2", True, BASE, 1),
        ]
        metrics = compute_performance(records, now=BASE)
        assert metrics.first_attempt_accuracy == 50.0
        assert metrics.overall_accuracy == 100.0

    def test_seven_day_window(self):
        now = BASE + timedelta(days=10)
        records = [
            _attempt("q1", True, BASE),
            _attempt("q2", False, now - timedelta(days=1)),
            _attempt("q3", True, now - timedelta(days=2)),
        ]
        metrics = compute_performance(records, now=now)
        assert metrics.seven_day_attempted == 2
        assert metrics.seven_day_accuracy == 50.0

    def test_study_streaks(self):
        records = [
            _attempt("q1", True, BASE),
            _attempt("q2", True, BASE - timedelta(days=1)),
            _attempt("q3", True, BASE - timedelta(days=5)),
        ]
        metrics = compute_performance(records, now=BASE)
        assert metrics.current_streak == 2
        assert metrics.longest_streak == 2

    def test_improvement_rate(self):
        records = [
            _attempt(f"q{i:03d}", i >= 50, BASE + timedelta(minutes=i)) for i in range(100)
        ]
        metrics = compute_performance(records, now=BASE)
        assert metrics.improvement_rate == 100.0

    def test_improvement_needs_enough_history(self):
        records = [_attempt(f"q{i}", i >= 20, BASE + timedelta(minutes=i)) for i in range(40)]
        assert compute_performance(records, now=BASE).improvement_rate == 0.0

    def test_domain_mastery(self):
        categories = {}
        records = []
        for i in range(10):
            categories[f"a{i}"] = "Alpha"
            records.append(_attempt(f"a{i}", True))
        for i in range(10):
            categories[f"b{i}"] = "Beta"
            records.append(_attempt(f"b{i}", i < 5))
        records.append(_attempt("c0", True))
        categories["c0"] = "Gamma"

        metrics = compute_performance(records, categories.get, now=BASE)
        by_domain = {d.domain: d for d in metrics.domain_mastery}

        assert by_domain["Alpha"].mastery_level == MasteryLevel.MASTERY
        assert by_domain["Beta"].mastery_level == MasteryLevel.NOVICE
        assert by_domain["Gamma"].mastery_level == MasteryLevel.INSUFFICIENT_DATA
        assert by_domain["Gamma"].questions_to_next_level == 9
        assert metrics.strongest_domain == "Alpha"
        assert metrics.weakest_domain == "Beta"
        assert metrics.weak_area_count == 1
        # 40 accuracy + 15 domains (1 of 2 rated) + 0 volume + 5 weak areas
        assert metrics.pass_probability == 60
        assert metrics.readiness_level == ReadinessLevel.DEVELOPING


def _domain(name, level):
    return DomainMastery(
        domain=name,
        accuracy=0.0,
        attempted=0,
        correct=0,
        mastery_level=level,
        questions_to_next_level=0,
    )


class TestPassProbability:
    def test_maximum(self):
        domains = [_domain("A", MasteryLevel.PROFICIENT), _domain("B", MasteryLevel.MASTERY)]
        assert pass_probability(80.0, domains, 1000, 0) == 100

    def test_partial_scores(self):
        domains = [
            _domain("A", MasteryLevel.PROFICIENT),
            _domain("B", MasteryLevel.NOVICE),
            _domain("C", MasteryLevel.INSUFFICIENT_DATA),
        ]
        # 30 accuracy + 15 domains + 10 volume + 5 weak areas
        assert pass_probability(72.0, domains, 300, 1) == 60

    def test_domain_share_rounds_half_up(self):
        domains = [
            _domain("A", MasteryLevel.PROFICIENT),
            _domain("B", MasteryLevel.NOVICE),
            _domain("C", MasteryLevel.DEVELOPING),
            _domain("D", MasteryLevel.DEVELOPING),
        ]
        # 1/4 * 30 = 7.5
        assert pass_probability(0.0, domains, 0, 3) == 8

    def test_only_unrated_domains(self):
        domains = [_domain("A", MasteryLevel.INSUFFICIENT_DATA)]
        assert pass_probability(64.9, domains, 99, 3) == 0

    def test_boundaries(self):
        assert pass_probability(60.0, [], 100, 2) == 10 + 5 + 5
        assert pass_probability(65.0, [], 250, 0) == 20 + 10 + 10
        assert pass_probability(75.0, [], 500, 0) == 40 + 15 + 10

    @pytest.mark.parametrize(
        "probability, level",
        [
            (0, ReadinessLevel.NOT_READY),
            (49, ReadinessLevel.NOT_READY),
            (50, ReadinessLevel.DEVELOPING),
            (69, ReadinessLevel.DEVELOPING),
            (70, ReadinessLevel.ON_TRACK),
            (84, ReadinessLevel.ON_TRACK),
            (85, ReadinessLevel.READY),
            (100, ReadinessLevel.READY),
        ],
    )
    def test_readiness_level(self, probability, level):
        assert readiness_level(probability) == level


class TestProgressAnalyzer:
    def test_stats_from_storage(self, storage, analyzer):
        storage.questions.set_category("q1", "Networking")
        storage.attempts.append(_attempt("q1", False, BASE, seconds=10))
        storage.attempts.append(_attempt("q1", True, BASE + timedelta(minutes=1), seconds=20))

        stats = analyzer.stats("u1")
        assert stats.total_attempted == 1
        assert stats.accuracy == 100.0
        assert stats.average_time_per_question == 15
        assert stats.category_stats[0].category == "Networking"

    def test_other_users_are_invisible(self, storage, analyzer):
        storage.attempts.append(_attempt("q1", True, user_id="u2"))
        assert analyzer.stats("u1").total_attempted == 0

    def test_trend_from_storage(self, storage, analyzer):
        storage.attempts.append(_attempt("q1", True))
        storage.attempts.append(_attempt("q2", False))
        [point] = analyzer.trend("u1")
        assert point.accuracy == 50.0

    def test_degrades_when_store_unavailable(self):
        attempts = MagicMock()
        attempts.query.side_effect = DependencyUnavailable("disk gone")
        analyzer = ProgressAnalyzer(attempts)

        assert analyzer.stats("u1") == ProgressStats()
        assert analyzer.trend("u1") == []
        assert analyzer.performance("u1") == PerformanceMetrics()

    def test_degradation_is_logged(self, storage, analyzer, caplog):
        with patch.object(
            storage.attempts, "query", side_effect=DependencyUnavailable("locked")
        ):
            with caplog.at_level("WARNING", logger="mnemos.core.metrics"):
                stats = analyzer.stats("u1")

        assert stats.total_attempted == 0
        assert "locked" in caplog.text

    def test_invalid_trend_window_still_raises(self, analyzer):
        with pytest.raises(InvalidInput):
            analyzer.trend("u1", window_days=0)
