"""Tests for the per-family progress formulas."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from studyflow.catalog import Achievement, AchievementLevel, Category, get_level
from studyflow.progress import ProgressInputs, calculate_progress, compute_progress
from studyflow.sessions import AggregateStats, StudySession, StudyType
from tests.conftest import NOW, SessionFactory


def _progress(inputs: ProgressInputs, achievement_id: str, level: int = 1) -> int:
    return compute_progress(inputs, now=NOW, tz=UTC)[(achievement_id, level)]


def _at(make_session: SessionFactory, ts: datetime, **overrides: object) -> StudySession:
    return make_session(date=ts.date().isoformat(), timestamp=ts, **overrides)


class TestConsistencyAndVolume:
    def test_streak_family_uses_streak(self) -> None:
        inputs = ProgressInputs(streak=12)
        for aid in ("streak-fire", "unbreakable", "machine"):
            assert _progress(inputs, aid) == 12

    def test_hours_from_stats(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[make_session(hours=10)],
            stats=AggregateStats(total_minutes=125),
        )
        assert _progress(inputs, "marathon") == 2

    def test_hours_fall_back_to_sessions(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[make_session(hours=1, minutes=30), make_session(minutes=45)],
            stats=AggregateStats(total_correct=5),
        )
        assert _progress(inputs, "workaholic") == 2


class TestAccuracy:
    def test_correct_answers(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(sessions=[make_session(correct=7), make_session(correct=3)])
        assert _progress(inputs, "shooter") == 10

    def test_perfect_sessions(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[
                make_session(correct=5),
                make_session(correct=5, wrong=1),
                make_session(correct=0),
                make_session(correct=3, blank=0),
            ]
        )
        assert _progress(inputs, "perfectionist") == 2

    def test_sniper_gated_by_volume(self) -> None:
        inputs = ProgressInputs(stats=AggregateStats(total_correct=95, total_questions=100))
        assert _progress(inputs, "sniper", 1) == 95
        assert _progress(inputs, "sniper", 2) == 0
        assert _progress(inputs, "sniper", 3) == 0

    def test_sniper_without_questions(self) -> None:
        assert _progress(ProgressInputs(), "sniper") == 0

    def test_theory_answers_do_not_count(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[make_session(type=StudyType.THEORY.value, correct=10)]
        )
        assert _progress(inputs, "shooter") == 0
        assert _progress(inputs, "perfectionist") == 0

    def test_sniper_counts_question_sessions_only(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[
                make_session(correct=95, wrong=5),
                make_session(type=StudyType.REVIEW.value, wrong=100),
            ]
        )
        assert _progress(inputs, "sniper", 1) == 95

    def test_aggregate_correct_ignores_session_types(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[make_session(type=StudyType.THEORY.value, correct=10)],
            stats=AggregateStats(total_correct=40),
        )
        assert _progress(inputs, "shooter") == 40


class TestReadingAndDiversity:
    def test_pages_only_count_theory(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[
                make_session(type=StudyType.THEORY.value, pages=30),
                make_session(type=StudyType.QUESTIONS.value, pages=10),
            ]
        )
        assert _progress(inputs, "reader") == 30

    def test_pages_from_stats(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[make_session(type=StudyType.THEORY.value, pages=30)],
            stats=AggregateStats(total_pages=99),
        )
        assert _progress(inputs, "library") == 99

    def test_distinct_subjects(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[make_session(subject_id=s) for s in ("a", "b", "a", "c")]
        )
        assert _progress(inputs, "multitask") == 3
        assert _progress(inputs, "polymath") == 3

    def test_renaissance_counts_days_meeting_requirement(
        self, make_session: SessionFactory
    ) -> None:
        day1 = [make_session(subject_id=f"s{i}", date="2026-03-01") for i in range(5)]
        day2 = [make_session(subject_id=f"s{i}", date="2026-03-02") for i in range(4)]
        inputs = ProgressInputs(sessions=day1 + day2)
        assert _progress(inputs, "renaissance", 1) == 1
        assert _progress(inputs, "renaissance", 2) == 0


class TestSchedule:
    def test_early_bird_window(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[
                _at(make_session, datetime(2026, 3, 2, 5, 0, tzinfo=UTC)),
                _at(make_session, datetime(2026, 3, 2, 7, 59, tzinfo=UTC)),
                _at(make_session, datetime(2026, 3, 3, 7, 59, tzinfo=UTC)),
                _at(make_session, datetime(2026, 3, 4, 8, 0, tzinfo=UTC)),
                _at(make_session, datetime(2026, 3, 5, 4, 59, tzinfo=UTC)),
            ]
        )
        assert _progress(inputs, "early-bird") == 2

    def test_night_owl_window(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[
                _at(make_session, datetime(2026, 3, 2, 22, 0, tzinfo=UTC)),
                _at(make_session, datetime(2026, 3, 4, 1, 59, tzinfo=UTC)),
                _at(make_session, datetime(2026, 3, 5, 2, 0, tzinfo=UTC)),
                _at(make_session, datetime(2026, 3, 6, 21, 59, tzinfo=UTC)),
            ]
        )
        assert _progress(inputs, "night-owl") == 2

    def test_sessions_without_timestamp_ignored(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(sessions=[make_session(date="2026-03-02")])
        assert _progress(inputs, "early-bird") == 0
        assert _progress(inputs, "night-owl") == 0
        assert _progress(inputs, "weekend-warrior") == 0

    def test_weekends_counted_once(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[
                _at(make_session, datetime(2026, 3, 7, 10, tzinfo=UTC)),  # Sat
                _at(make_session, datetime(2026, 3, 8, 10, tzinfo=UTC)),  # Sun, same weekend
                _at(make_session, datetime(2026, 3, 9, 10, tzinfo=UTC)),  # Mon
                _at(make_session, datetime(2026, 3, 14, 10, tzinfo=UTC)),  # next Sat
            ]
        )
        assert _progress(inputs, "weekend-warrior") == 2


class TestGoals:
    def test_goal_multiples(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(
            sessions=[
                make_session(date="2026-03-01", minutes=60),
                make_session(date="2026-03-02", minutes=90),
                make_session(date="2026-03-02", minutes=30),
                make_session(date="2026-03-03", minutes=59, seconds=59),
            ],
            daily_goal=60,
        )
        assert _progress(inputs, "achiever") == 2
        assert _progress(inputs, "over-achiever") == 1
        assert _progress(inputs, "overcoming") == 1

    def test_no_goal_means_zero(self, make_session: SessionFactory) -> None:
        inputs = ProgressInputs(sessions=[make_session(date="2026-03-01", hours=5)])
        assert _progress(inputs, "achiever") == 0


class TestMilestones:
    def test_log_count_prefers_stats(self, make_session: SessionFactory) -> None:
        sessions = [make_session(), make_session()]
        assert _progress(ProgressInputs(sessions=sessions), "first-step") == 2
        inputs = ProgressInputs(sessions=sessions, stats=AggregateStats(total_logs=40))
        assert _progress(inputs, "first-step") == 40

    @pytest.mark.parametrize(("days", "expected"), [(29, 0), (30, 1), (400, 1)])
    def test_cycle_master_age_proxy(self, days: int, expected: int) -> None:
        inputs = ProgressInputs(cycle_start=NOW - timedelta(days=days))
        assert _progress(inputs, "cycle-master") == expected

    def test_cycle_master_without_cycle(self) -> None:
        assert _progress(ProgressInputs(), "cycle-master") == 0

    def test_veteran_account_age(self) -> None:
        inputs = ProgressInputs(account_created_at=NOW - timedelta(days=45, hours=3))
        assert _progress(inputs, "veteran") == 45
        assert _progress(ProgressInputs(), "veteran") == 0


class TestCalculateProgress:
    def test_single_level(self, make_session: SessionFactory) -> None:
        found = get_level("shooter", 1)
        assert found is not None
        achievement, level = found
        value = calculate_progress(
            achievement, level, [make_session(correct=4)], None, 0, 0, None, now=NOW
        )
        assert value == 4

    def test_unknown_achievement_is_zero(self) -> None:
        lvl = AchievementLevel(level=1, requirement=1, label="x", xp_reward=1)
        mystery = Achievement(
            id="mystery",
            category=Category.MILESTONES,
            name="Mystery",
            description="",
            icon="",
            color="",
            levels=(lvl, lvl, lvl),
        )
        assert calculate_progress(mystery, lvl, [], None, 99, 60, None, now=NOW) == 0

    def test_progress_monotonic_as_log_grows(self, make_session: SessionFactory) -> None:
        log: list[StudySession] = []
        previous = compute_progress(ProgressInputs(sessions=log), now=NOW, tz=UTC)
        base = datetime(2026, 3, 1, 6, tzinfo=UTC)
        for i in range(12):
            ts = base + timedelta(days=i, hours=(i * 5) % 24)
            log.append(
                _at(
                    make_session,
                    ts,
                    subject_id=f"s{i % 4}",
                    type=StudyType.THEORY.value if i % 2 else StudyType.QUESTIONS.value,
                    minutes=40,
                    correct=i,
                    wrong=1,
                    pages=3,
                )
            )
            current = compute_progress(
                ProgressInputs(sessions=list(log), daily_goal=30), now=NOW, tz=UTC
            )
            for key, value in previous.items():
                if key[0] == "sniper":
                    continue  # ratio, not a count
                assert current[key] >= value, key
            previous = current
