"""Tests for the completion rules, dashboard statistics and daily nudge choice."""

from __future__ import annotations

import random
from datetime import date

import pytest

from errors import AlreadyCompletedError
from gamification import (
    BASE_XP,
    DAILY_QUOTES,
    aggregate,
    bonus_xp,
    complete_habit,
    select_daily_nudge,
    week_start,
)


def make_habit(streak=0, xp=0, log=None):
    return {"title": "Read", "streak": streak, "xp": xp, "completionLog": list(log or [])}


class TestBonusXP:
    @pytest.mark.parametrize("streak,expected", [(5, 20), (10, 30), (20, 50), (30, 75)])
    def test_milestones(self, streak, expected):
        assert bonus_xp(streak) == expected

    @pytest.mark.parametrize("streak", [0, 1, 4, 6, 15, 25, 31, 100])
    def test_other_streaks_award_nothing(self, streak):
        assert bonus_xp(streak) == 0


class TestCompleteHabit:
    def test_fifth_completion_earns_milestone_bonus(self):
        habit = make_habit(streak=4, xp=40, log=["2024-01-01", "2024-01-02", "2024-01-03", "2024-01-04"])

        result = complete_habit(habit, "2024-01-05")

        assert result.streak == 5
        assert result.xp == 70
        assert result.xp_gained == 30
        assert result.bonus_xp == 20
        assert result.completion_log[-1] == "2024-01-05"
        assert result.message == "Habit completed. +10 XP +20 bonus XP"

    def test_plain_completion(self):
        result = complete_habit(make_habit(), "2024-01-05")

        assert result.streak == 1
        assert result.xp == BASE_XP
        assert result.xp_gained == BASE_XP
        assert result.message == "Habit completed. +10 XP"
        assert result.habit_fields() == {"completionLog": ["2024-01-05"], "xp": 10, "streak": 1}

    def test_same_day_is_rejected_without_mutation(self):
        habit = make_habit(streak=5, xp=70, log=["2024-01-05"])
        snapshot = {k: (list(v) if isinstance(v, list) else v) for k, v in habit.items()}

        with pytest.raises(AlreadyCompletedError):
            complete_habit(habit, "2024-01-05")

        assert habit == snapshot

    def test_input_log_is_not_modified(self):
        habit = make_habit(log=["2024-01-01"])
        complete_habit(habit, "2024-01-02")
        assert habit["completionLog"] == ["2024-01-01"]

    def test_missed_days_do_not_reset_streak(self):
        habit = make_habit(streak=3, xp=30, log=["2023-12-01", "2023-12-02", "2023-12-03"])
        assert complete_habit(habit, "2024-01-05").streak == 4

    def test_missing_fields_default_to_zero(self):
        result = complete_habit({"title": "Legacy"}, "2024-01-05")
        assert (result.streak, result.xp) == (1, 10)


class TestWeekStart:
    @pytest.mark.parametrize(
        "today,monday",
        [
            (date(2024, 1, 1), date(2024, 1, 1)),  # Monday
            (date(2024, 1, 5), date(2024, 1, 1)),  # Friday
            (date(2024, 1, 7), date(2024, 1, 1)),  # Sunday
            (date(2024, 3, 2), date(2024, 2, 26)),  # across a month boundary
        ],
    )
    def test_returns_monday(self, today, monday):
        assert week_start(today) == monday


class TestAggregate:
    def test_empty_collection_is_all_zero(self):
        stats = aggregate([], "2024-01-05", "2024-01-01")
        assert stats.to_dict() == {
            "totalHabits": 0,
            "totalXP": 0,
            "longestStreak": 0,
            "completedToday": 0,
            "completedThisWeek": 0,
            "missedToday": 0,
        }

    def test_one_done_one_missed(self):
        habits = [
            make_habit(streak=3, xp=30, log=["2024-01-03", "2024-01-04", "2024-01-05"]),
            make_habit(streak=7, xp=90, log=["2023-12-28", "2024-01-02"]),
        ]

        stats = aggregate(habits, "2024-01-05", "2024-01-01")

        assert stats.totalHabits == 2
        assert stats.completedToday == 1
        assert stats.missedToday == 1
        assert stats.totalXP == 120
        assert stats.longestStreak == 7
        assert stats.completedThisWeek == 4

    def test_week_range_is_inclusive(self):
        habits = [make_habit(log=["2023-12-31", "2024-01-01", "2024-01-05", "2024-01-06"])]
        stats = aggregate(habits, "2024-01-05", "2024-01-01")
        assert stats.completedThisWeek == 2

    def test_done_plus_missed_equals_total(self):
        rng = random.Random(7)
        days = ["2024-01-0%d" % d for d in range(1, 8)]
        habits = [make_habit(log=rng.sample(days, rng.randint(0, 7))) for _ in range(25)]

        stats = aggregate(habits, "2024-01-05", "2024-01-01")

        assert stats.completedToday + stats.missedToday == stats.totalHabits == 25


class TestDailyNudge:
    def test_cached_message_is_returned_unchanged(self):
        assert select_daily_nudge("stay sharp") == ("stay sharp", False)

    def test_new_message_comes_from_quote_list(self):
        message, is_new = select_daily_nudge(None, random.Random(3))
        assert is_new is True
        assert message in DAILY_QUOTES
