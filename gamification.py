"""
Streak/XP rules, dashboard statistics and daily nudge selection.

Everything here is pure: callers pass in the stored documents and the
calendar date to use as "today" and apply the returned values themselves.
Dates are ISO strings (YYYY-MM-DD), which sort chronologically as text.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, asdict
from datetime import date, timedelta
from typing import Iterable, List, Mapping, Optional, Tuple

from errors import AlreadyCompletedError

BASE_XP = 10

# exact-match milestones only
STREAK_BONUSES = {5: 20, 10: 30, 20: 50, 30: 75}

DAILY_QUOTES = [
    "Keep going, you're doing great! 🌟",
    "One small habit a day leads to big changes! 💪",
    "Your consistency defines your success. 🚀",
    "Believe in the power of daily progress. 🌱",
    "Tiny steps every day. That’s the secret. 🧠",
]


@dataclass(frozen=True)
class CompletionResult:
    completion_log: List[str]
    streak: int
    xp: int
    xp_gained: int
    bonus_xp: int
    message: str

    def habit_fields(self) -> dict:
        """Fields to write back onto the habit document."""
        return {"completionLog": self.completion_log, "xp": self.xp, "streak": self.streak}


@dataclass
class DashboardStats:
    totalHabits: int = 0
    totalXP: int = 0
    longestStreak: int = 0
    completedToday: int = 0
    completedThisWeek: int = 0
    missedToday: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def bonus_xp(streak: int) -> int:
    return STREAK_BONUSES.get(streak, 0)


def completion_message(base: int, bonus: int) -> str:
    message = f"Habit completed. +{base} XP"
    if bonus > 0:
        message += f" +{bonus} bonus XP"
    return message


def complete_habit(habit: Mapping, today: str) -> CompletionResult:
    """Compute the habit's state after completing it on ``today``.

    Raises AlreadyCompletedError when ``today`` is already logged. The streak
    only ever increments; a missed day does not reset it.
    """
    log = list(habit.get("completionLog") or [])
    if today in log:
        raise AlreadyCompletedError()

    new_streak = (habit.get("streak") or 0) + 1
    bonus = bonus_xp(new_streak)
    gained = BASE_XP + bonus
    return CompletionResult(
        completion_log=log + [today],
        streak=new_streak,
        xp=(habit.get("xp") or 0) + gained,
        xp_gained=gained,
        bonus_xp=bonus,
        message=completion_message(BASE_XP, bonus),
    )


def week_start(today: date) -> date:
    """Monday of the week containing ``today``."""
    return today - timedelta(days=today.weekday())


def aggregate(habits: Iterable[Mapping], today: str, week_start: str) -> DashboardStats:
    stats = DashboardStats()
    for h in habits:
        log = h.get("completionLog") or []
        stats.totalHabits += 1
        stats.totalXP += h.get("xp") or 0
        stats.longestStreak = max(stats.longestStreak, h.get("streak") or 0)
        if today in log:
            stats.completedToday += 1
        else:
            stats.missedToday += 1
        stats.completedThisWeek += sum(1 for d in log if week_start <= d <= today)
    return stats


def select_daily_nudge(cached: Optional[str], rng: Optional[random.Random] = None) -> Tuple[str, bool]:
    """Return ``(message, is_new)``; a cached message for the day wins."""
    if cached is not None:
        return cached, False
    rng = rng or random
    return rng.choice(DAILY_QUOTES), True
