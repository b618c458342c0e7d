"""Day-granularity check-in streaks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_action_date: date | None = None


def advance_streak(state: StreakState, today: date) -> StreakState:
    """Apply one qualifying action on calendar day ``today``.

    - first action ever: streak = 1
    - same day (or a late, out-of-order report): unchanged
    - the next day: streak + 1
    - any longer gap: back to 1
    """
    last = state.last_action_date

    if last is None:
        current = 1
    elif today <= last:
        current = max(state.current_streak, 1)
        today = last
    elif today - last == timedelta(days=1):
        current = state.current_streak + 1
    else:
        current = 1

    return StreakState(
        current_streak=current,
        longest_streak=max(state.longest_streak, current),
        last_action_date=today,
    )


def streak_bonus(streak: int, per_day_bonus: int) -> int:
    """Flat per-day bonus, paid only from day two of a streak."""
    if streak < 2:
        return 0
    return streak * per_day_bonus
