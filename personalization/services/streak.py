"""
Streak Calculator — consecutive-day activity from study-session dates.

current streak
--------------
  Anchor at today; if today has no activity, anchor at yesterday (the
  streak is still alive until the day ends). Count back one day at a time
  and stop at the first gap.

    {}                          → 0
    {today}                     → 1
    {today-1}                   → 1
    {today, today-1, today-2}   → 3
    {today, today-2}            → 1
    {today-2}                   → 0

longest streak: the longest run of consecutive dates anywhere in history.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from personalization.core.clock import today as _today
from personalization.services.usage_log import get_study_dates

_ONE_DAY = timedelta(days=1)


@dataclass
class StreakSummary:
    user_id: int
    current_streak: int
    longest_streak: int
    last_active_date: Optional[date]
    active_today: bool
    total_active_days: int


def calculate_streak(dates: Iterable[date], today: date) -> int:
    """Pure current-streak rule. Dates after `today` are ignored."""
    days = {d for d in dates if d <= today}
    if not days:
        return 0

    anchor = today if today in days else today - _ONE_DAY
    streak = 0
    while anchor in days:
        streak += 1
        anchor -= _ONE_DAY
    return streak


def longest_streak(dates: Iterable[date]) -> int:
    days = sorted(set(dates))
    best = run = 0
    previous: Optional[date] = None
    for d in days:
        run = run + 1 if previous is not None and d - previous == _ONE_DAY else 1
        best = max(best, run)
        previous = d
    return best


def current_streak(db: Session, user_id: int, today: Optional[date] = None) -> int:
    return calculate_streak(get_study_dates(db, user_id), today or _today())


def streak_summary(db: Session, user_id: int, today: Optional[date] = None) -> StreakSummary:
    today = today or _today()
    dates = get_study_dates(db, user_id)
    past = {d for d in dates if d <= today}
    return StreakSummary(
        user_id=user_id,
        current_streak=calculate_streak(past, today),
        longest_streak=longest_streak(past),
        last_active_date=max(past) if past else None,
        active_today=today in past,
        total_active_days=len(past),
    )
