from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class StreakState:
    """
    Domain model for a consecutive-day streak. Day-level, UTC only, no direct DB concerns.
    """

    user_id: str
    current_streak: int
    longest_streak: int
    last_activity_date: date
    version: int = 0


@dataclass(frozen=True)
class ActivityResult:
    streak: StreakState
    is_new_day: bool
