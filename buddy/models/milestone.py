from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class MilestoneReward:
    """Result of evaluating a streak length against the milestone table."""

    badge_id: Optional[str] = None
    bonus_xp: int = 0
    threshold: Optional[int] = None

    @property
    def matched(self) -> bool:
        return self.badge_id is not None


@dataclass(frozen=True)
class MilestoneRecord:
    """One-time award; at most one per (user_id, threshold)."""

    user_id: str
    threshold: int
    badge_id: str
    bonus_xp: int
    awarded_at: datetime


@dataclass(frozen=True)
class ActivityCredit:
    """Base XP granted for a qualifying day; at most one per (user_id, activity_date)."""

    user_id: str
    activity_date: date
    xp: int
    credited_at: datetime
