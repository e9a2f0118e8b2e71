from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from buddy.models.milestone import MilestoneRecord, MilestoneReward
from buddy.models.score import UserScore
from buddy.models.streak import StreakState


@dataclass(frozen=True)
class DailyActionResult:
    streak: StreakState
    is_new_day: bool
    xp_awarded: int
    milestone: Optional[MilestoneRecord]
    score: Optional[UserScore]


@dataclass(frozen=True)
class GamificationSummary:
    """Profile view; unknown users get the zero state."""

    user_id: str
    points: int
    level: int
    points_to_next_level: int
    completed_goals: int
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date]
    next_milestone: Optional[MilestoneReward]
    badges: List[MilestoneRecord] = field(default_factory=list)
