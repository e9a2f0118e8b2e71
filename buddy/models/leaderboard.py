from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Literal, Optional

LeaderboardMetric = Literal["points", "currentStreak", "completedGoals"]
LEADERBOARD_METRICS = ("points", "currentStreak", "completedGoals")


@dataclass(frozen=True)
class LeaderboardScope:
    """Global when challenge_id is None, otherwise restricted to challenge members."""

    challenge_id: Optional[str] = None

    @property
    def is_global(self) -> bool:
        return self.challenge_id is None

    def cache_token(self) -> str:
        return "global" if self.is_global else f"challenge:{self.challenge_id}"


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    value: int
    rank: int


@dataclass(frozen=True)
class LeaderboardPage:
    metric: LeaderboardMetric
    page: int
    page_size: int
    total_pages: int
    total_users: int
    entries: List[LeaderboardEntry] = field(default_factory=list)
