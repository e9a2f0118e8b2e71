"""
Streak milestone table.

A milestone pays out only on the day the streak length equals its
threshold. Whether a user already holds the milestone is checked by the
caller through the milestone gate, not here.
"""
from __future__ import annotations

from typing import Dict, Optional, Tuple

from buddy.core.validation import require_int
from buddy.models.milestone import MilestoneReward

# threshold -> (badge_id, bonus_xp), ascending
MILESTONE_TABLE: Tuple[Tuple[int, str, int], ...] = (
    (3, "streak-3-days", 25),
    (7, "streak-7-days", 50),
    (14, "streak-14-days", 75),
    (30, "streak-30-days", 100),
    (100, "streak-100-days", 200),
)

_BY_THRESHOLD: Dict[int, Tuple[str, int]] = {t: (badge, xp) for t, badge, xp in MILESTONE_TABLE}

NO_REWARD = MilestoneReward()


def check_milestone(current_streak: int) -> MilestoneReward:
    require_int(current_streak, "current_streak", minimum=0)
    match = _BY_THRESHOLD.get(current_streak)
    if match is None:
        return NO_REWARD
    badge_id, bonus_xp = match
    return MilestoneReward(badge_id=badge_id, bonus_xp=bonus_xp, threshold=current_streak)


def next_milestone(current_streak: int) -> Optional[MilestoneReward]:
    """The first milestone strictly above the current streak, if any."""
    require_int(current_streak, "current_streak", minimum=0)
    for threshold, badge_id, bonus_xp in MILESTONE_TABLE:
        if threshold > current_streak:
            return MilestoneReward(badge_id=badge_id, bonus_xp=bonus_xp, threshold=threshold)
    return None
