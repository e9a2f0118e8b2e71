"""
Gamification engine: the daily-action workflow.

record_daily_action runs the streak tracker, then credits the day's base XP
and any milestone bonus through their insert-once gates. Every call for a
recorded day re-attempts both gates, so retrying a failed or partially
applied call completes it without double crediting.
"""
from __future__ import annotations

from datetime import date
from typing import List, Optional

from buddy.core.clock import Clock, SystemClock
from buddy.core.logging import log_event
from buddy.core.validation import require_int, require_user_id
from buddy.features.milestones.evaluator import check_milestone, next_milestone
from buddy.features.scoring.ledger import ScoreLedger, points_to_next_level
from buddy.features.streaks.service import StreakTracker
from buddy.features.gamification.store import GamificationStore
from buddy.models.milestone import ActivityCredit, MilestoneRecord
from buddy.models.score import MAX_POINTS, POINTS_PER_LEVEL
from buddy.models.summary import DailyActionResult, GamificationSummary


class GamificationEngine:
    def __init__(
        self,
        *,
        store: GamificationStore,
        ledger: ScoreLedger,
        tracker: StreakTracker,
        clock: Optional[Clock] = None,
        daily_action_xp: int = 10,
    ):
        self._store = store
        self._ledger = ledger
        self._tracker = tracker
        self._clock = clock or SystemClock()
        self._daily_action_xp = daily_action_xp

    def record_daily_action(
        self,
        user_id: str,
        activity_date: Optional[date] = None,
        base_xp: Optional[int] = None,
    ) -> DailyActionResult:
        require_user_id(user_id)
        xp = self._daily_action_xp if base_xp is None else require_int(base_xp, "base_xp", minimum=0, maximum=MAX_POINTS)

        activity = self._tracker.record_activity(user_id, activity_date)
        streak = activity.streak

        xp_awarded = 0
        score = None
        if xp > 0:
            credit = ActivityCredit(
                user_id=user_id,
                activity_date=streak.last_activity_date,
                xp=xp,
                credited_at=self._clock.now(),
            )
            score = self._ledger.credit_activity(credit)
            if score is not None:
                xp_awarded += xp

        milestone = self.award_streak_milestone(user_id, streak.current_streak)
        if milestone is not None:
            xp_awarded += milestone.bonus_xp

        if score is None or milestone is not None:
            score = self._ledger.get_score(user_id)

        log_event(
            "info",
            "daily_action.recorded",
            user_id=user_id,
            event_type="daily_action",
            extra={
                "day": streak.last_activity_date.isoformat(),
                "is_new_day": activity.is_new_day,
                "xp_awarded": xp_awarded,
                "milestone": milestone.badge_id if milestone else None,
            },
        )
        return DailyActionResult(
            streak=streak,
            is_new_day=activity.is_new_day,
            xp_awarded=xp_awarded,
            milestone=milestone,
            score=score,
        )

    def award_streak_milestone(self, user_id: str, current_streak: int) -> Optional[MilestoneRecord]:
        """
        Grant the milestone matching `current_streak` if the user does not hold it yet.

        Returns the new record, or None when nothing matched or it was already awarded.
        """
        require_user_id(user_id)
        reward = check_milestone(current_streak)
        if not reward.matched:
            return None

        record = MilestoneRecord(
            user_id=user_id,
            threshold=reward.threshold,
            badge_id=reward.badge_id,
            bonus_xp=reward.bonus_xp,
            awarded_at=self._clock.now(),
        )
        credited = self._ledger.credit_milestone(record)
        if credited is None:
            return None

        log_event(
            "info",
            "milestone.awarded",
            user_id=user_id,
            event_type="milestone.awarded",
            extra={"badge_id": record.badge_id, "bonus_xp": record.bonus_xp, "points": credited.points},
        )
        return record

    def list_badges(self, user_id: str) -> List[MilestoneRecord]:
        return self._store.list_milestones(require_user_id(user_id))

    def get_summary(self, user_id: str) -> GamificationSummary:
        """Profile view with zero-state defaults for users with no records."""
        score = self._ledger.get_score(user_id)
        streak = self._tracker.get_streak(user_id)

        points = score.points if score else 0
        level = score.level if score else 1
        current = streak.current_streak if streak else 0
        return GamificationSummary(
            user_id=user_id,
            points=points,
            level=level,
            points_to_next_level=points_to_next_level(points, level) if score else POINTS_PER_LEVEL,
            completed_goals=score.completed_goals if score else 0,
            current_streak=current,
            longest_streak=streak.longest_streak if streak else 0,
            last_activity_date=streak.last_activity_date if streak else None,
            next_milestone=next_milestone(current),
            badges=self.list_badges(user_id),
        )
