from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from buddy.api.deps import caller_user_id, get_services
from buddy.features.gamification.container import GamificationServices
from buddy.models.milestone import MilestoneRecord
from buddy.models.streak import StreakState

router = APIRouter()


class ActivityEvent(BaseModel):
    user_id: Optional[str] = Field(None, min_length=1, max_length=100)
    activity_date: Optional[date] = None  # UTC calendar day; defaults to today


class StreakView(BaseModel):
    user_id: str
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date]
    exists: bool


class BadgeView(BaseModel):
    badge_id: str
    threshold: int
    bonus_xp: int
    awarded_at: str


class DailyActionView(BaseModel):
    streak: StreakView
    is_new_day: bool
    xp_awarded: int
    milestone: Optional[BadgeView]
    points: int
    level: int


def streak_view(user_id: str, state: Optional[StreakState]) -> StreakView:
    if state is None:
        return StreakView(user_id=user_id, current_streak=0, longest_streak=0, last_activity_date=None, exists=False)
    return StreakView(
        user_id=state.user_id,
        current_streak=state.current_streak,
        longest_streak=state.longest_streak,
        last_activity_date=state.last_activity_date,
        exists=True,
    )


def badge_view(record: MilestoneRecord) -> BadgeView:
    return BadgeView(
        badge_id=record.badge_id,
        threshold=record.threshold,
        bonus_xp=record.bonus_xp,
        awarded_at=record.awarded_at.isoformat(),
    )


@router.post("/v1/streaks/activity", response_model=DailyActionView)
def record_activity(event: ActivityEvent, request: Request, services: GamificationServices = Depends(get_services)):
    user_id = caller_user_id(request, event.user_id)
    result = services.engine.record_daily_action(user_id, event.activity_date)
    return DailyActionView(
        streak=streak_view(user_id, result.streak),
        is_new_day=result.is_new_day,
        xp_awarded=result.xp_awarded,
        milestone=badge_view(result.milestone) if result.milestone else None,
        points=result.score.points if result.score else 0,
        level=result.score.level if result.score else 1,
    )


@router.get("/v1/streaks/{user_id}", response_model=StreakView)
def get_current_streak(user_id: str, services: GamificationServices = Depends(get_services)):
    """Return the current streak state for a user."""
    return streak_view(user_id, services.tracker.get_streak(user_id))
