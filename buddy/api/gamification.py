from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from buddy.api.deps import caller_user_id, get_services
from buddy.api.streaks import BadgeView, badge_view
from buddy.features.gamification.container import GamificationServices
from buddy.features.milestones.evaluator import check_milestone
from buddy.models.leaderboard import LeaderboardScope

router = APIRouter()


class MilestoneView(BaseModel):
    badge_id: Optional[str]
    bonus_xp: int


class NextMilestoneView(BaseModel):
    badge_id: str
    threshold: int
    bonus_xp: int


class SummaryView(BaseModel):
    user_id: str
    points: int
    level: int
    points_to_next_level: int
    completed_goals: int
    current_streak: int
    longest_streak: int
    last_activity_date: Optional[date]
    next_milestone: Optional[NextMilestoneView]
    badges: List[BadgeView]


class JoinChallengeRequest(BaseModel):
    user_id: Optional[str] = Field(None, min_length=1, max_length=100)


@router.get("/v1/milestones/check", response_model=MilestoneView)
def check(current_streak: int = Query(...)):
    reward = check_milestone(current_streak)
    return MilestoneView(badge_id=reward.badge_id, bonus_xp=reward.bonus_xp)


@router.get("/v1/badges/{user_id}", response_model=List[BadgeView])
def list_badges(user_id: str, services: GamificationServices = Depends(get_services)):
    return [badge_view(record) for record in services.engine.list_badges(user_id)]


@router.get("/v1/gamification/{user_id}/summary", response_model=SummaryView)
def summary(user_id: str, services: GamificationServices = Depends(get_services)):
    s = services.engine.get_summary(user_id)
    upcoming = None
    if s.next_milestone is not None:
        upcoming = NextMilestoneView(
            badge_id=s.next_milestone.badge_id,
            threshold=s.next_milestone.threshold,
            bonus_xp=s.next_milestone.bonus_xp,
        )
    return SummaryView(
        user_id=s.user_id,
        points=s.points,
        level=s.level,
        points_to_next_level=s.points_to_next_level,
        completed_goals=s.completed_goals,
        current_streak=s.current_streak,
        longest_streak=s.longest_streak,
        last_activity_date=s.last_activity_date,
        next_milestone=upcoming,
        badges=[badge_view(record) for record in s.badges],
    )


@router.post("/v1/challenges/{challenge_id}/members")
def join_challenge(
    challenge_id: str,
    body: JoinChallengeRequest,
    request: Request,
    services: GamificationServices = Depends(get_services),
):
    user_id = caller_user_id(request, body.user_id)
    joined = services.roster.join(challenge_id, user_id)
    if joined:
        # Cached challenge pages no longer reflect the roster
        services.ranker.invalidate(LeaderboardScope(challenge_id))
    return {"challenge_id": challenge_id, "user_id": user_id, "joined": joined}


@router.get("/v1/challenges/{challenge_id}/members")
def list_members(challenge_id: str, services: GamificationServices = Depends(get_services)):
    return {"challenge_id": challenge_id, "members": services.roster.participants(challenge_id)}
