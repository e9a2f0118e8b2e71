from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field, StrictInt

from buddy.api.deps import caller_user_id, get_services
from buddy.features.gamification.container import GamificationServices
from buddy.features.scoring.ledger import points_to_next_level
from buddy.models.score import POINTS_PER_LEVEL, UserScore

router = APIRouter()


class AddPointsRequest(BaseModel):
    user_id: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: StrictInt


class GoalCompletedRequest(BaseModel):
    user_id: Optional[str] = Field(None, min_length=1, max_length=100)


class ScoreView(BaseModel):
    user_id: str
    points: int
    level: int
    points_to_next_level: int
    completed_goals: int
    exists: bool


def score_view(user_id: str, score: UserScore | None) -> ScoreView:
    if score is None:
        return ScoreView(
            user_id=user_id,
            points=0,
            level=1,
            points_to_next_level=POINTS_PER_LEVEL,
            completed_goals=0,
            exists=False,
        )
    return ScoreView(
        user_id=score.user_id,
        points=score.points,
        level=score.level,
        points_to_next_level=points_to_next_level(score.points, score.level),
        completed_goals=score.completed_goals,
        exists=True,
    )


@router.post("/v1/points", response_model=ScoreView)
def add_points(body: AddPointsRequest, request: Request, services: GamificationServices = Depends(get_services)):
    user_id = caller_user_id(request, body.user_id)
    score = services.ledger.add_points(user_id, body.amount)
    return score_view(user_id, score)


@router.get("/v1/points/{user_id}", response_model=ScoreView)
def get_points(user_id: str, services: GamificationServices = Depends(get_services)):
    """Score for a user; unknown users get the zero state."""
    return score_view(user_id, services.ledger.get_score(user_id))


@router.get("/v1/points/{user_id}/next-level")
def get_points_to_next_level(user_id: str, services: GamificationServices = Depends(get_services)):
    remaining = services.ledger.get_points_to_next_level(user_id)
    return {
        "user_id": user_id,
        "points_to_next_level": POINTS_PER_LEVEL if remaining is None else remaining,
        "exists": remaining is not None,
    }


@router.post("/v1/goals/completed", response_model=ScoreView)
def goal_completed(body: GoalCompletedRequest, request: Request, services: GamificationServices = Depends(get_services)):
    user_id = caller_user_id(request, body.user_id)
    score = services.ledger.record_goal_completed(user_id, services.goal_completion_xp)
    return score_view(user_id, score)
