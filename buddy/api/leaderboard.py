from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from buddy.api.deps import get_services
from buddy.features.gamification.container import GamificationServices
from buddy.models.leaderboard import LeaderboardScope

router = APIRouter()


class LeaderboardEntryView(BaseModel):
    user_id: str
    value: int
    rank: int


class LeaderboardView(BaseModel):
    metric: str
    challenge_id: Optional[str]
    page: int
    page_size: int
    total_pages: int
    total_users: int
    entries: List[LeaderboardEntryView]


@router.get("/v1/leaderboard", response_model=LeaderboardView)
def get_leaderboard(
    metric: str = Query("points", description="points | currentStreak | completedGoals"),
    challenge_id: Optional[str] = Query(None, description="Restrict to challenge members"),
    page: int = Query(1),
    page_size: int = Query(10),
    services: GamificationServices = Depends(get_services),
):
    """
    Ranked, paginated leaderboard.

    Stable sort: value desc, user_id asc. Pages past the end return no entries.
    Results may lag recent writes by up to the cache TTL.
    """
    result = services.ranker.rank(metric, LeaderboardScope(challenge_id), page, page_size)
    return LeaderboardView(
        metric=result.metric,
        challenge_id=challenge_id,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        total_users=result.total_users,
        entries=[LeaderboardEntryView(user_id=e.user_id, value=e.value, rank=e.rank) for e in result.entries],
    )


class PositionView(BaseModel):
    user_id: str
    metric: str
    challenge_id: Optional[str]
    ranked: bool
    rank: Optional[int]
    value: int


@router.get("/v1/leaderboard/{user_id}/position", response_model=PositionView)
def get_position(
    user_id: str,
    metric: str = Query("points"),
    challenge_id: Optional[str] = Query(None),
    services: GamificationServices = Depends(get_services),
):
    """A user's own rank, read from the store. Unranked users get ranked=false."""
    entry = services.ranker.position(user_id, metric, LeaderboardScope(challenge_id))
    return PositionView(
        user_id=user_id,
        metric=metric,
        challenge_id=challenge_id,
        ranked=entry is not None,
        rank=entry.rank if entry else None,
        value=entry.value if entry else 0,
    )


@router.delete("/v1/leaderboard/cache")
def invalidate_cache(
    challenge_id: Optional[str] = Query(None),
    services: GamificationServices = Depends(get_services),
):
    """Drop cached leaderboard pages (all of them, or one challenge's)."""
    scope = LeaderboardScope(challenge_id) if challenge_id is not None else None
    return {"removed": services.ranker.invalidate(scope)}
