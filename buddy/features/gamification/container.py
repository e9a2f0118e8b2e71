"""Explicit wiring of the store and services for one process."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from buddy.core.clock import Clock, SystemClock
from buddy.features.challenges.service import ChallengeRoster
from buddy.features.gamification.service import GamificationEngine
from buddy.features.gamification.store import GamificationStore, build_store
from buddy.features.leaderboard.cache import LeaderboardCache
from buddy.features.leaderboard.service import LeaderboardRanker
from buddy.features.scoring.ledger import ScoreLedger
from buddy.features.streaks.service import StreakTracker


@dataclass
class GamificationServices:
    store: GamificationStore
    ledger: ScoreLedger
    tracker: StreakTracker
    ranker: LeaderboardRanker
    roster: ChallengeRoster
    engine: GamificationEngine
    goal_completion_xp: int = 25

    def close(self) -> None:
        self.store.close()


def build_services(
    settings_obj,
    *,
    store: Optional[GamificationStore] = None,
    clock: Optional[Clock] = None,
    cache: Optional[LeaderboardCache] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> GamificationServices:
    store = store if store is not None else build_store(settings_obj)
    clock = clock or SystemClock()
    cache = cache if cache is not None else LeaderboardCache.from_settings(settings_obj)
    retry = {
        "max_attempts": settings_obj.CAS_MAX_ATTEMPTS,
        "backoff_base_seconds": settings_obj.CAS_BACKOFF_BASE_SECONDS,
        "sleep": sleep,
    }

    ledger = ScoreLedger(store, **retry)
    tracker = StreakTracker(store, clock=clock, **retry)
    return GamificationServices(
        store=store,
        ledger=ledger,
        tracker=tracker,
        ranker=LeaderboardRanker(store, cache=cache, max_page_size=settings_obj.LEADERBOARD_MAX_PAGE_SIZE),
        roster=ChallengeRoster(store, clock=clock),
        engine=GamificationEngine(
            store=store,
            ledger=ledger,
            tracker=tracker,
            clock=clock,
            daily_action_xp=settings_obj.DAILY_ACTION_XP,
        ),
        goal_completion_xp=settings_obj.GOAL_COMPLETION_XP,
    )
