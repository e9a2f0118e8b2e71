"""
Leaderboard ranking.

Ordering: metric value desc, user_id asc (deterministic tie-breaker).
Rank is the 1-based position in that ordering. Pages past the end are
empty, never an error. Reads may be served from the cache and lag the
ledger by up to the cache TTL.
"""
from __future__ import annotations

import math
from dataclasses import asdict
from typing import Optional

from buddy.core.errors import ValidationError
from buddy.core.logging import log_event
from buddy.core.validation import require_challenge_id, require_int, require_user_id
from buddy.features.gamification.store import GamificationStore, check_metric
from buddy.features.leaderboard.cache import LeaderboardCache
from buddy.models.leaderboard import LeaderboardEntry, LeaderboardPage, LeaderboardScope

DEFAULT_PAGE_SIZE = 10


def _page_from_dict(data: dict) -> LeaderboardPage:
    return LeaderboardPage(
        metric=data["metric"],
        page=data["page"],
        page_size=data["page_size"],
        total_pages=data["total_pages"],
        total_users=data["total_users"],
        entries=[LeaderboardEntry(**entry) for entry in data["entries"]],
    )


class LeaderboardRanker:
    def __init__(
        self,
        store: GamificationStore,
        *,
        cache: Optional[LeaderboardCache] = None,
        max_page_size: int = 100,
    ):
        self._store = store
        self._cache = cache
        self._max_page_size = max_page_size

    def rank(
        self,
        metric: str,
        scope: Optional[LeaderboardScope] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> LeaderboardPage:
        metric, scope = self._check_query(metric, scope)
        require_int(page, "page", minimum=1)
        require_int(page_size, "page_size", minimum=1, maximum=self._max_page_size)

        key = f"leaderboard:{scope.cache_token()}:{metric}:{page}:{page_size}"
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                log_event("debug", "leaderboard.cache_hit", event_type="leaderboard.rank", extra={"key": key})
                return _page_from_dict(cached)

        total_users = self._store.count_ranked(metric, scope.challenge_id)
        total_pages = math.ceil(total_users / page_size)

        entries = []
        if page <= total_pages:
            offset = (page - 1) * page_size
            rows = self._store.page_ranked(metric, scope.challenge_id, offset, page_size)
            entries = [
                LeaderboardEntry(user_id=user_id, value=value, rank=offset + i + 1)
                for i, (user_id, value) in enumerate(rows)
            ]

        result = LeaderboardPage(
            metric=metric,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            total_users=total_users,
            entries=entries,
        )
        if self._cache is not None:
            self._cache.set(key, asdict(result))
            log_event("debug", "leaderboard.cache_miss", event_type="leaderboard.rank", extra={"key": key})
        return result

    def position(
        self,
        user_id: str,
        metric: str = "points",
        scope: Optional[LeaderboardScope] = None,
    ) -> Optional[LeaderboardEntry]:
        """
        A user's own standing: 1 + the number of users strictly ahead in
        (value desc, user_id asc) order. None when the user has no record in
        the requested scope. Always read from the store, never the cache.
        """
        require_user_id(user_id)
        metric, scope = self._check_query(metric, scope)
        found = self._store.rank_of(metric, scope.challenge_id, user_id)
        if found is None:
            return None
        value, ahead = found
        return LeaderboardEntry(user_id=user_id, value=value, rank=ahead + 1)

    def invalidate(self, scope: Optional[LeaderboardScope] = None, metric: Optional[str] = None) -> int:
        """Drop cached pages for a scope (and metric), or every page when no scope is given."""
        prefix = "leaderboard:"
        if scope is not None:
            if not scope.is_global:
                require_challenge_id(scope.challenge_id)
            prefix += f"{scope.cache_token()}:"
            if metric is not None:
                prefix += f"{check_metric(metric)}:"
        if self._cache is None:
            return 0
        removed = self._cache.invalidate(prefix)
        log_event("info", "leaderboard.cache_invalidated", event_type="leaderboard.invalidate", extra={"prefix": prefix, "removed": removed})
        return removed

    def _check_query(self, metric: str, scope: Optional[LeaderboardScope]):
        if not isinstance(metric, str):
            raise ValidationError("metric must be a string")
        check_metric(metric)
        scope = scope or LeaderboardScope()
        if not scope.is_global:
            require_challenge_id(scope.challenge_id)
        return metric, scope
