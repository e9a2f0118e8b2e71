"""
Points ledger.

Pure level math plus a ScoreLedger that applies point changes to a user's
snapshot and writes them back with compare-and-set:

- points never go below zero
- level = points // 100 + 1, recomputed on every write
- records are only created by a credit, never by a read
"""
from __future__ import annotations

import time
from typing import Callable, Optional

from buddy.core.concurrency import run_with_cas_retry
from buddy.core.errors import ConcurrencyConflictError, ValidationError
from buddy.core.logging import log_event
from buddy.core.validation import require_int, require_user_id
from buddy.features.gamification.store import GamificationStore, GateResult
from buddy.models.milestone import ActivityCredit, MilestoneRecord
from buddy.models.score import MAX_POINTS, POINTS_PER_LEVEL, UserScore


def level_for_points(points: int) -> int:
    return max(0, points) // POINTS_PER_LEVEL + 1


def points_to_next_level(points: int, level: Optional[int] = None) -> int:
    """Points needed to reach level + 1. Never negative."""
    current_level = level if level is not None else level_for_points(points)
    return max(0, current_level * POINTS_PER_LEVEL - points)


def apply_points(current: Optional[UserScore], user_id: str, amount: int, *, goals: int = 0) -> UserScore:
    """Return a new snapshot with `amount` applied (clamped at zero) and level recomputed."""
    base = current or UserScore(user_id=user_id)
    total = base.points + amount
    if total > MAX_POINTS:
        raise ValidationError(f"points for {user_id} would exceed {MAX_POINTS}")
    points = max(0, total)
    return UserScore(
        user_id=user_id,
        points=points,
        level=level_for_points(points),
        completed_goals=base.completed_goals + goals,
        version=base.version,
    )


class ScoreLedger:
    """Serialized per-user point accounting over a GamificationStore."""

    def __init__(
        self,
        store: GamificationStore,
        *,
        max_attempts: int = 3,
        backoff_base_seconds: float = 0.01,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._max_attempts = max_attempts
        self._backoff = backoff_base_seconds
        self._sleep = sleep

    def get_score(self, user_id: str) -> Optional[UserScore]:
        """Current snapshot, or None when the user has never been credited."""
        return self._store.get_score(require_user_id(user_id))

    def get_points_to_next_level(self, user_id: str) -> Optional[int]:
        score = self.get_score(user_id)
        if score is None:
            return None
        return points_to_next_level(score.points, score.level)

    def add_points(self, user_id: str, amount: int) -> UserScore:
        require_user_id(user_id)
        require_int(amount, "amount", minimum=-MAX_POINTS, maximum=MAX_POINTS)
        score = self._apply(user_id, amount, goals=0, operation="points.add")
        log_event(
            "info",
            "points.added",
            user_id=user_id,
            event_type="points.add",
            extra={"amount": amount, "points": score.points, "level": score.level},
        )
        return score

    def record_goal_completed(self, user_id: str, xp: int = 0) -> UserScore:
        """Count one completed goal and credit its XP in the same write."""
        require_user_id(user_id)
        require_int(xp, "xp", minimum=0, maximum=MAX_POINTS)
        score = self._apply(user_id, xp, goals=1, operation="goals.complete")
        log_event(
            "info",
            "goal.completed",
            user_id=user_id,
            event_type="goals.complete",
            extra={"xp": xp, "completed_goals": score.completed_goals},
        )
        return score

    def credit_milestone(self, record: MilestoneRecord) -> Optional[UserScore]:
        """Insert the milestone gate and its bonus XP together. None when already awarded."""

        def attempt() -> Optional[UserScore]:
            current = self._store.get_score(record.user_id)
            expected = current.version if current else 0
            updated = apply_points(current, record.user_id, record.bonus_xp)
            outcome = self._store.credit_milestone(record, updated, expected)
            return self._resolve_gate(outcome)

        return run_with_cas_retry(
            attempt,
            operation="milestone.credit",
            user_id=record.user_id,
            max_attempts=self._max_attempts,
            backoff_base_seconds=self._backoff,
            sleep=self._sleep,
        )

    def credit_activity(self, credit: ActivityCredit) -> Optional[UserScore]:
        """Credit a day's base XP at most once. None when that day was already credited."""

        def attempt() -> Optional[UserScore]:
            current = self._store.get_score(credit.user_id)
            expected = current.version if current else 0
            updated = apply_points(current, credit.user_id, credit.xp)
            outcome = self._store.credit_activity(credit, updated, expected)
            return self._resolve_gate(outcome)

        return run_with_cas_retry(
            attempt,
            operation="activity.credit",
            user_id=credit.user_id,
            max_attempts=self._max_attempts,
            backoff_base_seconds=self._backoff,
            sleep=self._sleep,
        )

    # Internal helpers -------------------------------------------------
    @staticmethod
    def _resolve_gate(outcome) -> Optional[UserScore]:
        if outcome.result == GateResult.CONFLICT:
            raise ConcurrencyConflictError("Score changed during gated credit")
        if outcome.result == GateResult.ALREADY_AWARDED:
            return None
        return outcome.score

    def _apply(self, user_id: str, amount: int, *, goals: int, operation: str) -> UserScore:
        def attempt() -> UserScore:
            current = self._store.get_score(user_id)
            expected = current.version if current else 0
            updated = apply_points(current, user_id, amount, goals=goals)
            stored = self._store.compare_and_set_score(updated, expected)
            if stored is None:
                raise ConcurrencyConflictError(f"Score for {user_id} changed concurrently")
            return stored

        return run_with_cas_retry(
            attempt,
            operation=operation,
            user_id=user_id,
            max_attempts=self._max_attempts,
            backoff_base_seconds=self._backoff,
            sleep=self._sleep,
        )
