"""
Consecutive-day streaks on UTC calendar days.

advance_streak is the pure transition; StreakTracker persists it with
compare-and-set so concurrent events for one user cannot lose an update.
"""
from __future__ import annotations

import time
from datetime import date
from typing import Callable, Optional, Tuple

from buddy.core.clock import Clock, SystemClock, to_utc_day
from buddy.core.concurrency import run_with_cas_retry
from buddy.core.errors import ConcurrencyConflictError, OrderingError, ValidationError
from buddy.core.logging import log_event
from buddy.core.validation import require_user_id
from buddy.features.gamification.store import GamificationStore
from buddy.models.streak import ActivityResult, StreakState


def advance_streak(state: Optional[StreakState], user_id: str, day: date) -> Tuple[StreakState, bool]:
    """
    Pure streak transition for one qualifying action on `day`.

    Returns (new_state, is_new_day). Same-day repeats return the input state
    unchanged. An action dated before the last recorded day raises OrderingError.
    """
    # First ever action
    if state is None:
        return StreakState(user_id=user_id, current_streak=1, longest_streak=1, last_activity_date=day), True

    gap_days = (day - state.last_activity_date).days
    if gap_days < 0:
        raise OrderingError(
            f"Activity on {day.isoformat()} is earlier than last recorded activity "
            f"{state.last_activity_date.isoformat()}"
        )
    if gap_days == 0:
        return state, False

    if gap_days == 1:
        current = state.current_streak + 1
    else:
        # Gap broke the streak; today starts a new one
        current = 1

    return (
        StreakState(
            user_id=user_id,
            current_streak=current,
            longest_streak=max(state.longest_streak, current),
            last_activity_date=day,
            version=state.version,
        ),
        True,
    )


class StreakTracker:
    """Deterministic, idempotent consecutive-day streak tracking (UTC days)."""

    def __init__(
        self,
        store: GamificationStore,
        *,
        clock: Optional[Clock] = None,
        max_attempts: int = 3,
        backoff_base_seconds: float = 0.01,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts
        self._backoff = backoff_base_seconds
        self._sleep = sleep

    def record_activity(self, user_id: str, activity_date: Optional[date] = None) -> ActivityResult:
        require_user_id(user_id)
        if activity_date is not None and not isinstance(activity_date, date):
            raise ValidationError("activity_date must be a date")
        day = to_utc_day(activity_date) if activity_date is not None else self._clock.today()

        def attempt() -> ActivityResult:
            current = self._store.get_streak(user_id)
            updated, is_new_day = advance_streak(current, user_id, day)
            if not is_new_day:
                return ActivityResult(streak=updated, is_new_day=False)
            expected = current.version if current else 0
            stored = self._store.compare_and_set_streak(updated, expected)
            if stored is None:
                raise ConcurrencyConflictError(f"Streak for {user_id} changed concurrently")
            return ActivityResult(streak=stored, is_new_day=True)

        try:
            result = run_with_cas_retry(
                attempt,
                operation="streak.record",
                user_id=user_id,
                max_attempts=self._max_attempts,
                backoff_base_seconds=self._backoff,
                sleep=self._sleep,
            )
        except OrderingError:
            log_event("warning", "streak.out_of_order", user_id=user_id, error_code="ordering_error", extra={"day": day.isoformat()})
            raise

        if result.is_new_day:
            log_event(
                "info",
                "streak.recorded",
                user_id=user_id,
                event_type="streak.incremented" if result.streak.current_streak > 1 else "streak.started",
                extra={
                    "day": day.isoformat(),
                    "current": result.streak.current_streak,
                    "longest": result.streak.longest_streak,
                },
            )
        return result

    def get_streak(self, user_id: str) -> Optional[StreakState]:
        return self._store.get_streak(require_user_id(user_id))
