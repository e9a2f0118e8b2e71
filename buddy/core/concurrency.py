"""
Optimistic-concurrency retry loop for per-user writes.

Each attempt re-reads the user's snapshot, computes the new value, and
compare-and-sets it. A version mismatch raises ConcurrencyConflictError; the
loop backs off exponentially and gives up with UnavailableError.
"""
from __future__ import annotations

import time
from typing import Callable, TypeVar

from buddy.core.errors import ConcurrencyConflictError, UnavailableError
from buddy.core.logging import log_event

T = TypeVar("T")


def compute_backoff(attempt: int, base_seconds: float) -> float:
    """Exponential backoff: base, 2*base, 4*base, ..."""
    return base_seconds * (2 ** attempt)


def run_with_cas_retry(
    attempt: Callable[[], T],
    *,
    operation: str,
    user_id: str,
    max_attempts: int = 3,
    backoff_base_seconds: float = 0.01,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    for n in range(max_attempts):
        try:
            return attempt()
        except ConcurrencyConflictError:
            if n + 1 >= max_attempts:
                break
            delay = compute_backoff(n, backoff_base_seconds)
            log_event(
                "info",
                "cas.retry",
                user_id=user_id,
                event_type=operation,
                extra={"attempt": n + 1, "delay_s": delay},
            )
            sleep(delay)

    log_event("warning", "cas.exhausted", user_id=user_id, event_type=operation, error_code="unavailable")
    raise UnavailableError(f"{operation} for {user_id} gave up after {max_attempts} conflicting attempts")
