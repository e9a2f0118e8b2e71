"""
buddy/features/gamification/store.py

Persistence contract for the gamification engine plus the in-memory
implementation used in development and tests.

Both implementations provide:
- Per-user get / compare-and-set with a version counter
- Insert-once gates (milestones, daily credits) applied atomically with the
  score write they guard
- Sorted, paginated scans over a numeric metric
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterator, List, Optional, Protocol, Set, Tuple

from buddy.core.errors import UnavailableError, ValidationError
from buddy.models.challenge import ChallengeMembership
from buddy.models.leaderboard import LEADERBOARD_METRICS
from buddy.models.milestone import ActivityCredit, MilestoneRecord
from buddy.models.score import UserScore
from buddy.models.streak import StreakState


class GateResult(str, Enum):
    AWARDED = "awarded"
    ALREADY_AWARDED = "already_awarded"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class GateOutcome:
    result: GateResult
    score: Optional[UserScore] = None


class GamificationStore(Protocol):
    def get_score(self, user_id: str) -> Optional[UserScore]: ...

    def compare_and_set_score(self, score: UserScore, expected_version: int) -> Optional[UserScore]: ...

    def get_streak(self, user_id: str) -> Optional[StreakState]: ...

    def compare_and_set_streak(self, streak: StreakState, expected_version: int) -> Optional[StreakState]: ...

    def credit_milestone(self, record: MilestoneRecord, score: UserScore, expected_version: int) -> GateOutcome: ...

    def credit_activity(self, credit: ActivityCredit, score: UserScore, expected_version: int) -> GateOutcome: ...

    def list_milestones(self, user_id: str) -> List[MilestoneRecord]: ...

    def add_participant(self, membership: ChallengeMembership) -> bool: ...

    def list_participants(self, challenge_id: str) -> List[str]: ...

    def count_ranked(self, metric: str, challenge_id: Optional[str] = None) -> int: ...

    def page_ranked(self, metric: str, challenge_id: Optional[str], offset: int, limit: int) -> List[Tuple[str, int]]: ...

    def rank_of(self, metric: str, challenge_id: Optional[str], user_id: str) -> Optional[Tuple[int, int]]: ...

    def ping(self) -> bool: ...

    def close(self) -> None: ...


def check_metric(metric: str) -> str:
    if metric not in LEADERBOARD_METRICS:
        raise ValidationError(f"Invalid metric type. Must be one of: {', '.join(LEADERBOARD_METRICS)}")
    return metric


class InMemoryStore:
    """
    Thread-safe in-process store.

    Writes for one user are serialized by that user's lock; different users
    never share a lock. Lock waits are bounded by timeout_seconds.
    """

    def __init__(self, timeout_seconds: float = 5.0):
        self._timeout = timeout_seconds
        self._registry_lock = threading.Lock()
        self._user_locks: Dict[str, threading.Lock] = {}
        self._scores: Dict[str, UserScore] = {}
        self._streaks: Dict[str, StreakState] = {}
        self._milestones: Dict[Tuple[str, int], MilestoneRecord] = {}
        self._credits: Dict[Tuple[str, object], ActivityCredit] = {}
        self._members: Dict[str, Set[str]] = {}

    # Locking ----------------------------------------------------------
    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._user_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._user_locks[key] = lock
            return lock

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        lock = self._lock_for(key)
        if not lock.acquire(timeout=self._timeout):
            raise UnavailableError(f"Timed out waiting for store lock on {key}")
        try:
            yield
        finally:
            lock.release()

    # Scores -----------------------------------------------------------
    def get_score(self, user_id: str) -> Optional[UserScore]:
        return self._scores.get(user_id)

    def compare_and_set_score(self, score: UserScore, expected_version: int) -> Optional[UserScore]:
        with self._locked(score.user_id):
            return self._write_score(score, expected_version)

    def _write_score(self, score: UserScore, expected_version: int) -> Optional[UserScore]:
        current = self._scores.get(score.user_id)
        current_version = current.version if current else 0
        if current_version != expected_version:
            return None
        stored = replace(score, version=expected_version + 1)
        self._scores[score.user_id] = stored
        return stored

    # Streaks ----------------------------------------------------------
    def get_streak(self, user_id: str) -> Optional[StreakState]:
        return self._streaks.get(user_id)

    def compare_and_set_streak(self, streak: StreakState, expected_version: int) -> Optional[StreakState]:
        with self._locked(f"streak:{streak.user_id}"):
            current = self._streaks.get(streak.user_id)
            current_version = current.version if current else 0
            if current_version != expected_version:
                return None
            stored = replace(streak, version=expected_version + 1)
            self._streaks[streak.user_id] = stored
            return stored

    # Gates ------------------------------------------------------------
    def credit_milestone(self, record: MilestoneRecord, score: UserScore, expected_version: int) -> GateOutcome:
        key = (record.user_id, record.threshold)
        with self._locked(record.user_id):
            if key in self._milestones:
                return GateOutcome(GateResult.ALREADY_AWARDED)
            stored = self._write_score(score, expected_version)
            if stored is None:
                return GateOutcome(GateResult.CONFLICT)
            self._milestones[key] = record
            return GateOutcome(GateResult.AWARDED, stored)

    def credit_activity(self, credit: ActivityCredit, score: UserScore, expected_version: int) -> GateOutcome:
        key = (credit.user_id, credit.activity_date)
        with self._locked(credit.user_id):
            if key in self._credits:
                return GateOutcome(GateResult.ALREADY_AWARDED)
            stored = self._write_score(score, expected_version)
            if stored is None:
                return GateOutcome(GateResult.CONFLICT)
            self._credits[key] = credit
            return GateOutcome(GateResult.AWARDED, stored)

    def list_milestones(self, user_id: str) -> List[MilestoneRecord]:
        records = [r for (uid, _), r in list(self._milestones.items()) if uid == user_id]
        return sorted(records, key=lambda r: r.threshold)

    # Challenges -------------------------------------------------------
    def add_participant(self, membership: ChallengeMembership) -> bool:
        with self._locked(f"challenge:{membership.challenge_id}"):
            members = self._members.setdefault(membership.challenge_id, set())
            if membership.user_id in members:
                return False
            members.add(membership.user_id)
            return True

    def list_participants(self, challenge_id: str) -> List[str]:
        return sorted(self._members.get(challenge_id, set()))

    # Ranking ----------------------------------------------------------
    def _metric_values(self, metric: str, challenge_id: Optional[str]) -> List[Tuple[str, int]]:
        check_metric(metric)
        if metric == "currentStreak":
            rows = [(s.user_id, s.current_streak) for s in list(self._streaks.values())]
        elif metric == "completedGoals":
            rows = [(s.user_id, s.completed_goals) for s in list(self._scores.values())]
        else:
            rows = [(s.user_id, s.points) for s in list(self._scores.values())]
        if challenge_id is not None:
            members = set(self._members.get(challenge_id, set()))
            rows = [row for row in rows if row[0] in members]
        return rows

    def count_ranked(self, metric: str, challenge_id: Optional[str] = None) -> int:
        return len(self._metric_values(metric, challenge_id))

    def page_ranked(self, metric: str, challenge_id: Optional[str], offset: int, limit: int) -> List[Tuple[str, int]]:
        rows = self._metric_values(metric, challenge_id)
        rows.sort(key=lambda row: (-row[1], row[0]))
        return rows[offset:offset + limit]

    def rank_of(self, metric: str, challenge_id: Optional[str], user_id: str) -> Optional[Tuple[int, int]]:
        """(value, users strictly ahead) for a ranked user, or None when unranked."""
        rows = self._metric_values(metric, challenge_id)
        mine = next((value for uid, value in rows if uid == user_id), None)
        if mine is None:
            return None
        ahead = sum(1 for uid, value in rows if value > mine or (value == mine and uid < user_id))
        return mine, ahead

    def ping(self) -> bool:
        return True

    def close(self) -> None:
        return None


def build_store(settings_obj) -> GamificationStore:
    """
    Construct the store for this process.

    - SqlStore when DATABASE_URL (or TEST_DATABASE_URL) is configured
    - InMemoryStore otherwise

    The caller owns the returned instance and must close() it at shutdown.
    """
    from buddy.core.database import get_database_url

    url = get_database_url(getattr(settings_obj, "DATABASE_URL", None))
    timeout = getattr(settings_obj, "STORE_TIMEOUT_SECONDS", 5.0)
    if url:
        from buddy.core.database import Database
        from buddy.features.gamification.store_sql import SqlStore

        database = Database(url, timeout_seconds=timeout)
        database.create_all_tables()
        return SqlStore(database)

    return InMemoryStore(timeout_seconds=timeout)
