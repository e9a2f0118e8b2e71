"""
buddy/features/gamification/store_sql.py

SQLAlchemy-backed gamification store.

Maintains the same contract as InMemoryStore:
- Versioned compare-and-set per user row
- Unique constraints as insert-once gates, committed in the same
  transaction as the guarded score write
- Deterministic ordering for ranked scans (value desc, user_id asc)
"""

from contextlib import contextmanager
from dataclasses import replace
from datetime import timezone
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import and_, or_, select, insert, update, func
from sqlalchemy.exc import DataError, IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from buddy.core.database import (
    Database,
    user_scores,
    streak_states,
    milestone_records,
    activity_credits,
    challenge_members,
)
from buddy.core.errors import UnavailableError, ValidationError
from buddy.features.gamification.store import GateOutcome, GateResult, check_metric
from buddy.models.challenge import ChallengeMembership
from buddy.models.milestone import ActivityCredit, MilestoneRecord
from buddy.models.score import UserScore
from buddy.models.streak import StreakState


def _as_utc(value):
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlStore:
    """
    Relational gamification store.

    Operational failures (lost connection, pool wait, statement timeout)
    surface as UnavailableError.
    """

    def __init__(self, database: Database):
        self.db = database

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.db.session() as session:
                yield session
        except (OperationalError, PoolTimeoutError) as exc:
            raise UnavailableError("Gamification store unavailable") from exc
        except DataError as exc:
            raise ValidationError("Value out of range for the gamification store") from exc

    # Scores -----------------------------------------------------------
    def get_score(self, user_id: str) -> Optional[UserScore]:
        with self._session() as session:
            row = session.execute(
                select(user_scores).where(user_scores.c.user_id == user_id)
            ).first()
            if not row:
                return None
            return UserScore(
                user_id=row.user_id,
                points=row.points,
                level=row.level,
                completed_goals=row.completed_goals,
                version=row.version,
            )

    def compare_and_set_score(self, score: UserScore, expected_version: int) -> Optional[UserScore]:
        with self._session() as session:
            return self._write_score(session, score, expected_version)

    @staticmethod
    def _write_score(session: Session, score: UserScore, expected_version: int) -> Optional[UserScore]:
        new_version = expected_version + 1
        values = {
            "points": score.points,
            "level": score.level,
            "completed_goals": score.completed_goals,
            "version": new_version,
        }
        if expected_version == 0:
            try:
                session.execute(insert(user_scores).values(user_id=score.user_id, **values))
            except IntegrityError:
                # Row created concurrently
                session.rollback()
                return None
        else:
            result = session.execute(
                update(user_scores)
                .where(user_scores.c.user_id == score.user_id)
                .where(user_scores.c.version == expected_version)
                .values(updated_at=func.now(), **values)
            )
            if result.rowcount != 1:
                session.rollback()
                return None
        return replace(score, version=new_version)

    # Streaks ----------------------------------------------------------
    def get_streak(self, user_id: str) -> Optional[StreakState]:
        with self._session() as session:
            row = session.execute(
                select(streak_states).where(streak_states.c.user_id == user_id)
            ).first()
            if not row:
                return None
            return StreakState(
                user_id=row.user_id,
                current_streak=row.current_streak,
                longest_streak=row.longest_streak,
                last_activity_date=row.last_activity_date,
                version=row.version,
            )

    def compare_and_set_streak(self, streak: StreakState, expected_version: int) -> Optional[StreakState]:
        new_version = expected_version + 1
        values = {
            "current_streak": streak.current_streak,
            "longest_streak": streak.longest_streak,
            "last_activity_date": streak.last_activity_date,
            "version": new_version,
        }
        with self._session() as session:
            if expected_version == 0:
                try:
                    session.execute(insert(streak_states).values(user_id=streak.user_id, **values))
                except IntegrityError:
                    session.rollback()
                    return None
            else:
                result = session.execute(
                    update(streak_states)
                    .where(streak_states.c.user_id == streak.user_id)
                    .where(streak_states.c.version == expected_version)
                    .values(updated_at=func.now(), **values)
                )
                if result.rowcount != 1:
                    session.rollback()
                    return None
        return replace(streak, version=new_version)

    # Gates ------------------------------------------------------------
    def _credit(self, gate_stmt, score: UserScore, expected_version: int) -> GateOutcome:
        with self._session() as session:
            try:
                session.execute(gate_stmt)
            except IntegrityError:
                session.rollback()
                return GateOutcome(GateResult.ALREADY_AWARDED)

            stored = self._write_score(session, score, expected_version)
            if stored is None:
                # Drop the gate row with the failed score write
                session.rollback()
                return GateOutcome(GateResult.CONFLICT)
            return GateOutcome(GateResult.AWARDED, stored)

    def credit_milestone(self, record: MilestoneRecord, score: UserScore, expected_version: int) -> GateOutcome:
        stmt = insert(milestone_records).values(
            user_id=record.user_id,
            threshold=record.threshold,
            badge_id=record.badge_id,
            bonus_xp=record.bonus_xp,
            awarded_at=record.awarded_at,
        )
        return self._credit(stmt, score, expected_version)

    def credit_activity(self, credit: ActivityCredit, score: UserScore, expected_version: int) -> GateOutcome:
        stmt = insert(activity_credits).values(
            user_id=credit.user_id,
            activity_date=credit.activity_date,
            xp=credit.xp,
            credited_at=credit.credited_at,
        )
        return self._credit(stmt, score, expected_version)

    def list_milestones(self, user_id: str) -> List[MilestoneRecord]:
        with self._session() as session:
            rows = session.execute(
                select(milestone_records)
                .where(milestone_records.c.user_id == user_id)
                .order_by(milestone_records.c.threshold)
            ).all()
            return [
                MilestoneRecord(
                    user_id=row.user_id,
                    threshold=row.threshold,
                    badge_id=row.badge_id,
                    bonus_xp=row.bonus_xp,
                    awarded_at=_as_utc(row.awarded_at),
                )
                for row in rows
            ]

    # Challenges -------------------------------------------------------
    def add_participant(self, membership: ChallengeMembership) -> bool:
        with self._session() as session:
            try:
                session.execute(
                    insert(challenge_members).values(
                        challenge_id=membership.challenge_id,
                        user_id=membership.user_id,
                        joined_at=membership.joined_at,
                    )
                )
            except IntegrityError:
                session.rollback()
                return False
            return True

    def list_participants(self, challenge_id: str) -> List[str]:
        with self._session() as session:
            rows = session.execute(
                select(challenge_members.c.user_id)
                .where(challenge_members.c.challenge_id == challenge_id)
                .order_by(challenge_members.c.user_id)
            ).all()
            return [row.user_id for row in rows]

    # Ranking ----------------------------------------------------------
    @staticmethod
    def _metric_source(metric: str):
        check_metric(metric)
        if metric == "currentStreak":
            return streak_states, streak_states.c.current_streak
        if metric == "completedGoals":
            return user_scores, user_scores.c.completed_goals
        return user_scores, user_scores.c.points

    @staticmethod
    def _scoped(query, table, challenge_id: Optional[str]):
        if challenge_id is None:
            return query
        return query.join(
            challenge_members, challenge_members.c.user_id == table.c.user_id
        ).where(challenge_members.c.challenge_id == challenge_id)

    def count_ranked(self, metric: str, challenge_id: Optional[str] = None) -> int:
        table, _ = self._metric_source(metric)
        query = self._scoped(select(func.count()).select_from(table), table, challenge_id)
        with self._session() as session:
            return int(session.execute(query).scalar() or 0)

    def page_ranked(self, metric: str, challenge_id: Optional[str], offset: int, limit: int) -> List[Tuple[str, int]]:
        table, column = self._metric_source(metric)
        query = self._scoped(select(table.c.user_id, column), table, challenge_id)
        query = query.order_by(column.desc(), table.c.user_id.asc()).offset(offset).limit(limit)
        with self._session() as session:
            return [(row[0], int(row[1])) for row in session.execute(query).all()]

    def rank_of(self, metric: str, challenge_id: Optional[str], user_id: str) -> Optional[Tuple[int, int]]:
        table, column = self._metric_source(metric)
        mine_query = self._scoped(select(column), table, challenge_id).where(table.c.user_id == user_id)
        with self._session() as session:
            mine = session.execute(mine_query).scalar()
            if mine is None:
                return None
            ahead_query = self._scoped(select(func.count()).select_from(table), table, challenge_id).where(
                or_(column > mine, and_(column == mine, table.c.user_id < user_id))
            )
            ahead = session.execute(ahead_query).scalar() or 0
            return int(mine), int(ahead)

    def ping(self) -> bool:
        return self.db.check_connection()

    def close(self) -> None:
        self.db.dispose()
