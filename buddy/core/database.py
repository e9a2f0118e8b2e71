"""
Database configuration and connection management.

This module provides:
- SQLAlchemy table definitions for the gamification store
- An explicitly constructed Database handle (engine + session factory)
- Connection pooling with bounded waits
- Test database support
"""
from typing import Optional, Iterator
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, BigInteger, String, Date, DateTime, Index, UniqueConstraint, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func
import logging
import os


# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

logger = logging.getLogger("buddy")


def get_database_url(configured: Optional[str] = None) -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return configured or os.getenv("DATABASE_URL")


class Database:
    """
    Engine and session factory for one process.

    Created at startup and disposed at shutdown by whoever owns the store;
    nothing here is cached at module level.
    """

    def __init__(self, url: str, *, timeout_seconds: float = 5.0, echo: bool = False):
        if not url:
            raise ValueError(
                "DATABASE_URL is not configured. "
                "Set DATABASE_URL in environment or .env file."
            )
        self.url = url
        self.timeout_seconds = timeout_seconds

        if url.startswith("sqlite"):
            # SQLite waits on its file lock for `timeout` seconds
            self.engine: Engine = create_engine(
                url,
                connect_args={"timeout": timeout_seconds, "check_same_thread": False},
                echo=echo,
            )
        else:
            connect_args = {}
            if url.startswith("postgresql"):
                connect_args = {
                    "connect_timeout": max(1, int(timeout_seconds)),
                    "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
                }
            self.engine = create_engine(
                url,
                connect_args=connect_args,
                pool_size=POOL_SIZE,
                max_overflow=MAX_OVERFLOW,
                pool_timeout=timeout_seconds,
                pool_recycle=POOL_RECYCLE,
                pool_pre_ping=True,
                echo=echo,  # Set to True for SQL query logging
            )

        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Context manager for database sessions.

        Usage:
            with db.session() as session:
                session.execute(...)
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all_tables(self) -> None:
        """
        Create all tables defined in metadata.

        This is idempotent - tables that already exist will not be recreated.
        """
        metadata.create_all(bind=self.engine)

    def drop_all_tables(self) -> None:
        """
        Drop all tables defined in metadata.

        WARNING: This is destructive! Only use in tests or development.
        """
        metadata.drop_all(bind=self.engine)

    def check_connection(self) -> bool:
        """
        Check if database connection is available.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(select(1))
            return True
        except Exception as e:
            logger.warning("Database connection check failed: %s", e)
            return False

    def dispose(self) -> None:
        self.engine.dispose()


# Points ledger, one row per user
user_scores = Table(
    'user_scores',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('points', BigInteger, nullable=False, server_default='0'),
    Column('level', BigInteger, nullable=False, server_default='1'),
    Column('completed_goals', Integer, nullable=False, server_default='0'),
    Column('version', Integer, nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Leaderboard scans: (points desc, user_id asc)
    Index('idx_user_scores_points_user', 'points', 'user_id'),
    Index('idx_user_scores_goals_user', 'completed_goals', 'user_id'),
)

# Streak state, one row per user
streak_states = Table(
    'streak_states',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('current_streak', Integer, nullable=False),
    Column('longest_streak', Integer, nullable=False),
    Column('last_activity_date', Date, nullable=False),
    Column('version', Integer, nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_streak_states_current_user', 'current_streak', 'user_id'),
)

# One-time streak milestones; the unique key is the award gate
milestone_records = Table(
    'milestone_records',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('threshold', Integer, nullable=False),
    Column('badge_id', String(100), nullable=False),
    Column('bonus_xp', BigInteger, nullable=False),
    Column('awarded_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'threshold', name='uq_milestone_records_user_threshold'),
)

# Base XP credited per qualifying day; the unique key is the credit gate
activity_credits = Table(
    'activity_credits',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('user_id', String(100), nullable=False, index=True),
    Column('activity_date', Date, nullable=False),
    Column('xp', BigInteger, nullable=False),
    Column('credited_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('user_id', 'activity_date', name='uq_activity_credits_user_date'),
)

# Challenge membership defines the challenge leaderboard scope
challenge_members = Table(
    'challenge_members',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('challenge_id', String(100), nullable=False),
    Column('user_id', String(100), nullable=False, index=True),
    Column('joined_at', DateTime(timezone=True), nullable=False),
    UniqueConstraint('challenge_id', 'user_id', name='uq_challenge_members_challenge_user'),
    Index('idx_challenge_members_challenge', 'challenge_id', 'user_id'),
)
