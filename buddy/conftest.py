# buddy/conftest.py
import os
import pytest
from datetime import date, datetime, timezone
from fastapi.testclient import TestClient

from buddy.core.config import Settings
from buddy.features.gamification.container import build_services
from buddy.features.gamification.store import InMemoryStore
from buddy.features.leaderboard.cache import LeaderboardCache
from buddy.tests.mocks import FixedClock


@pytest.fixture
def test_settings():
    """Settings isolated from the developer's .env and environment."""
    return Settings(
        _env_file=None,
        ENV="test",
        DATABASE_URL=None,
        REDIS_URL=None,
        CAS_MAX_ATTEMPTS=3,
        CAS_BACKOFF_BASE_SECONDS=0.0,
        DAILY_ACTION_XP=10,
        GOAL_COMPLETION_XP=25,
        LEADERBOARD_CACHE_TTL_SECONDS=0,
    )


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryStore(timeout_seconds=1.0)


@pytest.fixture
def services(test_settings, store, clock):
    svc = build_services(
        test_settings,
        store=store,
        clock=clock,
        cache=LeaderboardCache(0),
        sleep=lambda _: None,
    )
    yield svc
    svc.close()


@pytest.fixture
def sql_store(tmp_path):
    """
    SqlStore on a throwaway SQLite file, or on TEST_DATABASE_URL when set.
    """
    from buddy.core.database import Database
    from buddy.features.gamification.store_sql import SqlStore

    url = os.getenv("TEST_DATABASE_URL") or f"sqlite:///{tmp_path / 'buddy-test.db'}"
    database = Database(url, timeout_seconds=2.0)
    database.drop_all_tables()
    database.create_all_tables()
    sql = SqlStore(database)
    yield sql
    database.drop_all_tables()
    sql.close()


@pytest.fixture
def client(test_settings, services):
    from buddy.main import create_app

    app = create_app(test_settings, services=services)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def day():
    """Build UTC calendar days relative to 2024-01-01."""
    start = date(2024, 1, 1)

    def _day(offset: int) -> date:
        return date.fromordinal(start.toordinal() + offset)

    return _day
