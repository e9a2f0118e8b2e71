"""Daily-action workflow: streak, base XP, and milestone gates together."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from buddy.core.errors import OrderingError, UnavailableError
from buddy.features.gamification.store import InMemoryStore
from buddy.models.streak import StreakState


def test_first_action_credits_base_xp(services, day):
    result = services.engine.record_daily_action("u", day(0))
    assert result.is_new_day is True
    assert result.xp_awarded == 10
    assert result.milestone is None
    assert result.score.points == 10


def test_repeat_same_day_credits_nothing(services, day):
    services.engine.record_daily_action("u", day(0))
    again = services.engine.record_daily_action("u", day(0))
    assert again.is_new_day is False
    assert again.xp_awarded == 0
    assert again.score.points == 10


def test_seven_day_run_awards_milestones_once(services, day):
    results = [services.engine.record_daily_action("u", day(i)) for i in range(7)]

    assert results[2].milestone.badge_id == "streak-3-days"
    assert results[6].milestone.badge_id == "streak-7-days"
    assert results[6].xp_awarded == 10 + 50
    # 7 days * 10 + 25 + 50
    assert results[6].score.points == 145
    assert [b.threshold for b in services.engine.list_badges("u")] == [3, 7]


def test_milestone_not_regranted_on_second_run(services, day):
    for i in range(3):
        services.engine.record_daily_action("u", day(i))
    # Break the streak and build back to 3
    for i in range(10, 13):
        result = services.engine.record_daily_action("u", day(i))

    assert result.streak.current_streak == 3
    assert result.milestone is None
    assert len(services.engine.list_badges("u")) == 1


def test_retry_completes_partial_credit(store, services, day):
    """Streak advanced but the XP write never happened (e.g. crash); a retry finishes it."""
    services.tracker.record_activity("u", day(0))
    services.tracker.record_activity("u", day(1))
    services.tracker.record_activity("u", day(2))
    assert store.get_score("u") is None

    retry = services.engine.record_daily_action("u", day(2))
    assert retry.is_new_day is False
    assert retry.xp_awarded == 10 + 25
    assert retry.milestone.badge_id == "streak-3-days"

    again = services.engine.record_daily_action("u", day(2))
    assert again.xp_awarded == 0
    assert again.score.points == 35


def test_custom_and_zero_base_xp(services, day):
    assert services.engine.record_daily_action("u", day(0), base_xp=40).score.points == 40
    zero = services.engine.record_daily_action("v", day(0), base_xp=0)
    assert zero.xp_awarded == 0
    assert zero.score is None


def test_out_of_order_action_surfaces_ordering_error(services, day):
    services.engine.record_daily_action("u", day(5))
    with pytest.raises(OrderingError):
        services.engine.record_daily_action("u", day(4))
    assert services.ledger.get_score("u").points == 10


def test_concurrent_milestone_awarded_once(services):
    """Two workers both observe current_streak == 7 and race to award it."""
    barrier = threading.Barrier(2)

    def award():
        barrier.wait()
        return services.engine.award_streak_milestone("racer", 7)

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: award(), range(2)))

    awarded = [r for r in results if r is not None]
    assert len(awarded) == 1
    assert [b.threshold for b in services.engine.list_badges("racer")] == [7]
    assert services.ledger.get_score("racer").points == 50


def test_concurrent_duplicate_daily_events(services, store, day):
    store.compare_and_set_streak(
        StreakState(user_id="dup", current_streak=6, longest_streak=6, last_activity_date=day(5)), 0
    )
    barrier = threading.Barrier(4)

    def act():
        barrier.wait()
        return services.engine.record_daily_action("dup", day(6))

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(lambda _: act(), range(4)))

    assert sum(1 for r in results if r.is_new_day) == 1
    assert sum(r.xp_awarded for r in results) == 10 + 50
    assert services.ledger.get_score("dup").points == 60
    assert len(services.engine.list_badges("dup")) == 1


def test_concurrent_point_awards_are_not_lost(test_settings, clock):
    from buddy.features.gamification.container import build_services
    from buddy.features.leaderboard.cache import LeaderboardCache

    test_settings.CAS_MAX_ATTEMPTS = 50
    svc = build_services(test_settings, store=InMemoryStore(), clock=clock, cache=LeaderboardCache(0), sleep=lambda _: None)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: svc.ledger.add_points("busy", 1), range(200)))

    assert svc.ledger.get_score("busy").points == 200
    assert svc.ledger.get_score("busy").level == 3


def test_store_lock_timeout_is_unavailable(day):
    store = InMemoryStore(timeout_seconds=0.05)
    lock = store._lock_for("stuck")
    lock.acquire()
    try:
        from buddy.features.scoring.ledger import ScoreLedger

        with pytest.raises(UnavailableError):
            ScoreLedger(store, sleep=lambda _: None).add_points("stuck", 1)
    finally:
        lock.release()


def test_summary_zero_state(services):
    summary = services.engine.get_summary("new-user")
    assert summary.points == 0
    assert summary.level == 1
    assert summary.points_to_next_level == 100
    assert summary.current_streak == 0
    assert summary.last_activity_date is None
    assert summary.next_milestone.threshold == 3
    assert summary.badges == []


def test_summary_after_activity(services, day):
    for i in range(3):
        services.engine.record_daily_action("u", day(i))
    summary = services.engine.get_summary("u")
    assert summary.points == 55
    assert summary.points_to_next_level == 45
    assert summary.current_streak == 3
    assert summary.next_milestone.threshold == 7
    assert [b.badge_id for b in summary.badges] == ["streak-3-days"]
