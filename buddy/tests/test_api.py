"""HTTP surface: boundary validation, zero-state views, and normalized errors."""

import logging


def test_add_points_and_read_back(client):
    resp = client.post("/v1/points", json={"user_id": "u", "amount": 120})
    assert resp.status_code == 200
    body = resp.json()
    assert body["points"] == 120
    assert body["level"] == 2
    assert body["points_to_next_level"] == 80

    resp = client.post("/v1/points", json={"user_id": "u", "amount": -200})
    assert resp.json()["points"] == 0
    assert resp.json()["level"] == 1


def test_unknown_user_gets_zero_state(client):
    body = client.get("/v1/points/ghost").json()
    assert body == {
        "user_id": "ghost",
        "points": 0,
        "level": 1,
        "points_to_next_level": 100,
        "completed_goals": 0,
        "exists": False,
    }
    assert client.get("/v1/points/ghost/next-level").json()["points_to_next_level"] == 100
    assert client.get("/v1/streaks/ghost").json()["current_streak"] == 0


def test_non_integer_amount_is_validation_error(client):
    resp = client.post("/v1/points", json={"user_id": "u", "amount": "ten"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == resp.headers["x-request-id"]


def test_activity_flow_and_milestone(client):
    for d in ["2024-01-01", "2024-01-02", "2024-01-03"]:
        resp = client.post("/v1/streaks/activity", json={"user_id": "u", "activity_date": d})
        assert resp.status_code == 200
    body = resp.json()
    assert body["streak"]["current_streak"] == 3
    assert body["milestone"]["badge_id"] == "streak-3-days"
    assert body["points"] == 55

    badges = client.get("/v1/badges/u").json()
    assert [b["badge_id"] for b in badges] == ["streak-3-days"]


def test_activity_defaults_to_clock_day(client, clock):
    body = client.post("/v1/streaks/activity", json={"user_id": "u"}).json()
    assert body["streak"]["last_activity_date"] == clock.today().isoformat()


def test_out_of_order_activity_is_409(client):
    client.post("/v1/streaks/activity", json={"user_id": "u", "activity_date": "2024-01-05"})
    resp = client.post("/v1/streaks/activity", json={"user_id": "u", "activity_date": "2024-01-04"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "ordering_error"


def test_unavailable_is_503_with_retry_after(client, services):
    from buddy.core.errors import UnavailableError

    def boom(*args, **kwargs):
        raise UnavailableError("store timed out")

    services.ledger.add_points = boom
    resp = client.post("/v1/points", json={"user_id": "u", "amount": 1})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "unavailable"
    assert resp.headers["retry-after"] == "1"


def test_milestone_check_endpoint(client):
    assert client.get("/v1/milestones/check", params={"current_streak": 7}).json() == {
        "badge_id": "streak-7-days",
        "bonus_xp": 50,
    }
    assert client.get("/v1/milestones/check", params={"current_streak": 8}).json() == {
        "badge_id": None,
        "bonus_xp": 0,
    }


def test_leaderboard_endpoint(client):
    for i in range(25):
        client.post("/v1/points", json={"user_id": f"user-{i:02d}", "amount": 10})

    page1 = client.get("/v1/leaderboard", params={"metric": "points", "page": 1, "page_size": 10}).json()
    assert page1["total_pages"] == 3
    assert page1["total_users"] == 25
    assert page1["entries"][0] == {"user_id": "user-00", "value": 10, "rank": 1}

    page4 = client.get("/v1/leaderboard", params={"metric": "points", "page": 4, "page_size": 10}).json()
    assert page4["entries"] == []


def test_leaderboard_rejects_bad_params(client):
    for params in [{"metric": "karma"}, {"page": 0}, {"page_size": -1}, {"page": "x"}]:
        resp = client.get("/v1/leaderboard", params=params)
        assert resp.status_code == 400, params
        assert resp.json()["error"]["code"] == "validation_error"


def test_challenge_scoped_leaderboard(client):
    client.post("/v1/points", json={"user_id": "a", "amount": 10})
    client.post("/v1/points", json={"user_id": "b", "amount": 20})
    assert client.post("/v1/challenges/ch-1/members", json={"user_id": "a"}).json()["joined"] is True
    assert client.post("/v1/challenges/ch-1/members", json={"user_id": "a"}).json()["joined"] is False

    body = client.get("/v1/leaderboard", params={"challenge_id": "ch-1"}).json()
    assert [e["user_id"] for e in body["entries"]] == ["a"]
    assert client.get("/v1/challenges/ch-1/members").json()["members"] == ["a"]


def test_goal_completion_endpoint(client):
    body = client.post("/v1/goals/completed", json={"user_id": "u"}).json()
    assert body["completed_goals"] == 1
    assert body["points"] == 25


def test_summary_endpoint(client):
    body = client.get("/v1/gamification/new/summary").json()
    assert body["level"] == 1
    assert body["next_milestone"]["threshold"] == 3
    assert body["badges"] == []


def test_health_endpoints(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    ready = client.get("/readyz")
    assert ready.status_code == 200
    assert ready.json()["store"] == "InMemoryStore"


def test_request_id_in_response_and_logs(client, caplog):
    with caplog.at_level(logging.INFO, logger="buddy"):
        response = client.get("/healthz", headers={"X-Request-Id": "rid-123"})
    assert response.headers.get("x-request-id") == "rid-123"
    records = [r for r in caplog.records if getattr(r, "request_id", None) == "rid-123"]
    assert records, "Expected logs to contain request_id from response"


def test_user_id_header_is_used_when_body_omits_it(client):
    resp = client.post("/v1/points", json={"amount": 30}, headers={"X-User-Id": "hdr-user"})
    assert resp.status_code == 200
    assert resp.json()["user_id"] == "hdr-user"

    body = client.post("/v1/streaks/activity", json={"activity_date": "2024-01-01"}, headers={"X-User-Id": "hdr-user"}).json()
    assert body["streak"]["user_id"] == "hdr-user"
    assert client.post("/v1/goals/completed", json={}, headers={"X-User-Id": "hdr-user"}).json()["completed_goals"] == 1

    # Body wins over the header
    resp = client.post("/v1/points", json={"user_id": "body-user", "amount": 1}, headers={"X-User-Id": "hdr-user"})
    assert resp.json()["user_id"] == "body-user"


def test_missing_user_id_is_validation_error(client):
    resp = client.post("/v1/points", json={"amount": 5})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_oversized_amount_is_400_not_500(client):
    resp = client.post("/v1/points", json={"user_id": "big", "amount": 2**63})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"
    assert client.get("/v1/points/big").json()["exists"] is False


def test_position_endpoint(client):
    for uid, pts in [("a", 50), ("b", 80)]:
        client.post("/v1/points", json={"user_id": uid, "amount": pts})

    assert client.get("/v1/leaderboard/a/position").json() == {
        "user_id": "a",
        "metric": "points",
        "challenge_id": None,
        "ranked": True,
        "rank": 2,
        "value": 50,
    }
    ghost = client.get("/v1/leaderboard/ghost/position").json()
    assert ghost["ranked"] is False
    assert ghost["rank"] is None
    assert client.get("/v1/leaderboard/a/position", params={"metric": "karma"}).status_code == 400


def test_joining_a_challenge_refreshes_its_cached_board(test_settings, store, clock):
    from fastapi.testclient import TestClient

    from buddy.features.gamification.container import build_services
    from buddy.features.leaderboard.cache import LeaderboardCache
    from buddy.main import create_app

    services = build_services(test_settings, store=store, clock=clock, cache=LeaderboardCache(300), sleep=lambda _: None)
    with TestClient(create_app(test_settings, services=services)) as cached_client:
        cached_client.post("/v1/points", json={"user_id": "a", "amount": 10})
        cached_client.post("/v1/points", json={"user_id": "b", "amount": 20})
        cached_client.post("/v1/challenges/ch/members", json={"user_id": "a"})
        assert [e["user_id"] for e in cached_client.get("/v1/leaderboard", params={"challenge_id": "ch"}).json()["entries"]] == ["a"]

        cached_client.post("/v1/challenges/ch/members", headers={"X-User-Id": "b"}, json={})
        entries = cached_client.get("/v1/leaderboard", params={"challenge_id": "ch"}).json()["entries"]
        assert [e["user_id"] for e in entries] == ["b", "a"]

        # Global pages stay cached until dropped explicitly
        cached_client.get("/v1/leaderboard")
        cached_client.post("/v1/points", json={"user_id": "c", "amount": 30})
        assert cached_client.get("/v1/leaderboard").json()["total_users"] == 2
        assert cached_client.delete("/v1/leaderboard/cache").json()["removed"] >= 1
        assert cached_client.get("/v1/leaderboard").json()["total_users"] == 3
