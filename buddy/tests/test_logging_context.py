"""Structured log output and request_id propagation."""

import json
import logging

from buddy.core.logging import (
    JsonFormatter,
    PrettyFormatter,
    get_request_id,
    latency_bucket_ms,
    log_event,
    request_id_ctx_var,
)


def _record(**attrs):
    record = logging.LogRecord("buddy", logging.INFO, __file__, 1, "streak.recorded", None, None)
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_structured_fields():
    line = JsonFormatter().format(
        _record(request_id="rid-1", user_id="u1", event_type="streak", details={"current_streak": "3"})
    )
    payload = json.loads(line)
    assert payload["message"] == "streak.recorded"
    assert payload["request_id"] == "rid-1"
    assert payload["user_id"] == "u1"
    assert payload["details"] == {"current_streak": "3"}
    assert "error_code" not in payload


def test_pretty_formatter_tags_request_and_user():
    line = PrettyFormatter().format(_record(request_id="rid-2", user_id="u2"))
    assert "[rid=rid-2]" in line
    assert "[user=u2]" in line


def test_log_event_uses_context_request_id(caplog):
    token = request_id_ctx_var.set("ctx-rid")
    try:
        assert get_request_id() == "ctx-rid"
        with caplog.at_level(logging.INFO, logger="buddy"):
            log_event("info", "points.added", user_id="u", extra={"amount": 5, "note": "x" * 600})
    finally:
        request_id_ctx_var.reset(token)

    record = next(r for r in caplog.records if r.getMessage() == "points.added")
    assert record.request_id == "ctx-rid"
    assert record.user_id == "u"
    assert record.details["amount"] == "5"
    assert record.details["note"].endswith("...<truncated>")
    assert get_request_id() is None


def test_latency_buckets():
    assert latency_bucket_ms(None) == "unknown"
    assert latency_bucket_ms(5) == "<10ms"
    assert latency_bucket_ms(250) == "100-500ms"
    assert latency_bucket_ms(5000) == ">=1000ms"


def test_request_id_in_error_response(client):
    response = client.post("/v1/streaks/activity", json={"user_id": ""})
    rid = response.headers.get("x-request-id")
    assert response.status_code == 400
    assert rid
    assert response.json()["error"]["request_id"] == rid


def test_bound_user_flows_into_domain_events(caplog):
    from buddy.core.logging import bind_request

    with caplog.at_level(logging.INFO, logger="buddy"):
        with bind_request("rid-3", "carol"):
            log_event("info", "milestone.awarded", extra={"badge_id": "streak-7-days"})
        log_event("info", "after.request")

    awarded = next(r for r in caplog.records if r.getMessage() == "milestone.awarded")
    after = next(r for r in caplog.records if r.getMessage() == "after.request")
    assert (awarded.request_id, awarded.user_id) == ("rid-3", "carol")
    assert after.request_id is None
    assert after.user_id is None

    line = PrettyFormatter().format(awarded)
    assert "[user=carol]" in line
    assert "badge_id=streak-7-days" in line
