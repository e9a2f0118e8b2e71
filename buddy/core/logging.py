"""
Structured logging for the gamification service.

One logger, "buddy". Every record carries the request_id and the caller's
user_id bound for the current request, so a streak update, the points it
credited and the HTTP line that triggered it can be joined in the logs.
Production renders one JSON object per line; other environments render a
compact human-readable line.
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional

LOGGER_NAME = "buddy"

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
user_id_ctx_var: ContextVar[Optional[str]] = ContextVar("user_id", default=None)

# Record attributes rendered when present, in output order.
STRUCTURED_FIELDS = (
    "user_id",
    "event_type",
    "error_code",
    "status",
    "path",
    "method",
    "latency_bucket",
    "details",
)

# (upper bound in ms, label); the last bucket is open-ended.
LATENCY_BUCKETS = (
    (10, "<10ms"),
    (100, "10-100ms"),
    (500, "100-500ms"),
    (1000, "500-1000ms"),
)

DETAIL_LIMIT = 500


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def get_user_id() -> Optional[str]:
    return user_id_ctx_var.get()


@contextmanager
def bind_request(request_id: str, user_id: Optional[str] = None) -> Iterator[None]:
    """Bind request_id and caller user_id to every record logged inside the block."""
    rid_token = request_id_ctx_var.set(request_id)
    uid_token = user_id_ctx_var.set(user_id)
    try:
        yield
    finally:
        user_id_ctx_var.reset(uid_token)
        request_id_ctx_var.reset(rid_token)


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for bound, label in LATENCY_BUCKETS:
        if latency_ms < bound:
            return label
    return ">=1000ms"


class RequestContextFilter(logging.Filter):
    """Fill request_id and user_id from the bound request when a record lacks them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        if getattr(record, "user_id", None) is None:
            record.user_id = get_user_id()
        return True


def _utc_timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


def _structured(record: logging.LogRecord) -> Dict[str, object]:
    return {name: getattr(record, name) for name in STRUCTURED_FIELDS if getattr(record, name, None) is not None}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": _utc_timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update(_structured(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        tags = ""
        rid = getattr(record, "request_id", None)
        if rid:
            tags += f" [rid={rid}]"
        uid = getattr(record, "user_id", None)
        if uid:
            tags += f" [user={uid}]"
        line = f"{_utc_timestamp(record)} {record.levelname} [{LOGGER_NAME}]{tags} {record.getMessage()}"
        details = getattr(record, "details", None)
        if details:
            line += " " + " ".join(f"{k}={v}" for k, v in details.items())
        return line


def configure_logging(env: str = "development") -> None:
    """JSON lines in production, pretty lines elsewhere. Safe to call repeatedly."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else PrettyFormatter())
    handler.addFilter(RequestContextFilter())

    logger.handlers = [handler]
    logger.propagate = True

    # uvicorn logs its own access lines; keep them out of ours
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False


def _truncate(value, limit: int = DETAIL_LIMIT) -> str:
    try:
        text = str(value)
    except Exception:
        return "<unserializable>"
    return text if len(text) <= limit else text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """
    Log a domain event (streak.recorded, points.added, milestone.awarded, ...).

    request_id and user_id default to the ones bound for the current request.
    Values in `extra` are stringified and truncated under `details`.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    fields: Dict[str, object] = {
        "request_id": request_id or get_request_id(),
        "user_id": user_id or get_user_id(),
    }
    if event_type:
        fields["event_type"] = event_type
    if error_code:
        fields["error_code"] = error_code
    if extra:
        fields["details"] = {k: _truncate(v) for k, v in extra.items()}

    getattr(logger, level, logger.info)(msg, extra=fields)
