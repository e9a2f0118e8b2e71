"""Per-request correlation: request id and caller user id."""

import logging
import time
from typing import Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from buddy.core.logging import LOGGER_NAME, bind_request, latency_bucket_ms

REQUEST_ID_HEADER = "x-request-id"
USER_ID_HEADER = "x-user-id"


def header_user_id(request: Request) -> Optional[str]:
    """Caller user id from the identity header, or None when absent or blank."""
    value = request.headers.get(USER_ID_HEADER)
    return value.strip() if value and value.strip() else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Bind the request id (echoed from x-request-id or generated) and the
    caller's x-user-id to request.state and to every log record, then log one
    request.complete line per request.
    """

    async def dispatch(self, request, call_next):
        rid = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        uid = header_user_id(request)
        request.state.request_id = rid
        request.state.user_id = uid

        started = time.perf_counter()
        with bind_request(rid, uid):
            response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[REQUEST_ID_HEADER] = rid
        logging.getLogger(LOGGER_NAME).info(
            "request.complete",
            extra={
                "request_id": rid,
                "user_id": uid,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_bucket": latency_bucket_ms(elapsed_ms),
            },
        )
        return response
