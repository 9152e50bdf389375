"""
Request logging for the Arena Scheduler API.

Every request gets an id (the client's X-Request-ID when sent) and one
completion line naming its outcome: "ok", or the scheduling error kind the
exception handlers recorded on ``request.state.outcome``.
"""

import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


def record_outcome(request: Request, kind: str) -> None:
    """Attach a rejection kind to the request for the completion log line."""
    request.state.outcome = kind


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag requests with an id and log method, path, status, outcome and timing."""

    async def dispatch(self, request: Request, call_next) -> Response:
        req_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        request.state.request_id = req_id
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[{req_id}] {request.method} {request.url.path} crashed")
            raise

        elapsed = time.perf_counter() - started
        outcome = getattr(
            request.state, "outcome", "ok" if response.status_code < 400 else "http_error"
        )
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            f"[{req_id}] {request.method} {request.url.path} -> "
            f"{response.status_code} {outcome} ({elapsed * 1000:.1f}ms)",
            extra={"request_id": req_id, "outcome": outcome, "status_code": response.status_code},
        )

        response.headers["X-Request-ID"] = req_id
        response.headers["X-Response-Time"] = f"{elapsed:.3f}s"
        return response
