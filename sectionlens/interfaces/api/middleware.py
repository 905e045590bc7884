"""
API Middleware - Query tracing, error mapping and rate limiting.

Provides:
- Request ID and latency on every response, with the relaxation stage and
  result count of content queries in the access log
- SectionLensError to HTTP status mapping
- Per-client query quota on /api/ routes
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from sectionlens.config.errors import ErrorCode, SectionLensError
from sectionlens.domains.retrieval import RelaxationStage

logger = logging.getLogger(__name__)

STAGE_HEADER = "X-Relaxation-Stage"
COUNT_HEADER = "X-Result-Count"


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def _error_body(code: ErrorCode, message: str, details: dict, request_id: str) -> dict:
    return {
        "error": {"code": code.value, "message": message, "details": details},
        "request_id": request_id,
    }


class QueryTraceMiddleware(BaseHTTPMiddleware):
    """Tag requests with an ID and log latency, relaxation stage and result count."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = f"{duration_ms:.2f}"

        stage = response.headers.get(STAGE_HEADER)
        if stage is None:
            logger.info(
                "%s %s status=%d latency_ms=%.2f request_id=%s",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                request_id,
            )
        else:
            logger.info(
                "%s %s status=%d stage=%s results=%s latency_ms=%.2f request_id=%s",
                request.method,
                request.url.path,
                response.status_code,
                stage,
                response.headers.get(COUNT_HEADER, "?"),
                duration_ms,
                request_id,
            )
            if stage == RelaxationStage.EMPTY.value:
                logger.warning("Query exhausted relaxation with no results request_id=%s", request_id)

        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Convert SectionLensError exceptions to structured JSON responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except SectionLensError as e:
            request_id = _request_id(request)
            status_code = _error_code_to_status(e.code)
            log = logger.warning if status_code < 500 else logger.error
            log("%s on %s: %s request_id=%s", e.code.value, request.url.path, e.message, request_id)
            headers = {"Retry-After": "30"} if e.code == ErrorCode.UPSTREAM_THROTTLED else None
            return JSONResponse(
                status_code=status_code,
                content={"error": e.to_dict(), "request_id": request_id},
                headers=headers,
            )
        except Exception:
            request_id = _request_id(request)
            logger.exception("Unhandled error on %s request_id=%s", request.url.path, request_id)
            return JSONResponse(
                status_code=500,
                content=_error_body(ErrorCode.INTERNAL_ERROR, "Internal server error", {}, request_id),
            )


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed one-minute query quota per client IP on /api/ routes.

    Only the current window is kept; counters from earlier windows are
    discarded when the minute rolls over.
    """

    def __init__(
        self,
        app: ASGIApp,
        requests_per_minute: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.clock = clock
        self.window = -1
        self.remaining: dict[str, int] = {}

    def take(self, client: str) -> int | None:
        """Consume one request for the client; None when the quota is spent."""
        window = int(self.clock() // 60)
        if window != self.window:
            if self.remaining:
                logger.debug("Rate limit window %d: dropping %d clients", window, len(self.remaining))
            self.window = window
            self.remaining = {}

        left = self.remaining.get(client, self.requests_per_minute)
        if left <= 0:
            return None
        self.remaining[client] = left - 1
        return left - 1

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not request.url.path.startswith("/api/"):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        left = self.take(client_ip)
        if left is None:
            request_id = _request_id(request)
            logger.warning("Rate limit exceeded for %s request_id=%s", client_ip, request_id)
            return JSONResponse(
                status_code=429,
                content=_error_body(
                    ErrorCode.SECURITY_RATE_LIMITED,
                    "Too many requests. Please retry after 60 seconds.",
                    {"retry_after": 60},
                    request_id,
                ),
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(left)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        return response


def _error_code_to_status(code: ErrorCode) -> int:
    """Map error codes to HTTP status codes."""
    mapping = {
        ErrorCode.INVALID_REQUEST: 400,
        ErrorCode.SECURITY_RATE_LIMITED: 429,
        ErrorCode.UPSTREAM_UNAVAILABLE: 503,
        ErrorCode.UPSTREAM_THROTTLED: 503,
        ErrorCode.LLM_INVALID_RESPONSE: 502,
        ErrorCode.STORAGE_CONNECTION_FAILED: 503,
    }
    return mapping.get(code, 500)
