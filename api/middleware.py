"""
LogeTogo API - Request Context Middleware

Outermost middleware: assigns the request id, binds it to the log
context, tracks in-flight requests on the server state and stamps
X-Request-ID / X-Response-Time on the response.
"""
from __future__ import annotations

import secrets
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.lifecycle import ServerState
from observability import bind_context, clear_context, get_logger

logger = get_logger("logetogo.api.request")


def generate_request_id() -> str:
    return f"req-{int(time.time() * 1000):x}-{secrets.token_hex(4)}"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Request id, in-flight accounting and timing."""

    def __init__(self, app, state: ServerState, log_requests: bool = False):
        super().__init__(app)
        self.state = state
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or generate_request_id()
        request.state.request_id = request_id
        start_time = time.perf_counter()

        clear_context()
        bind_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        self.state.active_connections += 1
        try:
            response = await call_next(request)
        finally:
            self.state.active_connections -= 1

        duration_ms = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if self.log_requests:
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

        return response
