"""
LogeTogo API - Rate Limiting Module

Per-client fixed-window rate limiting:
- Client key from X-Forwarded-For, then X-Real-IP, then the peer address
- Health-check paths exempt so uptime monitors are never throttled
- Structured 429 payload with retry metadata
- Rate-limit headers on every response the limiter consulted

State is an in-memory mapping owned by one process; a multi-process
deployment counts each worker separately.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware

from observability import get_logger

if TYPE_CHECKING:
    from config import DeploymentMode

tracer = trace.get_tracer(__name__)
logger = get_logger("logetogo.security.rate_limit")

HEALTH_CHECK_PATHS: FrozenSet[str] = frozenset({"/health", "/api/system/health"})

# Expired windows are swept once the map grows past this size
SWEEP_THRESHOLD = 10_000


def client_key(request: Request) -> str:
    """Resolve the client key; the first non-empty source wins."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def skip_health_checks(request: Request) -> bool:
    return request.url.path in HEALTH_CHECK_PATHS


@dataclass
class RateLimitConfig:
    """Rate limit configuration."""

    max_requests: int = 100
    window_seconds: int = 60
    key_fn: Callable[[Request], str] = client_key
    skip_fn: Callable[[Request], bool] = skip_health_checks
    include_headers: bool = True

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

    @classmethod
    def for_mode(
        cls,
        mode: "DeploymentMode",
        max_requests: Optional[int] = None,
        window_seconds: int = 60,
    ) -> "RateLimitConfig":
        """1000 requests per window outside production, 100 in production."""
        default_max = 100 if mode.is_production else 1000
        if max_requests is None:
            max_requests = default_max
        return cls(max_requests=max_requests, window_seconds=window_seconds)


@dataclass
class RateLimitWindow:
    """Bookkeeping for one client key within the current window."""

    window_start: float
    limit: int
    window_seconds: int
    count: int = 0

    @property
    def reset_at(self) -> float:
        return self.window_start + self.window_seconds

    def expired(self, now: float) -> bool:
        return now >= self.reset_at


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of counting one request against its window."""

    allowed: bool
    key: str
    limit: int
    remaining: int
    reset_at: float
    retry_after: int

    @property
    def reset_time(self) -> str:
        return datetime.fromtimestamp(self.reset_at, timezone.utc).isoformat()

    def headers(self) -> Dict[str, str]:
        return {
            "x-ratelimit-limit": str(self.limit),
            "x-ratelimit-remaining": str(self.remaining),
            "x-ratelimit-reset": str(self.retry_after),
            "retry-after": str(self.retry_after),
        }

    def payload(self) -> Dict[str, Any]:
        """Body of the 429 response."""
        return {
            "code": 429,
            "error": "Too Many Requests",
            "message": (
                f"Rate limit exceeded, retry in {self.retry_after} seconds"
            ),
            "retryAfter": self.retry_after,
            "limit": self.limit,
            "remaining": self.remaining,
            "resetTime": self.reset_time,
        }


class RateLimiter:
    """
    Fixed-window rate limiter.

    Mutations happen without awaiting, so concurrent requests on the
    event loop never interleave inside hit().
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._windows: Dict[str, RateLimitWindow] = {}

    def __len__(self) -> int:
        return len(self._windows)

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for key and decide whether it may proceed."""
        now = self._clock()
        window = self._windows.get(key)
        if window is None or window.expired(now):
            if len(self._windows) >= SWEEP_THRESHOLD:
                self._sweep(now)
            window = RateLimitWindow(
                window_start=now,
                limit=self.config.max_requests,
                window_seconds=self.config.window_seconds,
            )
            self._windows[key] = window

        window.count += 1
        allowed = window.count <= window.limit
        return RateLimitDecision(
            allowed=allowed,
            key=key,
            limit=window.limit,
            remaining=max(0, window.limit - window.count),
            reset_at=window.reset_at,
            retry_after=max(1, round(window.reset_at - now)),
        )

    def check(self, request: Request) -> Optional[RateLimitDecision]:
        """Decision for a request, or None when the request is exempt."""
        if self.config.skip_fn(request):
            return None
        return self.hit(self.config.key_fn(request))

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def _sweep(self, now: float) -> None:
        expired = [k for k, w in self._windows.items() if w.expired(now)]
        for k in expired:
            del self._windows[k]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects over-limit clients before routing or authentication."""

    def __init__(self, app, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next) -> Response:
        decision = self.limiter.check(request)
        if decision is None:
            return await call_next(request)

        if not decision.allowed:
            with tracer.start_as_current_span("ratelimit.exceeded") as span:
                span.set_attribute("ratelimit.key", decision.key)
                span.set_attribute("ratelimit.retry_after", decision.retry_after)
            logger.warning(
                "Rate limit exceeded",
                ip=decision.key,
                method=request.method,
                url=str(request.url),
                limit=decision.limit,
            )
            response: Response = JSONResponse(status_code=429, content=decision.payload())
        else:
            response = await call_next(request)

        if self.limiter.config.include_headers:
            response.headers.update(decision.headers())
        return response
