"""
LogeTogo API - CORS Policy

Origin policy that runs first in the security stack:
- Permissive outside production: any origin is reflected back
- Restrictive in production: explicit allow-list only
- Preflight requests terminate here and never reach a route handler
- Rejections are logged and traced
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional, Set, Union
from urllib.parse import urlparse

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from observability import get_logger

if TYPE_CHECKING:
    from config import DeploymentMode

tracer = trace.get_tracer(__name__)
logger = get_logger("logetogo.security.cors")

ANY_ORIGIN = "*"

DEFAULT_ALLOWED_HEADERS = (
    "Origin",
    "X-Requested-With",
    "Content-Type",
    "Accept",
    "Authorization",
    "X-API-Key",
    "X-Request-ID",
)

DEFAULT_ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS")

DEFAULT_EXPOSED_HEADERS = (
    "X-Request-ID",
    "X-Response-Time",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "Retry-After",
)


@dataclass
class CORSPolicy:
    """
    CORS configuration.

    allowed_origins is either the string "*" (permissive) or a set of
    exact origins. A permissive policy with credentials echoes the
    request's own origin rather than a literal wildcard.
    """

    allowed_origins: Union[Set[str], str] = ANY_ORIGIN
    allow_credentials: bool = True
    allowed_headers: Set[str] = field(default_factory=lambda: set(DEFAULT_ALLOWED_HEADERS))
    allowed_methods: Set[str] = field(default_factory=lambda: set(DEFAULT_ALLOWED_METHODS))
    exposed_headers: Set[str] = field(default_factory=lambda: set(DEFAULT_EXPOSED_HEADERS))
    preflight_cache_seconds: int = 300
    log_rejections: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.allowed_origins, str):
            if self.allowed_origins != ANY_ORIGIN:
                self.allowed_origins = {self.allowed_origins}
        else:
            self.allowed_origins = set(self.allowed_origins)

        if not self.permissive:
            invalid = [o for o in self.allowed_origins if not validate_origin(o)]
            if invalid:
                raise ValueError(f"Malformed CORS origin(s): {', '.join(sorted(invalid))}")

    @classmethod
    def for_mode(
        cls,
        mode: "DeploymentMode",
        origins: Optional[Iterable[str]] = None,
    ) -> "CORSPolicy":
        """Permissive outside production, allow-list with a day-long preflight cache in it."""
        if mode.is_production:
            from config import PRODUCTION_ORIGINS

            allowed = set(PRODUCTION_ORIGINS)
            allowed.update(origins or ())
            return cls(allowed_origins=allowed, preflight_cache_seconds=86400)
        return cls(allowed_origins=ANY_ORIGIN, preflight_cache_seconds=300)

    @property
    def permissive(self) -> bool:
        return self.allowed_origins == ANY_ORIGIN

    def allows(self, origin: Optional[str]) -> bool:
        if not origin:
            return False
        if self.permissive:
            return True
        return origin in self.allowed_origins

    def headers_for(self, origin: str, preflight: bool = False) -> dict:
        """CORS response headers for an allowed origin."""
        headers = {
            "Access-Control-Allow-Origin": origin,
            "Vary": "Origin",
        }
        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"

        if preflight:
            headers["Access-Control-Allow-Methods"] = ", ".join(sorted(self.allowed_methods))
            headers["Access-Control-Allow-Headers"] = ", ".join(sorted(self.allowed_headers))
            headers["Access-Control-Max-Age"] = str(self.preflight_cache_seconds)
        else:
            headers["Access-Control-Expose-Headers"] = ", ".join(sorted(self.exposed_headers))

        return headers


class CORSMiddleware(BaseHTTPMiddleware):
    """
    CORS middleware with origin validation and logging.

    Unlike Starlette's CORSMiddleware, every OPTIONS request that carries
    an Origin is answered here, and rejections are logged.
    """

    def __init__(self, app, policy: CORSPolicy):
        super().__init__(app)
        self.policy = policy

    def _reject(self, request: Request, origin: str) -> None:
        if not self.policy.log_rejections:
            return
        with tracer.start_as_current_span("cors.rejected") as span:
            span.set_attribute("cors.origin", origin)
            span.set_attribute("cors.path", request.url.path)
            span.set_attribute("cors.method", request.method)
        logger.warning(
            "CORS origin rejected",
            origin=origin,
            method=request.method,
            path=request.url.path,
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        origin = request.headers.get("origin")

        # Non-CORS request
        if not origin:
            return await call_next(request)

        is_preflight = request.method == "OPTIONS"

        if not self.policy.allows(origin):
            self._reject(request, origin)
            if is_preflight:
                return Response(status_code=403)
            # Served without CORS headers; the browser blocks the read
            return await call_next(request)

        if is_preflight:
            return Response(
                status_code=204,
                headers=self.policy.headers_for(origin, preflight=True),
            )

        response = await call_next(request)
        response.headers.update(self.policy.headers_for(origin))
        return response


def validate_origin(origin: str) -> bool:
    """
    Validate that an origin is well-formed.

    Returns True if origin is a URL with scheme and host and nothing else.
    """
    parsed = urlparse(origin)
    return bool(parsed.scheme in ("http", "https") and parsed.netloc and parsed.path in ("", "/"))
