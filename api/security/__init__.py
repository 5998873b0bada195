"""
LogeTogo API - API Security Module

Security stack applied to every request, outermost first:
- CORS policy
- Security headers
- Rate limiting
- Per-route JWT authentication (require_authentication)

All components integrate with OpenTelemetry for audit tracing.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from api.security.auth import (
    AuthConfig,
    AuthenticationContext,
    Authenticated,
    Authenticator,
    AuthOutcome,
    Rejected,
    TokenSource,
    require_authentication,
    unauthorized_response,
)
from api.security.cors import (
    CORSMiddleware,
    CORSPolicy,
    validate_origin,
)
from api.security.headers import (
    SecurityHeadersConfig,
    SecurityHeadersMiddleware,
    get_security_headers,
)
from api.security.rate_limit import (
    HEALTH_CHECK_PATHS,
    RateLimitConfig,
    RateLimitDecision,
    RateLimiter,
    RateLimitMiddleware,
    client_key,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

    from core.context import ServerContext


def install_security_stack(app: "FastAPI", context: "ServerContext") -> None:
    """
    Add the security middleware and publish the authenticator on the context.

    Starlette wraps the most recently added middleware outermost, so the
    stack is added innermost first: rate limit, headers, CORS.
    """
    config = context.config
    mode = config.mode

    limiter = RateLimiter(RateLimitConfig.for_mode(
        mode,
        max_requests=config.security.rate_limit_max,
        window_seconds=config.security.rate_limit_window_seconds,
    ))
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(SecurityHeadersMiddleware, config=SecurityHeadersConfig.for_mode(mode))
    app.add_middleware(
        CORSMiddleware,
        policy=CORSPolicy.for_mode(mode, config.security.cors_origins),
    )

    context.rate_limiter = limiter
    context.authenticator = Authenticator(AuthConfig.from_app_config(config))


__all__ = [
    # Stack
    "install_security_stack",
    # Auth
    "AuthConfig",
    "AuthenticationContext",
    "Authenticated",
    "Authenticator",
    "AuthOutcome",
    "Rejected",
    "TokenSource",
    "require_authentication",
    "unauthorized_response",
    # Rate limiting
    "HEALTH_CHECK_PATHS",
    "RateLimitConfig",
    "RateLimitDecision",
    "RateLimiter",
    "RateLimitMiddleware",
    "client_key",
    # CORS
    "CORSMiddleware",
    "CORSPolicy",
    "validate_origin",
    # Headers
    "SecurityHeadersConfig",
    "SecurityHeadersMiddleware",
    "get_security_headers",
]
