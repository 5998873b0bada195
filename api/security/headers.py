"""
LogeTogo API - Security Headers Middleware

Adds hardening headers to all responses:
- Content-Security-Policy (static per process)
- X-Content-Type-Options
- X-Frame-Options
- X-XSS-Protection
- Strict-Transport-Security (production only)
- Referrer-Policy

Server and X-Powered-By headers are stripped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional, Tuple

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

if TYPE_CHECKING:
    from config import DeploymentMode

DISCLOSURE_HEADERS: Tuple[str, ...] = ("x-powered-by", "server")


def default_csp_directives(production: bool) -> Dict[str, str]:
    """
    CSP directives: self plus the CDNs used by the front-end and Swagger UI.
    """
    connect_src = "'self'" if production else "'self' http://localhost:*"
    directives = {
        "default-src": "'self'",
        "script-src": "'self' 'unsafe-inline' https://cdn.jsdelivr.net",
        "style-src": "'self' 'unsafe-inline' https://fonts.googleapis.com https://cdn.jsdelivr.net",
        "font-src": "'self' https://fonts.gstatic.com",
        "img-src": (
            "'self' data: https://*.cloudflare.com https://*.cloudinary.com "
            "https://fastapi.tiangolo.com"
        ),
        "connect-src": connect_src,
        "object-src": "'none'",
    }
    if production:
        directives["upgrade-insecure-requests"] = ""
    return directives


@dataclass
class SecurityHeadersConfig:
    """Configuration for security headers."""

    # HSTS and upgrade-insecure-requests only apply in production
    production: bool = False

    csp_enabled: bool = True
    csp_directives: Optional[Dict[str, str]] = None

    hsts_max_age: int = 31536000  # 1 year
    hsts_include_subdomains: bool = True
    hsts_preload: bool = True

    frame_options: str = "DENY"
    content_type_nosniff: bool = True
    xss_protection: str = "1; mode=block"
    referrer_policy: str = "strict-origin-when-cross-origin"

    extra_headers: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.csp_directives is None:
            self.csp_directives = default_csp_directives(self.production)

    @classmethod
    def for_mode(cls, mode: "DeploymentMode") -> "SecurityHeadersConfig":
        return cls(production=mode.is_production)


def get_security_headers(config: Optional[SecurityHeadersConfig] = None) -> Dict[str, str]:
    """
    Generate security headers dictionary.

    Usage:
        headers = get_security_headers(SecurityHeadersConfig(production=True))
        response.headers.update(headers)
    """
    cfg = config or SecurityHeadersConfig()
    headers: Dict[str, str] = {}

    if cfg.csp_enabled:
        headers["Content-Security-Policy"] = "; ".join(
            f"{directive} {value}".strip()
            for directive, value in cfg.csp_directives.items()
        )

    if cfg.production:
        hsts_value = f"max-age={cfg.hsts_max_age}"
        if cfg.hsts_include_subdomains:
            hsts_value += "; includeSubDomains"
        if cfg.hsts_preload:
            hsts_value += "; preload"
        headers["Strict-Transport-Security"] = hsts_value

    if cfg.frame_options:
        headers["X-Frame-Options"] = cfg.frame_options

    if cfg.content_type_nosniff:
        headers["X-Content-Type-Options"] = "nosniff"

    if cfg.xss_protection:
        headers["X-XSS-Protection"] = cfg.xss_protection

    if cfg.referrer_policy:
        headers["Referrer-Policy"] = cfg.referrer_policy

    headers.update(cfg.extra_headers)
    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses.

    Usage:
        app.add_middleware(
            SecurityHeadersMiddleware,
            config=SecurityHeadersConfig.for_mode(DeploymentMode.PRODUCTION),
        )
    """

    def __init__(self, app, config: Optional[SecurityHeadersConfig] = None):
        super().__init__(app)
        self.config = config or SecurityHeadersConfig()
        self._headers = get_security_headers(self.config)

    async def dispatch(self, request: Request, call_next) -> Response:
        # Visible to handlers before the response exists
        request.state.security_headers = self._headers
        response = await call_next(request)

        for name in DISCLOSURE_HEADERS:
            if name in response.headers:
                del response.headers[name]

        for key, value in self._headers.items():
            response.headers[key] = value

        return response
