"""
LogeTogo API - Authentication Module

JWT bearer authentication expressed as a result type:

    Authenticator.authenticate(request) -> Authenticated(context) | Rejected(reason)

Token sources, in order:
- Authorization: Bearer <token>
- the authToken cookie
- the ?token= query parameter (development mode only, logged as a warning)

Tokens are verified for signature, issuer, audience and expiry. The
require_authentication decorator turns a Rejected outcome into a 401
response without running the wrapped endpoint.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional, Tuple, Union

import jwt
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from opentelemetry import trace

from observability import get_logger

if TYPE_CHECKING:
    from config import AppConfig

tracer = trace.get_tracer(__name__)
logger = get_logger("logetogo.security.auth")

UNAUTHORIZED_BODY: Dict[str, str] = {
    "error": "Unauthorized",
    "message": "Missing or invalid token",
    "code": "UNAUTHORIZED",
}


class TokenSource(Enum):
    """Where a token was presented."""
    HEADER = "header"
    COOKIE = "cookie"
    QUERY = "query"


@dataclass(frozen=True)
class AuthenticationContext:
    """Identity derived from a verified token; lives for one request."""

    subject: str
    issuer: str
    audience: str
    expires_at: datetime
    source: TokenSource = TokenSource.HEADER
    claims: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject,
            "issuer": self.issuer,
            "audience": self.audience,
            "expiresAt": self.expires_at.isoformat(),
            "source": self.source.value,
        }


@dataclass(frozen=True)
class Authenticated:
    context: AuthenticationContext


@dataclass(frozen=True)
class Rejected:
    reason: str


AuthOutcome = Union[Authenticated, Rejected]


@dataclass
class AuthConfig:
    """Authentication configuration."""

    secret: str
    algorithm: str = "HS256"
    issuer: str = "logetogo-api"
    audience: str = "logetogo-app"
    expiry: timedelta = timedelta(hours=24)
    cookie_name: str = "authToken"
    query_param: str = "token"
    allow_query_token: bool = False
    cookie_secure: bool = False
    cookie_samesite: str = "lax"

    @classmethod
    def from_app_config(cls, config: "AppConfig") -> "AuthConfig":
        production = config.mode.is_production
        return cls(
            secret=config.jwt.secret,
            algorithm=config.jwt.algorithm,
            issuer=config.jwt.issuer,
            audience=config.jwt.audience,
            expiry=timedelta(hours=config.jwt.expiry_hours),
            cookie_name=config.jwt.cookie_name,
            allow_query_token=config.mode.is_development,
            cookie_secure=production,
            cookie_samesite="strict" if production else "lax",
        )


# PyJWT exception -> rejection reason; order matters (subclasses first)
_REJECTION_REASONS: Tuple[Tuple[type, str], ...] = (
    (jwt.ExpiredSignatureError, "token_expired"),
    (jwt.InvalidIssuerError, "invalid_issuer"),
    (jwt.InvalidAudienceError, "invalid_audience"),
    (jwt.InvalidSignatureError, "invalid_signature"),
    (jwt.MissingRequiredClaimError, "missing_claim"),
    (jwt.ImmatureSignatureError, "token_not_yet_valid"),
    (jwt.DecodeError, "malformed_token"),
)


class Authenticator:
    """Extracts and verifies bearer tokens."""

    def __init__(self, config: AuthConfig):
        self.config = config

    def extract_token(self, request: Request) -> Optional[Tuple[str, TokenSource]]:
        """Find a token in the header, then the cookie, then (dev only) the query."""
        auth_header = request.headers.get("authorization", "")
        scheme, _, credentials = auth_header.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip(), TokenSource.HEADER

        cookie_token = request.cookies.get(self.config.cookie_name)
        if cookie_token:
            return cookie_token, TokenSource.COOKIE

        if self.config.allow_query_token:
            query_token = request.query_params.get(self.config.query_param)
            if query_token:
                logger.warning(
                    "Token supplied in query string",
                    ip=request.client.host if request.client else None,
                    path=request.url.path,
                )
                return query_token, TokenSource.QUERY

        return None

    def verify(self, token: str, source: TokenSource = TokenSource.HEADER) -> AuthOutcome:
        """Verify signature, issuer, audience and expiry."""
        try:
            claims = jwt.decode(
                token,
                self.config.secret,
                algorithms=[self.config.algorithm],
                issuer=self.config.issuer,
                audience=self.config.audience,
                options={"require": ["exp", "iss", "aud", "sub"]},
            )
        except jwt.InvalidTokenError as e:
            reason = next(
                (name for exc_type, name in _REJECTION_REASONS if isinstance(e, exc_type)),
                "invalid_token",
            )
            with tracer.start_as_current_span("auth.jwt.failed") as span:
                span.set_attribute("auth.method", "jwt")
                span.set_attribute("auth.success", False)
                span.set_attribute("auth.reason", reason)
            return Rejected(reason)

        with tracer.start_as_current_span("auth.jwt.success") as span:
            span.set_attribute("auth.method", "jwt")
            span.set_attribute("auth.success", True)
            span.set_attribute("auth.subject", str(claims["sub"]))

        return Authenticated(AuthenticationContext(
            subject=str(claims["sub"]),
            issuer=claims["iss"],
            audience=self.config.audience,
            expires_at=datetime.fromtimestamp(claims["exp"], timezone.utc),
            source=source,
            claims=claims,
        ))

    async def authenticate(self, request: Request) -> AuthOutcome:
        found = self.extract_token(request)
        if found is None:
            return Rejected("missing_token")
        token, source = found
        return self.verify(token, source)

    def issue_token(
        self,
        subject: str,
        expires_in: Optional[timedelta] = None,
        **extra_claims: Any,
    ) -> str:
        """Sign a token for subject with the configured issuer and audience."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject,
            "iss": self.config.issuer,
            "aud": self.config.audience,
            "iat": int(now.timestamp()),
            "exp": int((now + (expires_in if expires_in is not None else self.config.expiry)).timestamp()),
            **extra_claims,
        }
        return jwt.encode(payload, self.config.secret, algorithm=self.config.algorithm)

    def set_auth_cookie(self, response: Response, token: str) -> None:
        """Attach the token as the httpOnly auth cookie."""
        response.set_cookie(
            key=self.config.cookie_name,
            value=token,
            max_age=int(self.config.expiry.total_seconds()),
            httponly=True,
            secure=self.config.cookie_secure,
            samesite=self.config.cookie_samesite,
            path="/",
        )

    def clear_auth_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.config.cookie_name,
            path="/",
            httponly=True,
            secure=self.config.cookie_secure,
            samesite=self.config.cookie_samesite,
        )


def unauthorized_response() -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content=dict(UNAUTHORIZED_BODY),
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_authentication(endpoint: Callable) -> Callable:
    """
    Route decorator that only runs the endpoint for authenticated requests.

    The endpoint must accept ``request: Request``; the verified context is
    available as ``request.state.auth``.

    Usage:
        @router.get("/me")
        @require_authentication
        async def me(request: Request):
            return request.state.auth.to_dict()
    """

    @functools.wraps(endpoint)
    async def wrapper(request: Request, *args, **kwargs):
        authenticator = request.app.state.context.require_authenticator()
        outcome = await authenticator.authenticate(request)

        if isinstance(outcome, Rejected):
            logger.warning(
                "Authentication failed",
                ip=request.client.host if request.client else None,
                method=request.method,
                url=str(request.url),
                reason=outcome.reason,
            )
            return unauthorized_response()

        request.state.auth = outcome.context
        return await endpoint(request, *args, **kwargs)

    # Read by the documentation publisher to attach security requirements
    wrapper.__requires_auth__ = True
    return wrapper
