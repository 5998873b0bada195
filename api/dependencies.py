"""
LogeTogo API - Request Dependencies

FastAPI dependencies that hand the server context to route handlers.
"""
from __future__ import annotations

from fastapi import Request

from core.context import ServerContext
from db.client import DatabaseClient


def get_server_context(request: Request) -> ServerContext:
    return request.app.state.context


def get_database(request: Request) -> DatabaseClient:
    return get_server_context(request).database


def get_client_ip(request: Request) -> str:
    """Client address as seen by the rate limiter's key function."""
    limiter = get_server_context(request).rate_limiter
    if limiter is not None:
        return limiter.config.key_fn(request)
    return request.client.host if request.client else "unknown"
