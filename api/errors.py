"""
LogeTogo API - Unified Error and Not-Found Handling

Global handlers installed by the lifecycle controller:

    not_found_handler   - router default when no route matches
    handle_exception    - every exception raised below the middleware stack
    ErrorBoundaryMiddleware - innermost catch-all so 500s keep the stack headers

All build their response from the request and the failure alone; the
only side effect is logging.
"""
from __future__ import annotations

import traceback
from datetime import datetime, timezone
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from core.errors import LogeTogoError
from observability import get_logger

if TYPE_CHECKING:
    from config import DeploymentMode

logger = get_logger("logetogo.api.errors")

GENERIC_SERVER_MESSAGE = "An internal error occurred"
STACK_LINES = 10


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _mode(request: Request) -> "DeploymentMode":
    return request.app.state.context.mode


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def known_routes(app: FastAPI) -> List[str]:
    """Sorted ``METHOD path`` strings for every registered route."""
    entries = set()
    for route in app.routes:
        if isinstance(route, Route) and route.methods:
            for method in route.methods:
                if method != "HEAD":
                    entries.add(f"{method} {route.path}")
    return sorted(entries, key=lambda e: (e.split(" ", 1)[1], e))


# =============================================================================
# Not found
# =============================================================================


def not_found_response(request: Request) -> JSONResponse:
    method = request.method
    path = request.url.path

    logger.warning(
        "Route not found",
        method=method,
        path=path,
        ip=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        referer=request.headers.get("referer"),
    )

    body: Dict[str, Any] = {
        "error": "Not Found",
        "message": f"Route {method} {path} not found",
        "statusCode": 404,
        "timestamp": _now(),
    }
    if _mode(request).is_development:
        body["suggestion"] = "Check the URL and method, or see /docs for the available routes"
        body["availableRoutes"] = known_routes(request.app)

    return JSONResponse(status_code=404, content=body)


async def not_found_handler(scope: Scope, receive: Receive, send: Send) -> None:
    """ASGI router default for unmatched paths."""
    if scope["type"] != "http":
        # Websocket: close without accepting
        await send({"type": "websocket.close", "code": 1000})
        return
    response = not_found_response(Request(scope, receive))
    await response(scope, receive, send)


# =============================================================================
# Errors
# =============================================================================


def _status_of(exc: BaseException) -> int:
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and 400 <= status <= 599:
        return status
    return 500


def _error_name(exc: BaseException, status: int) -> str:
    if isinstance(exc, LogeTogoError):
        return type(exc).__name__
    if isinstance(exc, StarletteHTTPException):
        try:
            return HTTPStatus(status).phrase
        except ValueError:
            return "Error"
    return type(exc).__name__


def _message_of(exc: BaseException) -> str:
    if isinstance(exc, StarletteHTTPException):
        return exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    if isinstance(exc, LogeTogoError):
        return exc.message
    return str(exc) or type(exc).__name__


def validation_details(exc: RequestValidationError) -> List[Dict[str, Any]]:
    """Per-field details with the transport prefix ("body", "query") dropped."""
    details = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ())]
        if location and location[0] in ("body", "query", "path", "header", "cookie"):
            location = location[1:]
        details.append({
            "field": ".".join(location),
            "message": error.get("msg", ""),
            "type": error.get("type", ""),
        })
    return details


def _stack(exc: BaseException) -> List[str]:
    formatted = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return formatted.splitlines()[:STACK_LINES]


async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
    """Map any failure to the unified error body."""
    mode = _mode(request)
    validation = isinstance(exc, RequestValidationError)
    status = 400 if validation else _status_of(exc)
    request_id = getattr(request.state, "request_id", None)

    log_fields = dict(
        method=request.method,
        url=str(request.url),
        ip=_client_ip(request),
        status_code=status,
        error=_message_of(exc),
    )
    if status >= 500:
        logger.error("Request failed", exc_info=exc, **log_fields)
    else:
        logger.warning("Request rejected", **log_fields)

    if validation:
        message = "Request validation failed"
    elif status >= 500 and not mode.is_development:
        message = GENERIC_SERVER_MESSAGE
    else:
        message = _message_of(exc)

    body: Dict[str, Any] = {
        "success": False,
        "error": "Validation Error" if validation else _error_name(exc, status),
        "message": message,
        "statusCode": status,
        "timestamp": _now(),
        "requestId": request_id,
    }
    if validation:
        body["details"] = validation_details(exc)
    if mode.is_development and status >= 500:
        body["stack"] = _stack(exc)

    headers = getattr(exc, "headers", None) if isinstance(exc, StarletteHTTPException) else None
    return JSONResponse(status_code=status, content=body, headers=headers)


class ErrorBoundaryMiddleware(BaseHTTPMiddleware):
    """
    Innermost middleware that turns unexpected exceptions into the unified body.

    Starlette runs the ``Exception`` handler outside every user middleware,
    where its 500s would skip the headers the stack adds.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return await handle_exception(request, exc)


def install_error_handlers(app: FastAPI) -> None:
    """Register the global not-found and error handlers."""
    app.router.default = not_found_handler
    app.add_exception_handler(RequestValidationError, handle_exception)
    app.add_exception_handler(StarletteHTTPException, handle_exception)
    app.add_exception_handler(LogeTogoError, handle_exception)
    # Failures raised by the middleware themselves
    app.add_exception_handler(Exception, handle_exception)
