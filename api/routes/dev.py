"""
LogeTogo API - Development Routes

Registered only in development mode.

    GET    /api/test/database     connectivity and row counts
    POST   /api/test/users        create a user
    POST   /api/test/properties   create a property listing
    DELETE /api/test/cleanup      remove all test data (authenticated)
    GET    /api/test/whoami       echo the authentication context (authenticated)
    GET    /api/security/test     security stack diagnostics
"""
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, status

from api.dependencies import get_client_ip, get_database
from api.schemas import (
    CleanupResponse,
    DatabaseTestResponse,
    PropertyCreateRequest,
    PropertyCreateResponse,
    PropertyOut,
    SecurityTestResponse,
    UserCreateRequest,
    UserCreateResponse,
    UserOut,
)
from api.security.auth import require_authentication
from core.errors import LogeTogoError
from db.client import DatabaseClient
from observability import get_logger

logger = get_logger("logetogo.api.dev")

test_router = APIRouter(tags=["Test"])
security_router = APIRouter(tags=["Security"])

# Prices are stored in centimes
PRICE_SCALE = 100


@test_router.get("/database", response_model=DatabaseTestResponse, summary="Database statistics")
async def database_test(db: DatabaseClient = Depends(get_database)) -> DatabaseTestResponse:
    start = time.perf_counter()
    try:
        database = {"connection": "OK", "statistics": await db.statistics()}
    except LogeTogoError as e:
        logger.error("Database test failed", error=e.message)
        database = {"connection": "ERROR", "error": e.message}
    elapsed_ms = (time.perf_counter() - start) * 1000
    return DatabaseTestResponse(
        database=database,
        performance={"queryTime": f"{elapsed_ms:.0f}ms"},
        timestamp=datetime.now(timezone.utc),
    )


@test_router.post(
    "/users",
    response_model=UserCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
)
async def create_user(
    payload: UserCreateRequest,
    db: DatabaseClient = Depends(get_database),
) -> UserCreateResponse:
    user = await db.users.create(
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    logger.info("Test user created", user_id=user.id)
    return UserCreateResponse(user=UserOut.model_validate(user))


@test_router.post(
    "/properties",
    response_model=PropertyCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a property listing",
)
async def create_property(
    payload: PropertyCreateRequest,
    db: DatabaseClient = Depends(get_database),
) -> PropertyCreateResponse:
    listing = await db.properties.create(
        title=payload.title,
        description=payload.description,
        price=int(round(payload.price * PRICE_SCALE)),
        city=payload.city,
    )
    logger.info("Test property created", property_id=listing.id, city=listing.city)
    return PropertyCreateResponse(property=PropertyOut(
        id=listing.id,
        title=listing.title,
        description=listing.description,
        price=listing.price / PRICE_SCALE,
        city=listing.city,
        is_active=listing.is_active,
        created_at=listing.created_at,
    ))


@test_router.delete("/cleanup", response_model=CleanupResponse, summary="Remove test data")
@require_authentication
async def cleanup(
    request: Request,
    db: DatabaseClient = Depends(get_database),
) -> CleanupResponse:
    deleted = {
        "properties": await db.properties.delete_all(),
        "users": await db.users.delete_all(),
        "healthChecks": await db.health_checks.delete_all(),
    }
    logger.warning("Test data removed", subject=request.state.auth.subject, **deleted)
    return CleanupResponse(deleted=deleted)


@test_router.get("/whoami", summary="Authentication context")
@require_authentication
async def whoami(request: Request) -> dict:
    return {"authenticated": True, "context": request.state.auth.to_dict()}


@security_router.get("/test", response_model=SecurityTestResponse, summary="Security diagnostics")
async def security_test(
    request: Request,
    client_ip: str = Depends(get_client_ip),
) -> SecurityTestResponse:
    applied = getattr(request.state, "security_headers", {})
    reported = (
        "X-Frame-Options",
        "X-Content-Type-Options",
        "X-XSS-Protection",
        "Strict-Transport-Security",
        "Content-Security-Policy",
    )
    return SecurityTestResponse(
        message="Security stack active",
        headers={name: applied.get(name) for name in reported},
        client_ip=client_ip,
        user_agent=request.headers.get("user-agent"),
        timestamp=datetime.now(timezone.utc),
    )
