"""
LogeTogo API - System Routes

Service banner, health probes and runtime information.

    GET /                    service banner
    GET /health              health probe (also /api/system/health)
    GET /api/system/info     runtime and database metadata
"""
from __future__ import annotations

import platform
import sys
from datetime import datetime, timezone

import psutil
from fastapi import APIRouter, Depends

from api.dependencies import get_client_ip, get_server_context
from api.docs import DOCS_PATH
from api.schemas import (
    ApplicationInfo,
    ClientInfo,
    DatabaseHealth,
    DatabaseInfo,
    HealthResponse,
    InfoResponse,
    MemoryUsage,
    RootEndpoints,
    RootResponse,
    ServiceHealth,
    SystemInfo,
)
from core.context import ServerContext
from core.errors import LogeTogoError
from observability import get_logger

logger = get_logger("logetogo.api.system")

root_router = APIRouter(tags=["System"])
system_router = APIRouter(tags=["System"])

_MB = 1024 * 1024


def memory_usage() -> MemoryUsage:
    """Resident memory of this process against total system memory."""
    process = psutil.Process()
    used = process.memory_info().rss
    total = psutil.virtual_memory().total
    return MemoryUsage(
        used_mb=round(used / _MB, 2),
        total_mb=round(total / _MB, 2),
        percentage=round(used / total * 100, 2) if total else 0.0,
    )


async def build_health_report(ctx: ServerContext, client_ip: str) -> HealthResponse:
    """
    Probe read and write liveness of the database.

    A healthy probe writes one health-check row. Database failures
    degrade the report instead of failing the request.
    """
    status = "healthy"
    database = DatabaseHealth(status="disconnected")

    try:
        latency_ms = await ctx.database.ping()
        await ctx.database.health_checks.create(
            status="healthy",
            message=f"Health check from {client_ip}",
        )
        database = DatabaseHealth(status="connected", response_time_ms=round(latency_ms, 2))
    except LogeTogoError as e:
        status = "degraded"
        logger.error("Health check failed", error=e.message, ip=client_ip)

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=int(ctx.state.uptime_seconds),
        version=ctx.config.version,
        environment=ctx.mode.value,
        services=ServiceHealth(database=database, memory=memory_usage()),
    )


@root_router.get("/", response_model=RootResponse, summary="Service banner")
async def root(ctx: ServerContext = Depends(get_server_context)) -> RootResponse:
    return RootResponse(
        message=f"Welcome to the {ctx.config.name}",
        description=ctx.config.description,
        version=ctx.config.version,
        timestamp=datetime.now(timezone.utc),
        endpoints=RootEndpoints(
            health="/health",
            docs=None if ctx.mode.is_production else DOCS_PATH,
        ),
    )


@root_router.get("/health", response_model=HealthResponse, summary="Health probe")
async def health(
    ctx: ServerContext = Depends(get_server_context),
    client_ip: str = Depends(get_client_ip),
) -> HealthResponse:
    return await build_health_report(ctx, client_ip)


@system_router.get("/health", response_model=HealthResponse, summary="Health probe")
async def system_health(
    ctx: ServerContext = Depends(get_server_context),
    client_ip: str = Depends(get_client_ip),
) -> HealthResponse:
    return await build_health_report(ctx, client_ip)


@system_router.get("/info", response_model=InfoResponse, summary="Runtime information")
async def system_info(
    ctx: ServerContext = Depends(get_server_context),
    client_ip: str = Depends(get_client_ip),
) -> InfoResponse:
    try:
        tables_count = await ctx.database.count_tables()
    except LogeTogoError as e:
        tables_count = None
        logger.warning("Table count unavailable", error=e.message)

    return InfoResponse(
        application=ApplicationInfo(
            name=ctx.config.name,
            version=ctx.config.version,
            description=ctx.config.description,
            environment=ctx.mode.value,
        ),
        system=SystemInfo(
            python_version=platform.python_version(),
            platform=sys.platform,
            arch=platform.machine(),
            uptime=int(ctx.state.uptime_seconds),
        ),
        database=DatabaseInfo(url=ctx.database.masked_url, tables_count=tables_count),
        client_info=ClientInfo(ip=client_ip),
    )
