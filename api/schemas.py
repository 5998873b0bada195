"""
LogeTogo API - Request/Response Schemas

Pydantic models for request validation and response serialization.
Field names are snake_case in Python and camelCase on the wire.
"""
from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serializing to camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# =============================================================================
# System
# =============================================================================


class RootEndpoints(CamelModel):
    health: str
    docs: Optional[str] = None


class RootResponse(CamelModel):
    """Service banner returned by GET /."""

    message: str
    description: str
    version: str
    status: Literal["running"] = "running"
    timestamp: datetime
    endpoints: RootEndpoints


class DatabaseHealth(CamelModel):
    status: Literal["connected", "disconnected"]
    response_time_ms: Optional[float] = None


class MemoryUsage(CamelModel):
    used_mb: float = Field(..., alias="usedMB")
    total_mb: float = Field(..., alias="totalMB")
    percentage: float


class ServiceHealth(CamelModel):
    database: DatabaseHealth
    memory: MemoryUsage


class HealthResponse(CamelModel):
    """Health probe result; never reported as a server error."""

    status: Literal["healthy", "degraded"]
    timestamp: datetime
    uptime_seconds: int
    version: str
    environment: str
    services: ServiceHealth


class ApplicationInfo(CamelModel):
    name: str
    version: str
    description: str
    environment: str


class SystemInfo(CamelModel):
    python_version: str
    platform: str
    arch: str
    uptime: int


class DatabaseInfo(CamelModel):
    url: str
    tables_count: Optional[int] = None


class ClientInfo(CamelModel):
    ip: str


class InfoResponse(CamelModel):
    application: ApplicationInfo
    system: SystemInfo
    database: DatabaseInfo
    client_info: ClientInfo


# =============================================================================
# Development routes
# =============================================================================


class UserCreateRequest(CamelModel):
    """POST /api/test/users"""

    email: EmailStr = Field(..., examples=["ama.mensah@example.tg"])
    first_name: str = Field(..., min_length=1, max_length=100, examples=["Ama"])
    last_name: str = Field(..., min_length=1, max_length=100, examples=["Mensah"])


class UserOut(CamelModel):
    id: str
    email: str
    first_name: str
    last_name: str
    created_at: datetime


class UserCreateResponse(CamelModel):
    success: bool = True
    message: str = "User created successfully"
    user: UserOut


class PropertyCreateRequest(CamelModel):
    """POST /api/test/properties; price in CFA francs."""

    title: str = Field(..., min_length=1, max_length=200, examples=["Villa à Lomé"])
    description: str = Field(..., min_length=1, examples=["Trois chambres, jardin"])
    price: float = Field(..., ge=0, examples=[45000000])
    city: str = Field(..., min_length=1, max_length=100, examples=["Lomé"])


class PropertyOut(CamelModel):
    id: str
    title: str
    description: str
    price: float
    city: str
    is_active: bool
    created_at: datetime


class PropertyCreateResponse(CamelModel):
    success: bool = True
    message: str = "Property created successfully"
    property: PropertyOut


class DatabaseTestResponse(CamelModel):
    database: Dict[str, object]
    performance: Dict[str, str]
    timestamp: datetime


class CleanupResponse(CamelModel):
    success: bool = True
    message: str = "Test data removed"
    deleted: Dict[str, int]


class SecurityTestResponse(CamelModel):
    message: str
    headers: Dict[str, Optional[str]]
    client_ip: str
    user_agent: Optional[str] = None
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Body produced by the unified error handler."""

    success: bool = False
    error: str
    message: str
    statusCode: int
    timestamp: datetime
    requestId: Optional[str] = None
    details: Optional[List[Dict[str, str]]] = None
