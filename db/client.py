"""
LogeTogo API - Database Client with Async Support

Owns the single long-lived SQLAlchemy async engine shared by every
request. Exposes typed count/create/delete operations per entity, a
connectivity probe for startup and readiness, and engine disposal for
shutdown.
"""
from __future__ import annotations

import re
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Generic, Optional, Type, TypeVar

from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config import DatabaseConfig
from core.errors import ConnectivityError, ErrorContext, PersistenceError
from db.models import Base, HealthCheck, Property, User
from observability import create_span, get_logger

logger = get_logger("logetogo.db.client")

ModelT = TypeVar("ModelT", bound=Base)

CONNECTIVITY_REMEDIATION = (
    "Check that the database server is running and reachable",
    "Verify DATABASE_URL (user, password, host, port, database name)",
    "Run pending migrations or set DB_AUTO_CREATE=true for a fresh database",
)

_CREDENTIALS = re.compile(r"://[^@/]*@")


def mask_database_url(url: Optional[str]) -> str:
    """Redact credentials from a connection URL."""
    if not url:
        return "Not configured"
    return _CREDENTIALS.sub("://***@", url)


class EntityStore(Generic[ModelT]):
    """Count/create/delete operations for one mapped entity."""

    def __init__(self, client: "DatabaseClient", model: Type[ModelT]):
        self._client = client
        self.model = model

    @property
    def entity(self) -> str:
        return self.model.__tablename__

    async def count(self) -> int:
        try:
            async with self._client.session() as session:
                result = await session.execute(select(func.count()).select_from(self.model))
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise self._failure("count", e) from e

    async def create(self, **values: Any) -> ModelT:
        try:
            async with self._client.session() as session:
                instance = self.model(**values)
                session.add(instance)
                await session.flush()
                return instance
        except SQLAlchemyError as e:
            raise self._failure("create", e) from e

    async def delete_all(self) -> int:
        try:
            async with self._client.session() as session:
                result = await session.execute(delete(self.model))
                return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            raise self._failure("delete", e) from e

    def _failure(self, operation: str, error: SQLAlchemyError) -> PersistenceError:
        # Driver messages live on .orig; the wrapper adds SQL and a doc link
        detail = str(getattr(error, "orig", None) or error)
        logger.error(
            "Database operation failed",
            entity=self.entity,
            operation=operation,
            error=detail,
        )
        return PersistenceError(
            detail,
            entity=self.entity,
            cause=error,
            context=ErrorContext(operation=operation, component=f"db.{self.entity}"),
        )


class DatabaseClient:
    """
    Async database client for LogeTogo persistence.

    Features:
    - Connection pooling with asyncpg (PostgreSQL) or aiosqlite
    - Automatic session management
    - Startup connectivity probe and per-request liveness probe
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        pool_size: int = 10,
        max_overflow: int = 20,
        echo: bool = False,
    ):
        self.database_url = database_url or DatabaseConfig().url
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self.echo = echo

        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

        self.users: EntityStore[User] = EntityStore(self, User)
        self.properties: EntityStore[Property] = EntityStore(self, Property)
        self.health_checks: EntityStore[HealthCheck] = EntityStore(self, HealthCheck)

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "DatabaseClient":
        return cls(
            database_url=config.url,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
            echo=config.echo,
        )

    @property
    def dialect(self) -> str:
        return self.database_url.split(":", 1)[0].split("+", 1)[0]

    @property
    def masked_url(self) -> str:
        return mask_database_url(self.database_url)

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    def _engine_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {"echo": self.echo, "pool_pre_ping": True}
        if self.dialect == "postgresql":
            options.update(
                pool_size=self.pool_size,
                max_overflow=self.max_overflow,
                pool_recycle=1800,
                pool_timeout=30,
                connect_args={"command_timeout": 60},
            )
        return options

    async def initialize(self) -> None:
        """Create the engine and session factory; connections open lazily."""
        if self._engine is not None:
            return

        self._engine = create_async_engine(self.database_url, **self._engine_options())
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        logger.info(
            "Database client initialized",
            url=self.masked_url,
            dialect=self.dialect,
        )

    async def connect(self, create_tables: bool = False) -> str:
        """
        Initialize the engine and verify the database answers.

        Returns:
            The server version string.

        Raises:
            ConnectivityError: if the database is unreachable.
        """
        await self.initialize()
        version = await self.server_version()
        latency = await self.ping()
        if create_tables:
            await self.create_tables()
        logger.info(
            "Database connection established",
            version=version,
            latency_ms=round(latency, 2),
        )
        return version

    async def ping(self) -> float:
        """
        Run ``SELECT 1`` and return its latency in milliseconds.

        Raises:
            ConnectivityError: if the query fails.
        """
        if self._engine is None:
            raise ConnectivityError(
                "Database client is not initialized",
                suggestions=list(CONNECTIVITY_REMEDIATION),
            )
        start = time.perf_counter()
        try:
            with create_span("db.ping", attributes={"db.system": self.dialect}):
                async with self._engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            raise ConnectivityError(
                f"Database is unreachable: {e}",
                cause=e,
                suggestions=list(CONNECTIVITY_REMEDIATION),
            ) from e
        return (time.perf_counter() - start) * 1000

    async def server_version(self) -> str:
        query = "SELECT sqlite_version()" if self.dialect == "sqlite" else "SELECT version()"
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(text(query))
                return str(result.scalar_one())
        except (SQLAlchemyError, OSError) as e:
            raise ConnectivityError(
                f"Database is unreachable: {e}",
                cause=e,
                suggestions=list(CONNECTIVITY_REMEDIATION),
            ) from e

    async def close(self) -> None:
        """Dispose the engine; safe to call more than once."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connections closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session; commits on success, rolls back on error."""
        if not self._session_factory:
            await self.initialize()

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all database tables that do not exist yet."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ensured", tables=sorted(Base.metadata.tables))

    async def count_tables(self) -> int:
        """Number of user tables in the connected database."""
        if self.dialect == "sqlite":
            query = (
                "SELECT COUNT(*) FROM sqlite_master "
                "WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
            )
        else:
            query = (
                "SELECT COUNT(*) FROM information_schema.tables "
                "WHERE table_schema = 'public' AND table_type = 'BASE TABLE'"
            )
        try:
            async with self.session() as session:
                result = await session.execute(text(query))
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise PersistenceError(str(e), cause=e) from e

    async def statistics(self) -> Dict[str, int]:
        """Row counts for each entity."""
        return {
            "users": await self.users.count(),
            "properties": await self.properties.count(),
            "healthChecks": await self.health_checks.count(),
        }
