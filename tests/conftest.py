"""
LogeTogo API - Test Configuration

Pytest fixtures shared by all tests. Applications run against a
throwaway SQLite database through aiosqlite.
"""
import os
from pathlib import Path
from typing import Callable, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from config import AppConfig, DatabaseConfig, DeploymentMode, JWTConfig, SecurityConfig, ServerConfig
from observability.logging import LoggingConfig, setup_logging

# Uncached loggers so structlog.testing.capture_logs sees every event,
# including after create_app() applies its mode's logging config
os.environ["LOG_CACHE_LOGGERS"] = "false"
setup_logging(LoggingConfig())

TEST_SECRET = "test-jwt-secret-with-at-least-32-characters"


def sqlite_url(directory: Path) -> str:
    return f"sqlite+aiosqlite:///{directory / 'logetogo.db'}"


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return sqlite_url(tmp_path)


@pytest.fixture
def make_config(database_url: str) -> Callable[..., AppConfig]:
    """Build an AppConfig for a mode without reading the process environment."""

    def factory(
        mode: DeploymentMode = DeploymentMode.DEVELOPMENT,
        rate_limit_max=None,
        secret: str = TEST_SECRET,
        url: str = None,
        shutdown_deadline_seconds: float = 10.0,
    ) -> AppConfig:
        return AppConfig(
            mode=mode,
            version="1.0.0",
            server=ServerConfig(
                host="127.0.0.1",
                port=3001,
                shutdown_deadline_seconds=shutdown_deadline_seconds,
            ),
            database=DatabaseConfig(
                url=url or database_url,
                pool_size=5,
                max_overflow=0,
                echo=False,
                auto_create_tables=True,
            ),
            jwt=JWTConfig(secret=secret),
            security=SecurityConfig(
                cors_origins=[],
                rate_limit_max=rate_limit_max,
                rate_limit_window_seconds=60,
            ),
        )

    return factory


@pytest.fixture
def make_app(make_config) -> Callable[..., FastAPI]:
    """Compose an application for a mode; the lifespan has not run yet."""
    from api.main import create_app

    def factory(mode: DeploymentMode = DeploymentMode.DEVELOPMENT, **overrides) -> FastAPI:
        return create_app(make_config(mode, **overrides))

    return factory


@pytest.fixture
def app(make_app) -> FastAPI:
    return make_app(DeploymentMode.DEVELOPMENT)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """Development-mode client with the lifespan started."""
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def production_app(make_app) -> FastAPI:
    return make_app(DeploymentMode.PRODUCTION)


@pytest.fixture
def production_client(production_app: FastAPI) -> Iterator[TestClient]:
    with TestClient(production_app, raise_server_exceptions=False) as test_client:
        yield test_client


@pytest.fixture
def auth_token(app: FastAPI) -> str:
    """Valid bearer token for the development application."""
    return app.state.context.require_authenticator().issue_token("user-123")
