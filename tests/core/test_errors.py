"""
Tests for core/errors.py - Error hierarchy.
"""
from core.errors import (
    ConfigurationError,
    ConnectivityError,
    ErrorContext,
    ErrorSeverity,
    LogeTogoError,
    PersistenceError,
    StartupError,
)


class TestErrorHierarchy:
    """Tests for LogeTogoError and its subclasses."""

    def test_status_codes(self):
        assert LogeTogoError("x").status_code == 500
        assert ConnectivityError("x").status_code == 503
        assert PersistenceError("x").status_code == 500
        assert LogeTogoError("x", status_code=409).status_code == 409

    def test_severity_defaults(self):
        assert LogeTogoError("x").severity is ErrorSeverity.ERROR
        assert ConfigurationError("x").severity is ErrorSeverity.CRITICAL
        assert StartupError("x", component="persistence").component == "persistence"

    def test_str_includes_code_component_and_cause(self):
        error = PersistenceError(
            "UNIQUE constraint failed: users.email",
            entity="users",
            context=ErrorContext(operation="create", component="db.users"),
            cause=ValueError("duplicate"),
        )
        assert str(error) == (
            "[PERSISTENCE_ERROR] UNIQUE constraint failed: users.email"
            " (component: db.users) [caused by: duplicate]"
        )

    def test_to_dict(self):
        error = ConfigurationError("JWT_SECRET is required in production", suggestions=["Set JWT_SECRET"])
        data = error.to_dict()
        assert data["error_code"] == "CONFIG_ERROR"
        assert data["severity"] == "critical"
        assert data["suggestions"] == ["Set JWT_SECRET"]
        assert data["context"] is None
