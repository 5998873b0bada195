"""
LogeTogo API - Documentation Publisher

Builds the OpenAPI document from the registered routes and serves it:

    GET /api-schema   always
    GET /docs         Swagger UI, outside production only

Routes wrapped by require_authentication are documented with the
bearer and cookie security schemes.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List

from fastapi import FastAPI, Request
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.routing import APIRoute

from observability import get_logger

if TYPE_CHECKING:
    from api.security.auth import AuthConfig
    from config import AppConfig

logger = get_logger("logetogo.api.docs")

SCHEMA_PATH = "/api-schema"
DOCS_PATH = "/docs"

TAGS_METADATA: List[Dict[str, str]] = [
    {"name": "System", "description": "Health, service banner and runtime information"},
    {"name": "Test", "description": "Development-only data routes"},
    {"name": "Security", "description": "Security stack diagnostics"},
]

SECURITY_SCHEMES: Dict[str, Dict[str, Any]] = {
    "BearerAuth": {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
        "description": "Authorization: Bearer <token>",
    },
}

UNAUTHORIZED_RESPONSE: Dict[str, Any] = {
    "description": "Missing or invalid token",
    "content": {
        "application/json": {
            "example": {
                "error": "Unauthorized",
                "message": "Missing or invalid token",
                "code": "UNAUTHORIZED",
            }
        }
    },
}


class DocumentationPublisher:
    """Derives and serves the API schema for one application."""

    def __init__(self, config: "AppConfig", auth: "AuthConfig"):
        self.config = config
        self.auth = auth

    @property
    def serves_docs(self) -> bool:
        return not self.config.mode.is_production

    def security_schemes(self) -> Dict[str, Dict[str, Any]]:
        schemes = dict(SECURITY_SCHEMES)
        schemes["CookieAuth"] = {
            "type": "apiKey",
            "in": "cookie",
            "name": self.auth.cookie_name,
        }
        return schemes

    def build_schema(self, app: FastAPI) -> Dict[str, Any]:
        """OpenAPI document, cached on the application after the first build."""
        if app.openapi_schema:
            return app.openapi_schema

        schema = get_openapi(
            title=self.config.name,
            version=self.config.version,
            description=self.config.description,
            routes=app.routes,
            tags=TAGS_METADATA,
            servers=[{"url": self.config.server.address}],
            contact={"name": "LogeTogo", "url": "https://logetogo.tg"},
        )
        components = schema.setdefault("components", {})
        components["securitySchemes"] = self.security_schemes()

        requirement = [{name: []} for name in components["securitySchemes"]]
        for route in app.routes:
            if not isinstance(route, APIRoute):
                continue
            if not getattr(route.endpoint, "__requires_auth__", False):
                continue
            path_item = schema.get("paths", {}).get(route.path_format, {})
            for method in route.methods:
                operation = path_item.get(method.lower())
                if operation is not None:
                    operation["security"] = requirement
                    operation.setdefault("responses", {})["401"] = UNAUTHORIZED_RESPONSE

        app.openapi_schema = schema
        return schema

    def install(self, app: FastAPI) -> None:
        app.openapi = lambda: self.build_schema(app)

        @app.get(SCHEMA_PATH, tags=["System"], summary="OpenAPI schema")
        async def api_schema() -> JSONResponse:
            return JSONResponse(app.openapi())

        if not self.serves_docs:
            logger.info("Interactive documentation disabled", mode=self.config.mode.value)
            return

        @app.get(DOCS_PATH, include_in_schema=False)
        async def swagger_ui(request: Request) -> HTMLResponse:
            logger.info(
                "Documentation accessed",
                ip=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )
            return get_swagger_ui_html(
                openapi_url=SCHEMA_PATH,
                title=f"{self.config.name} - Documentation",
                swagger_ui_parameters={
                    "docExpansion": "list",
                    "deepLinking": True,
                    "persistAuthorization": True,
                },
            )

        logger.info("Interactive documentation enabled", path=DOCS_PATH)
