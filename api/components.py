"""
LogeTogo API - Boot Sequence Components

The components composed by the lifecycle controller, in the order they
are installed and started:

    SecurityComponent       CORS, headers, rate limit, authenticator
    PersistenceComponent    database connectivity
    DocumentationComponent  OpenAPI schema and Swagger UI
    RoutesComponent         route groups

build_boot_sequence() validates that every requirement precedes its
dependent, so a misordered sequence fails before the server is built.
"""
from __future__ import annotations

from typing import Tuple

from fastapi import FastAPI

from api.docs import DocumentationPublisher
from api.routes import register_routes
from api.security import install_security_stack
from core.context import ServerContext
from core.lifecycle import Component, validate_sequence
from db.client import CONNECTIVITY_REMEDIATION


class SecurityComponent(Component):
    name = "security"

    def install(self, app: FastAPI, context: ServerContext) -> None:
        install_security_stack(app, context)


class PersistenceComponent(Component):
    name = "persistence"
    remediation = CONNECTIVITY_REMEDIATION

    async def startup(self, context: ServerContext) -> None:
        await context.database.connect(create_tables=context.config.should_create_tables)

    async def shutdown(self, context: ServerContext) -> None:
        await context.database.close()


class DocumentationComponent(Component):
    name = "documentation"
    requires = (SecurityComponent,)

    def install(self, app: FastAPI, context: ServerContext) -> None:
        auth_config = context.require_authenticator().config
        DocumentationPublisher(context.config, auth_config).install(app)


class RoutesComponent(Component):
    name = "routes"
    requires = (PersistenceComponent,)

    def install(self, app: FastAPI, context: ServerContext) -> None:
        register_routes(app, context.mode)


def build_boot_sequence() -> Tuple[Component, ...]:
    return validate_sequence((
        SecurityComponent(),
        PersistenceComponent(),
        DocumentationComponent(),
        RoutesComponent(),
    ))
