"""
LogeTogo API - Database Layer

SQLAlchemy 2.0 async models and the shared database client.
"""

from db.client import DatabaseClient, EntityStore, mask_database_url
from db.models import Base, HealthCheck, Property, User

__all__ = [
    "Base",
    "User",
    "Property",
    "HealthCheck",
    "DatabaseClient",
    "EntityStore",
    "mask_database_url",
]
