"""
LogeTogo API - SQLAlchemy ORM Models

Users, property listings and the health-check audit rows written by
every health probe. Column names follow the camelCase names of the
existing tables.
"""
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import BigInteger, Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def generate_id() -> str:
    """Opaque string identifier for new rows."""
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class User(Base):
    """Registered user account."""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column("firstName", String(100), nullable=False)
    last_name: Mapped[str] = mapped_column("lastName", String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        "createdAt", DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        "updatedAt", DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id!r}, email={self.email!r})>"


class Property(Base):
    """Real-estate listing. Prices are stored in centimes."""
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column("isActive", Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        "createdAt", DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        "updatedAt", DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        Index("properties_city_isActive_idx", "city", "isActive"),
        Index("properties_price_idx", "price"),
    )

    def __repr__(self) -> str:
        return f"<Property(id={self.id!r}, city={self.city!r})>"


class HealthCheck(Base):
    """Audit row written on every successful health probe."""
    __tablename__ = "health_checks"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    status: Mapped[str] = mapped_column(String(20), default="healthy", nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"<HealthCheck(id={self.id!r}, status={self.status!r})>"
