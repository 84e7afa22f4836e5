"""
Declarative base and shared column mixins for the order core models.

Column types are dialect-agnostic: the same models run on PostgreSQL in
production and on SQLite in local test runs.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, Uuid, func
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


def utcnow() -> datetime:
    """Return the current UTC time as an aware datetime."""
    return datetime.now(timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    """Declarative base whose metadata Alembic migrates."""

    __abstract__ = True

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={getattr(self, 'id', None)!r})>"


class TimestampMixin:
    """
    Adds ``created_at`` and ``updated_at``.

    Timestamps are generated in Python with microsecond precision so that
    rows written within the same second keep their insertion order. The
    server default only covers rows written outside the ORM.
    """

    @declared_attr
    def created_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            comment="Row creation time",
        )

    @declared_attr
    def updated_at(cls) -> Mapped[datetime]:
        return mapped_column(
            DateTime(timezone=True),
            nullable=False,
            default=utcnow,
            server_default=func.now(),
            onupdate=utcnow,
            comment="Last modification time",
        )


class UUIDMixin:
    """UUID primary key, native on PostgreSQL and CHAR(32) on SQLite."""

    @declared_attr
    def id(cls) -> Mapped[uuid.UUID]:
        return mapped_column(
            Uuid(as_uuid=True),
            primary_key=True,
            default=uuid.uuid4,
            comment="Primary key",
        )


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Base for tables keyed by UUID with creation and update timestamps.

    Example:
        class Product(BaseModel):
            __tablename__ = "products"

            name: Mapped[str] = mapped_column(String(255))
    """

    __abstract__ = True
