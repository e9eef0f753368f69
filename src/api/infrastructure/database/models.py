"""SQLAlchemy declarative bases and shared model utilities.

Two metadata collections exist: one for tables that live only in the master
database and one for tables created inside every tenant schema. Tenant
models carry no schema of their own; the connection's search_path (or a
schema_translate_map during provisioning) decides where they resolve.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    """Generate UTC timestamp for database defaults.

    Uses a named function instead of lambda for SQLAlchemy 2.0 compatibility.
    """
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for master database models (tenant registry, system users)."""

    type_annotation_map: dict[type, Any] = {}


class TenantBase(DeclarativeBase):
    """Base class for models created in each tenant schema."""

    type_annotation_map: dict[type, Any] = {}


class TimestampMixin:
    """Mixin providing created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=_utc_now,  # Evaluated at INSERT time
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        insert_default=_utc_now,
        onupdate=_utc_now,  # Evaluated at UPDATE time
        nullable=False,
    )
