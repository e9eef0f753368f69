"""SQLAlchemy ORM models for the master registry tables."""

from sqlalchemy import Boolean, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, TimestampMixin


class VirtualStoreModel(Base, TimestampMixin):
    """ORM model for the virtual_stores table (the store registry).

    ``database_url`` carries the schema selector of a migrated store. Stores
    are never hard-deleted; deactivation clears ``is_active``.
    """

    __tablename__ = "virtual_stores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    domain: Mapped[str | None] = mapped_column(Text)
    whatsapp_number: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str | None] = mapped_column(Text)
    timezone: Mapped[str] = mapped_column(Text, default="America/Mexico_City")
    currency: Mapped[str] = mapped_column(Text, default="MXN")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    subscription: Mapped[str] = mapped_column(Text, default="free")
    database_url: Mapped[str | None] = mapped_column(Text)
    settings: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<VirtualStoreModel(id={self.id}, slug={self.slug})>"


class SystemUserModel(Base, TimestampMixin):
    """ORM model for system_users.

    A user without ``store_id`` is a global administrator; a user with one
    may only sign in to that store.
    """

    __tablename__ = "system_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    password: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    phone: Mapped[str | None] = mapped_column(Text)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="store_admin")
    store_id: Mapped[int | None] = mapped_column(ForeignKey("virtual_stores.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        """Return string representation."""
        return f"<SystemUserModel(id={self.id}, username={self.username})>"
