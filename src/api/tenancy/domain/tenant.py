"""Tenant registry entry."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Tenant:
    """A virtual store as recorded in the master registry.

    A store whose ``database_url`` is missing, or equal to the master URL,
    has not been migrated to its own schema yet. Inactive stores are never
    connected to.
    """

    id: int
    name: str
    slug: str
    is_active: bool = True
    database_url: str | None = None
    description: str | None = None
    domain: str | None = None
    whatsapp_number: str | None = None
    address: str | None = None
    timezone: str = "America/Mexico_City"
    currency: str = "MXN"
    subscription: str = "free"
    settings: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def uses_master_database(self, master_url: str) -> bool:
        """True when the store has no URL of its own."""
        return not self.database_url or self.database_url == master_url
