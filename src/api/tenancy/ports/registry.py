"""Registry protocol (port) for looking up stores."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tenancy.domain.tenant import Tenant


@runtime_checkable
class ITenantRegistry(Protocol):
    """Read access to the store registry in the master database."""

    async def get_tenant(self, tenant_id: int) -> Tenant | None:
        """Retrieve a store by id.

        Args:
            tenant_id: The store identifier

        Returns:
            The registry entry, or None if no store has that id
        """
        ...
