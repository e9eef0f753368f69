"""Storage factory and the per-request storage bundle."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from storage.infrastructure.observability import DefaultStorageProbe, StorageProbe
from storage.infrastructure.tenant_storage import TenantStorage
from storage.ports.exceptions import TenantRequiredError

if TYPE_CHECKING:
    from storage.infrastructure.master_storage import MasterStorage
    from tenancy.infrastructure.connection_cache import (
        CacheStats,
        TenantConnectionCache,
    )


class StorageFactory:
    """Hands out master storage and per-store storage.

    Store storages are cached per store id on top of the connection cache;
    both are dropped together when a store is invalidated.
    """

    def __init__(
        self,
        master_storage: MasterStorage,
        connection_cache: TenantConnectionCache,
        probe: StorageProbe | None = None,
    ):
        self._master = master_storage
        self._connections = connection_cache
        self._probe = probe or DefaultStorageProbe()
        self._tenant_storages: dict[int, TenantStorage] = {}

    def get_master_storage(self) -> MasterStorage:
        return self._master

    async def get_tenant_storage(self, tenant_id: int) -> TenantStorage:
        """Get the storage bound to one store's schema.

        Raises:
            ValueError: If the id is not a positive integer
            TenantResolutionError: If the store cannot be resolved
        """
        if isinstance(tenant_id, bool) or not isinstance(tenant_id, int) or tenant_id <= 0:
            raise ValueError(f"Invalid store id: {tenant_id!r}")

        connection = await self._connections.get(tenant_id)
        storage = self._tenant_storages.get(tenant_id)
        # Rebuild when the connection entry was replaced underneath us
        if storage is None or storage.executor is not connection.executor:
            storage = TenantStorage(tenant_id, connection.executor, self._probe)
            self._tenant_storages[tenant_id] = storage
        return storage

    async def invalidate(self, tenant_id: int) -> None:
        self._tenant_storages.pop(tenant_id, None)
        await self._connections.invalidate(tenant_id)

    async def invalidate_all(self) -> None:
        self._tenant_storages.clear()
        await self._connections.invalidate_all()

    async def refresh(self, tenant_id: int) -> TenantStorage:
        await self.invalidate(tenant_id)
        return await self.get_tenant_storage(tenant_id)

    def cache_stats(self) -> CacheStats:
        return self._connections.stats()


@dataclass(frozen=True)
class RequestStorage:
    """Storage available to one request.

    ``tenant`` is None for requests without a store, which may only use the
    master storage.
    """

    master: MasterStorage
    tenant: TenantStorage | None = None

    @property
    def tenant_id(self) -> int | None:
        return self.tenant.tenant_id if self.tenant is not None else None

    def require_tenant(self) -> TenantStorage:
        """Get the store storage, failing for store-less requests.

        Raises:
            TenantRequiredError: If the request has no store
        """
        if self.tenant is None:
            raise TenantRequiredError()
        return self.tenant
