"""Per-store connection cache.

Keeps at most one connection entry per store id so hot stores never touch
the master registry after their first request. Entries hold no connection of
their own, only the engine (and executor) of the store's pool.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from infrastructure.database.exceptions import DatabaseConnectionError
from infrastructure.database.resilience import ResilientExecutor, RetryPolicy
from infrastructure.observability.probes import ResilienceProbe
from tenancy.infrastructure.observability import (
    DefaultTenantCacheProbe,
    TenantCacheProbe,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from infrastructure.database.connection_pool import ConnectionPoolManager
    from shared_kernel.connection_target import ConnectionTarget
    from tenancy.infrastructure.resolver import TenantResolver


@dataclass(frozen=True)
class TenantConnection:
    """Everything needed to run statements against one store's schema."""

    tenant_id: int
    target: ConnectionTarget
    engine: AsyncEngine
    executor: ResilientExecutor


@dataclass(frozen=True)
class CacheStats:
    size: int
    tenant_ids: list[int]


class TenantConnectionCache:
    """Caches resolved store connections by store id.

    Concurrent misses for one store may both resolve; the last one stored
    wins. Both receive the same engine because the pool manager creates at
    most one pool per target.
    """

    def __init__(
        self,
        resolver: TenantResolver,
        pool_manager: ConnectionPoolManager,
        policy: RetryPolicy | None = None,
        probe: TenantCacheProbe | None = None,
        executor_probe: ResilienceProbe | None = None,
    ):
        self._resolver = resolver
        self._pool_manager = pool_manager
        self._policy = policy or RetryPolicy()
        self._probe = probe or DefaultTenantCacheProbe()
        self._executor_probe = executor_probe
        self._entries: dict[int, TenantConnection] = {}

    async def get(self, tenant_id: int) -> TenantConnection:
        """Get the connection entry for a store, resolving it on a miss.

        Raises:
            TenantResolutionError: If the store cannot be resolved; nothing
                is cached in that case
        """
        entry = self._entries.get(tenant_id)
        if entry is not None:
            self._probe.cache_hit(tenant_id)
            return entry

        self._probe.cache_miss(tenant_id)
        target = await self._resolver.resolve(tenant_id)
        fresh = not self._pool_manager.has_pool(target)
        engine = self._pool_manager.get_pool(target)
        if fresh:
            try:
                await self._pool_manager.warm_up(target)
            except DatabaseConnectionError:
                # Reported by the pool manager; connections open on demand
                self._probe.warm_up_skipped(tenant_id, target.schema)
        entry = TenantConnection(
            tenant_id=tenant_id,
            target=target,
            engine=engine,
            executor=ResilientExecutor(engine, self._policy, self._executor_probe),
        )
        self._entries[tenant_id] = entry
        self._probe.entry_stored(tenant_id, target.schema)
        return entry

    async def invalidate(self, tenant_id: int) -> bool:
        """Dispose a store's pool and drop its entry.

        Returns:
            True if an entry existed, False otherwise
        """
        entry = self._entries.get(tenant_id)
        if entry is None:
            return False

        # Unmigrated stores all route to public and share one pool
        shared = any(
            other.target.url == entry.target.url
            for other_id, other in self._entries.items()
            if other_id != tenant_id
        )
        if not shared:
            await self._pool_manager.close_pool(entry.target)
        # A concurrent miss may have stored a fresh entry while the pool closed
        if self._entries.get(tenant_id) is entry:
            del self._entries[tenant_id]
        self._probe.entry_invalidated(tenant_id)
        return True

    async def invalidate_all(self) -> int:
        """Dispose and drop every entry; returns how many were dropped."""
        tenant_ids = list(self._entries)
        for tenant_id in tenant_ids:
            await self.invalidate(tenant_id)
        self._probe.all_invalidated(len(tenant_ids))
        return len(tenant_ids)

    async def refresh(self, tenant_id: int) -> TenantConnection:
        """Re-resolve a store from the registry."""
        await self.invalidate(tenant_id)
        return await self.get(tenant_id)

    def contains(self, tenant_id: int) -> bool:
        return tenant_id in self._entries

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), tenant_ids=sorted(self._entries))
