"""Domain probe for the per-store connection cache."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class TenantCacheProbe(Protocol):
    """Domain probe for tenant connection cache operations."""

    def cache_hit(self, tenant_id: int) -> None:
        """Record that a cached connection entry was reused."""
        ...

    def cache_miss(self, tenant_id: int) -> None:
        """Record that a store had to be resolved."""
        ...

    def entry_stored(self, tenant_id: int, schema: str | None) -> None:
        """Record that a new connection entry was cached."""
        ...

    def warm_up_skipped(self, tenant_id: int, schema: str | None) -> None:
        """Record that a new pool starts cold because warm-up failed."""
        ...

    def entry_invalidated(self, tenant_id: int) -> None:
        """Record that a store's entry was disposed and removed."""
        ...

    def all_invalidated(self, count: int) -> None:
        """Record that every entry was disposed and removed."""
        ...

    def with_context(self, context: ObservationContext) -> TenantCacheProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenantCacheProbe:
    """Default implementation of TenantCacheProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultTenantCacheProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenantCacheProbe(logger=self._logger, context=context)

    def cache_hit(self, tenant_id: int) -> None:
        self._logger.debug(
            "tenant_cache_hit", store_id=tenant_id, **self._get_context_kwargs()
        )

    def cache_miss(self, tenant_id: int) -> None:
        self._logger.debug(
            "tenant_cache_miss", store_id=tenant_id, **self._get_context_kwargs()
        )

    def entry_stored(self, tenant_id: int, schema: str | None) -> None:
        self._logger.info(
            "tenant_connection_cached",
            store_id=tenant_id,
            schema=schema,
            **self._get_context_kwargs(),
        )

    def warm_up_skipped(self, tenant_id: int, schema: str | None) -> None:
        self._logger.warning(
            "tenant_pool_warm_up_skipped",
            store_id=tenant_id,
            schema=schema,
            **self._get_context_kwargs(),
        )

    def entry_invalidated(self, tenant_id: int) -> None:
        self._logger.info(
            "tenant_connection_invalidated",
            store_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def all_invalidated(self, count: int) -> None:
        self._logger.info(
            "tenant_connections_cleared",
            count=count,
            **self._get_context_kwargs(),
        )
