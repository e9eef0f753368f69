"""Domain probe for store resolution.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events while a store id is mapped to its schema.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class TenantResolutionProbe(Protocol):
    """Domain probe for store resolution operations."""

    def tenant_resolved(self, tenant_id: int, schema: str, source: str) -> None:
        """Record that a store was mapped to a schema."""
        ...

    def tenant_not_found(self, tenant_id: int) -> None:
        """Record that the registry has no entry for a store."""
        ...

    def tenant_inactive(self, tenant_id: int) -> None:
        """Record that a deactivated store was requested."""
        ...

    def tenant_not_migrated(self, tenant_id: int) -> None:
        """Record that a store still routes to the shared public schema."""
        ...

    def invalid_schema(self, tenant_id: int, raw_value: str) -> None:
        """Record that a store's schema selector is not a valid identifier."""
        ...

    def with_context(self, context: ObservationContext) -> TenantResolutionProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenantResolutionProbe:
    """Default implementation of TenantResolutionProbe using structlog."""

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

    def with_context(
        self, context: ObservationContext
    ) -> DefaultTenantResolutionProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenantResolutionProbe(logger=self._logger, context=context)

    def tenant_resolved(self, tenant_id: int, schema: str, source: str) -> None:
        self._logger.debug(
            "tenant_resolved",
            store_id=tenant_id,
            schema=schema,
            schema_source=source,
            **self._get_context_kwargs(),
        )

    def tenant_not_found(self, tenant_id: int) -> None:
        self._logger.warning(
            "tenant_not_found",
            store_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def tenant_inactive(self, tenant_id: int) -> None:
        self._logger.warning(
            "tenant_inactive",
            store_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def tenant_not_migrated(self, tenant_id: int) -> None:
        self._logger.warning(
            "tenant_using_global_database",
            store_id=tenant_id,
            schema="public",
            **self._get_context_kwargs(),
        )

    def invalid_schema(self, tenant_id: int, raw_value: str) -> None:
        self._logger.error(
            "tenant_schema_invalid",
            store_id=tenant_id,
            raw_value=raw_value,
            **self._get_context_kwargs(),
        )
