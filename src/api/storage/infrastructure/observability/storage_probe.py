"""Domain probe for master and store storage operations.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events related to registry and store data changes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class StorageProbe(Protocol):
    """Domain probe for storage operations."""

    def entity_created(self, tenant_id: int | None, entity: str, entity_id: Any) -> None:
        """Record that a row was created."""
        ...

    def entity_updated(self, tenant_id: int | None, entity: str, entity_id: Any) -> None:
        """Record that a row was updated."""
        ...

    def entity_deleted(self, tenant_id: int | None, entity: str, entity_id: Any) -> None:
        """Record that a row was deleted."""
        ...

    def entity_not_found(
        self, tenant_id: int | None, entity: str, entity_id: Any
    ) -> None:
        """Record that a lookup which had to succeed found nothing."""
        ...

    def tenant_created(self, tenant_id: int, slug: str) -> None:
        """Record that a store was registered."""
        ...

    def tenant_deactivated(self, tenant_id: int) -> None:
        """Record that a store was soft-deleted."""
        ...

    def schema_provisioned(self, tenant_id: int, schema: str) -> None:
        """Record that a store schema and its tables were created."""
        ...

    def rows_imported(
        self,
        tenant_id: int,
        table: str,
        inserted: int,
        existing: int,
        conflicting: int = 0,
    ) -> None:
        """Record that rows were copied into a store schema."""
        ...

    def legacy_rows_deleted(self, tenant_id: int, table: str, count: int) -> None:
        """Record that migrated rows were removed from the master tables."""
        ...

    def authentication_failed(self, username: str, reason: str) -> None:
        """Record that a sign-in attempt was rejected."""
        ...

    def with_context(self, context: ObservationContext) -> StorageProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultStorageProbe:
    """Default implementation of StorageProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultStorageProbe:
        """Create a new probe with observation context bound."""
        return DefaultStorageProbe(logger=self._logger, context=context)

    def entity_created(self, tenant_id: int | None, entity: str, entity_id: Any) -> None:
        self._logger.info(
            "entity_created",
            store_id=tenant_id,
            entity=entity,
            entity_id=entity_id,
            **self._get_context_kwargs(),
        )

    def entity_updated(self, tenant_id: int | None, entity: str, entity_id: Any) -> None:
        self._logger.info(
            "entity_updated",
            store_id=tenant_id,
            entity=entity,
            entity_id=entity_id,
            **self._get_context_kwargs(),
        )

    def entity_deleted(self, tenant_id: int | None, entity: str, entity_id: Any) -> None:
        self._logger.info(
            "entity_deleted",
            store_id=tenant_id,
            entity=entity,
            entity_id=entity_id,
            **self._get_context_kwargs(),
        )

    def entity_not_found(
        self, tenant_id: int | None, entity: str, entity_id: Any
    ) -> None:
        self._logger.debug(
            "entity_not_found",
            store_id=tenant_id,
            entity=entity,
            entity_id=entity_id,
            **self._get_context_kwargs(),
        )

    def tenant_created(self, tenant_id: int, slug: str) -> None:
        self._logger.info(
            "tenant_created",
            store_id=tenant_id,
            slug=slug,
            **self._get_context_kwargs(),
        )

    def tenant_deactivated(self, tenant_id: int) -> None:
        self._logger.info(
            "tenant_deactivated",
            store_id=tenant_id,
            **self._get_context_kwargs(),
        )

    def schema_provisioned(self, tenant_id: int, schema: str) -> None:
        self._logger.info(
            "tenant_schema_provisioned",
            store_id=tenant_id,
            schema=schema,
            **self._get_context_kwargs(),
        )

    def rows_imported(
        self,
        tenant_id: int,
        table: str,
        inserted: int,
        existing: int,
        conflicting: int = 0,
    ) -> None:
        log = self._logger.warning if conflicting else self._logger.info
        log(
            "tenant_rows_imported",
            store_id=tenant_id,
            table=table,
            inserted=inserted,
            existing=existing,
            conflicting=conflicting,
            **self._get_context_kwargs(),
        )

    def legacy_rows_deleted(self, tenant_id: int, table: str, count: int) -> None:
        self._logger.info(
            "legacy_rows_deleted",
            store_id=tenant_id,
            table=table,
            count=count,
            **self._get_context_kwargs(),
        )

    def authentication_failed(self, username: str, reason: str) -> None:
        self._logger.warning(
            "authentication_failed",
            username=username,
            reason=reason,
            **self._get_context_kwargs(),
        )
