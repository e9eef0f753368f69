"""Domain probe for tenant context resolution.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events related to selecting the store a request is
routed to, whether from a token, the ``x-store-id`` header or the session.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class TenantContextProbe(Protocol):
    """Domain probe for tenant context resolution operations."""

    def tenant_selected(self, tenant_id: int, source: str) -> None:
        """Record that a request was routed to a store."""
        ...

    def no_tenant_selected(self) -> None:
        """Record that a request only uses the master database."""
        ...

    def invalid_tenant_id_format(self, raw_value: str, source: str) -> None:
        """Record that a store id could not be parsed."""
        ...

    def tenant_resolution_failed(
        self,
        tenant_id: int,
        source: str,
        error: Exception,
    ) -> None:
        """Record that the selected store could not be resolved."""
        ...

    def with_context(self, context: ObservationContext) -> TenantContextProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultTenantContextProbe:
    """Default implementation of TenantContextProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultTenantContextProbe:
        """Create a new probe with observation context bound."""
        return DefaultTenantContextProbe(logger=self._logger, context=context)

    def tenant_selected(self, tenant_id: int, source: str) -> None:
        """Record that a request was routed to a store."""
        self._logger.debug(
            "tenant_context_selected",
            tenant_id=tenant_id,
            source=source,
            **self._get_context_kwargs(),
        )

    def no_tenant_selected(self) -> None:
        """Record that a request only uses the master database."""
        self._logger.debug(
            "tenant_context_global",
            **self._get_context_kwargs(),
        )

    def invalid_tenant_id_format(self, raw_value: str, source: str) -> None:
        """Record that a store id could not be parsed."""
        self._logger.warning(
            "tenant_context_invalid_format",
            raw_value=raw_value,
            source=source,
            **self._get_context_kwargs(),
        )

    def tenant_resolution_failed(
        self,
        tenant_id: int,
        source: str,
        error: Exception,
    ) -> None:
        """Record that the selected store could not be resolved."""
        self._logger.error(
            "tenant_context_resolution_failed",
            tenant_id=tenant_id,
            source=source,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )
