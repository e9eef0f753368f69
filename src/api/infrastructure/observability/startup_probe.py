"""Domain probe for application startup and lifecycle events.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events during application initialization and shutdown.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class StartupProbe(Protocol):
    """Domain probe for application startup operations."""

    def configuration_loaded(self, app_name: str, pool_max: int) -> None:
        """Record that process configuration was loaded and validated."""
        ...

    def configuration_invalid(self, error: str) -> None:
        """Record that startup was aborted because configuration is invalid."""
        ...

    def master_pool_cold(self) -> None:
        """Record that the master pool could not be warmed at startup."""
        ...

    def shutdown_started(self) -> None:
        """Record that the application began releasing its pools."""
        ...

    def with_context(self, context: ObservationContext) -> StartupProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultStartupProbe:
    """Default implementation of StartupProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultStartupProbe:
        """Create a new probe with observation context bound."""
        return DefaultStartupProbe(logger=self._logger, context=context)

    def configuration_loaded(self, app_name: str, pool_max: int) -> None:
        self._logger.info(
            "configuration_loaded",
            app_name=app_name,
            pool_max=pool_max,
            **self._get_context_kwargs(),
        )

    def configuration_invalid(self, error: str) -> None:
        self._logger.error(
            "configuration_invalid",
            error=error,
            **self._get_context_kwargs(),
        )

    def master_pool_cold(self) -> None:
        self._logger.warning(
            "master_pool_warm_up_skipped",
            **self._get_context_kwargs(),
        )

    def shutdown_started(self) -> None:
        self._logger.info(
            "application_shutdown_started",
            **self._get_context_kwargs(),
        )
