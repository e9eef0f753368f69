"""Domain probes for infrastructure observability.

Domain probes provide a high-level instrumentation API oriented around
domain semantics, keeping infrastructure code clean and testable.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class ConnectionProbe(Protocol):
    """Domain probe for connection pool observability.

    This probe captures domain-significant events in the life of the
    per-target pools without exposing logging implementation details.
    """

    def pool_created(self, target: str, schema: str | None, max_conn: int) -> None:
        """Record that a pool was created for a target."""
        ...

    def pool_warmed(self, schema: str | None, connections: int) -> None:
        """Record that a pool opened its minimum connections."""
        ...

    def pool_warm_up_failed(self, schema: str | None, error: Exception) -> None:
        """Record that opening the minimum connections failed."""
        ...

    def connection_recycled(self, schema: str | None, reason: str, uses: int) -> None:
        """Record that a pooled connection was replaced."""
        ...

    def connection_error(
        self,
        schema: str | None,
        error: Exception,
        code: str | None,
        is_disconnect: bool,
        occurred_at: str,
    ) -> None:
        """Record an error raised on a pooled connection."""
        ...

    def pool_closed(self, schema: str | None) -> None:
        """Record that a pool was disposed."""
        ...

    def pool_close_failed(self, schema: str | None, error: Exception) -> None:
        """Record that disposing a pool failed."""
        ...

    def all_pools_closed(self, count: int) -> None:
        """Record that every registered pool was disposed."""
        ...

    def with_context(self, context: ObservationContext) -> ConnectionProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultConnectionProbe:
    """Default implementation of ConnectionProbe using structlog.

    Supports observation context for including request-scoped metadata
    with all log events.
    """

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

    def with_context(self, context: ObservationContext) -> DefaultConnectionProbe:
        """Create a new probe with observation context bound."""
        return DefaultConnectionProbe(logger=self._logger, context=context)

    def pool_created(self, target: str, schema: str | None, max_conn: int) -> None:
        self._logger.info(
            "connection_pool_created",
            target=target,
            schema=schema,
            max_connections=max_conn,
            **self._get_context_kwargs(),
        )

    def pool_warmed(self, schema: str | None, connections: int) -> None:
        self._logger.debug(
            "connection_pool_warmed",
            schema=schema,
            connections=connections,
            **self._get_context_kwargs(),
        )

    def pool_warm_up_failed(self, schema: str | None, error: Exception) -> None:
        self._logger.warning(
            "connection_pool_warm_up_failed",
            schema=schema,
            error=str(error),
            **self._get_context_kwargs(),
        )

    def connection_recycled(self, schema: str | None, reason: str, uses: int) -> None:
        self._logger.debug(
            "pooled_connection_recycled",
            schema=schema,
            reason=reason,
            uses=uses,
            **self._get_context_kwargs(),
        )

    def connection_error(
        self,
        schema: str | None,
        error: Exception,
        code: str | None,
        is_disconnect: bool,
        occurred_at: str,
    ) -> None:
        self._logger.error(
            "pooled_connection_error",
            schema=schema,
            error=str(error),
            error_type=type(error).__name__,
            code=code,
            is_disconnect=is_disconnect,
            occurred_at=occurred_at,
            **self._get_context_kwargs(),
        )

    def pool_closed(self, schema: str | None) -> None:
        self._logger.info(
            "connection_pool_closed",
            schema=schema,
            **self._get_context_kwargs(),
        )

    def pool_close_failed(self, schema: str | None, error: Exception) -> None:
        self._logger.error(
            "connection_pool_close_failed",
            schema=schema,
            error=str(error),
            **self._get_context_kwargs(),
        )

    def all_pools_closed(self, count: int) -> None:
        self._logger.info(
            "all_connection_pools_closed",
            count=count,
            **self._get_context_kwargs(),
        )


class ResilienceProbe(Protocol):
    """Domain probe for retrying database operations."""

    def attempt_failed(
        self,
        context_label: str,
        attempt: int,
        max_attempts: int,
        error: Exception,
        retryable: bool,
    ) -> None:
        """Record that one attempt of an operation failed."""
        ...

    def retry_scheduled(self, context_label: str, attempt: int, delay: float) -> None:
        """Record that the next attempt will start after a delay."""
        ...

    def attempts_exhausted(
        self, context_label: str, attempts: int, error: Exception
    ) -> None:
        """Record that an operation failed on every allowed attempt."""
        ...

    def attempt_succeeded(self, context_label: str, attempt: int) -> None:
        """Record that an attempt of an operation succeeded."""
        ...

    def release_failed(self, context_label: str, error: Exception) -> None:
        """Record that returning a connection to its pool failed."""
        ...

    def health_check_failed(self, error: Exception) -> None:
        """Record that the database health probe failed."""
        ...

    def with_context(self, context: ObservationContext) -> ResilienceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultResilienceProbe:
    """Default implementation of ResilienceProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultResilienceProbe:
        """Create a new probe with observation context bound."""
        return DefaultResilienceProbe(logger=self._logger, context=context)

    def attempt_failed(
        self,
        context_label: str,
        attempt: int,
        max_attempts: int,
        error: Exception,
        retryable: bool,
    ) -> None:
        self._logger.warning(
            "database_attempt_failed",
            operation=context_label,
            attempt=attempt,
            max_attempts=max_attempts,
            error=str(error),
            error_type=type(error).__name__,
            retryable=retryable,
            **self._get_context_kwargs(),
        )

    def retry_scheduled(self, context_label: str, attempt: int, delay: float) -> None:
        self._logger.info(
            "database_retry_scheduled",
            operation=context_label,
            next_attempt=attempt,
            delay_seconds=delay,
            **self._get_context_kwargs(),
        )

    def attempts_exhausted(
        self, context_label: str, attempts: int, error: Exception
    ) -> None:
        self._logger.error(
            "database_attempts_exhausted",
            operation=context_label,
            attempts=attempts,
            error=str(error),
            **self._get_context_kwargs(),
        )

    def attempt_succeeded(self, context_label: str, attempt: int) -> None:
        if attempt == 1:
            self._logger.debug(
                "database_attempt_succeeded",
                operation=context_label,
                attempt=attempt,
                **self._get_context_kwargs(),
            )
            return
        self._logger.info(
            "database_operation_recovered",
            operation=context_label,
            attempt=attempt,
            **self._get_context_kwargs(),
        )

    def release_failed(self, context_label: str, error: Exception) -> None:
        self._logger.warning(
            "database_connection_release_failed",
            operation=context_label,
            error=str(error),
            **self._get_context_kwargs(),
        )

    def health_check_failed(self, error: Exception) -> None:
        self._logger.error(
            "database_health_check_failed",
            error=str(error),
            **self._get_context_kwargs(),
        )
