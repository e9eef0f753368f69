"""Protocol for ecosystem validation and repair observability.

Defines the interface for domain probes that capture what the validator
found and what the repair routine changed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class EcosystemProbe(Protocol):
    """Domain probe for ecosystem validation and repair."""

    def validation_completed(self, store_id: int, is_valid: bool, issues: int) -> None:
        """Record the outcome of validating one store."""
        ...

    def store_check_failed(self, store_id: int, check: str, error: Exception) -> None:
        """Record that one validation check could not run."""
        ...

    def repair_step_failed(self, store_id: int, step: str, error: Exception) -> None:
        """Record that a repair step failed; later steps still run."""
        ...

    def legacy_rows_migrated(self, store_id: int, table: str, count: int) -> None:
        """Record that master rows were moved into the store schema."""
        ...

    def repair_completed(
        self,
        store_id: int,
        success: bool,
        actions: int,
        errors: int,
    ) -> None:
        """Record the outcome of a repair run."""
        ...

    def bulk_validation_completed(self, stores: int, invalid: int) -> None:
        """Record the outcome of validating every active store."""
        ...

    def with_context(self, context: ObservationContext) -> EcosystemProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultEcosystemProbe:
    """Default implementation of EcosystemProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultEcosystemProbe:
        """Create a new probe with observation context bound."""
        return DefaultEcosystemProbe(logger=self._logger, context=context)

    def validation_completed(self, store_id: int, is_valid: bool, issues: int) -> None:
        """Record the outcome of validating one store."""
        log = self._logger.info if is_valid else self._logger.warning
        log(
            "ecosystem_validated",
            store_id=store_id,
            is_valid=is_valid,
            issues=issues,
            **self._get_context_kwargs(),
        )

    def store_check_failed(self, store_id: int, check: str, error: Exception) -> None:
        self._logger.error(
            "ecosystem_check_failed",
            store_id=store_id,
            check=check,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )

    def repair_step_failed(self, store_id: int, step: str, error: Exception) -> None:
        self._logger.error(
            "ecosystem_repair_step_failed",
            store_id=store_id,
            step=step,
            error=str(error),
            error_type=type(error).__name__,
            **self._get_context_kwargs(),
        )

    def legacy_rows_migrated(self, store_id: int, table: str, count: int) -> None:
        self._logger.info(
            "ecosystem_legacy_rows_migrated",
            store_id=store_id,
            table=table,
            count=count,
            **self._get_context_kwargs(),
        )

    def repair_completed(
        self,
        store_id: int,
        success: bool,
        actions: int,
        errors: int,
    ) -> None:
        """Record the outcome of a repair run."""
        log = self._logger.info if success else self._logger.warning
        log(
            "ecosystem_repair_completed",
            store_id=store_id,
            success=success,
            actions=actions,
            errors=errors,
            **self._get_context_kwargs(),
        )

    def bulk_validation_completed(self, stores: int, invalid: int) -> None:
        self._logger.info(
            "ecosystem_bulk_validation_completed",
            stores=stores,
            invalid=invalid,
            **self._get_context_kwargs(),
        )
