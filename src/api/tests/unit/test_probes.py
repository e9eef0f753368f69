"""Unit tests for domain probes.

Tests that domain probes correctly capture domain events
following the Domain Oriented Observability pattern.
"""

from unittest.mock import MagicMock

import pytest
import structlog

from infrastructure.observability import ObservationContext
from infrastructure.observability.probes import (
    DefaultConnectionProbe,
    DefaultResilienceProbe,
)
from infrastructure.observability.startup_probe import DefaultStartupProbe


@pytest.fixture
def mock_logger() -> MagicMock:
    return MagicMock(spec=structlog.stdlib.BoundLogger)


class TestConnectionProbe:
    """Tests for ConnectionProbe protocol and implementation."""

    def test_default_probe_creates_with_default_logger(self):
        """Default probe should work without explicit logger."""
        probe = DefaultConnectionProbe()
        assert probe._logger is not None

    def test_default_probe_accepts_custom_logger(self, mock_logger):
        probe = DefaultConnectionProbe(logger=mock_logger)
        assert probe._logger is mock_logger

    def test_pool_created_logs_info(self, mock_logger):
        """pool_created should log the redacted target and sizing."""
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.pool_created(
            target="postgresql://shop:***@db/storefront", schema="store_7", max_conn=20
        )

        mock_logger.info.assert_called_once_with(
            "connection_pool_created",
            target="postgresql://shop:***@db/storefront",
            schema="store_7",
            max_connections=20,
        )

    def test_connection_error_logs_error(self, mock_logger):
        probe = DefaultConnectionProbe(logger=mock_logger)
        error = ConnectionResetError("reset by peer")

        probe.connection_error(
            schema=None,
            error=error,
            code="ECONNRESET",
            is_disconnect=True,
            occurred_at="2026-01-05T10:00:00+00:00",
        )

        mock_logger.error.assert_called_once_with(
            "pooled_connection_error",
            schema=None,
            error="reset by peer",
            error_type="ConnectionResetError",
            code="ECONNRESET",
            is_disconnect=True,
            occurred_at="2026-01-05T10:00:00+00:00",
        )

    def test_warm_up_failure_is_a_warning(self, mock_logger):
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.pool_warm_up_failed(schema="store_7", error=OSError("refused"))

        mock_logger.warning.assert_called_once_with(
            "connection_pool_warm_up_failed", schema="store_7", error="refused"
        )

    def test_all_pools_closed_logs_count(self, mock_logger):
        probe = DefaultConnectionProbe(logger=mock_logger)

        probe.all_pools_closed(count=3)

        mock_logger.info.assert_called_once_with("all_connection_pools_closed", count=3)


class TestResilienceProbe:
    """Tests for ResilienceProbe implementation."""

    def test_attempt_failed_logs_warning(self, mock_logger):
        probe = DefaultResilienceProbe(logger=mock_logger)

        probe.attempt_failed(
            context_label="list products (store 7)",
            attempt=1,
            max_attempts=3,
            error=TimeoutError("timed out"),
            retryable=True,
        )

        mock_logger.warning.assert_called_once_with(
            "database_attempt_failed",
            operation="list products (store 7)",
            attempt=1,
            max_attempts=3,
            error="timed out",
            error_type="TimeoutError",
            retryable=True,
        )

    def test_first_attempt_success_is_debug(self, mock_logger):
        probe = DefaultResilienceProbe(logger=mock_logger)

        probe.attempt_succeeded(context_label="get tenant", attempt=1)

        mock_logger.debug.assert_called_once()
        mock_logger.info.assert_not_called()

    def test_recovery_after_retry_is_info(self, mock_logger):
        probe = DefaultResilienceProbe(logger=mock_logger)

        probe.attempt_succeeded(context_label="get tenant", attempt=2)

        mock_logger.info.assert_called_once_with(
            "database_operation_recovered", operation="get tenant", attempt=2
        )

    def test_attempts_exhausted_logs_error(self, mock_logger):
        probe = DefaultResilienceProbe(logger=mock_logger)

        probe.attempts_exhausted(
            context_label="get tenant", attempts=3, error=OSError("down")
        )

        mock_logger.error.assert_called_once_with(
            "database_attempts_exhausted",
            operation="get tenant",
            attempts=3,
            error="down",
        )


class TestStartupProbe:
    def test_configuration_loaded(self, mock_logger):
        probe = DefaultStartupProbe(logger=mock_logger)

        probe.configuration_loaded(app_name="storefront", pool_max=20)

        mock_logger.info.assert_called_once_with(
            "configuration_loaded", app_name="storefront", pool_max=20
        )

    def test_configuration_invalid(self, mock_logger):
        probe = DefaultStartupProbe(logger=mock_logger)

        probe.configuration_invalid("DATABASE_URL is required")

        mock_logger.error.assert_called_once_with(
            "configuration_invalid", error="DATABASE_URL is required"
        )


class TestProbeProtocolCompliance:
    """Tests to verify implementations match Protocol expectations."""

    def test_default_connection_probe_matches_protocol(self):
        probe = DefaultConnectionProbe()
        for name in (
            "pool_created",
            "pool_warmed",
            "pool_warm_up_failed",
            "connection_recycled",
            "connection_error",
            "pool_closed",
            "pool_close_failed",
            "all_pools_closed",
            "with_context",
        ):
            assert callable(getattr(probe, name))

    def test_default_resilience_probe_matches_protocol(self):
        probe = DefaultResilienceProbe()
        for name in (
            "attempt_failed",
            "retry_scheduled",
            "attempts_exhausted",
            "attempt_succeeded",
            "release_failed",
            "health_check_failed",
            "with_context",
        ):
            assert callable(getattr(probe, name))


class TestObservationContext:
    """Tests for ObservationContext."""

    def test_context_creates_with_defaults(self):
        """Context should work with no arguments."""
        context = ObservationContext()
        assert context.request_id is None
        assert context.user_id is None
        assert context.tenant_id is None
        assert context.extra == {}

    def test_as_dict_excludes_none_values(self):
        """as_dict should only include non-None values."""
        context = ObservationContext(request_id="req-123")
        assert context.as_dict() == {"request_id": "req-123"}

    def test_as_dict_includes_all_set_values(self):
        context = ObservationContext(
            request_id="req-123",
            user_id="11",
            tenant_id="7",
            extra={"schema": "store_7"},
        )
        assert context.as_dict() == {
            "request_id": "req-123",
            "user_id": "11",
            "tenant_id": "7",
            "schema": "store_7",
        }

    def test_with_tenant_creates_new_context(self):
        """with_tenant should return a new context scoped to the store."""
        original = ObservationContext(request_id="req-123")
        scoped = original.with_tenant(7)

        assert scoped is not original
        assert scoped.tenant_id == "7"
        assert scoped.request_id == "req-123"
        assert original.tenant_id is None

    def test_with_extra_creates_new_context(self):
        original = ObservationContext(extra={"a": 1})
        extended = original.with_extra(b=2)

        assert extended.extra == {"a": 1, "b": 2}
        assert original.extra == {"a": 1}

    def test_context_is_immutable(self):
        """Context should be frozen (immutable)."""
        context = ObservationContext(request_id="req-123")
        with pytest.raises(AttributeError):
            context.request_id = "new-id"  # type: ignore[misc]


class TestProbesWithContext:
    """Tests for probes with observation context."""

    def test_connection_probe_with_context_includes_metadata(self, mock_logger):
        context = ObservationContext(request_id="req-123", tenant_id="7")
        probe = DefaultConnectionProbe(logger=mock_logger).with_context(context)

        probe.pool_closed(schema="store_7")

        mock_logger.info.assert_called_once_with(
            "connection_pool_closed",
            schema="store_7",
            request_id="req-123",
            tenant_id="7",
        )

    def test_resilience_probe_with_context_preserves_logger(self, mock_logger):
        probe = DefaultResilienceProbe(logger=mock_logger)
        new_probe = probe.with_context(ObservationContext(request_id="req-1"))

        assert new_probe._logger is mock_logger
        assert new_probe is not probe
