"""Resilient execution of database operations.

Every operation runs on a connection borrowed for a single attempt. The
attempt is bounded in time, the connection is returned on every exit path,
and transient failures are retried with exponential backoff.
"""

from __future__ import annotations

import asyncio
import errno
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from infrastructure.database.exceptions import (
    DatabaseConnectionError,
    OperationTimeoutError,
)
from infrastructure.observability.probes import (
    DefaultResilienceProbe,
    ResilienceProbe,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

T = TypeVar("T")

Operation = Callable[["AsyncConnection"], Awaitable[T]]

# SQLSTATE codes for admin shutdown, connection exceptions and
# too_many_connections, plus the socket-level codes seen on flaky networks.
RETRYABLE_ERROR_CODES = frozenset(
    {
        "57P01",
        "08000",
        "08003",
        "08006",
        "08001",
        "53300",
        "ECONNRESET",
        "ETIMEDOUT",
        "ENOTFOUND",
    }
)

RETRYABLE_MESSAGE_FRAGMENTS = ("connection", "timeout", "websocket", "network")

_HEALTH_QUERY = text(
    "SELECT current_database() AS database, "
    "(SELECT count(*) FROM pg_stat_activity WHERE state = 'active') "
    "AS active_connections"
)


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt limits and timing for resilient execution.

    Attributes:
        max_attempts: Total attempts, including the first one
        initial_delay: Seconds to wait before the second attempt
        backoff_factor: Multiplier applied to the delay after each retry
        operation_timeout: Seconds one attempt may run
        acquire_timeout: Seconds to wait for a pooled connection
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 1.5
    operation_timeout: float = 30.0
    acquire_timeout: float = 5.0


@dataclass(frozen=True)
class HealthStatus:
    """Outcome of a database health probe."""

    healthy: bool
    latency_ms: float
    database: str | None = None
    active_connections: int | None = None
    error: str | None = None


def error_code(error: BaseException) -> str | None:
    """Find the SQLSTATE or socket error code behind an exception.

    SQLAlchemy wraps driver errors, so the wrapped ``orig`` error and the
    ``__cause__`` chain are searched as well.
    """
    pending: list[BaseException | None] = [error]
    seen: set[int] = set()
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))

        for attribute in ("sqlstate", "pgcode"):
            value = getattr(current, attribute, None)
            if isinstance(value, str) and value:
                return value

        # SQLAlchemyError.code is a documentation link code, not a SQLSTATE
        if not isinstance(current, SQLAlchemyError):
            value = getattr(current, "code", None)
            if isinstance(value, str) and value:
                return value

        errno_value = getattr(current, "errno", None)
        if isinstance(errno_value, int) and errno_value in errno.errorcode:
            return errno.errorcode[errno_value]

        pending.append(getattr(current, "orig", None))
        pending.append(current.__cause__)
    return None


def is_retryable_error(error: BaseException) -> bool:
    """Decide whether an error is transient and worth another attempt."""
    if error_code(error) in RETRYABLE_ERROR_CODES:
        return True
    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGE_FRAGMENTS)


class ResilientExecutor:
    """Runs operations against one engine with timeouts and retries.

    The executor holds no per-call state, so one instance is shared by every
    request that targets the same pool.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        policy: RetryPolicy | None = None,
        probe: ResilienceProbe | None = None,
    ):
        self._engine = engine
        self._policy = policy or RetryPolicy()
        self._probe = probe or DefaultResilienceProbe()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def execute_with_retry(
        self,
        operation: Operation[T],
        context_label: str = "database operation",
    ) -> T:
        """Run an operation, retrying transient failures.

        Args:
            operation: Coroutine function receiving a borrowed connection
            context_label: Name used in logs and timeout messages

        Returns:
            Whatever the operation returns

        Raises:
            OperationTimeoutError: If the last attempt timed out
            DatabaseConnectionError: If no connection could be acquired
            Exception: The operation's own error, unchanged, when it is not
                retryable or when every attempt failed
        """
        max_attempts = self._policy.max_attempts
        delay = self._policy.initial_delay
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            try:
                result = await self._attempt(operation, context_label)
            except Exception as e:
                retryable = is_retryable_error(e)
                self._probe.attempt_failed(
                    context_label, attempt, max_attempts, e, retryable
                )
                if not retryable:
                    raise
                last_error = e
                if attempt == max_attempts:
                    break
                self._probe.retry_scheduled(context_label, attempt + 1, delay)
                await asyncio.sleep(delay)
                delay *= self._policy.backoff_factor
            else:
                self._probe.attempt_succeeded(context_label, attempt)
                return result

        assert last_error is not None
        self._probe.attempts_exhausted(context_label, max_attempts, last_error)
        raise last_error

    async def execute_in_transaction(
        self,
        operation: Operation[T],
        context_label: str = "database transaction",
    ) -> T:
        """Run an operation inside BEGIN/COMMIT, rolling back on error.

        A retried attempt starts a fresh transaction on a fresh connection.
        """

        async def _transactional(connection: AsyncConnection) -> T:
            async with connection.begin():
                return await operation(connection)

        return await self.execute_with_retry(_transactional, context_label)

    async def health_check(self) -> HealthStatus:
        """Probe the database; never raises."""
        started = time.perf_counter()

        async def _query(connection: AsyncConnection) -> dict[str, Any]:
            result = await connection.execute(_HEALTH_QUERY)
            return dict(result.mappings().one())

        try:
            row = await self.execute_with_retry(_query, "health check")
        except Exception as e:
            self._probe.health_check_failed(e)
            return HealthStatus(
                healthy=False,
                latency_ms=_elapsed_ms(started),
                error=str(e),
            )

        return HealthStatus(
            healthy=True,
            latency_ms=_elapsed_ms(started),
            database=row.get("database"),
            active_connections=int(row.get("active_connections") or 0),
        )

    async def _attempt(self, operation: Operation[T], context_label: str) -> T:
        connection = await self._acquire()
        try:
            async with asyncio.timeout(self._policy.operation_timeout) as deadline:
                return await operation(connection)
        except TimeoutError as e:
            if deadline.expired():
                raise OperationTimeoutError(
                    context_label, self._policy.operation_timeout
                ) from e
            raise
        finally:
            await self._release(connection, context_label)

    async def _acquire(self) -> AsyncConnection:
        timeout = self._policy.acquire_timeout
        try:
            async with asyncio.timeout(timeout):
                return await self._engine.connect()
        except TimeoutError as e:
            raise DatabaseConnectionError(
                f"Timed out acquiring a pooled connection after {timeout:g}s"
            ) from e

    async def _release(self, connection: AsyncConnection, context_label: str) -> None:
        try:
            await connection.close()
        except Exception as e:
            self._probe.release_failed(context_label, e)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
