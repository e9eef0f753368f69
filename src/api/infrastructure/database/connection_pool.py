"""Connection pool manager for the master database and tenant schemas.

One SQLAlchemy async engine (and therefore one pool) exists per distinct
connection target. Pool-level limits that SQLAlchemy has no setting for are
enforced with pool events.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable

from sqlalchemy import event
from sqlalchemy.exc import DisconnectionError

from infrastructure.database.engines import create_pool_engine, redact_url
from infrastructure.database.exceptions import DatabaseConnectionError
from infrastructure.database.resilience import error_code
from infrastructure.observability.probes import (
    ConnectionProbe,
    DefaultConnectionProbe,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import ExceptionContext
    from sqlalchemy.ext.asyncio import AsyncEngine
    from sqlalchemy.pool import ConnectionPoolEntry

    from infrastructure.settings import DatabaseSettings
    from shared_kernel.connection_target import ConnectionTarget

EngineFactory = Callable[["ConnectionTarget", "DatabaseSettings"], "AsyncEngine"]

_USES_KEY = "storefront_uses"
_CHECKED_IN_AT_KEY = "storefront_checked_in_at"


class _PoolLifecycle:
    """Pool event handlers for one target.

    Tracks checkouts and idle time on each pooled connection record and
    raises DisconnectionError on checkout when a limit is exceeded, which
    makes the pool discard that connection and open a replacement.
    """

    def __init__(
        self,
        target: ConnectionTarget,
        settings: DatabaseSettings,
        probe: ConnectionProbe,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._target = target
        self._max_uses = settings.max_uses
        self._idle_timeout = settings.idle_timeout
        self._probe = probe
        self._clock = clock

    def install(self, engine: AsyncEngine) -> None:
        sync_engine = engine.sync_engine
        event.listen(sync_engine.pool, "checkout", self.on_checkout)
        event.listen(sync_engine.pool, "checkin", self.on_checkin)
        event.listen(sync_engine, "handle_error", self.on_error)

    def on_checkout(
        self,
        dbapi_connection: Any,
        connection_record: ConnectionPoolEntry,
        connection_proxy: Any,
    ) -> None:
        info = connection_record.info
        uses = info.get(_USES_KEY, 0)

        checked_in_at = info.get(_CHECKED_IN_AT_KEY)
        if checked_in_at is not None and self._clock() - checked_in_at > self._idle_timeout:
            self._recycle(info, "idle_timeout", uses)

        if uses >= self._max_uses:
            self._recycle(info, "max_uses", uses)

        info[_USES_KEY] = uses + 1
        info.pop(_CHECKED_IN_AT_KEY, None)

    def on_checkin(
        self,
        dbapi_connection: Any,
        connection_record: ConnectionPoolEntry,
    ) -> None:
        if dbapi_connection is None:
            # Invalidated connections are checked in without a DBAPI connection
            return
        connection_record.info[_CHECKED_IN_AT_KEY] = self._clock()

    def on_error(self, context: ExceptionContext) -> None:
        # Observe only; returning None lets SQLAlchemy raise as usual
        error = context.original_exception
        self._probe.connection_error(
            schema=self._target.schema,
            error=error,
            code=error_code(error),
            is_disconnect=context.is_disconnect,
            occurred_at=datetime.now(timezone.utc).isoformat(),
        )

    def _recycle(self, info: dict[str, Any], reason: str, uses: int) -> None:
        info.pop(_USES_KEY, None)
        info.pop(_CHECKED_IN_AT_KEY, None)
        self._probe.connection_recycled(self._target.schema, reason, uses)
        raise DisconnectionError(f"Pooled connection exceeded {reason}")


class ConnectionPoolManager:
    """Owns every engine created by the application.

    Engines are keyed by target URL. Creation is guarded by a lock with a
    double check, so concurrent callers for one target always receive the
    same engine.

    A closed engine stays tracked as retired until shutdown: an executor
    built on it before the close can still open connections through it,
    and close_all disposes those too.
    """

    def __init__(
        self,
        settings: DatabaseSettings,
        probe: ConnectionProbe | None = None,
        engine_factory: EngineFactory = create_pool_engine,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._probe = probe or DefaultConnectionProbe()
        self._engine_factory = engine_factory
        self._clock = clock
        self._pools: dict[str, AsyncEngine] = {}
        self._targets: dict[str, ConnectionTarget] = {}
        self._retired: list[tuple[ConnectionTarget, AsyncEngine]] = []
        self._lock = threading.Lock()

    @property
    def settings(self) -> DatabaseSettings:
        return self._settings

    def get_pool(self, target: ConnectionTarget) -> AsyncEngine:
        """Get the engine for a target, creating it on first use.

        No connection is opened here; engines connect lazily.
        """
        engine = self._pools.get(target.url)
        if engine is not None:
            return engine

        with self._lock:
            # Double-check after acquiring lock
            engine = self._pools.get(target.url)
            if engine is None:
                engine = self._engine_factory(target, self._settings)
                _PoolLifecycle(
                    target, self._settings, self._probe, self._clock
                ).install(engine)
                self._pools[target.url] = engine
                self._targets[target.url] = target
                self._probe.pool_created(
                    target=redact_url(target.url),
                    schema=target.schema,
                    max_conn=self._settings.pool_max,
                )
        return engine

    def has_pool(self, target: ConnectionTarget) -> bool:
        return target.url in self._pools

    def pool_count(self) -> int:
        return len(self._pools)

    def registered_targets(self) -> list[ConnectionTarget]:
        with self._lock:
            return list(self._targets.values())

    async def warm_up(self, target: ConnectionTarget) -> AsyncEngine:
        """Open the minimum number of connections for a target's pool.

        Raises:
            DatabaseConnectionError: If any of the connections cannot be opened
        """
        engine = self.get_pool(target)
        connections = []
        try:
            for _ in range(self._settings.pool_min):
                connections.append(await engine.connect())
        except Exception as e:
            self._probe.pool_warm_up_failed(target.schema, e)
            raise DatabaseConnectionError(
                f"Failed to warm up connection pool: {e}"
            ) from e
        finally:
            for connection in connections:
                await connection.close()

        self._probe.pool_warmed(target.schema, len(connections))
        return engine

    async def close_pool(self, target: ConnectionTarget) -> bool:
        """Dispose the engine for one target.

        Returns:
            True if a pool existed and was disposed, False otherwise
        """
        with self._lock:
            engine = self._pools.pop(target.url, None)
            self._targets.pop(target.url, None)
            if engine is not None:
                self._retired.append((target, engine))

        if engine is None:
            return False

        await engine.dispose()
        self._probe.pool_closed(target.schema)
        return True

    async def close_all(self) -> None:
        """Dispose every engine. Safe to call repeatedly.

        A failing dispose is logged and the remaining pools are still closed.
        """
        with self._lock:
            engines = list(self._pools.items())
            targets = dict(self._targets)
            retired = list(self._retired)
            self._pools.clear()
            self._targets.clear()
            self._retired.clear()

        for url, engine in engines:
            schema = targets[url].schema if url in targets else None
            try:
                await engine.dispose()
                self._probe.pool_closed(schema)
            except Exception as e:
                self._probe.pool_close_failed(schema, e)

        # Connections opened through an engine after its pool was closed
        for target, engine in retired:
            try:
                await engine.dispose()
            except Exception as e:
                self._probe.pool_close_failed(target.schema, e)

        self._probe.all_pools_closed(len(engines))
