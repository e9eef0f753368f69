"""Application-scoped database resources.

Provides the pool manager and the master database executor as lazily created
singletons, plus the startup warm-up and the shutdown hook that disposes
every pool.
"""

from __future__ import annotations

import threading

from infrastructure.database.connection_pool import ConnectionPoolManager
from infrastructure.database.exceptions import DatabaseConnectionError
from infrastructure.database.resilience import ResilientExecutor, RetryPolicy
from infrastructure.settings import get_database_settings
from shared_kernel.connection_target import ConnectionTarget

_pool_manager: ConnectionPoolManager | None = None
_master_executor: ResilientExecutor | None = None

# Thread lock for safe singleton initialization
_lock = threading.Lock()


def get_retry_policy() -> RetryPolicy:
    """Retry policy shared by every executor in the process."""
    return RetryPolicy()


def get_pool_manager() -> ConnectionPoolManager:
    """Get the connection pool manager (singleton).

    Uses double-check locking for thread-safe initialization.
    """
    global _pool_manager
    if _pool_manager is None:
        with _lock:
            if _pool_manager is None:
                _pool_manager = ConnectionPoolManager(get_database_settings())
    return _pool_manager


def get_master_target() -> ConnectionTarget:
    """Connection target for the master database."""
    return ConnectionTarget.master(get_database_settings().database_url)


def get_master_executor() -> ResilientExecutor:
    """Get the resilient executor bound to the master pool (singleton)."""
    global _master_executor
    if _master_executor is None:
        manager = get_pool_manager()
        with _lock:
            if _master_executor is None:
                engine = manager.get_pool(get_master_target())
                _master_executor = ResilientExecutor(engine, get_retry_policy())
    return _master_executor


async def warm_up_master_pool() -> bool:
    """Open the minimum number of master connections.

    Returns:
        False if the master database could not be reached; the pool then
        connects on demand
    """
    try:
        await get_pool_manager().warm_up(get_master_target())
    except DatabaseConnectionError:
        return False
    return True


async def close_database_connections() -> None:
    """Dispose every pool and reset the singletons.

    Called on application shutdown; safe to call when nothing was opened.
    """
    global _pool_manager, _master_executor

    with _lock:
        manager = _pool_manager
        _pool_manager = None
        _master_executor = None

    if manager is not None:
        await manager.close_all()
