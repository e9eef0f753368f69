"""Main FastAPI application entry point."""

import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, FastAPI

from auth.presentation import routes as auth_routes
from ecosystem.presentation import routes as ecosystem_routes
from infrastructure.database.dependencies import (
    close_database_connections,
    get_master_executor,
    warm_up_master_pool,
)
from infrastructure.database.exceptions import ConfigurationError
from infrastructure.database.resilience import ResilientExecutor
from infrastructure.logging import configure_logging
from infrastructure.observability import DefaultStartupProbe
from infrastructure.settings import get_database_settings, get_settings
from infrastructure.version import __version__
from storage.presentation import routes as storage_routes
from tenancy.dependencies import reset_tenancy

_started_at = time.monotonic()


@asynccontextmanager
async def storefront_lifespan(app: FastAPI):
    """Application lifespan context.

    Manages:
    - Logging setup and fail-fast configuration loading
    - Pool lifecycle (master warmed at startup, store pools warmed when first
      used, all closed on shutdown)
    """
    configure_logging()
    probe = DefaultStartupProbe()
    try:
        database_settings = get_database_settings()
    except ConfigurationError as e:
        probe.configuration_invalid(str(e))
        raise
    probe.configuration_loaded(get_settings().app_name, database_settings.pool_max)
    if not await warm_up_master_pool():
        probe.master_pool_cold()

    yield

    probe.shutdown_started()
    await reset_tenancy()
    await close_database_connections()


app = FastAPI(
    title="Storefront API",
    description="Multi-tenant order management for WhatsApp stores",
    version=__version__,
    lifespan=storefront_lifespan,
)

app.include_router(auth_routes.router)
app.include_router(storage_routes.router)
app.include_router(storage_routes.admin_router)
app.include_router(ecosystem_routes.router)


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started_at, 3),
        "version": __version__,
        "environment": os.getenv("ENVIRONMENT", "development"),
    }


@app.get("/health/db")
async def health_db(
    executor: Annotated[ResilientExecutor, Depends(get_master_executor)],
) -> dict:
    """Check master database health.

    Returns the connection status, round-trip latency and how many
    connections the server currently has open.
    """
    status = await executor.health_check()
    return {
        "status": "ok" if status.healthy else "unhealthy",
        "latency_ms": status.latency_ms,
        "database": status.database,
        "active_connections": status.active_connections,
        "error": status.error,
    }
