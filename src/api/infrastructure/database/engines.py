"""Database engine creation for async SQLAlchemy.

This module provides the factory used by the pool manager to create one
asyncpg-backed engine per connection target.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

if TYPE_CHECKING:
    from infrastructure.settings import DatabaseSettings
    from shared_kernel.connection_target import ConnectionTarget

__all__ = [
    "build_async_url",
    "create_pool_engine",
    "redact_url",
]

# Query parameters meaningful to libpq-style URLs but not to asyncpg.
# The schema selector travels as server_settings instead.
_STRIPPED_QUERY_KEYS = ("options", "schema", "channel_binding")


def build_async_url(database_url: str) -> URL:
    """Build an asyncpg URL from a libpq-style connection string.

    Swaps the driver for asyncpg, translates ``sslmode`` to asyncpg's ``ssl``
    argument and drops parameters asyncpg does not understand.

    Args:
        database_url: Connection string, e.g. a hosted Postgres URL with
            ``?sslmode=require``

    Returns:
        SQLAlchemy URL for the ``postgresql+asyncpg`` driver
    """
    url = make_url(database_url)
    query = {
        key: value for key, value in url.query.items() if key not in _STRIPPED_QUERY_KEYS
    }

    sslmode = query.pop("sslmode", None)
    if sslmode is not None and "ssl" not in query:
        query["ssl"] = sslmode

    return url.set(drivername="postgresql+asyncpg", query=query)


def redact_url(database_url: str) -> str:
    """Render a connection string with the password hidden, for logging."""
    try:
        return make_url(database_url).render_as_string(hide_password=True)
    except Exception:
        return "<unparseable database url>"


def create_pool_engine(
    target: ConnectionTarget,
    settings: DatabaseSettings,
) -> AsyncEngine:
    """Create the async engine (and its pool) for one connection target.

    Tenant targets get their schema as a ``search_path`` server setting so
    every connection in the pool resolves unqualified table names inside
    the tenant schema.

    Args:
        target: The database destination
        settings: Pool sizing and lifetime settings

    Returns:
        Configured async engine; no connection is opened until first use
    """
    connect_args: dict[str, Any] = {}
    if target.schema is not None:
        connect_args["server_settings"] = {"search_path": target.schema}

    return create_async_engine(
        build_async_url(target.url),
        pool_size=settings.pool_max,
        max_overflow=0,  # No overflow - strict pool limit
        pool_recycle=settings.max_lifetime,
        pool_pre_ping=True,  # Verify connections before using
        connect_args=connect_args,
        echo=False,
    )
