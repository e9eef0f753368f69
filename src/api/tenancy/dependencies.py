"""Request-scoped store resolution for FastAPI.

Decides which store a request belongs to and hands the route a
RequestStorage bound to that store's schema. The store id is taken, in
order of precedence, from a store-bound bearer token, the ``x-store-id``
header and the session's ``storeId``. Requests without any of these only
get the master storage.

Usage in FastAPI routes:
    @router.get("/example")
    async def example(
        storage: Annotated[RequestStorage, Depends(get_request_storage)],
    ):
        products = await storage.require_tenant().list_products()
"""

from __future__ import annotations

import threading
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, Request, status

from auth.dependencies import AuthenticatedUser, get_current_user
from infrastructure.database.dependencies import (
    get_master_executor,
    get_pool_manager,
    get_retry_policy,
)
from infrastructure.observability import ObservationContext
from infrastructure.settings import get_database_settings
from shared_kernel.middleware.observability import (
    DefaultTenantContextProbe,
    TenantContextProbe,
)
from shared_kernel.middleware.tenant_context import TenantContext, TenantSource
from storage.infrastructure.factory import RequestStorage, StorageFactory
from storage.infrastructure.master_storage import MasterStorage
from tenancy.infrastructure.connection_cache import TenantConnectionCache
from tenancy.infrastructure.resolver import TenantResolver
from tenancy.ports.exceptions import TenantResolutionError

INVALID_STORE_DETAIL = "Invalid store configuration"
SESSION_STORE_KEY = "storeId"
REQUEST_ID_HEADER = "x-request-id"

_master_storage: MasterStorage | None = None
_resolver: TenantResolver | None = None
_connection_cache: TenantConnectionCache | None = None
_storage_factory: StorageFactory | None = None

# Thread lock for safe singleton initialization
_lock = threading.Lock()


def get_master_storage() -> MasterStorage:
    """Get the master storage (singleton)."""
    global _master_storage
    if _master_storage is None:
        executor = get_master_executor()
        master_url = get_database_settings().database_url
        with _lock:
            if _master_storage is None:
                _master_storage = MasterStorage(executor, master_url)
    return _master_storage


def get_tenant_resolver() -> TenantResolver:
    """Get the store resolver backed by the master registry (singleton)."""
    global _resolver
    if _resolver is None:
        registry = get_master_storage()
        with _lock:
            if _resolver is None:
                _resolver = TenantResolver(registry, registry.master_url)
    return _resolver


def get_connection_cache() -> TenantConnectionCache:
    """Get the per-store connection cache (singleton)."""
    global _connection_cache
    if _connection_cache is None:
        resolver = get_tenant_resolver()
        pool_manager = get_pool_manager()
        with _lock:
            if _connection_cache is None:
                _connection_cache = TenantConnectionCache(
                    resolver, pool_manager, get_retry_policy()
                )
    return _connection_cache


def get_storage_factory() -> StorageFactory:
    """Get the storage factory (singleton)."""
    global _storage_factory
    if _storage_factory is None:
        master_storage = get_master_storage()
        connection_cache = get_connection_cache()
        with _lock:
            if _storage_factory is None:
                _storage_factory = StorageFactory(master_storage, connection_cache)
    return _storage_factory


async def reset_tenancy() -> None:
    """Drop every cached store connection and the singletons.

    Called on application shutdown before the pools are closed.
    """
    global _master_storage, _resolver, _connection_cache, _storage_factory

    with _lock:
        factory = _storage_factory
        _master_storage = None
        _resolver = None
        _connection_cache = None
        _storage_factory = None

    if factory is not None:
        await factory.invalidate_all()


def get_tenant_context_probe(request: Request) -> TenantContextProbe:
    """Tenant context probe bound to the caller's request id, when sent."""
    return DefaultTenantContextProbe().with_context(
        ObservationContext(request_id=request.headers.get(REQUEST_ID_HEADER))
    )


def _parse_store_id(raw_value: Any) -> int:
    """Parse a store id from a header, session or token value.

    Raises:
        ValueError: If the value is not a positive integer
    """
    if isinstance(raw_value, bool):
        raise ValueError(f"Invalid store id: {raw_value!r}")
    if isinstance(raw_value, int):
        tenant_id = raw_value
    else:
        text = str(raw_value).strip()
        if not text.isdigit():
            raise ValueError(f"Invalid store id: {raw_value!r}")
        tenant_id = int(text)
    if tenant_id <= 0:
        raise ValueError(f"Invalid store id: {raw_value!r}")
    return tenant_id


def _session_store_id(request: Request) -> Any:
    # Only present when a session middleware populated the scope
    session = request.scope.get("session")
    if not session:
        return None
    return session.get(SESSION_STORE_KEY)


def resolve_tenant_context(
    user: AuthenticatedUser | None,
    x_store_id: str | None,
    session_store_id: Any,
    probe: TenantContextProbe,
) -> TenantContext:
    """Pick the store a request is routed to.

    Raises:
        HTTPException 400: If the selected store id is not a positive integer
    """
    candidates: list[tuple[Any, TenantSource]] = []
    if user is not None and not user.is_global and user.store_id is not None:
        candidates.append((user.store_id, TenantSource.USER))
    if x_store_id is not None and x_store_id.strip():
        candidates.append((x_store_id, TenantSource.HEADER))
    if session_store_id is not None:
        candidates.append((session_store_id, TenantSource.SESSION))

    if not candidates:
        probe.no_tenant_selected()
        return TenantContext.global_context()

    raw_value, source = candidates[0]
    try:
        tenant_id = _parse_store_id(raw_value)
    except ValueError as e:
        probe.invalid_tenant_id_format(raw_value=str(raw_value), source=source.value)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=INVALID_STORE_DETAIL,
        ) from e

    return TenantContext(tenant_id=tenant_id, source=source)


async def get_tenant_context(
    request: Request,
    user: Annotated[AuthenticatedUser | None, Depends(get_current_user)],
    probe: Annotated[TenantContextProbe, Depends(get_tenant_context_probe)],
    x_store_id: Annotated[str | None, Header(alias="x-store-id")] = None,
) -> TenantContext:
    """FastAPI dependency resolving the request's TenantContext."""
    return resolve_tenant_context(
        user=user,
        x_store_id=x_store_id,
        session_store_id=_session_store_id(request),
        probe=probe,
    )


async def get_request_storage(
    request: Request,
    context: Annotated[TenantContext, Depends(get_tenant_context)],
    factory: Annotated[StorageFactory, Depends(get_storage_factory)],
    probe: Annotated[TenantContextProbe, Depends(get_tenant_context_probe)],
) -> RequestStorage:
    """Attach the request's storage to ``request.state``.

    A store that is unknown, inactive or misconfigured is rejected; the
    request never falls back to another schema.

    Raises:
        HTTPException 400: If the selected store cannot be resolved
    """
    master = factory.get_master_storage()

    if context.tenant_id is None:
        storage = RequestStorage(master=master)
    else:
        try:
            tenant = await factory.get_tenant_storage(context.tenant_id)
        except (TenantResolutionError, ValueError) as e:
            probe.tenant_resolution_failed(
                tenant_id=context.tenant_id,
                source=context.source.value,
                error=e,
            )
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=INVALID_STORE_DETAIL,
            ) from e
        probe.tenant_selected(tenant_id=context.tenant_id, source=context.source.value)
        storage = RequestStorage(master=master, tenant=tenant)

    request.state.tenant_context = context
    request.state.store_id = context.tenant_id
    request.state.storage = storage
    return storage
