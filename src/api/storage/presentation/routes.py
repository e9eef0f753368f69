"""HTTP routes reading store data through the request storage.

Catalog and order routes are scoped to the request's store and answer 400
when the request did not select one. The admin routes read the master
registry.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from auth.dependencies import AuthenticatedUser, require_global_user
from storage.infrastructure.factory import RequestStorage
from storage.infrastructure.master_storage import MasterStorage
from storage.infrastructure.tenant_storage import TenantStorage
from storage.ports.exceptions import TenantRequiredError
from storage.presentation.models import (
    OrderResponse,
    ProductResponse,
    SystemMetricsResponse,
)
from tenancy.dependencies import get_master_storage, get_request_storage

router = APIRouter(tags=["storefront"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])


def _require_tenant(storage: RequestStorage) -> TenantStorage:
    try:
        return storage.require_tenant()
    except TenantRequiredError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e


@router.get("/products")
async def list_products(
    storage: Annotated[RequestStorage, Depends(get_request_storage)],
) -> list[ProductResponse]:
    """List the catalog of the request's store."""
    products = await _require_tenant(storage).list_products()
    return [ProductResponse.from_record(product) for product in products]


@router.get("/products/search")
async def search_products(
    storage: Annotated[RequestStorage, Depends(get_request_storage)],
    q: Annotated[str, Query(min_length=1, description="Text to look for")],
) -> list[ProductResponse]:
    """Search the store's catalog by name, description, brand or SKU."""
    products = await _require_tenant(storage).search_products(q)
    return [ProductResponse.from_record(product) for product in products]


@router.get("/products/{product_id}")
async def get_product(
    product_id: int,
    storage: Annotated[RequestStorage, Depends(get_request_storage)],
) -> ProductResponse:
    product = await _require_tenant(storage).get_product(product_id)
    if product is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product {product_id} not found",
        )
    return ProductResponse.from_record(product)


@router.get("/orders/{order_id}")
async def get_order(
    order_id: int,
    storage: Annotated[RequestStorage, Depends(get_request_storage)],
) -> OrderResponse:
    """Get one order of the request's store with its line items."""
    order = await _require_tenant(storage).get_order(order_id)
    if order is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Order {order_id} not found",
        )
    return OrderResponse.from_record(order)


@admin_router.get("/metrics")
async def get_system_metrics(
    _user: Annotated[AuthenticatedUser, Depends(require_global_user)],
    master_storage: Annotated[MasterStorage, Depends(get_master_storage)],
) -> SystemMetricsResponse:
    """Registry-wide counters for global administrators."""
    metrics = await master_storage.get_system_metrics()
    return SystemMetricsResponse.from_metrics(metrics)
