"""Pydantic models for store catalog, order and admin responses.

Field names are exposed in camelCase to match the existing web client.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from storage.infrastructure.master_storage import SystemMetrics


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductResponse(CamelModel):
    """Response model for a catalog entry."""

    id: int
    name: str
    description: str | None = None
    price: Decimal
    category: str
    status: str
    image_url: str | None = None
    sku: str | None = None
    brand: str | None = None
    model: str | None = None
    availability: str | None = None
    stock_quantity: int | None = None
    sale_price: Decimal | None = None
    is_promoted: bool | None = None
    tags: list[str] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ProductResponse:
        return cls.model_validate({k: v for k, v in record.items() if k in cls.model_fields})


class OrderItemResponse(CamelModel):
    id: int
    product_id: int
    product_name: str | None = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    delivery_cost: Decimal | None = None
    notes: str | None = None


class OrderResponse(CamelModel):
    """Response model for an order with its line items."""

    id: int
    order_number: str
    customer_id: int
    assigned_user_id: int | None = None
    status: str
    priority: str
    total_amount: Decimal
    description: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    items: list[OrderItemResponse] = []

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> OrderResponse:
        """Convert an order record, as read with its items, to a response."""
        fields = {k: v for k, v in record.items() if k in cls.model_fields}
        fields["items"] = [
            {k: v for k, v in item.items() if k in OrderItemResponse.model_fields}
            for item in record.get("items", [])
        ]
        return cls.model_validate(fields)


class SystemMetricsResponse(CamelModel):
    """Response model for the store registry summary."""

    total_stores: int
    active_stores: int
    migrated_stores: int
    total_users: int

    @classmethod
    def from_metrics(cls, metrics: SystemMetrics) -> SystemMetricsResponse:
        return cls(
            total_stores=metrics.total_stores,
            active_stores=metrics.active_stores,
            migrated_stores=metrics.migrated_stores,
            total_users=metrics.total_users,
        )
