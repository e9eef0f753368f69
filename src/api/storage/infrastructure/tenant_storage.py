"""Storage bound to one store's schema.

Statements are written without any store filter: the executor's pool routes
unqualified table names to the store schema through its search_path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, NoReturn

from sqlalchemy import Table, delete, func, insert, or_, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.sql import Executable

from infrastructure.database.models import TenantBase
from storage.infrastructure.models import (
    AutoResponseModel,
    ConversationModel,
    CustomerModel,
    MessageModel,
    OrderHistoryModel,
    OrderItemModel,
    OrderModel,
    ProductCategoryModel,
    ProductModel,
    StoreSettingsModel,
)
from storage.infrastructure.observability import DefaultStorageProbe, StorageProbe
from storage.ports.exceptions import EntityNotFoundError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncConnection

    from infrastructure.database.resilience import ResilientExecutor

_products: Table = ProductModel.__table__  # type: ignore[assignment]
_categories: Table = ProductCategoryModel.__table__  # type: ignore[assignment]
_customers: Table = CustomerModel.__table__  # type: ignore[assignment]
_orders: Table = OrderModel.__table__  # type: ignore[assignment]
_order_items: Table = OrderItemModel.__table__  # type: ignore[assignment]
_order_history: Table = OrderHistoryModel.__table__  # type: ignore[assignment]
_conversations: Table = ConversationModel.__table__  # type: ignore[assignment]
_messages: Table = MessageModel.__table__  # type: ignore[assignment]
_auto_responses: Table = AutoResponseModel.__table__  # type: ignore[assignment]
_settings: Table = StoreSettingsModel.__table__  # type: ignore[assignment]

Record = dict[str, Any]


@dataclass(frozen=True)
class ImportResult:
    """Outcome of copying rows into a store table.

    ``existing`` lists ids already present with identical values, for
    example rows copied by an earlier run that stopped before cleaning up.
    ``conflicting`` lists ids taken by a different row in the store table;
    those source rows were not copied.
    """

    table: str
    inserted: list[int] = field(default_factory=list)
    existing: list[int] = field(default_factory=list)
    conflicting: list[int] = field(default_factory=list)

    @property
    def copied_ids(self) -> list[int]:
        """Source ids now held by the store table, safe to remove at the source."""
        return sorted(self.inserted + self.existing)


def _tenant_table(name: str) -> Table:
    try:
        return TenantBase.metadata.tables[name]
    except KeyError:
        raise ValueError(f"Unknown store table: {name!r}") from None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_phone(phone: str) -> str:
    """Strip formatting and a leading Mexican country code from a phone number."""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) > 10 and digits.startswith("52"):
        digits = digits[2:]
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    return digits


class TenantStorage:
    """Data access for one store, fixed at construction."""

    def __init__(
        self,
        tenant_id: int,
        executor: ResilientExecutor,
        probe: StorageProbe | None = None,
    ):
        self._tenant_id = tenant_id
        self._executor = executor
        self._probe = probe or DefaultStorageProbe()

    @property
    def tenant_id(self) -> int:
        return self._tenant_id

    @property
    def executor(self) -> ResilientExecutor:
        return self._executor

    # Statement helpers

    def _label(self, action: str) -> str:
        return f"{action} (store {self._tenant_id})"

    async def _fetch_all(self, statement: Executable, action: str) -> list[Record]:
        async def _op(conn: AsyncConnection) -> list[Record]:
            result = await conn.execute(statement)
            return [dict(row) for row in result.mappings().all()]

        return await self._executor.execute_with_retry(_op, self._label(action))

    async def _fetch_one(self, statement: Executable, action: str) -> Record | None:
        async def _op(conn: AsyncConnection) -> Record | None:
            result = await conn.execute(statement)
            row = result.mappings().first()
            return dict(row) if row is not None else None

        return await self._executor.execute_with_retry(_op, self._label(action))

    async def _insert(self, table: Table, entity: str, values: Record) -> Record:
        statement = insert(table).values(**values).returning(table)

        async def _op(conn: AsyncConnection) -> Record:
            result = await conn.execute(statement)
            return dict(result.mappings().one())

        record = await self._executor.execute_in_transaction(
            _op, self._label(f"create {entity}")
        )
        self._probe.entity_created(self._tenant_id, entity, record["id"])
        return record

    async def _update(
        self, table: Table, entity: str, entity_id: int, changes: Record
    ) -> Record:
        values = dict(changes)
        if "updated_at" in table.c:
            values["updated_at"] = _utc_now()
        statement = (
            update(table).where(table.c.id == entity_id).values(**values).returning(table)
        )

        async def _op(conn: AsyncConnection) -> Record | None:
            result = await conn.execute(statement)
            row = result.mappings().first()
            return dict(row) if row is not None else None

        record = await self._executor.execute_in_transaction(
            _op, self._label(f"update {entity}")
        )
        if record is None:
            self._not_found(entity, entity_id)
        self._probe.entity_updated(self._tenant_id, entity, entity_id)
        return record

    async def _delete(self, table: Table, entity: str, entity_id: int) -> None:
        statement = delete(table).where(table.c.id == entity_id)

        async def _op(conn: AsyncConnection) -> int:
            result = await conn.execute(statement)
            return result.rowcount

        deleted = await self._executor.execute_in_transaction(
            _op, self._label(f"delete {entity}")
        )
        if deleted == 0:
            self._not_found(entity, entity_id)
        self._probe.entity_deleted(self._tenant_id, entity, entity_id)

    def _not_found(self, entity: str, entity_id: Any) -> NoReturn:
        self._probe.entity_not_found(self._tenant_id, entity, entity_id)
        raise EntityNotFoundError(entity, entity_id, self._tenant_id)

    # Products

    async def list_products(self) -> list[Record]:
        return await self._fetch_all(
            select(_products).order_by(_products.c.created_at.desc()), "list products"
        )

    async def get_product(self, product_id: int) -> Record | None:
        return await self._fetch_one(
            select(_products).where(_products.c.id == product_id), "get product"
        )

    async def get_product_by_sku(self, sku: str) -> Record | None:
        return await self._fetch_one(
            select(_products).where(_products.c.sku == sku), "get product by sku"
        )

    async def get_products_by_category(self, category: str) -> list[Record]:
        return await self._fetch_all(
            select(_products)
            .where(_products.c.category == category)
            .order_by(_products.c.name),
            "list products by category",
        )

    async def search_products(self, query: str) -> list[Record]:
        pattern = f"%{query}%"
        return await self._fetch_all(
            select(_products)
            .where(
                or_(
                    _products.c.name.ilike(pattern),
                    _products.c.description.ilike(pattern),
                    _products.c.sku.ilike(pattern),
                    _products.c.brand.ilike(pattern),
                )
            )
            .order_by(_products.c.name),
            "search products",
        )

    async def create_product(self, values: Record) -> Record:
        return await self._insert(_products, "Product", values)

    async def update_product(self, product_id: int, changes: Record) -> Record:
        return await self._update(_products, "Product", product_id, changes)

    async def delete_product(self, product_id: int) -> None:
        await self._delete(_products, "Product", product_id)

    # Categories

    async def list_categories(self) -> list[Record]:
        return await self._fetch_all(
            select(_categories).order_by(_categories.c.name), "list categories"
        )

    async def list_active_categories(self) -> list[Record]:
        return await self._fetch_all(
            select(_categories)
            .where(_categories.c.is_active.is_(True))
            .order_by(_categories.c.sort_order, _categories.c.name),
            "list active categories",
        )

    async def get_category(self, category_id: int) -> Record | None:
        return await self._fetch_one(
            select(_categories).where(_categories.c.id == category_id), "get category"
        )

    async def create_category(self, values: Record) -> Record:
        return await self._insert(_categories, "Category", values)

    async def update_category(self, category_id: int, changes: Record) -> Record:
        return await self._update(_categories, "Category", category_id, changes)

    async def delete_category(self, category_id: int) -> None:
        await self._delete(_categories, "Category", category_id)

    # Customers

    async def list_customers(self) -> list[Record]:
        return await self._fetch_all(
            select(_customers).order_by(_customers.c.last_contact.desc().nulls_last()),
            "list customers",
        )

    async def get_customer(self, customer_id: int) -> Record | None:
        return await self._fetch_one(
            select(_customers).where(_customers.c.id == customer_id), "get customer"
        )

    async def get_customer_by_phone(self, phone: str) -> Record | None:
        """Find a customer by phone, tolerating country-code variants."""
        normalized = _normalize_phone(phone)
        candidates = {phone, normalized, f"+52{normalized}", f"52{normalized}"}
        return await self._fetch_one(
            select(_customers).where(_customers.c.phone.in_(candidates)).limit(1),
            "get customer by phone",
        )

    async def search_customers(self, query: str) -> list[Record]:
        pattern = f"%{query}%"
        return await self._fetch_all(
            select(_customers)
            .where(
                or_(
                    _customers.c.name.ilike(pattern),
                    _customers.c.phone.ilike(pattern),
                    _customers.c.email.ilike(pattern),
                )
            )
            .order_by(_customers.c.name),
            "search customers",
        )

    async def create_customer(self, values: Record) -> Record:
        return await self._insert(_customers, "Customer", values)

    async def update_customer(self, customer_id: int, changes: Record) -> Record:
        return await self._update(_customers, "Customer", customer_id, changes)

    async def delete_customer(self, customer_id: int) -> None:
        """Delete a customer together with their conversations and messages."""
        conversation_ids = select(_conversations.c.id).where(
            _conversations.c.customer_id == customer_id
        )

        async def _op(conn: AsyncConnection) -> int:
            await conn.execute(
                delete(_messages).where(_messages.c.conversation_id.in_(conversation_ids))
            )
            await conn.execute(
                delete(_conversations).where(_conversations.c.customer_id == customer_id)
            )
            result = await conn.execute(
                delete(_customers).where(_customers.c.id == customer_id)
            )
            return result.rowcount

        deleted = await self._executor.execute_in_transaction(
            _op, self._label("delete Customer")
        )
        if deleted == 0:
            self._not_found("Customer", customer_id)
        self._probe.entity_deleted(self._tenant_id, "Customer", customer_id)

    # Orders

    async def create_order(
        self,
        values: Record,
        items: list[Record],
        user_id: int | None = None,
    ) -> Record:
        """Create an order with its items and first history entry.

        Everything is written in one transaction and the order is read back,
        with its items, on the same connection.
        """
        order_values = dict(values)
        order_values.setdefault(
            "order_number", f"ORD-{int(_utc_now().timestamp() * 1000)}"
        )

        async def _op(conn: AsyncConnection) -> Record:
            result = await conn.execute(
                insert(_orders).values(**order_values).returning(_orders.c.id)
            )
            order_id = result.scalar_one()
            for item in items:
                await conn.execute(insert(_order_items).values(**item, order_id=order_id))
            await conn.execute(
                insert(_order_history).values(
                    order_id=order_id,
                    user_id=user_id,
                    status_from=None,
                    status_to=order_values.get("status", "pending"),
                    action="created",
                )
            )
            return await self._read_order(conn, order_id)  # type: ignore[return-value]

        order = await self._executor.execute_in_transaction(
            _op, self._label("create Order")
        )
        self._probe.entity_created(self._tenant_id, "Order", order["id"])
        return order

    async def _read_order(self, conn: AsyncConnection, order_id: int) -> Record | None:
        result = await conn.execute(select(_orders).where(_orders.c.id == order_id))
        row = result.mappings().first()
        if row is None:
            return None
        items = await conn.execute(
            select(_order_items, _products.c.name.label("product_name"))
            .join(_products, _products.c.id == _order_items.c.product_id, isouter=True)
            .where(_order_items.c.order_id == order_id)
            .order_by(_order_items.c.id)
        )
        return {**dict(row), "items": [dict(item) for item in items.mappings().all()]}

    async def get_order(self, order_id: int) -> Record | None:
        """Get an order with its items."""

        async def _op(conn: AsyncConnection) -> Record | None:
            return await self._read_order(conn, order_id)

        return await self._executor.execute_with_retry(_op, self._label("get order"))

    async def get_order_by_number(self, order_number: str) -> Record | None:
        return await self._fetch_one(
            select(_orders).where(_orders.c.order_number == order_number),
            "get order by number",
        )

    async def list_orders(self, limit: int | None = None) -> list[Record]:
        statement = select(_orders).order_by(_orders.c.created_at.desc())
        if limit is not None:
            statement = statement.limit(limit)
        return await self._fetch_all(statement, "list orders")

    async def get_orders_by_status(self, status: str) -> list[Record]:
        return await self._fetch_all(
            select(_orders)
            .where(_orders.c.status == status)
            .order_by(_orders.c.created_at.desc()),
            "list orders by status",
        )

    async def get_order_history(self, order_id: int) -> list[Record]:
        return await self._fetch_all(
            select(_order_history)
            .where(_order_history.c.order_id == order_id)
            .order_by(_order_history.c.timestamp),
            "get order history",
        )

    async def update_order(self, order_id: int, changes: Record) -> Record:
        return await self._update(_orders, "Order", order_id, changes)

    async def update_order_status(
        self,
        order_id: int,
        status: str,
        user_id: int | None = None,
        notes: str | None = None,
    ) -> Record:
        """Change an order's status and append the transition to its history."""

        async def _op(conn: AsyncConnection) -> Record | None:
            result = await conn.execute(
                select(_orders.c.status).where(_orders.c.id == order_id).with_for_update()
            )
            previous = result.scalar_one_or_none()
            if previous is None:
                return None
            result = await conn.execute(
                update(_orders)
                .where(_orders.c.id == order_id)
                .values(status=status, updated_at=_utc_now())
                .returning(_orders)
            )
            order = dict(result.mappings().one())
            await conn.execute(
                insert(_order_history).values(
                    order_id=order_id,
                    user_id=user_id,
                    status_from=previous,
                    status_to=status,
                    action="status_changed",
                    notes=notes,
                )
            )
            return order

        order = await self._executor.execute_in_transaction(
            _op, self._label("update Order status")
        )
        if order is None:
            self._not_found("Order", order_id)
        self._probe.entity_updated(self._tenant_id, "Order", order_id)
        return order

    async def delete_order(self, order_id: int) -> None:
        """Delete an order with its items and history."""

        async def _op(conn: AsyncConnection) -> int:
            await conn.execute(
                delete(_order_items).where(_order_items.c.order_id == order_id)
            )
            await conn.execute(
                delete(_order_history).where(_order_history.c.order_id == order_id)
            )
            await conn.execute(
                update(_conversations)
                .where(_conversations.c.order_id == order_id)
                .values(order_id=None)
            )
            result = await conn.execute(delete(_orders).where(_orders.c.id == order_id))
            return result.rowcount

        deleted = await self._executor.execute_in_transaction(
            _op, self._label("delete Order")
        )
        if deleted == 0:
            self._not_found("Order", order_id)
        self._probe.entity_deleted(self._tenant_id, "Order", order_id)

    # Conversations and messages

    async def create_conversation(self, values: Record) -> Record:
        return await self._insert(_conversations, "Conversation", values)

    async def get_conversation(self, conversation_id: int) -> Record | None:
        """Get a conversation with its customer and messages."""

        async def _op(conn: AsyncConnection) -> Record | None:
            result = await conn.execute(
                select(_conversations).where(_conversations.c.id == conversation_id)
            )
            row = result.mappings().first()
            if row is None:
                return None
            customer = await conn.execute(
                select(_customers).where(_customers.c.id == row["customer_id"])
            )
            messages = await conn.execute(
                select(_messages)
                .where(_messages.c.conversation_id == conversation_id)
                .order_by(_messages.c.sent_at)
            )
            customer_row = customer.mappings().first()
            return {
                **dict(row),
                "customer": dict(customer_row) if customer_row is not None else None,
                "messages": [dict(message) for message in messages.mappings().all()],
            }

        return await self._executor.execute_with_retry(
            _op, self._label("get conversation")
        )

    async def get_conversations_by_customer(self, customer_id: int) -> list[Record]:
        return await self._fetch_all(
            select(_conversations)
            .where(_conversations.c.customer_id == customer_id)
            .order_by(_conversations.c.last_message_at.desc()),
            "list conversations by customer",
        )

    async def list_conversations(self) -> list[Record]:
        return await self._fetch_all(
            select(_conversations).order_by(_conversations.c.last_message_at.desc()),
            "list conversations",
        )

    async def list_active_conversations(self) -> list[Record]:
        return await self._fetch_all(
            select(_conversations)
            .where(_conversations.c.status == "active")
            .order_by(_conversations.c.last_message_at.desc()),
            "list active conversations",
        )

    async def update_conversation(self, conversation_id: int, changes: Record) -> Record:
        return await self._update(_conversations, "Conversation", conversation_id, changes)

    async def create_message(self, values: Record) -> Record:
        """Store a message and bump its conversation's last_message_at."""
        conversation_id = values["conversation_id"]

        async def _op(conn: AsyncConnection) -> Record:
            result = await conn.execute(
                insert(_messages).values(**values).returning(_messages)
            )
            message = dict(result.mappings().one())
            await conn.execute(
                update(_conversations)
                .where(_conversations.c.id == conversation_id)
                .values(last_message_at=message["sent_at"])
            )
            return message

        message = await self._executor.execute_in_transaction(
            _op, self._label("create Message")
        )
        self._probe.entity_created(self._tenant_id, "Message", message["id"])
        return message

    async def get_messages(self, conversation_id: int) -> list[Record]:
        return await self._fetch_all(
            select(_messages)
            .where(_messages.c.conversation_id == conversation_id)
            .order_by(_messages.c.sent_at),
            "list messages",
        )

    async def mark_messages_read(self, conversation_id: int) -> int:
        """Mark every unread message of a conversation as read."""
        statement = (
            update(_messages)
            .where(_messages.c.conversation_id == conversation_id)
            .where(_messages.c.is_read.is_not(True))
            .values(is_read=True)
        )

        async def _op(conn: AsyncConnection) -> int:
            result = await conn.execute(statement)
            return result.rowcount

        return await self._executor.execute_in_transaction(
            _op, self._label("mark messages read")
        )

    # Auto responses

    async def list_auto_responses(self) -> list[Record]:
        return await self._fetch_all(
            select(_auto_responses).order_by(_auto_responses.c.priority),
            "list auto responses",
        )

    async def list_active_auto_responses(self) -> list[Record]:
        return await self._fetch_all(
            select(_auto_responses)
            .where(_auto_responses.c.is_active.is_(True))
            .order_by(_auto_responses.c.priority),
            "list active auto responses",
        )

    async def get_auto_responses_by_trigger(self, trigger: str) -> list[Record]:
        return await self._fetch_all(
            select(_auto_responses)
            .where(_auto_responses.c.trigger == trigger)
            .where(_auto_responses.c.is_active.is_(True))
            .order_by(_auto_responses.c.priority),
            "list auto responses by trigger",
        )

    async def create_auto_response(self, values: Record) -> Record:
        return await self._insert(_auto_responses, "AutoResponse", values)

    async def update_auto_response(self, response_id: int, changes: Record) -> Record:
        return await self._update(_auto_responses, "AutoResponse", response_id, changes)

    async def delete_auto_response(self, response_id: int) -> None:
        await self._delete(_auto_responses, "AutoResponse", response_id)

    # Store settings

    async def get_settings(self) -> Record | None:
        return await self._fetch_one(
            select(_settings).order_by(_settings.c.id).limit(1), "get settings"
        )

    async def upsert_settings(self, values: Record) -> Record:
        """Update the settings row, creating it when the store has none."""

        async def _op(conn: AsyncConnection) -> Record:
            result = await conn.execute(
                select(_settings.c.id).order_by(_settings.c.id).limit(1).with_for_update()
            )
            settings_id = result.scalar_one_or_none()
            if settings_id is None:
                statement = insert(_settings).values(**values).returning(_settings)
            else:
                statement = (
                    update(_settings)
                    .where(_settings.c.id == settings_id)
                    .values(**values, updated_at=_utc_now())
                    .returning(_settings)
                )
            result = await conn.execute(statement)
            return dict(result.mappings().one())

        settings = await self._executor.execute_in_transaction(
            _op, self._label("save settings")
        )
        self._probe.entity_updated(self._tenant_id, "StoreSettings", settings["id"])
        return settings

    # Ecosystem helpers

    async def list_tables(self) -> list[str]:
        """Base tables of the schema this storage is routed to."""
        return [
            row["table_name"]
            for row in await self._fetch_all(
                text(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = current_schema() "
                    "AND table_type = 'BASE TABLE' ORDER BY table_name"
                ),
                "list tables",
            )
        ]

    async def count_rows(self, table: str) -> int:
        statement = select(func.count()).select_from(_tenant_table(table))

        async def _op(conn: AsyncConnection) -> int:
            result = await conn.execute(statement)
            return int(result.scalar_one())

        return await self._executor.execute_with_retry(
            _op, self._label(f"count {table}")
        )

    async def has_settings(self) -> bool:
        return await self.count_rows("store_settings") > 0

    async def import_rows(
        self,
        table: str,
        rows: list[Record],
        preserve_ids: bool = True,
    ) -> ImportResult:
        """Copy rows into a store table in one transaction.

        Columns the store table does not have (such as ``store_id`` on
        legacy master rows) are dropped. With ``preserve_ids`` the original
        primary keys are kept and the id sequence is moved past the highest
        imported id. A row whose id is already taken is skipped: it counts
        as ``existing`` when the stored row carries the same values and as
        ``conflicting`` otherwise.
        """
        target = _tenant_table(table)
        columns = set(target.c.keys())
        if not preserve_ids:
            columns.discard("id")

        async def _op(conn: AsyncConnection) -> ImportResult:
            result = ImportResult(table=table)
            for row in rows:
                values = {key: value for key, value in row.items() if key in columns}
                statement = pg_insert(target).values(**values)
                if preserve_ids:
                    statement = statement.on_conflict_do_nothing(
                        index_elements=[target.c.id]
                    )
                inserted = await conn.execute(statement.returning(target.c.id))
                inserted_id = inserted.scalar_one_or_none()
                if inserted_id is not None:
                    result.inserted.append(inserted_id)
                elif preserve_ids:
                    stored = await conn.execute(
                        select(target).where(target.c.id == values["id"])
                    )
                    current = stored.mappings().first()
                    if current is not None and all(
                        current[key] == value for key, value in values.items()
                    ):
                        result.existing.append(values["id"])
                    else:
                        result.conflicting.append(values["id"])
            if preserve_ids and result.inserted:
                await conn.execute(
                    text(
                        "SELECT setval(pg_get_serial_sequence(:table, 'id'), "
                        f"(SELECT MAX(id) FROM {target.name}))"
                    ),
                    {"table": target.name},
                )
            return result

        outcome = await self._executor.execute_in_transaction(
            _op, self._label(f"import {table}")
        )
        self._probe.rows_imported(
            self._tenant_id,
            table,
            len(outcome.inserted),
            len(outcome.existing),
            len(outcome.conflicting),
        )
        return outcome
