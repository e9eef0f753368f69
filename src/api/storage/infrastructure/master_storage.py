"""Storage for the master database.

Owns the store registry and system users, provisions store schemas, and
exposes the read/delete access to legacy master tables that the ecosystem
validator needs while migrating a store's rows into its own schema.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import bindparam, func, insert, select, text, update
from sqlalchemy.schema import CreateSchema, CreateTable

from infrastructure.database.models import TenantBase
from shared_kernel.auth.jwt_validator import AccessLevel
from shared_kernel.auth.passwords import hash_password, verify_password
from storage.infrastructure.models import SystemUserModel, VirtualStoreModel
from storage.infrastructure.observability import DefaultStorageProbe, StorageProbe
from storage.ports.exceptions import EntityNotFoundError
from tenancy.domain.tenant import Tenant
from tenancy.infrastructure.resolver import build_tenant_url, extract_schema

if TYPE_CHECKING:
    from sqlalchemy.engine import RowMapping
    from sqlalchemy.ext.asyncio import AsyncConnection

    from infrastructure.database.resilience import ResilientExecutor

# Master tables that held store rows before stores had their own schema.
# Rows with a store_id belong to that store; rows without one are defaults.
LEGACY_TENANT_TABLES = frozenset(
    {"products", "customers", "orders", "conversations", "auto_responses"}
)

# Master tables without a store_id whose rows follow a parent legacy row,
# mapped to the column referencing that parent.
LEGACY_CHILD_TABLES = {
    "order_items": "order_id",
    "order_history": "order_id",
    "messages": "conversation_id",
}

_UPDATABLE_TENANT_FIELDS = frozenset(
    {
        "name",
        "slug",
        "description",
        "domain",
        "whatsapp_number",
        "address",
        "timezone",
        "currency",
        "is_active",
        "subscription",
        "database_url",
        "settings",
    }
)

_virtual_stores = VirtualStoreModel.__table__
_system_users = SystemUserModel.__table__


def schema_name_for(tenant_id: int) -> str:
    """Name of the dedicated schema provisioned for a store."""
    return f"store_{tenant_id}"


def slugify(name: str) -> str:
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


@dataclass(frozen=True)
class SystemMetrics:
    """Registry-wide counters for the administration dashboard."""

    total_stores: int
    active_stores: int
    migrated_stores: int
    total_users: int


def _tenant_from_row(row: RowMapping) -> Tenant:
    return Tenant(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        is_active=bool(row["is_active"]),
        database_url=row["database_url"],
        description=row["description"],
        domain=row["domain"],
        whatsapp_number=row["whatsapp_number"],
        address=row["address"],
        timezone=row["timezone"] or "America/Mexico_City",
        currency=row["currency"] or "MXN",
        subscription=row["subscription"] or "free",
        settings=row["settings"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _public_user(row: RowMapping) -> dict[str, Any]:
    user = {key: value for key, value in row.items() if key != "password"}
    user["level"] = (
        AccessLevel.GLOBAL if row["store_id"] is None else AccessLevel.STORE
    ).value
    return user


def _legacy_table(table: str) -> str:
    if table not in LEGACY_TENANT_TABLES:
        raise ValueError(f"Unknown legacy table: {table!r}")
    return f"public.{table}"


def _legacy_child_table(table: str) -> tuple[str, str]:
    try:
        parent_column = LEGACY_CHILD_TABLES[table]
    except KeyError:
        raise ValueError(f"Unknown legacy child table: {table!r}") from None
    return f"public.{table}", parent_column


async def create_tenant_schema(connection: AsyncConnection, schema: str) -> None:
    """Create a store schema and every store table inside it.

    Idempotent: existing schemas and tables are left untouched.
    """
    await connection.execute(CreateSchema(schema, if_not_exists=True))
    # Per statement: connection-level options would also redirect registry writes
    options = {"schema_translate_map": {None: schema}}
    for table in TenantBase.metadata.sorted_tables:
        await connection.execute(
            CreateTable(table, if_not_exists=True), execution_options=options
        )


class MasterStorage:
    """Data access for the master database.

    Implements the tenancy registry port, so the tenant resolver can look
    stores up through it.
    """

    def __init__(
        self,
        executor: ResilientExecutor,
        master_url: str,
        probe: StorageProbe | None = None,
    ):
        self._executor = executor
        self._master_url = master_url
        self._probe = probe or DefaultStorageProbe()

    @property
    def executor(self) -> ResilientExecutor:
        return self._executor

    @property
    def master_url(self) -> str:
        return self._master_url

    # Store registry

    async def get_tenant(self, tenant_id: int) -> Tenant | None:
        async def _op(conn: AsyncConnection) -> Tenant | None:
            result = await conn.execute(
                select(_virtual_stores).where(_virtual_stores.c.id == tenant_id)
            )
            row = result.mappings().first()
            return _tenant_from_row(row) if row is not None else None

        return await self._executor.execute_with_retry(_op, "get store")

    async def get_tenant_by_slug(self, slug: str) -> Tenant | None:
        async def _op(conn: AsyncConnection) -> Tenant | None:
            result = await conn.execute(
                select(_virtual_stores).where(_virtual_stores.c.slug == slug)
            )
            row = result.mappings().first()
            return _tenant_from_row(row) if row is not None else None

        return await self._executor.execute_with_retry(_op, "get store by slug")

    async def list_tenants(self) -> list[Tenant]:
        return await self._list_tenants(active_only=False)

    async def list_active_tenants(self) -> list[Tenant]:
        return await self._list_tenants(active_only=True)

    async def _list_tenants(self, active_only: bool) -> list[Tenant]:
        statement = select(_virtual_stores).order_by(_virtual_stores.c.id)
        if active_only:
            statement = statement.where(_virtual_stores.c.is_active.is_(True))

        async def _op(conn: AsyncConnection) -> list[Tenant]:
            result = await conn.execute(statement)
            return [_tenant_from_row(row) for row in result.mappings().all()]

        return await self._executor.execute_with_retry(_op, "list stores")

    async def is_tenant_active(self, tenant_id: int) -> bool:
        tenant = await self.get_tenant(tenant_id)
        return tenant is not None and tenant.is_active

    async def create_tenant(self, name: str, slug: str | None = None, **fields: Any) -> Tenant:
        """Register a store and provision its dedicated schema.

        The registry row, the schema and its tables are created in one
        transaction, so a failure leaves no half-provisioned store behind.
        """
        unknown = set(fields) - _UPDATABLE_TENANT_FIELDS
        if unknown:
            raise ValueError(f"Unknown store fields: {sorted(unknown)}")

        values = {
            **fields,
            "name": name,
            "slug": slug or slugify(name),
            "is_active": fields.get("is_active", True),
        }

        async def _op(conn: AsyncConnection) -> Tenant:
            result = await conn.execute(
                insert(_virtual_stores).values(**values).returning(_virtual_stores.c.id)
            )
            tenant_id = result.scalar_one()
            schema = schema_name_for(tenant_id)
            await create_tenant_schema(conn, schema)
            result = await conn.execute(
                update(_virtual_stores)
                .where(_virtual_stores.c.id == tenant_id)
                .values(database_url=build_tenant_url(self._master_url, schema))
                .returning(_virtual_stores)
            )
            return _tenant_from_row(result.mappings().one())

        tenant = await self._executor.execute_in_transaction(_op, "create store")
        self._probe.tenant_created(tenant.id, tenant.slug)
        self._probe.schema_provisioned(tenant.id, schema_name_for(tenant.id))
        return tenant

    async def update_tenant(self, tenant_id: int, **changes: Any) -> Tenant:
        """Update registry fields of a store.

        Raises:
            EntityNotFoundError: If the store does not exist
        """
        unknown = set(changes) - _UPDATABLE_TENANT_FIELDS
        if unknown:
            raise ValueError(f"Unknown store fields: {sorted(unknown)}")

        async def _op(conn: AsyncConnection) -> Tenant | None:
            result = await conn.execute(
                update(_virtual_stores)
                .where(_virtual_stores.c.id == tenant_id)
                .values(**changes, updated_at=func.now())
                .returning(_virtual_stores)
            )
            row = result.mappings().first()
            return _tenant_from_row(row) if row is not None else None

        tenant = await self._executor.execute_in_transaction(_op, "update store")
        if tenant is None:
            self._probe.entity_not_found(None, "Store", tenant_id)
            raise EntityNotFoundError("Store", tenant_id)
        self._probe.entity_updated(None, "Store", tenant_id)
        return tenant

    async def deactivate_tenant(self, tenant_id: int) -> Tenant:
        """Soft-delete a store; its schema and data are kept."""
        tenant = await self.update_tenant(tenant_id, is_active=False)
        self._probe.tenant_deactivated(tenant_id)
        return tenant

    async def provision_tenant_schema(self, tenant_id: int) -> str:
        """Create ``store_<id>`` with all store tables and record it.

        Returns:
            The store's new database URL

        Raises:
            EntityNotFoundError: If the store does not exist
        """
        schema = schema_name_for(tenant_id)
        database_url = build_tenant_url(self._master_url, schema)

        async def _op(conn: AsyncConnection) -> bool:
            await create_tenant_schema(conn, schema)
            result = await conn.execute(
                update(_virtual_stores)
                .where(_virtual_stores.c.id == tenant_id)
                .values(database_url=database_url, updated_at=func.now())
            )
            return result.rowcount > 0

        found = await self._executor.execute_in_transaction(_op, "provision store schema")
        if not found:
            raise EntityNotFoundError("Store", tenant_id)
        self._probe.schema_provisioned(tenant_id, schema)
        return database_url

    async def ensure_tenant_tables(self, tenant_id: int, schema: str) -> None:
        """Create whatever store tables are missing from an existing schema."""

        async def _op(conn: AsyncConnection) -> None:
            await create_tenant_schema(conn, schema)

        await self._executor.execute_in_transaction(_op, "create store tables")
        self._probe.schema_provisioned(tenant_id, schema)

    # System users

    async def create_system_user(
        self,
        username: str,
        password: str,
        name: str,
        email: str,
        role: str = "store_admin",
        store_id: int | None = None,
        phone: str | None = None,
    ) -> dict[str, Any]:
        """Create a user; the password is stored as a bcrypt hash.

        Raises:
            EntityNotFoundError: If ``store_id`` names no store
        """
        if store_id is not None and await self.get_tenant(store_id) is None:
            raise EntityNotFoundError("Store", store_id)

        values = {
            "username": username,
            "password": hash_password(password),
            "name": name,
            "email": email,
            "role": role,
            "store_id": store_id,
            "phone": phone,
        }

        async def _op(conn: AsyncConnection) -> dict[str, Any]:
            result = await conn.execute(
                insert(_system_users).values(**values).returning(_system_users)
            )
            return _public_user(result.mappings().one())

        user = await self._executor.execute_in_transaction(_op, "create system user")
        self._probe.entity_created(store_id, "SystemUser", user["id"])
        return user

    async def authenticate_user(
        self,
        username: str,
        password: str,
        store_id: int | None = None,
    ) -> dict[str, Any] | None:
        """Check credentials; returns the user without its password hash.

        A store user only authenticates for its own store when a store is
        given. Global users authenticate for any store.
        """

        async def _op(conn: AsyncConnection) -> RowMapping | None:
            result = await conn.execute(
                select(_system_users).where(_system_users.c.username == username)
            )
            return result.mappings().first()

        row = await self._executor.execute_with_retry(_op, "authenticate user")
        if row is None:
            self._probe.authentication_failed(username, "unknown_user")
            return None
        if not row["is_active"]:
            self._probe.authentication_failed(username, "inactive_user")
            return None
        if not verify_password(password, row["password"]):
            self._probe.authentication_failed(username, "invalid_password")
            return None
        if store_id is not None and row["store_id"] is not None and row["store_id"] != store_id:
            self._probe.authentication_failed(username, "wrong_store")
            return None
        return _public_user(row)

    async def get_system_metrics(self) -> SystemMetrics:
        tenants = await self.list_tenants()

        async def _count_users(conn: AsyncConnection) -> int:
            result = await conn.execute(select(func.count()).select_from(_system_users))
            return int(result.scalar_one())

        total_users = await self._executor.execute_with_retry(
            _count_users, "count system users"
        )
        return SystemMetrics(
            total_stores=len(tenants),
            active_stores=sum(1 for tenant in tenants if tenant.is_active),
            migrated_stores=sum(
                1
                for tenant in tenants
                if not tenant.uses_master_database(self._master_url)
                and extract_schema(tenant.database_url) is not None
            ),
            total_users=total_users,
        )

    # Master schema inspection

    async def list_schema_tables(self, schema: str = "public") -> list[str]:
        """Names of the base tables in a schema of the master database."""

        async def _op(conn: AsyncConnection) -> list[str]:
            result = await conn.execute(
                text(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = :schema AND table_type = 'BASE TABLE' "
                    "ORDER BY table_name"
                ),
                {"schema": schema},
            )
            return list(result.scalars().all())

        return await self._executor.execute_with_retry(_op, "list schema tables")

    async def count_legacy_rows(self, table: str, tenant_id: int) -> int:
        """Count a store's rows still sitting in a master table."""
        statement = text(
            f"SELECT count(*) FROM {_legacy_table(table)} WHERE store_id = :store_id"
        )

        async def _op(conn: AsyncConnection) -> int:
            result = await conn.execute(statement, {"store_id": tenant_id})
            return int(result.scalar_one())

        return await self._executor.execute_with_retry(_op, f"count legacy {table}")

    async def fetch_legacy_rows(self, table: str, tenant_id: int) -> list[dict[str, Any]]:
        statement = text(
            f"SELECT * FROM {_legacy_table(table)} "
            "WHERE store_id = :store_id ORDER BY id"
        )

        async def _op(conn: AsyncConnection) -> list[dict[str, Any]]:
            result = await conn.execute(statement, {"store_id": tenant_id})
            return [dict(row) for row in result.mappings().all()]

        return await self._executor.execute_with_retry(_op, f"fetch legacy {table}")

    async def delete_legacy_rows(self, table: str, tenant_id: int, ids: list[int]) -> int:
        """Delete exactly the given ids of a store from a master table.

        Returns:
            Number of rows deleted
        """
        if not ids:
            return 0
        statement = text(
            f"DELETE FROM {_legacy_table(table)} "
            "WHERE store_id = :store_id AND id IN :ids"
        ).bindparams(bindparam("ids", expanding=True))

        async def _op(conn: AsyncConnection) -> int:
            result = await conn.execute(statement, {"store_id": tenant_id, "ids": ids})
            return result.rowcount

        deleted = await self._executor.execute_in_transaction(
            _op, f"delete legacy {table}"
        )
        self._probe.legacy_rows_deleted(tenant_id, table, deleted)
        return deleted

    async def fetch_legacy_child_rows(
        self, table: str, parent_ids: list[int]
    ) -> list[dict[str, Any]]:
        """Rows of a child master table pointing at the given parent ids."""
        if not parent_ids:
            return []
        name, parent_column = _legacy_child_table(table)
        statement = text(
            f"SELECT * FROM {name} WHERE {parent_column} IN :parent_ids ORDER BY id"
        ).bindparams(bindparam("parent_ids", expanding=True))

        async def _op(conn: AsyncConnection) -> list[dict[str, Any]]:
            result = await conn.execute(statement, {"parent_ids": parent_ids})
            return [dict(row) for row in result.mappings().all()]

        return await self._executor.execute_with_retry(_op, f"fetch legacy {table}")

    async def delete_legacy_child_rows(
        self, table: str, tenant_id: int, ids: list[int]
    ) -> int:
        """Delete exactly the given ids from a child master table."""
        if not ids:
            return 0
        name, _ = _legacy_child_table(table)
        statement = text(f"DELETE FROM {name} WHERE id IN :ids").bindparams(
            bindparam("ids", expanding=True)
        )

        async def _op(conn: AsyncConnection) -> int:
            result = await conn.execute(statement, {"ids": ids})
            return result.rowcount

        deleted = await self._executor.execute_in_transaction(
            _op, f"delete legacy {table}"
        )
        self._probe.legacy_rows_deleted(tenant_id, table, deleted)
        return deleted

    async def list_default_rows(self, table: str) -> list[dict[str, Any]]:
        """System default rows (no store_id) of a master table."""
        statement = text(
            f"SELECT * FROM {_legacy_table(table)} WHERE store_id IS NULL ORDER BY id"
        )

        async def _op(conn: AsyncConnection) -> list[dict[str, Any]]:
            result = await conn.execute(statement)
            return [dict(row) for row in result.mappings().all()]

        return await self._executor.execute_with_retry(_op, f"list default {table}")
