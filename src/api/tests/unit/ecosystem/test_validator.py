"""Unit tests for EcosystemValidator.

Master and store storages are mocked; the validator only orchestrates them.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from ecosystem.application.observability import EcosystemProbe
from ecosystem.application.validator import (
    GLOBAL_DATABASE_ISSUE,
    NO_ACTION_NEEDED,
    EcosystemValidator,
)
from storage.infrastructure.tenant_storage import ImportResult
from tenancy.infrastructure.resolver import build_tenant_url

GLOBAL_TABLES = [
    "virtual_stores",
    "system_users",
    "customers",
    "products",
    "orders",
    "conversations",
    "auto_responses",
    "store_settings",
]
STORE_TABLES = [
    "customers",
    "products",
    "orders",
    "conversations",
    "auto_responses",
    "store_settings",
]
CHILD_TABLES = ["order_items", "order_history", "messages"]


class Scenario:
    """Mutable description of what the mocked storages report."""

    def __init__(self) -> None:
        self.row_counts: dict[str, int] = {"auto_responses": 3, "products": 5}
        self.has_settings = True
        self.legacy_counts: dict[str, int] = {}
        self.store_tables = list(STORE_TABLES)
        self.child_rows: dict[str, list[dict[str, Any]]] = {}


@pytest.fixture
def scenario() -> Scenario:
    return Scenario()


@pytest.fixture
def store_storage(scenario: Scenario) -> MagicMock:
    storage = MagicMock()
    storage.list_tables = AsyncMock(side_effect=lambda: list(scenario.store_tables))
    storage.count_rows = AsyncMock(
        side_effect=lambda table: scenario.row_counts.get(table, 0)
    )
    storage.has_settings = AsyncMock(side_effect=lambda: scenario.has_settings)
    storage.upsert_settings = AsyncMock(side_effect=lambda values: values)
    storage.import_rows = AsyncMock(
        side_effect=lambda table, rows, preserve_ids: ImportResult(
            table=table, inserted=[row["id"] for row in rows]
        )
    )
    return storage


@pytest.fixture
def master_storage(scenario: Scenario, tenant_factory) -> MagicMock:
    master = MagicMock()
    master.get_tenant = AsyncMock(return_value=None)
    master.list_active_tenants = AsyncMock(return_value=[])
    master.list_schema_tables = AsyncMock(return_value=list(GLOBAL_TABLES))
    master.count_legacy_rows = AsyncMock(
        side_effect=lambda table, tenant_id: scenario.legacy_counts.get(table, 0)
    )
    master.fetch_legacy_rows = AsyncMock(
        side_effect=lambda table, tenant_id: [
            {"id": i + 1, "store_id": tenant_id}
            for i in range(scenario.legacy_counts.get(table, 0))
        ]
    )
    master.delete_legacy_rows = AsyncMock(
        side_effect=lambda table, tenant_id, ids: len(ids)
    )
    master.fetch_legacy_child_rows = AsyncMock(
        side_effect=lambda table, parent_ids: list(scenario.child_rows.get(table, []))
    )
    master.delete_legacy_child_rows = AsyncMock(
        side_effect=lambda table, tenant_id, ids: len(ids)
    )
    master.list_default_rows = AsyncMock(
        side_effect=lambda table: [{"id": 100, "name": f"default {table}"}]
    )
    master.provision_tenant_schema = AsyncMock()
    master.ensure_tenant_tables = AsyncMock()
    return master


@pytest.fixture
def storage_factory(store_storage: MagicMock) -> MagicMock:
    factory = MagicMock()
    factory.get_tenant_storage = AsyncMock(return_value=store_storage)
    factory.invalidate = AsyncMock()
    return factory


@pytest.fixture
def mock_probe() -> MagicMock:
    return MagicMock(spec=EcosystemProbe)


@pytest.fixture
def validator(master_storage, storage_factory, master_url, mock_probe):
    return EcosystemValidator(
        master_storage=master_storage,
        storage_factory=storage_factory,
        master_url=master_url,
        probe=mock_probe,
    )


@pytest.fixture
def global_store(master_storage, tenant_factory):
    """Store 42, never migrated out of the shared schema."""
    tenant = tenant_factory(42, name="Tienda Centro", database_url=None)
    master_storage.get_tenant.return_value = tenant
    return tenant


@pytest.fixture
def migrated_store(master_storage, tenant_factory, master_url):
    """Store 7 with its own schema."""
    tenant = tenant_factory(7, database_url=build_tenant_url(master_url, "store_7"))
    master_storage.get_tenant.return_value = tenant
    return tenant


class TestValidate:
    """Tests for single store validation."""

    @pytest.mark.asyncio
    async def test_store_on_global_database(self, validator, global_store, storage_factory):
        report = await validator.validate(42)

        assert not report.is_valid
        assert report.issues == [GLOBAL_DATABASE_ISSUE]
        assert report.architecture.has_separate_database is False
        assert report.architecture.using_global_database is True
        assert report.architecture.database_url is None
        assert report.tables.global_ == GLOBAL_TABLES
        storage_factory.get_tenant_storage.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_pointing_at_master_url_is_not_migrated(
        self, validator, master_storage, tenant_factory, master_url
    ):
        master_storage.get_tenant.return_value = tenant_factory(
            42, database_url=master_url
        )

        report = await validator.validate(42)

        assert GLOBAL_DATABASE_ISSUE in report.issues

    @pytest.mark.asyncio
    async def test_healthy_store(self, validator, migrated_store, mock_probe):
        report = await validator.validate(7)

        assert report.is_valid
        assert report.issues == []
        assert report.architecture.has_separate_database is True
        assert report.configurations.auto_responses == 3
        assert report.configurations.products == 5
        assert report.configurations.settings is True
        mock_probe.validation_completed.assert_called_once_with(7, True, 0)

    @pytest.mark.asyncio
    async def test_database_url_is_redacted(self, validator, migrated_store):
        report = await validator.validate(7)

        assert "secret" not in report.architecture.database_url
        assert ":***@" in report.architecture.database_url

    @pytest.mark.asyncio
    async def test_orphaned_rows_in_global_database(
        self, validator, migrated_store, scenario
    ):
        scenario.legacy_counts = {"products": 3}
        scenario.row_counts["products"] = 0

        report = await validator.validate(7)

        assert not report.is_valid
        assert "WARNING: no products in the catalog" in report.issues
        assert (
            "CRITICAL: 3 products of this store found in the global database"
            in report.issues
        )
        assert (
            "Migrate products from the global database to the store schema"
            in report.recommendations
        )

    @pytest.mark.asyncio
    async def test_missing_store_table(self, validator, migrated_store, scenario):
        scenario.store_tables.remove("conversations")

        report = await validator.validate(7)

        assert (
            "CRITICAL: table conversations exists in the global database "
            "but is missing from the store schema"
        ) in report.issues

    @pytest.mark.asyncio
    async def test_missing_baseline_configuration(
        self, validator, migrated_store, scenario
    ):
        scenario.row_counts = {}
        scenario.has_settings = False

        report = await validator.validate(7)

        assert report.issues == [
            "WARNING: no auto responses configured",
            "WARNING: no products in the catalog",
            "WARNING: no store settings",
        ]

    @pytest.mark.asyncio
    async def test_unreachable_store_schema_is_an_issue(
        self, validator, migrated_store, storage_factory, mock_probe
    ):
        storage_factory.get_tenant_storage.side_effect = ConnectionError("refused")

        report = await validator.validate(7)

        assert report.issues == ["CRITICAL: cannot access the store schema: refused"]
        mock_probe.store_check_failed.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_store_raises(self, validator):
        from tenancy.ports.exceptions import TenantNotFoundError

        with pytest.raises(TenantNotFoundError):
            await validator.validate(404)


class TestValidateAll:
    @pytest.mark.asyncio
    async def test_failing_store_does_not_stop_the_rest(
        self, validator, master_storage, tenant_factory, master_url, mock_probe
    ):
        healthy = tenant_factory(7, database_url=build_tenant_url(master_url, "store_7"))
        broken = tenant_factory(8, name="Tienda Sur")
        master_storage.list_active_tenants.return_value = [broken, healthy]
        error = RuntimeError("registry offline")

        async def get_tenant(tenant_id: int):
            if tenant_id == 8:
                raise error
            return healthy

        master_storage.get_tenant.side_effect = get_tenant

        reports = await validator.validate_all()

        assert [report.store_id for report in reports] == [8, 7]
        assert reports[0].issues == ["CRITICAL: validation failed: registry offline"]
        assert reports[0].store_name == "Tienda Sur"
        assert reports[1].is_valid
        mock_probe.store_check_failed.assert_called_once_with(8, "validation", error)
        mock_probe.bulk_validation_completed.assert_called_once_with(
            stores=2, invalid=1
        )


class TestRepair:
    """Tests for store repair."""

    @pytest.mark.asyncio
    async def test_healthy_store_needs_no_action(
        self, validator, migrated_store, master_storage, store_storage
    ):
        first = await validator.repair(7)
        second = await validator.repair(7)

        assert first == second
        assert first.success
        assert first.actions == [NO_ACTION_NEEDED]
        store_storage.import_rows.assert_not_awaited()
        master_storage.provision_tenant_schema.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_orphaned_products_are_copied_before_deletion(
        self, validator, migrated_store, master_storage, store_storage, scenario
    ):
        scenario.legacy_counts = {"products": 3}
        scenario.row_counts["products"] = 0
        events: list[tuple[Any, ...]] = []

        async def import_rows(table, rows, preserve_ids):
            events.append(("import", table, preserve_ids))
            # id 3 reached the store schema unchanged in an earlier run
            return ImportResult(table=table, inserted=[1, 2], existing=[3])

        async def delete_legacy_rows(table, tenant_id, ids):
            events.append(("delete", table, tenant_id, ids))
            return len(ids)

        store_storage.import_rows.side_effect = import_rows
        master_storage.delete_legacy_rows.side_effect = delete_legacy_rows

        result = await validator.repair(7)

        assert result.success
        assert events == [
            ("import", "products", True),
            ("delete", "products", 7, [1, 2, 3]),
        ]
        assert result.actions == [
            "Copied 2 products from the global database to the store schema",
            "Removed 3 products from the global database",
        ]
        # Legacy products replace the baseline catalog
        master_storage.list_default_rows.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_global_store_gets_schema_and_baseline(
        self,
        validator,
        global_store,
        master_storage,
        storage_factory,
        store_storage,
        scenario,
    ):
        scenario.row_counts = {}
        scenario.has_settings = False

        result = await validator.repair(42)

        assert result.success, result.errors
        master_storage.provision_tenant_schema.assert_awaited_once_with(42)
        storage_factory.invalidate.assert_awaited_once_with(42)
        copied = [
            (c.args[0], c.kwargs["preserve_ids"])
            for c in store_storage.import_rows.await_args_list
        ]
        assert copied == [("auto_responses", False), ("products", False)]
        settings = store_storage.upsert_settings.await_args.args[0]
        assert settings["store_name"] == "Tienda Centro"
        assert settings["business_hours"] == "09:00-18:00"
        assert result.actions[:2] == [
            "Created a dedicated schema for the store",
            "Updated the store database URL in the registry",
        ]
        assert "Created default store settings" in result.actions

    @pytest.mark.asyncio
    async def test_failed_provisioning_skips_later_steps(
        self, validator, global_store, master_storage, storage_factory, mock_probe
    ):
        master_storage.provision_tenant_schema.side_effect = RuntimeError(
            "permission denied"
        )

        result = await validator.repair(42)

        assert not result.success
        assert result.errors == ["Error creating the dedicated schema: permission denied"]
        assert result.actions == []
        storage_factory.get_tenant_storage.assert_not_awaited()
        mock_probe.repair_completed.assert_called_once_with(42, False, 0, 1)

    @pytest.mark.asyncio
    async def test_step_errors_accumulate(
        self, validator, migrated_store, master_storage, store_storage, scenario
    ):
        scenario.legacy_counts = {"products": 3, "orders": 2}
        scenario.row_counts["products"] = 0
        scenario.has_settings = False
        store_storage.upsert_settings.side_effect = RuntimeError("disk full")

        async def import_rows(table, rows, preserve_ids):
            if table == "products":
                raise RuntimeError("duplicate key")
            return ImportResult(table=table, inserted=[row["id"] for row in rows])

        store_storage.import_rows.side_effect = import_rows

        result = await validator.repair(7)

        assert not result.success
        assert result.errors == [
            "Error creating store settings: disk full",
            "Error copying products to the store schema: duplicate key",
        ]
        assert "Removed 2 orders from the global database" in result.actions
        master_storage.delete_legacy_rows.assert_awaited_once_with("orders", 7, [1, 2])

    @pytest.mark.asyncio
    async def test_missing_tables_are_created(
        self, validator, migrated_store, master_storage, scenario
    ):
        scenario.store_tables.remove("conversations")

        result = await validator.repair(7)

        master_storage.ensure_tenant_tables.assert_awaited_once_with(7, "store_7")
        assert "Created missing store tables: conversations" in result.actions


class TestLegacyMigration:
    """Tests for moving a store's legacy master rows into its schema."""

    @pytest.fixture
    def with_child_tables(self, master_storage, scenario):
        master_storage.list_schema_tables.return_value = GLOBAL_TABLES + CHILD_TABLES
        scenario.store_tables += CHILD_TABLES

    @pytest.fixture
    def events(self, master_storage, store_storage) -> list[tuple[Any, ...]]:
        recorded: list[tuple[Any, ...]] = []
        copy = store_storage.import_rows.side_effect
        delete = master_storage.delete_legacy_rows.side_effect
        delete_children = master_storage.delete_legacy_child_rows.side_effect

        async def import_rows(table, rows, preserve_ids):
            recorded.append(("import", table))
            return copy(table, rows, preserve_ids)

        async def delete_legacy_rows(table, tenant_id, ids):
            recorded.append(("delete", table, ids))
            return delete(table, tenant_id, ids)

        async def delete_legacy_child_rows(table, tenant_id, ids):
            recorded.append(("delete", table, ids))
            return delete_children(table, tenant_id, ids)

        store_storage.import_rows.side_effect = import_rows
        master_storage.delete_legacy_rows.side_effect = delete_legacy_rows
        master_storage.delete_legacy_child_rows.side_effect = delete_legacy_child_rows
        return recorded

    @pytest.mark.asyncio
    async def test_id_taken_by_another_store_row_keeps_master_row(
        self, validator, migrated_store, master_storage, store_storage, scenario
    ):
        scenario.legacy_counts = {"products": 1}
        store_storage.import_rows.side_effect = None
        store_storage.import_rows.return_value = ImportResult(
            table="products", conflicting=[1]
        )

        result = await validator.repair(7)

        assert not result.success
        assert result.errors == [
            "Cannot copy products 1: the store schema already holds different "
            "rows with these ids"
        ]
        assert result.actions == [
            "Copied 0 products from the global database to the store schema"
        ]
        master_storage.delete_legacy_rows.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_only_copied_rows_leave_master_on_partial_conflict(
        self, validator, migrated_store, master_storage, store_storage, scenario
    ):
        scenario.legacy_counts = {"products": 3}
        store_storage.import_rows.side_effect = None
        store_storage.import_rows.return_value = ImportResult(
            table="products", inserted=[2, 3], conflicting=[1]
        )

        result = await validator.repair(7)

        assert not result.success
        master_storage.delete_legacy_rows.assert_awaited_once_with("products", 7, [2, 3])
        assert "Removed 2 products from the global database" in result.actions

    @pytest.mark.asyncio
    async def test_orders_move_with_items_and_history(
        self,
        validator,
        migrated_store,
        master_storage,
        scenario,
        with_child_tables,
        events,
    ):
        scenario.legacy_counts = {"orders": 2}
        scenario.child_rows = {
            "order_items": [{"id": 10, "order_id": 1}, {"id": 11, "order_id": 2}],
            "order_history": [{"id": 20, "order_id": 1}],
        }

        result = await validator.repair(7)

        assert result.success, result.errors
        master_storage.fetch_legacy_child_rows.assert_any_await("order_items", [1, 2])
        assert events == [
            ("import", "orders"),
            ("import", "order_items"),
            ("import", "order_history"),
            ("delete", "order_items", [10, 11]),
            ("delete", "order_history", [20]),
            ("delete", "orders", [1, 2]),
        ]
        assert "Copied 2 order_items from the global database to the store schema" in (
            result.actions
        )

    @pytest.mark.asyncio
    async def test_order_with_uncopied_item_stays_in_master(
        self,
        validator,
        migrated_store,
        master_storage,
        store_storage,
        scenario,
        with_child_tables,
    ):
        scenario.legacy_counts = {"orders": 2}
        scenario.child_rows = {
            "order_items": [{"id": 10, "order_id": 1}, {"id": 11, "order_id": 2}],
        }

        async def import_rows(table, rows, preserve_ids):
            if table == "order_items":
                return ImportResult(table=table, inserted=[10], conflicting=[11])
            return ImportResult(table=table, inserted=[row["id"] for row in rows])

        store_storage.import_rows.side_effect = import_rows

        result = await validator.repair(7)

        assert not result.success
        assert result.errors == [
            "Cannot copy order_items 11: the store schema already holds different "
            "rows with these ids"
        ]
        master_storage.delete_legacy_child_rows.assert_awaited_once_with(
            "order_items", 7, [10]
        )
        master_storage.delete_legacy_rows.assert_awaited_once_with("orders", 7, [1])

    @pytest.mark.asyncio
    async def test_failed_item_copy_keeps_every_order(
        self,
        validator,
        migrated_store,
        master_storage,
        store_storage,
        scenario,
        with_child_tables,
    ):
        scenario.legacy_counts = {"orders": 2}
        scenario.child_rows = {"order_items": [{"id": 10, "order_id": 1}]}

        async def import_rows(table, rows, preserve_ids):
            if table == "order_items":
                raise RuntimeError("violates foreign key constraint")
            return ImportResult(table=table, inserted=[row["id"] for row in rows])

        store_storage.import_rows.side_effect = import_rows

        result = await validator.repair(7)

        assert result.errors == [
            "Error copying order_items to the store schema: "
            "violates foreign key constraint"
        ]
        master_storage.delete_legacy_child_rows.assert_not_awaited()
        master_storage.delete_legacy_rows.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_item_delete_keeps_their_orders(
        self,
        validator,
        migrated_store,
        master_storage,
        scenario,
        with_child_tables,
    ):
        scenario.legacy_counts = {"orders": 2}
        scenario.child_rows = {"order_items": [{"id": 10, "order_id": 1}]}
        master_storage.delete_legacy_child_rows.side_effect = RuntimeError("lock timeout")

        result = await validator.repair(7)

        assert result.errors == [
            "Error removing order_items from the global database: lock timeout"
        ]
        master_storage.delete_legacy_rows.assert_awaited_once_with("orders", 7, [2])

    @pytest.mark.asyncio
    async def test_referencing_tables_are_cleared_first(
        self, validator, migrated_store, scenario, events
    ):
        scenario.legacy_counts = {"customers": 1, "orders": 1, "conversations": 1}

        result = await validator.repair(7)

        assert result.success, result.errors
        assert events == [
            ("import", "customers"),
            ("import", "orders"),
            ("import", "conversations"),
            ("delete", "conversations", [1]),
            ("delete", "orders", [1]),
            ("delete", "customers", [1]),
        ]
