"""Store ecosystem validation and repair.

A healthy store has a dedicated schema holding every store table, a
baseline configuration (auto responses, products, settings) and no rows
left behind in the master tables it used before it was migrated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ecosystem.application.observability import (
    DefaultEcosystemProbe,
    EcosystemProbe,
)
from ecosystem.domain.report import (
    ArchitectureSnapshot,
    ConfigurationSnapshot,
    RepairResult,
    TableSnapshot,
    ValidationReport,
)
from infrastructure.database.engines import redact_url
from infrastructure.database.models import TenantBase
from tenancy.domain.tenant import Tenant
from tenancy.infrastructure.resolver import extract_schema
from tenancy.ports.exceptions import TenantNotFoundError

if TYPE_CHECKING:
    from storage.infrastructure.factory import StorageFactory
    from storage.infrastructure.master_storage import MasterStorage
    from storage.infrastructure.tenant_storage import ImportResult, TenantStorage

GLOBAL_DATABASE_ISSUE = (
    "CRITICAL: store uses the global database instead of a dedicated schema"
)
NO_ACTION_NEEDED = "No action needed - ecosystem healthy"

# Ordered so that referenced rows are copied before the rows pointing at them
LEGACY_MIGRATION_ORDER = ("customers", "products", "orders", "conversations")

# Master rows without a store_id that move with their legacy parent row,
# as (table, column referencing the parent)
LEGACY_CHILD_TABLES: dict[str, tuple[tuple[str, str], ...]] = {
    "orders": (("order_items", "order_id"), ("order_history", "order_id")),
    "conversations": (("messages", "conversation_id"),),
}

_BASELINE_SETTINGS = {
    "business_hours": "09:00-18:00",
    "delivery_radius": "50",
    "enable_notifications": True,
    "auto_assign_orders": True,
}


def _error_text(error: Exception) -> str:
    return str(error) or type(error).__name__


def _record_conflicts(imported: ImportResult, errors: list[str]) -> None:
    if imported.conflicting:
        ids = ", ".join(str(row_id) for row_id in imported.conflicting)
        errors.append(
            f"Cannot copy {imported.table} {ids}: the store schema already "
            "holds different rows with these ids"
        )


@dataclass
class _LegacyCopy:
    """Legacy rows of one master table now present in the store schema.

    ``children`` maps each child table to its copied row ids and their
    parent ids. ``pinned`` parents keep a child row that was not copied
    and must stay in the master tables.
    """

    table: str
    copied_ids: list[int]
    children: dict[str, dict[int, int]] = field(default_factory=dict)
    pinned: set[int] = field(default_factory=set)


@dataclass
class _Inspection:
    """Everything the validator learned about one store.

    Repair needs more than the public report exposes, such as how many
    legacy rows each master table holds.
    """

    tenant: Tenant
    architecture: ArchitectureSnapshot
    schema: str | None = None
    issues: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    global_tables: list[str] = field(default_factory=list)
    tenant_tables: list[str] = field(default_factory=list)
    missing_tables: list[str] = field(default_factory=list)
    configurations: ConfigurationSnapshot = field(default_factory=ConfigurationSnapshot)
    legacy_counts: dict[str, int] = field(default_factory=dict)

    def flag(self, issue: str, recommendation: str | None = None) -> None:
        self.issues.append(issue)
        if recommendation is not None:
            self.recommendations.append(recommendation)

    def report(self) -> ValidationReport:
        return ValidationReport(
            store_id=self.tenant.id,
            store_name=self.tenant.name,
            is_valid=not self.issues,
            issues=list(self.issues),
            recommendations=list(self.recommendations),
            architecture=self.architecture,
            tables=TableSnapshot(
                global_=list(self.global_tables),
                tenant=list(self.tenant_tables),
            ),
            configurations=self.configurations,
        )


class EcosystemValidator:
    """Validates and repairs how stores are laid out across schemas.

    Validation never changes anything. Repair is safe to re-run: every copy
    skips rows the store already has, and master rows are only deleted
    after those exact rows, and every row referencing them, reached the
    store schema unchanged.
    """

    def __init__(
        self,
        master_storage: MasterStorage,
        storage_factory: StorageFactory,
        master_url: str,
        probe: EcosystemProbe | None = None,
    ):
        self._master = master_storage
        self._factory = storage_factory
        self._master_url = master_url
        self._probe = probe or DefaultEcosystemProbe()

    async def validate(self, tenant_id: int) -> ValidationReport:
        """Audit one store.

        Problems with the store's data are reported as issues; they never
        raise.

        Raises:
            TenantNotFoundError: If the registry has no such store
        """
        inspection = await self._inspect(tenant_id)
        report = inspection.report()
        self._probe.validation_completed(tenant_id, report.is_valid, len(report.issues))
        return report

    async def validate_all(self) -> list[ValidationReport]:
        """Audit every active store; one failing store does not stop the rest."""
        reports: list[ValidationReport] = []
        for tenant in await self._master.list_active_tenants():
            try:
                reports.append(await self.validate(tenant.id))
            except Exception as e:
                self._probe.store_check_failed(tenant.id, "validation", e)
                reports.append(
                    ValidationReport(
                        store_id=tenant.id,
                        store_name=tenant.name,
                        is_valid=False,
                        issues=[f"CRITICAL: validation failed: {_error_text(e)}"],
                        recommendations=["Review the store configuration manually"],
                        architecture=ArchitectureSnapshot(
                            database_url=self._display_url(tenant.database_url)
                        ),
                    )
                )

        self._probe.bulk_validation_completed(
            stores=len(reports),
            invalid=sum(1 for report in reports if not report.is_valid),
        )
        return reports

    async def repair(self, tenant_id: int) -> RepairResult:
        """Bring one store back to a healthy layout.

        Every step that fails is recorded in ``errors`` and the remaining
        steps still run. Seeding and migration need the store schema, so
        they are skipped when it could not be provisioned or opened.
        ``success`` is true only when nothing failed.

        Raises:
            TenantNotFoundError: If the registry has no such store
        """
        inspection = await self._inspect(tenant_id)
        tenant = inspection.tenant
        if not inspection.issues:
            return RepairResult(
                success=True,
                message=f"Ecosystem of {tenant.name} is already healthy",
                actions=[NO_ACTION_NEEDED],
            )

        actions: list[str] = []
        errors: list[str] = []

        schema_ready = await self._repair_schema(inspection, actions, errors)
        if schema_ready:
            storage = await self._tenant_storage(tenant_id, errors)
            if storage is not None:
                await self._repair_baseline(inspection, storage, actions, errors)
                await self._migrate_legacy_rows(inspection, storage, actions, errors)

        success = not errors
        self._probe.repair_completed(tenant_id, success, len(actions), len(errors))
        return RepairResult(
            success=success,
            message=(
                f"Ecosystem of {tenant.name} repaired successfully"
                if success
                else f"Repair of {tenant.name} completed with errors"
            ),
            actions=actions,
            errors=errors,
        )

    # Validation checks

    async def _inspect(self, tenant_id: int) -> _Inspection:
        tenant = await self._master.get_tenant(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)

        schema = extract_schema(tenant.database_url)
        has_separate = (
            not tenant.uses_master_database(self._master_url) and schema is not None
        )
        inspection = _Inspection(
            tenant=tenant,
            schema=schema if has_separate else None,
            architecture=ArchitectureSnapshot(
                has_separate_database=has_separate,
                using_global_database=not has_separate,
                database_url=self._display_url(tenant.database_url),
            ),
        )

        if not has_separate:
            inspection.flag(
                GLOBAL_DATABASE_ISSUE,
                "Provision a dedicated schema for the store",
            )

        try:
            inspection.global_tables = await self._master.list_schema_tables("public")
        except Exception as e:
            self._probe.store_check_failed(tenant_id, "global_tables", e)
            inspection.flag(
                f"CRITICAL: cannot list tables of the global database: {_error_text(e)}"
            )

        if has_separate:
            await self._check_tenant_schema(inspection)

        await self._check_legacy_rows(inspection)
        return inspection

    async def _check_tenant_schema(self, inspection: _Inspection) -> None:
        tenant_id = inspection.tenant.id
        try:
            storage = await self._factory.get_tenant_storage(tenant_id)
            inspection.tenant_tables = await storage.list_tables()

            store_tables = set(TenantBase.metadata.tables)
            inspection.missing_tables = sorted(
                name
                for name in store_tables & set(inspection.global_tables)
                if name not in inspection.tenant_tables
            )
            for name in inspection.missing_tables:
                inspection.flag(
                    f"CRITICAL: table {name} exists in the global database "
                    "but is missing from the store schema",
                )
            if inspection.missing_tables:
                inspection.recommendations.append("Create the missing store tables")

            inspection.configurations = ConfigurationSnapshot(
                auto_responses=await self._count_if_present(
                    storage, inspection.tenant_tables, "auto_responses"
                ),
                products=await self._count_if_present(
                    storage, inspection.tenant_tables, "products"
                ),
                settings=(
                    "store_settings" in inspection.tenant_tables
                    and await storage.has_settings()
                ),
            )
        except Exception as e:
            self._probe.store_check_failed(tenant_id, "tenant_schema", e)
            inspection.flag(
                f"CRITICAL: cannot access the store schema: {_error_text(e)}"
            )
            return

        configurations = inspection.configurations
        if configurations.auto_responses == 0:
            inspection.flag(
                "WARNING: no auto responses configured",
                "Copy the default auto responses",
            )
        if configurations.products == 0:
            inspection.flag(
                "WARNING: no products in the catalog",
                "Create baseline products for the store",
            )
        if not configurations.settings:
            inspection.flag(
                "WARNING: no store settings",
                "Create default store settings",
            )

    async def _check_legacy_rows(self, inspection: _Inspection) -> None:
        tenant_id = inspection.tenant.id
        for table in LEGACY_MIGRATION_ORDER:
            if table not in inspection.global_tables:
                continue
            try:
                count = await self._master.count_legacy_rows(table, tenant_id)
            except Exception as e:
                self._probe.store_check_failed(tenant_id, f"legacy_{table}", e)
                inspection.flag(
                    f"CRITICAL: cannot count {table} in the global database: "
                    f"{_error_text(e)}"
                )
                continue
            if count:
                inspection.legacy_counts[table] = count
                inspection.flag(
                    f"CRITICAL: {count} {table} of this store found in the global database",
                    f"Migrate {table} from the global database to the store schema",
                )

    @staticmethod
    async def _count_if_present(
        storage: TenantStorage, tables: list[str], table: str
    ) -> int:
        if table not in tables:
            return 0
        return await storage.count_rows(table)

    def _display_url(self, database_url: str | None) -> str | None:
        return redact_url(database_url) if database_url else None

    # Repair steps

    async def _repair_schema(
        self,
        inspection: _Inspection,
        actions: list[str],
        errors: list[str],
    ) -> bool:
        """Make sure the store has a complete schema; False if it has none."""
        tenant_id = inspection.tenant.id

        if not inspection.architecture.has_separate_database:
            try:
                await self._master.provision_tenant_schema(tenant_id)
            except Exception as e:
                self._probe.repair_step_failed(tenant_id, "provision_schema", e)
                errors.append(f"Error creating the dedicated schema: {_error_text(e)}")
                return False
            actions.append("Created a dedicated schema for the store")
            actions.append("Updated the store database URL in the registry")
            # The cached entry still routes to the shared schema
            await self._factory.invalidate(tenant_id)
            return True

        if inspection.missing_tables and inspection.schema is not None:
            try:
                await self._master.ensure_tenant_tables(tenant_id, inspection.schema)
            except Exception as e:
                self._probe.repair_step_failed(tenant_id, "create_tables", e)
                errors.append(f"Error creating the missing store tables: {_error_text(e)}")
            else:
                actions.append(
                    f"Created missing store tables: {', '.join(inspection.missing_tables)}"
                )
        return True

    async def _tenant_storage(
        self, tenant_id: int, errors: list[str]
    ) -> TenantStorage | None:
        try:
            return await self._factory.get_tenant_storage(tenant_id)
        except Exception as e:
            self._probe.repair_step_failed(tenant_id, "connect", e)
            errors.append(f"Error connecting to the store schema: {_error_text(e)}")
            return None

    async def _repair_baseline(
        self,
        inspection: _Inspection,
        storage: TenantStorage,
        actions: list[str],
        errors: list[str],
    ) -> None:
        tenant = inspection.tenant
        configurations = inspection.configurations

        if configurations.auto_responses == 0:
            await self._copy_defaults(
                inspection, storage, "auto_responses", "default auto responses",
                actions, errors,
            )

        # Legacy products are about to be moved in; seeding would duplicate them
        if configurations.products == 0 and not inspection.legacy_counts.get("products"):
            await self._copy_defaults(
                inspection, storage, "products", "baseline products",
                actions, errors,
            )

        if not configurations.settings:
            try:
                if not await storage.has_settings():
                    await storage.upsert_settings(
                        {
                            **_BASELINE_SETTINGS,
                            "store_name": tenant.name,
                            "store_whatsapp_number": tenant.whatsapp_number or "",
                            "store_address": tenant.address,
                        }
                    )
                    actions.append("Created default store settings")
            except Exception as e:
                self._probe.repair_step_failed(tenant.id, "settings", e)
                errors.append(f"Error creating store settings: {_error_text(e)}")

    async def _copy_defaults(
        self,
        inspection: _Inspection,
        storage: TenantStorage,
        table: str,
        description: str,
        actions: list[str],
        errors: list[str],
    ) -> None:
        tenant_id = inspection.tenant.id
        try:
            if await storage.count_rows(table) > 0:
                return
            if table not in inspection.global_tables:
                return
            defaults: list[dict[str, Any]] = await self._master.list_default_rows(table)
            if not defaults:
                return
            result = await storage.import_rows(table, defaults, preserve_ids=False)
        except Exception as e:
            self._probe.repair_step_failed(tenant_id, f"copy_{table}", e)
            errors.append(f"Error copying {description}: {_error_text(e)}")
            return
        actions.append(f"Copied {len(result.inserted)} {description}")

    async def _migrate_legacy_rows(
        self,
        inspection: _Inspection,
        storage: TenantStorage,
        actions: list[str],
        errors: list[str],
    ) -> None:
        """Copy every legacy table first, then clear what was copied.

        Master rows referencing other legacy rows are deleted before the
        rows they point at.
        """
        copies: list[_LegacyCopy] = []
        for table in LEGACY_MIGRATION_ORDER:
            if not inspection.legacy_counts.get(table):
                continue
            copy = await self._copy_legacy_table(
                inspection, table, storage, actions, errors
            )
            if copy is not None:
                copies.append(copy)

        for copy in reversed(copies):
            await self._delete_legacy_copy(inspection.tenant.id, copy, actions, errors)

    async def _copy_legacy_table(
        self,
        inspection: _Inspection,
        table: str,
        storage: TenantStorage,
        actions: list[str],
        errors: list[str],
    ) -> _LegacyCopy | None:
        tenant_id = inspection.tenant.id
        try:
            rows = await self._master.fetch_legacy_rows(table, tenant_id)
            imported = await storage.import_rows(table, rows, preserve_ids=True)
        except Exception as e:
            self._probe.repair_step_failed(tenant_id, f"copy_legacy_{table}", e)
            errors.append(f"Error copying {table} to the store schema: {_error_text(e)}")
            return None
        actions.append(
            f"Copied {len(imported.inserted)} {table} from the global database "
            "to the store schema"
        )
        _record_conflicts(imported, errors)
        copy = _LegacyCopy(table=table, copied_ids=imported.copied_ids)

        for child, parent_column in LEGACY_CHILD_TABLES.get(table, ()):
            if child not in inspection.global_tables or not copy.copied_ids:
                continue
            try:
                child_rows = await self._master.fetch_legacy_child_rows(
                    child, copy.copied_ids
                )
                imported_children = await storage.import_rows(
                    child, child_rows, preserve_ids=True
                )
            except Exception as e:
                self._probe.repair_step_failed(tenant_id, f"copy_legacy_{child}", e)
                errors.append(
                    f"Error copying {child} to the store schema: {_error_text(e)}"
                )
                copy.pinned.update(copy.copied_ids)
                continue
            if child_rows:
                actions.append(
                    f"Copied {len(imported_children.inserted)} {child} from the "
                    "global database to the store schema"
                )
            _record_conflicts(imported_children, errors)

            parents = {row["id"]: row[parent_column] for row in child_rows}
            copied = set(imported_children.copied_ids)
            copy.children[child] = {
                child_id: parents[child_id] for child_id in copied if child_id in parents
            }
            copy.pinned.update(
                parent for child_id, parent in parents.items() if child_id not in copied
            )
        return copy

    async def _delete_legacy_copy(
        self,
        tenant_id: int,
        copy: _LegacyCopy,
        actions: list[str],
        errors: list[str],
    ) -> None:
        kept = set(copy.pinned)
        for child, parent_by_id in copy.children.items():
            ids = sorted(
                child_id
                for child_id, parent in parent_by_id.items()
                if parent not in copy.pinned
            )
            if not ids:
                continue
            try:
                deleted = await self._master.delete_legacy_child_rows(
                    child, tenant_id, ids
                )
            except Exception as e:
                self._probe.repair_step_failed(tenant_id, f"delete_legacy_{child}", e)
                errors.append(
                    f"Error removing {child} from the global database: {_error_text(e)}"
                )
                kept.update(parent_by_id.values())
                continue
            actions.append(f"Removed {deleted} {child} from the global database")
            self._probe.legacy_rows_migrated(tenant_id, child, deleted)

        ids = [row_id for row_id in copy.copied_ids if row_id not in kept]
        if not ids:
            return
        try:
            deleted = await self._master.delete_legacy_rows(copy.table, tenant_id, ids)
        except Exception as e:
            self._probe.repair_step_failed(tenant_id, f"delete_legacy_{copy.table}", e)
            errors.append(
                f"Error removing {copy.table} from the global database: {_error_text(e)}"
            )
            return
        actions.append(f"Removed {deleted} {copy.table} from the global database")
        self._probe.legacy_rows_migrated(tenant_id, copy.table, deleted)
