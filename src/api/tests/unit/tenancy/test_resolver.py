"""Unit tests for store resolution against the registry."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from shared_kernel.connection_target import SchemaSource
from tenancy.infrastructure.observability import TenantResolutionProbe
from tenancy.infrastructure.resolver import (
    DEFAULT_SCHEMA,
    TenantResolver,
    build_tenant_url,
    extract_schema,
    is_valid_schema_name,
)
from tenancy.ports.exceptions import (
    InvalidTenantConfigurationError,
    TenantInactiveError,
    TenantNotFoundError,
    TenantResolutionError,
)


@pytest.fixture
def mock_registry() -> MagicMock:
    registry = MagicMock()
    registry.get_tenant = AsyncMock(return_value=None)
    return registry


@pytest.fixture
def mock_probe() -> MagicMock:
    return MagicMock(spec=TenantResolutionProbe)


@pytest.fixture
def resolver(mock_registry, master_url, mock_probe) -> TenantResolver:
    return TenantResolver(mock_registry, master_url, probe=mock_probe)


class TestExtractSchema:
    """Tests for reading the schema selector from a registry URL."""

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("postgresql://u:p@h/db?schema=store_7", "store_7"),
            ("postgresql://u:p@h/db?sslmode=require&schema=store_7", "store_7"),
            ("postgresql://u:p@h/db?options=-c%20search_path%3Dstore_7", "store_7"),
            ("postgresql://u:p@h/db?options=-c search_path=store_7", "store_7"),
            ("postgresql://u:p@h/db?options=-c%20search_path%3Dstore_7,public", "store_7"),
        ],
    )
    def test_recognized_selectors(self, url, expected):
        assert extract_schema(url) == expected

    @pytest.mark.parametrize("url", [None, "", "postgresql://u:p@h/db"])
    def test_no_selector(self, url):
        assert extract_schema(url) is None

    def test_selector_stops_at_next_parameter(self):
        url = "postgresql://u:p@h/db?schema=store_7&sslmode=require"

        assert extract_schema(url) == "store_7"


class TestBuildTenantUrl:
    """Tests for scoping the master URL to a schema."""

    def test_appends_query_when_master_has_none(self):
        url = build_tenant_url("postgresql://u:p@h/db", "store_7")

        assert url == "postgresql://u:p@h/db?options=-c%20search_path%3Dstore_7"

    def test_extends_existing_query(self):
        url = build_tenant_url("postgresql://u:p@h/db?sslmode=require", "store_7")

        assert url == (
            "postgresql://u:p@h/db?sslmode=require&options=-c%20search_path%3Dstore_7"
        )

    def test_built_url_round_trips_through_extract(self):
        assert extract_schema(build_tenant_url("postgresql://h/db", "store_9")) == "store_9"


class TestSchemaNames:
    @pytest.mark.parametrize("name", ["store_7", "public", "_tmp", "Store7"])
    def test_valid_identifiers(self, name):
        assert is_valid_schema_name(name)

    @pytest.mark.parametrize(
        "name", ["7store", "store-7", "store_7;drop table orders", "", "store 7"]
    )
    def test_invalid_identifiers(self, name):
        assert not is_valid_schema_name(name)


class TestResolve:
    """Tests for TenantResolver.resolve."""

    @pytest.mark.asyncio
    async def test_explicit_schema(
        self, resolver, mock_registry, tenant_factory, master_url, mock_probe
    ):
        """A store with a schema selector routes to that schema on the master server."""
        mock_registry.get_tenant.return_value = tenant_factory(
            tenant_id=7, database_url=f"{master_url}?schema=store_7"
        )

        target = await resolver.resolve(7)

        assert target.schema == "store_7"
        assert target.schema_source is SchemaSource.EXPLICIT
        assert target.has_dedicated_schema
        assert target.url == build_tenant_url(master_url, "store_7")
        mock_probe.tenant_resolved.assert_called_once_with(7, "store_7", "explicit")

    @pytest.mark.asyncio
    async def test_missing_url_defaults_to_public(
        self, resolver, mock_registry, tenant_factory, master_url, mock_probe
    ):
        """An unmigrated store routes to public but is marked as defaulted."""
        mock_registry.get_tenant.return_value = tenant_factory(tenant_id=42)

        target = await resolver.resolve(42)

        assert target.schema == DEFAULT_SCHEMA
        assert target.schema_source is SchemaSource.DEFAULT
        assert not target.has_dedicated_schema
        assert not target.is_master
        assert target.url == build_tenant_url(master_url, "public")
        mock_probe.tenant_not_migrated.assert_called_once_with(42)

    @pytest.mark.asyncio
    async def test_explicit_public_is_distinguishable(
        self, resolver, mock_registry, tenant_factory, master_url
    ):
        mock_registry.get_tenant.return_value = tenant_factory(
            tenant_id=5, database_url=f"{master_url}?schema=public"
        )

        target = await resolver.resolve(5)

        assert target.schema == "public"
        assert target.schema_source is SchemaSource.EXPLICIT

    @pytest.mark.asyncio
    async def test_unknown_store(self, resolver, mock_probe):
        with pytest.raises(TenantNotFoundError) as exc_info:
            await resolver.resolve(999)

        assert exc_info.value.tenant_id == 999
        mock_probe.tenant_not_found.assert_called_once_with(999)

    @pytest.mark.asyncio
    async def test_inactive_store_is_distinct_from_unknown(
        self, resolver, mock_registry, tenant_factory
    ):
        mock_registry.get_tenant.return_value = tenant_factory(tenant_id=3, is_active=False)

        with pytest.raises(TenantInactiveError) as exc_info:
            await resolver.resolve(3)

        assert not isinstance(exc_info.value, TenantNotFoundError)
        assert isinstance(exc_info.value, TenantResolutionError)

    @pytest.mark.asyncio
    async def test_invalid_schema_is_rejected(
        self, resolver, mock_registry, tenant_factory, master_url, mock_probe
    ):
        """A selector that is not an identifier never reaches a connection."""
        mock_registry.get_tenant.return_value = tenant_factory(
            tenant_id=8, database_url=f"{master_url}?schema=store-8"
        )

        with pytest.raises(InvalidTenantConfigurationError, match="invalid schema"):
            await resolver.resolve(8)

        mock_probe.invalid_schema.assert_called_once_with(8, "store-8")

    @pytest.mark.asyncio
    async def test_registry_is_read_on_every_call(
        self, resolver, mock_registry, tenant_factory, master_url
    ):
        """The resolver does not cache; a reconfigured store is seen immediately."""
        mock_registry.get_tenant.side_effect = [
            tenant_factory(tenant_id=7),
            tenant_factory(tenant_id=7, database_url=f"{master_url}?schema=store_7"),
        ]

        first = await resolver.resolve(7)
        second = await resolver.resolve(7)

        assert first.schema == "public"
        assert second.schema == "store_7"
        assert mock_registry.get_tenant.await_count == 2
