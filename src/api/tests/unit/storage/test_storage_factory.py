"""Unit tests for the storage factory and request storage."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from storage.infrastructure.factory import RequestStorage, StorageFactory
from storage.infrastructure.tenant_storage import TenantStorage
from storage.ports.exceptions import TenantRequiredError
from tenancy.ports.exceptions import TenantNotFoundError


def _connection(tenant_id: int) -> MagicMock:
    connection = MagicMock()
    connection.tenant_id = tenant_id
    connection.executor = MagicMock(name=f"executor[{tenant_id}]")
    return connection


@pytest.fixture
def mock_master() -> MagicMock:
    return MagicMock(name="master_storage")


@pytest.fixture
def mock_cache() -> MagicMock:
    cache = MagicMock()
    cache.get = AsyncMock(side_effect=_connection)
    cache.invalidate = AsyncMock(return_value=True)
    cache.invalidate_all = AsyncMock(return_value=0)
    return cache


@pytest.fixture
def factory(mock_master, mock_cache, mock_storage_probe) -> StorageFactory:
    return StorageFactory(mock_master, mock_cache, probe=mock_storage_probe)


class TestGetTenantStorage:
    """Tests for handing out per-store storage."""

    @pytest.mark.asyncio
    async def test_storage_bound_to_store_executor(self, factory, mock_cache):
        storage = await factory.get_tenant_storage(7)

        assert isinstance(storage, TenantStorage)
        assert storage.tenant_id == 7
        mock_cache.get.assert_awaited_once_with(7)

    @pytest.mark.asyncio
    async def test_storage_is_reused_while_connection_is(self, factory, mock_cache):
        connection = _connection(7)
        mock_cache.get.side_effect = None
        mock_cache.get.return_value = connection

        first = await factory.get_tenant_storage(7)
        second = await factory.get_tenant_storage(7)

        assert first is second

    @pytest.mark.asyncio
    async def test_storage_rebuilt_when_connection_replaced(self, factory):
        """Each call here gets a new connection entry, so a new storage too."""
        first = await factory.get_tenant_storage(7)
        second = await factory.get_tenant_storage(7)

        assert first is not second
        assert second.executor is not first.executor

    @pytest.mark.asyncio
    async def test_distinct_stores_get_distinct_storages(self, factory):
        assert (await factory.get_tenant_storage(1)) is not (
            await factory.get_tenant_storage(2)
        )

    @pytest.mark.parametrize("bad_id", [0, -3, True, "7", 7.0, None])
    @pytest.mark.asyncio
    async def test_invalid_ids_are_rejected(self, factory, mock_cache, bad_id):
        with pytest.raises(ValueError, match="Invalid store id"):
            await factory.get_tenant_storage(bad_id)

        mock_cache.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolution_errors_propagate(self, factory, mock_cache):
        mock_cache.get.side_effect = TenantNotFoundError(99)

        with pytest.raises(TenantNotFoundError):
            await factory.get_tenant_storage(99)

    def test_master_storage(self, factory, mock_master):
        assert factory.get_master_storage() is mock_master


class TestInvalidation:
    @pytest.mark.asyncio
    async def test_invalidate_drops_storage_and_connection(self, factory, mock_cache):
        connection = _connection(7)
        mock_cache.get.side_effect = None
        mock_cache.get.return_value = connection
        before = await factory.get_tenant_storage(7)

        await factory.invalidate(7)

        mock_cache.invalidate.assert_awaited_once_with(7)
        assert (await factory.get_tenant_storage(7)) is not before

    @pytest.mark.asyncio
    async def test_invalidate_all(self, factory, mock_cache):
        await factory.get_tenant_storage(1)

        await factory.invalidate_all()

        mock_cache.invalidate_all.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_re_resolves(self, factory, mock_cache):
        storage = await factory.refresh(4)

        mock_cache.invalidate.assert_awaited_once_with(4)
        assert storage.tenant_id == 4

    def test_cache_stats_delegates(self, factory, mock_cache):
        assert factory.cache_stats() is mock_cache.stats.return_value


class TestRequestStorage:
    """Tests for the per-request storage bundle."""

    def test_without_store(self, mock_master):
        storage = RequestStorage(master=mock_master)

        assert storage.tenant_id is None
        with pytest.raises(TenantRequiredError):
            storage.require_tenant()

    def test_with_store(self, mock_master):
        tenant = TenantStorage(5, MagicMock())
        storage = RequestStorage(master=mock_master, tenant=tenant)

        assert storage.tenant_id == 5
        assert storage.require_tenant() is tenant
