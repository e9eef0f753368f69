"""Fixtures for storage unit tests."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from storage.infrastructure.observability import StorageProbe


class FakeExecutor:
    """Runs operations directly against one mocked connection."""

    def __init__(self, connection: MagicMock):
        self.connection = connection
        self.labels: list[str] = []

    async def execute_with_retry(self, operation, context_label="database operation"):
        self.labels.append(context_label)
        return await operation(self.connection)

    async def execute_in_transaction(self, operation, context_label="database transaction"):
        self.labels.append(context_label)
        return await operation(self.connection)


def _result_with(**attributes) -> MagicMock:
    result = MagicMock()
    for name, value in attributes.items():
        getattr(result, name).return_value = value
    return result


@pytest.fixture
def make_result():
    """Build a mocked Result whose accessors return the given values."""
    return _result_with


@pytest.fixture
def storage_connection() -> MagicMock:
    connection = MagicMock()
    connection.execute = AsyncMock()
    return connection


@pytest.fixture
def fake_executor(storage_connection) -> FakeExecutor:
    return FakeExecutor(storage_connection)


@pytest.fixture
def mock_storage_probe() -> MagicMock:
    return MagicMock(spec=StorageProbe)
