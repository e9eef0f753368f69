"""Domain-Oriented Observability for storage infrastructure."""

from storage.infrastructure.observability.storage_probe import (
    DefaultStorageProbe,
    StorageProbe,
)

__all__ = ["DefaultStorageProbe", "StorageProbe"]
