"""Ports for the storage bounded context."""

from storage.ports.exceptions import EntityNotFoundError, TenantRequiredError

__all__ = ["EntityNotFoundError", "TenantRequiredError"]
