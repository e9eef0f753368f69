"""Domain layer for the tenancy bounded context."""

from tenancy.domain.tenant import Tenant

__all__ = ["Tenant"]
