"""Ports for the tenancy bounded context."""

from tenancy.ports.exceptions import (
    InvalidTenantConfigurationError,
    TenantInactiveError,
    TenantNotFoundError,
    TenantResolutionError,
)
from tenancy.ports.registry import ITenantRegistry

__all__ = [
    "ITenantRegistry",
    "InvalidTenantConfigurationError",
    "TenantInactiveError",
    "TenantNotFoundError",
    "TenantResolutionError",
]
