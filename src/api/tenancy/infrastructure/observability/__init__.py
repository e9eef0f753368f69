"""Domain-Oriented Observability for tenancy infrastructure."""

from tenancy.infrastructure.observability.cache_probe import (
    DefaultTenantCacheProbe,
    TenantCacheProbe,
)
from tenancy.infrastructure.observability.resolution_probe import (
    DefaultTenantResolutionProbe,
    TenantResolutionProbe,
)

__all__ = [
    "DefaultTenantCacheProbe",
    "DefaultTenantResolutionProbe",
    "TenantCacheProbe",
    "TenantResolutionProbe",
]
