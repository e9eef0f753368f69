"""Observability for request tenant selection."""

from shared_kernel.middleware.observability.tenant_context_probe import (
    DefaultTenantContextProbe,
    TenantContextProbe,
)

__all__ = [
    "DefaultTenantContextProbe",
    "TenantContextProbe",
]
