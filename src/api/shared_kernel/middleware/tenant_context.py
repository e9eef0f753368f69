"""Tenant context value object for resolved store identification.

This module contains the pure value object that represents which store a
request is routed to. It is framework-agnostic and contains no business
logic, making it safe for the shared kernel.

The resolution logic (token, header and session lookup) lives in the
tenancy bounded context's dependency layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class TenantSource(StrEnum):
    """Where the store id of a request came from."""

    USER = "user"
    HEADER = "header"
    SESSION = "session"
    NONE = "none"


@dataclass(frozen=True)
class TenantContext:
    """Resolved store context for the current request.

    Attributes:
        tenant_id: The store id, or None for requests that only use the
            master database.
        source: How the store was selected. USER when it came from a
            store-bound token, HEADER for ``x-store-id``, SESSION for the
            session's ``storeId`` and NONE when no store was selected.
    """

    tenant_id: int | None
    source: TenantSource

    @classmethod
    def global_context(cls) -> TenantContext:
        return cls(tenant_id=None, source=TenantSource.NONE)

    @property
    def is_global(self) -> bool:
        return self.tenant_id is None
