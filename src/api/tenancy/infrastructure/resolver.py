"""Maps a store id to the connection target of its schema.

Every store is served by the master server; isolation comes from a
session-level ``search_path`` naming the store's schema. The schema is read
from the selector embedded in the store's registry URL.
"""

from __future__ import annotations

import re
from urllib.parse import quote, unquote

from shared_kernel.connection_target import ConnectionTarget, SchemaSource
from tenancy.domain.tenant import Tenant
from tenancy.infrastructure.observability import (
    DefaultTenantResolutionProbe,
    TenantResolutionProbe,
)
from tenancy.ports.exceptions import (
    InvalidTenantConfigurationError,
    TenantInactiveError,
    TenantNotFoundError,
)
from tenancy.ports.registry import ITenantRegistry

DEFAULT_SCHEMA = "public"

_SCHEMA_SELECTOR = re.compile(
    r"(?:[?&]schema=|search_path(?:=|%3D))([^&]+)",
    re.IGNORECASE,
)
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def extract_schema(database_url: str | None) -> str | None:
    """Return the raw schema selector embedded in a URL, if any.

    Recognizes ``schema=<name>``, ``search_path=<name>`` and the URL-encoded
    ``search_path%3D<name>``. When the search path lists several schemas the
    first one is returned.
    """
    if not database_url:
        return None
    match = _SCHEMA_SELECTOR.search(database_url)
    if match is None:
        return None
    return unquote(match.group(1)).split(",")[0].strip()


def is_valid_schema_name(schema: str) -> bool:
    return bool(_IDENTIFIER.match(schema))


def build_tenant_url(master_url: str, schema: str) -> str:
    """Build the connection string that scopes the master URL to a schema.

    Example:
        >>> build_tenant_url("postgresql://u:p@host/db?sslmode=require", "store_7")
        'postgresql://u:p@host/db?sslmode=require&options=-c%20search_path%3Dstore_7'
    """
    separator = "&" if "?" in master_url else "?"
    options = quote(f"-c search_path={schema}", safe="")
    return f"{master_url}{separator}options={options}"


class TenantResolver:
    """Resolves store ids against the registry on every call.

    Caching is the connection cache's job; the resolver always reads the
    current registry entry so a reconfigured store is picked up after its
    cache entry is invalidated.
    """

    def __init__(
        self,
        registry: ITenantRegistry,
        master_url: str,
        probe: TenantResolutionProbe | None = None,
    ):
        self._registry = registry
        self._master_url = master_url
        self._probe = probe or DefaultTenantResolutionProbe()

    async def resolve(self, tenant_id: int) -> ConnectionTarget:
        """Resolve a store to its connection target.

        Raises:
            TenantNotFoundError: If the registry has no entry for the store
            TenantInactiveError: If the store is deactivated
            InvalidTenantConfigurationError: If the schema selector is unusable
        """
        tenant = await self._registry.get_tenant(tenant_id)
        if tenant is None:
            self._probe.tenant_not_found(tenant_id)
            raise TenantNotFoundError(tenant_id)

        if not tenant.is_active:
            self._probe.tenant_inactive(tenant_id)
            raise TenantInactiveError(tenant_id)

        schema, source = self.schema_for(tenant)
        if source is SchemaSource.DEFAULT:
            self._probe.tenant_not_migrated(tenant_id)

        self._probe.tenant_resolved(tenant_id, schema, source.value)
        return ConnectionTarget(
            url=build_tenant_url(self._master_url, schema),
            schema=schema,
            schema_source=source,
        )

    def schema_for(self, tenant: Tenant) -> tuple[str, SchemaSource]:
        """Determine the schema a store routes to and where it came from.

        Raises:
            InvalidTenantConfigurationError: If the selector is not a plain
                SQL identifier
        """
        raw_schema = extract_schema(tenant.database_url)
        if raw_schema is None:
            return DEFAULT_SCHEMA, SchemaSource.DEFAULT

        if not is_valid_schema_name(raw_schema):
            self._probe.invalid_schema(tenant.id, raw_schema)
            raise InvalidTenantConfigurationError(
                tenant.id,
                f"Store {tenant.id} has an invalid schema name: {raw_schema!r}",
            )
        return raw_schema, SchemaSource.EXPLICIT
