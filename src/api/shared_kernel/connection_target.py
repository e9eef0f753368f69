"""Connection target value object shared by the database and tenancy layers.

A connection target names one logical database: the master database, or one
tenant schema reached through the master server with a session-level
``search_path`` override. Pools are keyed by the target URL, so two targets
never share a pool even when they point at the same server.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class SchemaSource(StrEnum):
    """Where a target's schema came from.

    DEFAULT marks a tenant whose registry URL carries no schema selector and
    was routed to ``public``; it is the not-yet-migrated legacy state and must
    stay distinguishable from an explicit ``public`` assignment.
    """

    MASTER = "master"
    EXPLICIT = "explicit"
    DEFAULT = "default"


@dataclass(frozen=True)
class ConnectionTarget:
    """A poolable database destination.

    Attributes:
        url: Full connection string, including the URL-encoded search_path
            option for tenant targets. Used as the pool key.
        schema: Schema searched first by connections to this target, or None
            for the master database.
        schema_source: How the schema was determined.
    """

    url: str
    schema: str | None = None
    schema_source: SchemaSource = SchemaSource.MASTER

    @classmethod
    def master(cls, url: str) -> ConnectionTarget:
        """Create the target for the master database."""
        return cls(url=url)

    @property
    def is_master(self) -> bool:
        """True when this target is the master database itself."""
        return self.schema_source is SchemaSource.MASTER

    @property
    def has_dedicated_schema(self) -> bool:
        """True when the tenant was explicitly assigned its own schema."""
        return self.schema_source is SchemaSource.EXPLICIT
