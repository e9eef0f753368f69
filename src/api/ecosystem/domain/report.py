"""Value objects produced by the ecosystem validator.

Both serialize with camelCase keys, the shape the admin dashboard reads.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ReportModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class ArchitectureSnapshot(_ReportModel):
    """Where a store's data is routed.

    Attributes:
        has_separate_database: The store has a dedicated schema
        using_global_database: The store still routes to the shared schema
        database_url: The registry URL with its password masked
    """

    has_separate_database: bool = False
    using_global_database: bool = True
    database_url: str | None = None


class TableSnapshot(_ReportModel):
    """Tables found in the master schema and in the store schema."""

    global_: list[str] = Field(default_factory=list, alias="global")
    tenant: list[str] = Field(default_factory=list)


class ConfigurationSnapshot(_ReportModel):
    """Baseline configuration found in the store schema."""

    auto_responses: int = 0
    products: int = 0
    settings: bool = False


class ValidationReport(_ReportModel):
    """Findings for one store. Never mutated once built."""

    store_id: int
    store_name: str
    is_valid: bool
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    architecture: ArchitectureSnapshot = Field(default_factory=ArchitectureSnapshot)
    tables: TableSnapshot = Field(default_factory=TableSnapshot)
    configurations: ConfigurationSnapshot = Field(
        default_factory=ConfigurationSnapshot
    )


class RepairResult(_ReportModel):
    """Outcome of a repair run; ``success`` means no step failed."""

    success: bool
    message: str
    actions: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
