"""Domain layer for the ecosystem context."""

from ecosystem.domain.report import (
    ArchitectureSnapshot,
    ConfigurationSnapshot,
    RepairResult,
    TableSnapshot,
    ValidationReport,
)

__all__ = [
    "ArchitectureSnapshot",
    "ConfigurationSnapshot",
    "RepairResult",
    "TableSnapshot",
    "ValidationReport",
]
