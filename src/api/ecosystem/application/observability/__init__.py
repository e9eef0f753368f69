"""Domain-Oriented Observability for ecosystem operations."""

from ecosystem.application.observability.ecosystem_probe import (
    DefaultEcosystemProbe,
    EcosystemProbe,
)

__all__ = [
    "DefaultEcosystemProbe",
    "EcosystemProbe",
]
