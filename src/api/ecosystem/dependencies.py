"""FastAPI dependencies for the ecosystem context."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from ecosystem.application.observability import (
    DefaultEcosystemProbe,
    EcosystemProbe,
)
from ecosystem.application.validator import EcosystemValidator
from storage.infrastructure.factory import StorageFactory
from tenancy.dependencies import get_storage_factory


def get_ecosystem_probe() -> EcosystemProbe:
    return DefaultEcosystemProbe()


def get_ecosystem_validator(
    factory: Annotated[StorageFactory, Depends(get_storage_factory)],
    probe: Annotated[EcosystemProbe, Depends(get_ecosystem_probe)],
) -> EcosystemValidator:
    """Build a validator over the shared storage factory."""
    master = factory.get_master_storage()
    return EcosystemValidator(
        master_storage=master,
        storage_factory=factory,
        master_url=master.master_url,
        probe=probe,
    )
