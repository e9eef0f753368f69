"""Ecosystem audit and repair routes for global administrators."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from auth.dependencies import require_global_user
from ecosystem.application.validator import EcosystemValidator
from ecosystem.dependencies import get_ecosystem_validator
from ecosystem.domain.report import RepairResult, ValidationReport
from tenancy.ports.exceptions import TenantNotFoundError

router = APIRouter(
    prefix="/ecosystem",
    tags=["ecosystem"],
    dependencies=[Depends(require_global_user)],
)


def _not_found(error: TenantNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=str(error),
    )


@router.get("/stores/{store_id}/validate")
async def validate_store(
    store_id: int,
    validator: Annotated[EcosystemValidator, Depends(get_ecosystem_validator)],
) -> ValidationReport:
    """Audit one store's schema layout and baseline configuration.

    Raises:
        HTTPException 404: If the store does not exist
    """
    try:
        return await validator.validate(store_id)
    except TenantNotFoundError as e:
        raise _not_found(e) from e


@router.post("/stores/{store_id}/repair")
async def repair_store(
    store_id: int,
    validator: Annotated[EcosystemValidator, Depends(get_ecosystem_validator)],
) -> RepairResult:
    """Repair one store; safe to call repeatedly.

    Raises:
        HTTPException 404: If the store does not exist
    """
    try:
        return await validator.repair(store_id)
    except TenantNotFoundError as e:
        raise _not_found(e) from e


@router.get("/validate-all")
async def validate_all_stores(
    validator: Annotated[EcosystemValidator, Depends(get_ecosystem_validator)],
) -> list[ValidationReport]:
    """Audit every active store."""
    return await validator.validate_all()
