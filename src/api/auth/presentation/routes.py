"""Password login and token introspection routes.

Users are stored in the master database. A successful login returns a
bearer token whose claims route later requests: global users reach the
master database only, store users are pinned to their store's schema.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from auth.dependencies import (
    AuthenticatedUser,
    get_auth_flow_probe,
    get_jwt_validator,
    require_user,
)
from auth.observability import AuthFlowProbe
from auth.presentation.models import LoginRequest, LoginResponse, UserResponse
from shared_kernel.auth import JWTValidator, TokenClaims
from storage.infrastructure.master_storage import MasterStorage
from tenancy.dependencies import get_master_storage

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login")
async def login(
    body: LoginRequest,
    master_storage: Annotated[MasterStorage, Depends(get_master_storage)],
    validator: Annotated[JWTValidator, Depends(get_jwt_validator)],
    probe: Annotated[AuthFlowProbe, Depends(get_auth_flow_probe)],
) -> LoginResponse:
    """Exchange a username and password for a bearer token.

    Raises:
        HTTPException 401: If the credentials are wrong, the user is
            inactive or a store user asks for another store
    """
    user = await master_storage.authenticate_user(
        body.username, body.password, body.store_id
    )
    if user is None:
        probe.login_failed(username=body.username, store_id=body.store_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    response_user = UserResponse.from_record(user)
    token = validator.issue_token(
        TokenClaims(
            user_id=response_user.id,
            username=response_user.username,
            level=response_user.level,
            store_id=response_user.store_id,
        )
    )
    probe.login_succeeded(
        user_id=response_user.id,
        level=response_user.level.value,
        store_id=response_user.store_id,
    )
    return LoginResponse(token=token, user=response_user)


@router.get("/me")
async def me(
    user: Annotated[AuthenticatedUser, Depends(require_user)],
) -> UserResponse:
    """Describe the user behind the bearer token."""
    return UserResponse(
        id=user.user_id,
        username=user.username,
        store_id=user.store_id,
        level=user.level,
    )
