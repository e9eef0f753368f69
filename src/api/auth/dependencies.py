"""Bearer token authentication dependencies.

Authentication is optional at this layer: requests without an
``Authorization: Bearer`` header are anonymous and routed by header or
session instead. A header that is present but invalid is always rejected.

Usage in FastAPI routes:
    @router.get("/example")
    async def example(
        user: Annotated[AuthenticatedUser | None, Depends(get_current_user)],
    ):
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.observability import AuthFlowProbe, DefaultAuthFlowProbe
from infrastructure.settings import get_auth_settings
from shared_kernel.auth import (
    AccessLevel,
    DefaultJWTValidatorProbe,
    InvalidTokenError,
    JWTValidator,
)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity carried by a valid bearer token."""

    user_id: int
    username: str | None
    level: AccessLevel
    store_id: int | None = None

    @property
    def is_global(self) -> bool:
        return self.level is AccessLevel.GLOBAL


@lru_cache
def get_jwt_validator() -> JWTValidator:
    """Get cached JWT validator configured from the auth settings."""
    settings = get_auth_settings()
    return JWTValidator(
        secret=settings.secret.get_secret_value(),
        probe=DefaultJWTValidatorProbe(),
        algorithm=settings.algorithm,
    )


def get_auth_flow_probe() -> AuthFlowProbe:
    return DefaultAuthFlowProbe()


async def get_current_user(
    validator: Annotated[JWTValidator, Depends(get_jwt_validator)],
    probe: Annotated[AuthFlowProbe, Depends(get_auth_flow_probe)],
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ] = None,
) -> AuthenticatedUser | None:
    """Decode the bearer token, if any.

    Returns:
        The authenticated user, or None for anonymous requests

    Raises:
        HTTPException 401: If a bearer token is present but invalid
    """
    if credentials is None:
        return None

    try:
        claims = validator.validate_token(credentials.credentials)
    except InvalidTokenError as e:
        probe.authentication_failed(reason=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    probe.user_authenticated(user_id=claims.user_id, level=claims.level.value)
    return AuthenticatedUser(
        user_id=claims.user_id,
        username=claims.username,
        level=claims.level,
        store_id=claims.store_id,
    )


async def require_user(
    user: Annotated[AuthenticatedUser | None, Depends(get_current_user)],
) -> AuthenticatedUser:
    """Like get_current_user, but anonymous requests are rejected with 401."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_global_user(
    user: Annotated[AuthenticatedUser, Depends(require_user)],
) -> AuthenticatedUser:
    """Reject users that are bound to a single store with 403."""
    if not user.is_global:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Global administrator access required",
        )
    return user
