"""Pydantic models for auth API requests and responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shared_kernel.auth import AccessLevel


class LoginRequest(BaseModel):
    """Request model for password login."""

    model_config = ConfigDict(populate_by_name=True)

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    store_id: int | None = Field(
        default=None,
        alias="storeId",
        gt=0,
        description="Store the user signs in to; omitted for global users",
    )


class UserResponse(BaseModel):
    """Response model for a signed-in user."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    username: str | None
    role: str | None = None
    store_id: int | None = Field(default=None, alias="storeId")
    level: AccessLevel

    @classmethod
    def from_record(cls, user: dict[str, Any]) -> UserResponse:
        """Build from a system user record without its password hash."""
        return cls(
            id=user["id"],
            username=user["username"],
            role=user.get("role"),
            store_id=user.get("store_id"),
            level=AccessLevel(user["level"]),
        )


class LoginResponse(BaseModel):
    """Response model for a successful login."""

    success: bool = True
    token: str
    user: UserResponse
