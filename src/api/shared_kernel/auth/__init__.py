"""Authentication shared kernel module."""

from shared_kernel.auth.jwt_validator import (
    AccessLevel,
    InvalidTokenError,
    JWTValidator,
    TokenClaims,
)
from shared_kernel.auth.observability import (
    DefaultJWTValidatorProbe,
    JWTValidatorProbe,
)
from shared_kernel.auth.passwords import hash_password, verify_password

__all__ = [
    "AccessLevel",
    "DefaultJWTValidatorProbe",
    "InvalidTokenError",
    "JWTValidator",
    "JWTValidatorProbe",
    "TokenClaims",
    "hash_password",
    "verify_password",
]
