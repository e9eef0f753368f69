"""JWT issuing and validation for bearer tokens.

Tokens are signed with a shared HMAC secret and carry the user's access
level and, for store users, the store they belong to.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

if TYPE_CHECKING:
    from shared_kernel.auth.observability import JWTValidatorProbe


class AccessLevel(StrEnum):
    """Scope of a signed-in user.

    GLOBAL users administer every store and are routed to the master
    database only; STORE and TENANT users are bound to one store.
    """

    GLOBAL = "global"
    STORE = "store"
    TENANT = "tenant"


@dataclass(frozen=True)
class TokenClaims:
    """Validated JWT claims."""

    user_id: int
    username: str | None
    level: AccessLevel
    store_id: int | None = None


class InvalidTokenError(Exception):
    """Raised when JWT validation fails."""

    pass


class JWTValidator:
    """Issues and validates HMAC-signed tokens."""

    def __init__(
        self,
        secret: str,
        probe: JWTValidatorProbe,
        algorithm: str = "HS256",
        token_ttl: timedelta = timedelta(hours=24),
    ):
        self._secret = secret
        self._probe = probe
        self._algorithm = algorithm
        self._token_ttl = token_ttl

    def issue_token(self, claims: TokenClaims) -> str:
        """Sign a token for the given claims."""
        now = datetime.now(tz=timezone.utc)
        payload: dict[str, Any] = {
            "sub": str(claims.user_id),
            "userId": claims.user_id,
            "username": claims.username,
            "level": claims.level.value,
            "iat": now,
            "exp": now + self._token_ttl,
        }
        if claims.store_id is not None:
            payload["storeId"] = claims.store_id
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        self._probe.token_issued(
            user_id=claims.user_id,
            level=claims.level.value,
            store_id=claims.store_id,
        )
        return token

    def validate_token(self, token: str) -> TokenClaims:
        """Validate a token and return its claims.

        Raises:
            InvalidTokenError: If the token is malformed, expired, wrongly
                signed or missing required claims.
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as e:
            self._probe.token_validation_failed(reason="Token expired")
            raise InvalidTokenError("Token has expired") from e
        except JWTError as e:
            self._probe.token_validation_failed(reason=f"JWT error: {e}")
            raise InvalidTokenError(f"Invalid token: {e}") from e

        raw_user_id = payload.get("userId")
        if raw_user_id is None:
            raw_user_id = payload.get("sub")
        try:
            user_id = int(raw_user_id)
        except (TypeError, ValueError) as e:
            self._probe.token_validation_failed(reason="Missing user id claim")
            raise InvalidTokenError("Missing required claim: userId") from e

        try:
            level = AccessLevel(payload.get("level", AccessLevel.STORE.value))
        except ValueError as e:
            self._probe.token_validation_failed(reason="Unknown access level")
            raise InvalidTokenError(f"Unknown access level: {payload['level']}") from e

        raw_store_id = payload.get("storeId")
        try:
            store_id = int(raw_store_id) if raw_store_id is not None else None
        except (TypeError, ValueError) as e:
            self._probe.token_validation_failed(reason="Malformed store id claim")
            raise InvalidTokenError("Malformed claim: storeId") from e

        self._probe.token_validated(user_id=user_id, level=level.value)
        username = payload.get("username")
        return TokenClaims(
            user_id=user_id,
            username=str(username) if username is not None else None,
            level=level,
            store_id=store_id,
        )
