"""Domain-oriented observability for the auth flow.

Follows the Domain Oriented Observability pattern from Martin Fowler.
"""

from __future__ import annotations

from typing import Protocol

import structlog


class AuthFlowProbe(Protocol):
    """Observability probe for password login and bearer authentication."""

    def login_succeeded(
        self,
        user_id: int,
        level: str,
        store_id: int | None,
    ) -> None:
        """Called when a user signs in and receives a token."""
        ...

    def login_failed(self, username: str, store_id: int | None) -> None:
        """Called when a login attempt is rejected."""
        ...

    def user_authenticated(self, user_id: int, level: str) -> None:
        """Called when a request carries a valid bearer token."""
        ...

    def authentication_failed(self, reason: str) -> None:
        """Called when a request carries an unusable bearer token."""
        ...


class DefaultAuthFlowProbe:
    """Default implementation of AuthFlowProbe using structlog."""

    def __init__(self) -> None:
        self._logger = structlog.get_logger(__name__)

    def login_succeeded(
        self,
        user_id: int,
        level: str,
        store_id: int | None,
    ) -> None:
        """Log when a user signs in."""
        self._logger.info(
            "login_succeeded",
            user_id=user_id,
            level=level,
            store_id=store_id,
        )

    def login_failed(self, username: str, store_id: int | None) -> None:
        """Log when a login attempt is rejected."""
        self._logger.warning(
            "login_failed",
            username=username,
            store_id=store_id,
        )

    def user_authenticated(self, user_id: int, level: str) -> None:
        self._logger.debug(
            "user_authenticated",
            user_id=user_id,
            level=level,
        )

    def authentication_failed(self, reason: str) -> None:
        self._logger.warning(
            "authentication_failed",
            reason=reason,
        )
