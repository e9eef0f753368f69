"""Domain exceptions for the storage bounded context."""

from __future__ import annotations


class EntityNotFoundError(Exception):
    """Raised when a scoped lookup that must succeed finds nothing.

    Carries the entity kind, its id and the store it was looked up in so the
    failure can be reported without re-parsing the message.
    """

    def __init__(self, entity: str, entity_id: object, tenant_id: int | None = None):
        scope = f" in store {tenant_id}" if tenant_id is not None else ""
        super().__init__(f"{entity} with ID {entity_id} not found{scope}")
        self.entity = entity
        self.entity_id = entity_id
        self.tenant_id = tenant_id


class TenantRequiredError(Exception):
    """Raised when store-scoped storage is requested without a store."""

    def __init__(self) -> None:
        super().__init__("This operation requires a store context")
