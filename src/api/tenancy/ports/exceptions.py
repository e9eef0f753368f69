"""Domain exceptions for the tenancy bounded context.

Every resolution failure derives from TenantResolutionError so the request
boundary can translate them uniformly, while callers that care can still
tell a missing store from an inactive or misconfigured one.
"""


class TenantResolutionError(Exception):
    """Raised when a store id cannot be turned into a connection target."""

    def __init__(self, tenant_id: int, message: str):
        super().__init__(message)
        self.tenant_id = tenant_id


class TenantNotFoundError(TenantResolutionError):
    """Raised when the registry has no entry for the store id."""

    def __init__(self, tenant_id: int):
        super().__init__(tenant_id, f"Store {tenant_id} not found")


class TenantInactiveError(TenantResolutionError):
    """Raised when the store exists but has been deactivated."""

    def __init__(self, tenant_id: int):
        super().__init__(tenant_id, f"Store {tenant_id} is inactive")


class InvalidTenantConfigurationError(TenantResolutionError):
    """Raised when the store's registry entry cannot be routed safely.

    For example, a schema selector that is not a plain SQL identifier.
    """

    pass
