"""Database-specific exceptions shared by every bounded context."""


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid.

    Detected at startup for process-level settings (the master URL) so the
    service never runs against an implicit default database.
    """

    pass


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when a connection cannot be obtained from a pool."""

    pass


class OperationTimeoutError(DatabaseError):
    """Raised when a database operation does not settle within its bound.

    Distinct from any error raised by the operation itself. The statement may
    still be running server-side; only the client stops waiting for it.
    """

    def __init__(self, context_label: str, timeout: float):
        super().__init__(f"{context_label} timeout after {timeout:g}s")
        self.context_label = context_label
        self.timeout = timeout
