"""Database infrastructure: pools, resilient execution and their errors."""

from infrastructure.database.exceptions import (
    ConfigurationError,
    DatabaseConnectionError,
    DatabaseError,
    OperationTimeoutError,
)

__all__ = [
    "ConfigurationError",
    "DatabaseConnectionError",
    "DatabaseError",
    "OperationTimeoutError",
]
