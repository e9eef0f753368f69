"""Infrastructure for the storage bounded context."""
