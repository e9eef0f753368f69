"""Infrastructure for the tenancy bounded context."""
