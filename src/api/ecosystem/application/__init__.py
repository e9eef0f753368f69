"""Application layer for the ecosystem context."""
