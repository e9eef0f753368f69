"""HTTP surface of the ecosystem context."""
