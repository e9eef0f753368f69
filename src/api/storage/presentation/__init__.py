"""HTTP surface of the storage context."""
