"""Shared request-scoped components for cross-cutting concerns.

This module contains the tenant context value object and its probe, shared
by the bounded contexts that route requests to a store.
"""
