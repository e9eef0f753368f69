"""Ecosystem bounded context.

Audits how each store is laid out across the master database and its own
schema, and repairs drift such as store rows left behind in master tables.
"""
