"""Storage bounded context.

Data access for the master registry and for each store's schema.
"""
