"""Shared Kernel module.

Value objects every bounded context agrees on: where a connection points
(``connection_target``), which store a request belongs to
(``middleware.tenant_context``) and who the caller is (``auth``). Nothing
here imports a bounded context.
"""
