"""Tenancy bounded context.

Maps a store id to the connection target of its schema and keeps one
connection entry per store for the life of the process.
"""
