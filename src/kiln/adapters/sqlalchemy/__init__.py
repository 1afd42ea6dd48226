"""SQLAlchemy adapter package for Kiln."""

from __future__ import annotations

from .mappings import create_all_tables, declarative_objects_table, metadata
from .store import AccessPolicy, ScopedClientFactory, ScopedObjectClient, SqlAlchemyObjectStore

__all__ = [
    "AccessPolicy",
    "ScopedClientFactory",
    "ScopedObjectClient",
    "SqlAlchemyObjectStore",
    "create_all_tables",
    "declarative_objects_table",
    "metadata",
]
