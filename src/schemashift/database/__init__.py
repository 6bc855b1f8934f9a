"""
Database integration package for schemashift.

This package provides:
- Connection settings and a PyMySQL-backed async connection
- Column, index and server introspection
- The MySQL-family TableStore (``schemashift.database.mysql_store``)
"""

from .connection import ConnectionConfig, StoreConnection
from .introspection import ColumnInfo, IndexMembership, ServerFlavor, ServerInfo, TableIntrospector

__all__ = [
    "ConnectionConfig",
    "StoreConnection",
    "ColumnInfo",
    "IndexMembership",
    "ServerFlavor",
    "ServerInfo",
    "TableIntrospector",
]
