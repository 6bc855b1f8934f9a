"""
schemashift: table-structure mutations for MySQL-family stores.

schemashift alters column definitions, reorders columns, guards collation
changes and rewrites partitioning, reporting every outcome as a
structured result.
"""

__version__ = "0.1.0"
__author__ = "schemashift Contributors"

from .config import SchemaShiftConfig
from .exceptions import (
    SchemaShiftError,
    ConfigurationError,
    ValidationError,
    NoChangeError,
    PartitionParseError,
    DatabaseError,
    StoreExecutionError,
    RevertExecutionError,
)

__all__ = [
    "__version__",
    "SchemaShiftConfig",
    "SchemaShiftError",
    "ConfigurationError",
    "ValidationError",
    "NoChangeError",
    "PartitionParseError",
    "DatabaseError",
    "StoreExecutionError",
    "RevertExecutionError",
]
