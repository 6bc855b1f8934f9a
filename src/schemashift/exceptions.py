"""
Exception classes for schemashift.
"""

from typing import Any, Dict, Optional


class SchemaShiftError(Exception):
    """Base exception for all schemashift errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        result = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            result += f" [{details_str}]"
        if self.cause:
            result += f" (caused by: {self.cause})"
        return result


class ConfigurationError(SchemaShiftError):
    """Raised when there's an error in configuration."""

    pass


class ValidationError(SchemaShiftError):
    """Raised when a desired table state is malformed."""

    pass


class NoChangeError(SchemaShiftError):
    """Raised when a diff or move plan produced nothing to do.

    This is a signal, not a failure: the table already has the
    requested shape.
    """

    def __init__(self, table: str, reason: str = "no changes required") -> None:
        super().__init__(f"Nothing to alter on table '{table}': {reason}")
        self.table = table
        self.reason = reason


class PartitionParseError(SchemaShiftError):
    """Raised when a table definition's partition clause cannot be decomposed."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        details = {}
        if position is not None:
            details["position"] = position
        super().__init__(message, details)
        self.position = position


class DatabaseError(SchemaShiftError):
    """Raised when there's an error with database operations."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when there's an error establishing or maintaining database connections."""

    pass


class DatabaseConfigurationError(DatabaseError):
    """Raised when there's an error in database configuration."""

    pass


class StoreExecutionError(DatabaseError):
    """Raised when the store rejects a statement."""

    def __init__(
        self,
        statement: str,
        store_message: str,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(
            f"Statement failed: {store_message}",
            {"statement": statement},
            cause,
        )
        self.statement = statement
        self.store_message = store_message


class RevertExecutionError(StoreExecutionError):
    """Raised when the corrective statement issued after a failure fails too.

    Always reported next to the original error, never instead of it.
    """

    def __init__(
        self,
        statement: str,
        store_message: str,
        original_error: StoreExecutionError,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(statement, store_message, cause)
        self.message = f"Revert failed: {store_message}"
        self.original_error = original_error
