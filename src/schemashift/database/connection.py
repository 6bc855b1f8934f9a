"""
Database connection management for schemashift.

Wraps a blocking PyMySQL connection behind an async interface. Every call
runs in a worker thread and calls are serialized, so one request drives
one sequential pipeline of statements over one connection.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, unquote, urlparse

import pymysql
from pymysql.cursors import DictCursor
from pydantic import BaseModel, Field, field_validator

from ..exceptions import DatabaseConfigurationError, DatabaseConnectionError


logger = logging.getLogger(__name__)


class ConnectionConfig(BaseModel):
    """Database connection configuration."""

    host: str = Field("localhost", description="Database host")
    port: int = Field(3306, description="Database port")
    database: str = Field(..., description="Database name")
    user: str = Field(..., description="Database user")
    password: str = Field("", description="Database password")
    charset: str = Field("utf8mb4", description="Connection character set")
    connect_timeout: int = Field(10, description="Connection timeout in seconds")
    read_timeout: Optional[int] = Field(
        None, description="Read timeout in seconds (None waits for DDL to finish)"
    )

    @field_validator("database")
    @classmethod
    def validate_database(cls, v):
        if not v or not v.strip():
            raise ValueError("Database name is required")
        return v

    @classmethod
    def from_url(cls, url: str) -> "ConnectionConfig":
        """Create configuration from a database URL."""
        parsed = urlparse(url)

        if parsed.scheme not in ("mysql", "mariadb", "mysql+pymysql"):
            raise DatabaseConfigurationError(f"Invalid database URL scheme: {parsed.scheme}")

        if not parsed.path or parsed.path == "/":
            raise DatabaseConfigurationError("Database name is required")

        query_params = parse_qs(parsed.query) if parsed.query else {}

        config_data: Dict[str, Any] = {
            "host": parsed.hostname or "localhost",
            "port": parsed.port or 3306,
            "database": parsed.path.lstrip("/"),
            "user": unquote(parsed.username or ""),
            "password": unquote(parsed.password or ""),
        }

        if "charset" in query_params:
            config_data["charset"] = query_params["charset"][0]
        if "connect_timeout" in query_params:
            config_data["connect_timeout"] = int(query_params["connect_timeout"][0])

        return cls(**config_data)

    def to_connection_kwargs(self) -> Dict[str, Any]:
        """Convert to PyMySQL connection kwargs."""
        kwargs = {
            "host": self.host,
            "port": self.port,
            "database": self.database,
            "user": self.user,
            "password": self.password,
            "charset": self.charset,
            "connect_timeout": self.connect_timeout,
            "cursorclass": DictCursor,
            "autocommit": True,
        }
        if self.read_timeout:
            kwargs["read_timeout"] = self.read_timeout
        return kwargs


class StoreConnection:
    """Async wrapper around a single PyMySQL connection."""

    def __init__(self, config: ConnectionConfig):
        self.config = config
        self._conn: Optional[pymysql.connections.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the connection if it is not open yet."""
        async with self._lock:
            if self._conn is not None:
                return

            try:
                logger.info(
                    f"Connecting to {self.config.host}:{self.config.port}/{self.config.database}"
                )
                self._conn = await asyncio.to_thread(
                    pymysql.connect, **self.config.to_connection_kwargs()
                )
                logger.info("Connection established")

            except pymysql.MySQLError as e:
                logger.error(f"Failed to connect: {e}")
                raise DatabaseConnectionError(f"Failed to connect: {e}", cause=e) from e

    async def close(self) -> None:
        """Close the connection."""
        async with self._lock:
            if self._conn is not None:
                logger.info("Closing connection")
                await asyncio.to_thread(self._conn.close)
                self._conn = None

    def _cursor_call(self, query: str, args: Optional[tuple], mode: str) -> Any:
        with self._conn.cursor() as cursor:
            affected = cursor.execute(query, args or None)
            if mode == "all":
                return list(cursor.fetchall())
            if mode == "one":
                return cursor.fetchone()
            return affected

    async def _run(self, query: str, args: Optional[tuple], mode: str) -> Any:
        if self._conn is None:
            raise DatabaseConnectionError("Connection is not open")

        async with self._lock:
            return await asyncio.to_thread(self._cursor_call, query, args, mode)

    async def execute(self, query: str, *args) -> int:
        """Execute a statement and return the affected row count."""
        return await self._run(query, args, "none")

    async def fetch(self, query: str, *args) -> List[Dict[str, Any]]:
        """Fetch all rows of a query."""
        return await self._run(query, args, "all")

    async def fetchrow(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """Fetch a single row of a query."""
        return await self._run(query, args, "one")

    async def fetchval(self, query: str, *args) -> Any:
        """Fetch the first value of the first row of a query."""
        row = await self.fetchrow(query, *args)
        if not row:
            return None
        return next(iter(row.values()))

    @property
    def is_connected(self) -> bool:
        """Check if the connection is open."""
        return self._conn is not None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
