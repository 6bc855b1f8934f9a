"""
Table introspection for schemashift.

Reads column metadata, index membership, generation expressions and the
literal table definition from a MySQL-family store.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from .connection import StoreConnection
from ..exceptions import DatabaseError, SchemaShiftError


logger = logging.getLogger(__name__)

INDEX_KINDS = ("primary", "unique", "index")

# MariaDB 10.2.0 started reporting NULL defaults as the literal string NULL.
_MARIADB_LITERAL_NULL_VERSION = 100200

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)")


class ServerFlavor(str, Enum):
    """Store families with differing DDL dialects."""

    MYSQL = "mysql"
    MARIADB = "mariadb"


@dataclass(frozen=True)
class ServerInfo:
    """Store flavor and numeric version (e.g. 80023, 100411)."""

    flavor: ServerFlavor = ServerFlavor.MYSQL
    version: int = 80000

    @classmethod
    def from_version_string(cls, version: str) -> "ServerInfo":
        """Build from the output of SELECT VERSION()."""
        flavor = ServerFlavor.MARIADB if "mariadb" in version.lower() else ServerFlavor.MYSQL
        match = _VERSION_RE.match(version)
        if not match:
            return cls(flavor=flavor)
        major, minor, patch = (int(part) for part in match.groups())
        return cls(flavor=flavor, version=major * 10000 + minor * 100 + patch)

    @property
    def is_mariadb(self) -> bool:
        return self.flavor == ServerFlavor.MARIADB

    @property
    def null_default_literal(self) -> Optional[str]:
        """The value the store reports for a NULL default, if not a real NULL."""
        if self.is_mariadb and self.version >= _MARIADB_LITERAL_NULL_VERSION:
            return "NULL"
        return None


@dataclass(frozen=True)
class ColumnInfo:
    """One row of SHOW FULL COLUMNS."""

    name: str
    type: str
    nullable: bool
    default: Optional[str] = None
    collation: Optional[str] = None
    key: str = ""
    extra: str = ""
    comment: str = ""

    @classmethod
    def from_row(cls, row: Dict[str, Optional[str]]) -> "ColumnInfo":
        return cls(
            name=row["Field"],
            type=row["Type"],
            nullable=row["Null"] == "YES",
            default=row.get("Default"),
            collation=row.get("Collation"),
            key=row.get("Key") or "",
            extra=row.get("Extra") or "",
            comment=row.get("Comment") or "",
        )


@dataclass(frozen=True)
class IndexMembership:
    """Columns covered by each index class of a table."""

    primary: FrozenSet[str] = field(default_factory=frozenset)
    unique: FrozenSet[str] = field(default_factory=frozenset)
    indexed: FrozenSet[str] = field(default_factory=frozenset)

    def covers(self, column: str, kinds: Iterable[str] = INDEX_KINDS) -> bool:
        """Check whether a column belongs to an index of any of the given kinds."""
        for kind in kinds:
            if kind == "primary" and column in self.primary:
                return True
            if kind == "unique" and column in self.unique:
                return True
            if kind == "index" and column in self.indexed:
                return True
        return False

    @classmethod
    def from_rows(cls, rows: List[Dict[str, object]]) -> "IndexMembership":
        """Build from SHOW INDEX rows."""
        primary, unique, indexed = set(), set(), set()
        for row in rows:
            column = row.get("Column_name")
            if not column:
                # functional key parts have no column
                continue
            if row["Key_name"] == "PRIMARY":
                primary.add(column)
            elif not int(row["Non_unique"]):
                unique.add(column)
            else:
                indexed.add(column)
        return cls(frozenset(primary), frozenset(unique), frozenset(indexed))


class TableIntrospector:
    """Table metadata queries against a MySQL-family store."""

    def __init__(self, connection: StoreConnection):
        self.connection = connection

    @staticmethod
    def _quote(name: str) -> str:
        return "`" + name.replace("`", "``") + "`"

    async def get_columns(self, table: str) -> List[ColumnInfo]:
        """Get all columns of a table in physical order."""
        try:
            rows = await self.connection.fetch(f"SHOW FULL COLUMNS FROM {self._quote(table)}")
            return [ColumnInfo.from_row(row) for row in rows]
        except SchemaShiftError:
            raise
        except Exception as e:
            logger.error(f"Error getting columns for {table}: {e}")
            raise DatabaseError(f"Failed to get columns: {e}", cause=e) from e

    async def get_column_order(self, table: str) -> List[str]:
        """Get column names in physical order."""
        return [column.name for column in await self.get_columns(table)]

    async def get_generation_expressions(
        self, table: str, columns: Optional[Iterable[str]] = None
    ) -> Dict[str, str]:
        """Get generation expressions of generated columns, by column name."""
        query = """
            SELECT COLUMN_NAME, GENERATION_EXPRESSION
            FROM information_schema.COLUMNS
            WHERE TABLE_SCHEMA = DATABASE()
            AND TABLE_NAME = %s
            AND GENERATION_EXPRESSION IS NOT NULL
            AND GENERATION_EXPRESSION <> ''
        """

        try:
            rows = await self.connection.fetch(query, table)
        except Exception as e:
            logger.error(f"Error getting generation expressions for {table}: {e}")
            raise DatabaseError(f"Failed to get generation expressions: {e}", cause=e) from e

        wanted = set(columns) if columns is not None else None
        return {
            row["COLUMN_NAME"]: row["GENERATION_EXPRESSION"]
            for row in rows
            if wanted is None or row["COLUMN_NAME"] in wanted
        }

    async def get_index_membership(self, table: str) -> IndexMembership:
        """Get the columns covered by the table's indexes."""
        try:
            rows = await self.connection.fetch(f"SHOW INDEX FROM {self._quote(table)}")
            return IndexMembership.from_rows(rows)
        except Exception as e:
            logger.error(f"Error getting indexes for {table}: {e}")
            raise DatabaseError(f"Failed to get indexes: {e}", cause=e) from e

    async def show_create_table(self, table: str) -> Optional[str]:
        """Get the literal CREATE TABLE text, or None if the table is missing."""
        try:
            row = await self.connection.fetchrow(f"SHOW CREATE TABLE {self._quote(table)}")
        except Exception as e:
            logger.warning(f"Could not get definition of {table}: {e}")
            return None

        if not row:
            return None
        return row.get("Create Table")

    async def get_server_info(self) -> ServerInfo:
        """Get the store flavor and version."""
        try:
            version = await self.connection.fetchval("SELECT VERSION() AS version")
        except SchemaShiftError:
            raise
        except Exception as e:
            logger.error(f"Error getting server version: {e}")
            raise DatabaseError(f"Failed to get server version: {e}", cause=e) from e
        return ServerInfo.from_version_string(version or "")
