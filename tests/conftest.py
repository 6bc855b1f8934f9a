"""
Pytest configuration and shared fixtures for schemashift tests.

This module provides a recording fake store and sample table metadata
shared by the unit tests.
"""

import logging
from typing import Dict, Iterable, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from schemashift.database.introspection import ColumnInfo, IndexMembership, ServerInfo
from schemashift.exceptions import StoreExecutionError
from schemashift.schema.partitions import parse_definition


# ============================================================================
# Sample Metadata Fixtures
# ============================================================================

FULL_NAME_EXPRESSION = "concat(`first_name`,' ',`last_name`)"


@pytest.fixture
def server() -> ServerInfo:
    """A MySQL 8 server."""
    return ServerInfo.from_version_string("8.0.36")


@pytest.fixture
def mariadb_server() -> ServerInfo:
    """A MariaDB server that reports NULL defaults literally."""
    return ServerInfo.from_version_string("10.6.12-MariaDB-log")


@pytest.fixture
def user_columns() -> List[ColumnInfo]:
    """SHOW FULL COLUMNS of a users table, in physical order."""
    return [
        ColumnInfo(
            name="id", type="int(11)", nullable=False, key="PRI", extra="auto_increment"
        ),
        ColumnInfo(
            name="name", type="varchar(100)", nullable=True,
            collation="utf8mb4_general_ci",
        ),
        ColumnInfo(
            name="email", type="varchar(255)", nullable=False,
            collation="utf8mb4_general_ci", key="UNI",
        ),
        ColumnInfo(
            name="bio", type="text", nullable=True, collation="utf8mb4_general_ci",
        ),
        ColumnInfo(
            name="created_at", type="timestamp", nullable=False,
            default="CURRENT_TIMESTAMP", extra="DEFAULT_GENERATED",
        ),
        ColumnInfo(
            name="full_name", type="varchar(200)", nullable=True,
            collation="utf8mb4_general_ci", extra="VIRTUAL GENERATED",
        ),
    ]


@pytest.fixture
def user_membership() -> IndexMembership:
    """Index membership of the users table."""
    return IndexMembership(
        primary=frozenset({"id"}),
        unique=frozenset({"email"}),
        indexed=frozenset({"created_at"}),
    )


@pytest.fixture
def range_definition() -> str:
    """SHOW CREATE TABLE text of a RANGE-partitioned table."""
    return (
        "CREATE TABLE `events` (\n"
        "  `id` int NOT NULL,\n"
        "  `payload` varchar(50) DEFAULT NULL COMMENT 'PARTITION BY nothing',\n"
        "  PRIMARY KEY (`id`)\n"
        ") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4\n"
        "/*!50100 PARTITION BY RANGE (`id`)\n"
        "(PARTITION p0 VALUES LESS THAN (10) ENGINE = InnoDB,\n"
        " PARTITION p1 VALUES LESS THAN (20) ENGINE = InnoDB,\n"
        " PARTITION p2 VALUES LESS THAN MAXVALUE ENGINE = InnoDB) */"
    )


# ============================================================================
# Fake Store Fixtures
# ============================================================================

def build_store(
    columns: Iterable[ColumnInfo],
    membership: Optional[IndexMembership] = None,
    server: Optional[ServerInfo] = None,
    expressions: Optional[Dict[str, str]] = None,
    definition: Optional[str] = None,
    failing_calls: Iterable[int] = (),
) -> MagicMock:
    """Build a store double that records every statement it is asked to run.

    ``failing_calls`` lists the zero-based execute calls that are rejected.
    Every call, failed or not, is recorded in ``store.attempted``; only the
    ones that went through are in ``store.executed``.
    """
    columns = list(columns)
    failing = set(failing_calls)

    store = MagicMock()
    store.attempted = []
    store.executed = []

    store.describe_columns = AsyncMock(return_value=columns)
    store.current_column_order = AsyncMock(return_value=[c.name for c in columns])
    store.generation_expressions = AsyncMock(return_value=dict(expressions or {}))
    store.index_membership = AsyncMock(return_value=membership or IndexMembership())
    store.server_info = AsyncMock(return_value=server or ServerInfo())
    store.render_definition_text = AsyncMock(return_value=definition)
    store.parse_definition = MagicMock(side_effect=parse_definition)

    async def execute(statement: str) -> None:
        call_index = len(store.attempted)
        store.attempted.append(statement)
        if call_index in failing:
            raise StoreExecutionError(statement, "#1067 - Invalid default value")
        store.executed.append(statement)

    store.execute = AsyncMock(side_effect=execute)
    return store


@pytest.fixture
def store_factory():
    """Factory for recording store doubles."""
    return build_store


@pytest.fixture
def user_store(user_columns, user_membership, server):
    """Recording store double holding the users table."""
    return build_store(
        user_columns,
        membership=user_membership,
        server=server,
        expressions={"full_name": FULL_NAME_EXPRESSION},
    )


@pytest.fixture(autouse=True)
def restore_root_logger():
    """Undo handler changes made by configure_logging."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
