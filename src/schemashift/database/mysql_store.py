"""
MySQL-family implementation of the TableStore interface.
"""

import logging
from typing import Dict, Iterable, List, Optional

import pymysql

from .connection import StoreConnection
from .introspection import ColumnInfo, IndexMembership, ServerInfo, TableIntrospector
from ..exceptions import StoreExecutionError
from ..schema.partitions import ParsedPartitionClause, parse_definition


logger = logging.getLogger(__name__)


class MySQLTableStore:
    """TableStore backed by a StoreConnection."""

    def __init__(self, connection: StoreConnection):
        self.connection = connection
        self.introspector = TableIntrospector(connection)
        self._server_info: Optional[ServerInfo] = None

    async def describe_columns(self, table: str) -> List[ColumnInfo]:
        return await self.introspector.get_columns(table)

    async def generation_expressions(
        self, table: str, columns: Iterable[str]
    ) -> Dict[str, str]:
        return await self.introspector.get_generation_expressions(table, columns)

    async def current_column_order(self, table: str) -> List[str]:
        return await self.introspector.get_column_order(table)

    async def index_membership(self, table: str) -> IndexMembership:
        return await self.introspector.get_index_membership(table)

    async def server_info(self) -> ServerInfo:
        if self._server_info is None:
            self._server_info = await self.introspector.get_server_info()
        return self._server_info

    async def execute(self, statement: str) -> None:
        """Execute a statement, raising StoreExecutionError if the store rejects it."""
        try:
            await self.connection.execute(statement)
        except pymysql.MySQLError as e:
            if len(e.args) >= 2:
                store_message = f"#{e.args[0]} - {e.args[1]}"
            else:
                store_message = str(e)
            logger.error(f"Store rejected statement: {store_message}")
            raise StoreExecutionError(statement, store_message, cause=e) from e

    async def render_definition_text(self, table: str) -> Optional[str]:
        return await self.introspector.show_create_table(table)

    def parse_definition(self, text: str) -> Optional[ParsedPartitionClause]:
        return parse_definition(text)
