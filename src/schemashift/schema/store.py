"""
The store interface the mutation engine consumes.
"""

from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from ..database.introspection import ColumnInfo, IndexMembership, ServerInfo
from .partitions import ParsedPartitionClause


@runtime_checkable
class TableStore(Protocol):
    """Metadata reads and statement execution against one store connection.

    ``execute`` raises StoreExecutionError when the store rejects a
    statement.
    """

    async def describe_columns(self, table: str) -> List[ColumnInfo]:
        ...

    async def generation_expressions(
        self, table: str, columns: Iterable[str]
    ) -> Dict[str, str]:
        ...

    async def current_column_order(self, table: str) -> List[str]:
        ...

    async def index_membership(self, table: str) -> IndexMembership:
        ...

    async def server_info(self) -> ServerInfo:
        ...

    async def execute(self, statement: str) -> None:
        ...

    async def render_definition_text(self, table: str) -> Optional[str]:
        ...

    def parse_definition(self, text: str) -> Optional[ParsedPartitionClause]:
        ...
