"""
Best-effort actions run after a successful mutation.
"""

import logging
from typing import List

from .executor import MutationResult
from .sql import quote_string
from .store import TableStore


logger = logging.getLogger(__name__)


class PrivilegeRenameFollowUp:
    """Carry column-level grants over to renamed columns.

    Column privileges are stored by column name, so a rename leaves them
    pointing at a column that no longer exists.
    """

    name = "privilege-rename"

    def __init__(self, store: TableStore, database: str):
        self.store = store
        self.database = database

    def statements(self, result: MutationResult) -> List[str]:
        statements = []
        for old_name, new_name in result.renamed_columns.items():
            statements.append(
                "UPDATE mysql.columns_priv "
                f"SET Column_name = {quote_string(new_name)} "
                f"WHERE Db = {quote_string(self.database)} "
                f"AND Table_name = {quote_string(result.table)} "
                f"AND Column_name = {quote_string(old_name)}"
            )
        if statements:
            statements.append("FLUSH PRIVILEGES")
        return statements

    async def __call__(self, result: MutationResult) -> None:
        for statement in self.statements(result):
            await self.store.execute(statement)
        if result.renamed_columns:
            logger.info(
                f"Moved column privileges of {len(result.renamed_columns)} "
                f"renamed columns on {result.table}"
            )
