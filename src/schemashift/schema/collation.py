"""
Collation-change safety wrapper for schemashift.

Some stores reject or corrupt an in-place collation change between
certain encodings. Columns whose collation changes are first parked as
a binary type, then altered for real. If the real alteration fails, one
corrective statement puts every parked column back exactly as it was
captured before the request started.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from ..database.introspection import IndexMembership, ServerInfo
from .alter import render_change
from .columns import ColumnDescriptor
from .sql import alter_table, quote_identifier


logger = logging.getLogger(__name__)

DEFAULT_GUARDED_INDEX_KINDS = ("primary", "unique")


@dataclass(frozen=True)
class PreStep:
    """Intermediate statement parking one column as a binary type."""

    column: ColumnDescriptor
    statement: str


@dataclass(frozen=True)
class CollationPlan:
    """Pre-steps needed before the real alteration of a table."""

    table: str
    pre_steps: Tuple[PreStep, ...] = ()

    @property
    def needed(self) -> bool:
        return bool(self.pre_steps)

    @property
    def statements(self) -> List[str]:
        return [step.statement for step in self.pre_steps]

    @property
    def converted(self) -> List[ColumnDescriptor]:
        """Original captures of the columns the pre-steps park."""
        return [step.column for step in self.pre_steps]


class CollationGuard:
    """Plans the park-then-alter protocol for collation changes."""

    def __init__(
        self,
        guarded_index_kinds: Iterable[str] = DEFAULT_GUARDED_INDEX_KINDS,
        intermediate_type: str = "BLOB",
        server: Optional[ServerInfo] = None,
    ):
        self.guarded_index_kinds = tuple(guarded_index_kinds)
        self.intermediate_type = intermediate_type
        self.server = server or ServerInfo()

    def needs_pre_step(
        self,
        original: ColumnDescriptor,
        desired: ColumnDescriptor,
        membership: IndexMembership,
    ) -> bool:
        """Check whether a column must be parked before it is altered.

        Columns in a guarded index are altered directly and get the
        store's native behavior.
        """
        if desired.collation == original.collation:
            return False
        return not membership.covers(original.name, self.guarded_index_kinds)

    def intermediate_statement(self, table: str, original: ColumnDescriptor) -> str:
        column = quote_identifier(original.name)
        statement = (
            f"ALTER TABLE {quote_identifier(table)} "
            f"CHANGE {column} {column} {self.intermediate_type}"
        )
        if original.is_generated:
            statement += f" AS ({original.expression}) {original.virtuality}"
        return statement

    def plan(
        self,
        table: str,
        pairs: Sequence[Tuple[ColumnDescriptor, ColumnDescriptor]],
        membership: IndexMembership,
    ) -> CollationPlan:
        """Plan pre-steps for (original, desired) column pairs."""
        pre_steps = []
        for original, desired in pairs:
            if self.needs_pre_step(original, desired, membership):
                pre_steps.append(
                    PreStep(column=original, statement=self.intermediate_statement(table, original))
                )
            elif desired.collation != original.collation:
                logger.info(
                    f"Column '{original.name}' is indexed; changing its collation in place"
                )
        return CollationPlan(table=table, pre_steps=tuple(pre_steps))

    def revert_statement(
        self, table: str, converted: Sequence[ColumnDescriptor]
    ) -> Optional[str]:
        """Build the one statement restoring parked columns from their captures."""
        if not converted:
            return None
        fragments = [
            render_change(column.name, column.evolve(move_to=None), self.server)
            for column in converted
        ]
        return alter_table(table, fragments)
