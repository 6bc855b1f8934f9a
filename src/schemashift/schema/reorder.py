"""
Column reordering planner for schemashift.

Computes the moves that take a table from its current column order to
a target order, and turns them into full CHANGE clauses.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..database.introspection import ColumnInfo, ServerInfo
from ..exceptions import NoChangeError, ValidationError
from .alter import AlterClause, render_change
from .columns import MoveTarget, descriptor_from_info, is_generated_info
from .store import TableStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColumnMove:
    """Reposition ``column`` so that it ends up at ``position``."""

    column: str
    position: int
    target: MoveTarget


def _validate_permutation(current: Sequence[str], target: Sequence[str]) -> None:
    for label, order in (("current", current), ("target", target)):
        duplicates = sorted(name for name, count in Counter(order).items() if count > 1)
        if duplicates:
            raise ValidationError(
                f"Duplicate columns in {label} order", {"columns": duplicates}
            )

    missing = sorted(set(current) - set(target))
    unexpected = sorted(set(target) - set(current))
    if missing or unexpected:
        details = {}
        if missing:
            details["missing"] = missing
        if unexpected:
            details["unexpected"] = unexpected
        raise ValidationError(
            "Target order is not a permutation of the current columns", details
        )


def plan_moves(current_order: Sequence[str], target_order: Sequence[str]) -> List[ColumnMove]:
    """Plan the moves that turn ``current_order`` into ``target_order``.

    Target positions are scanned left to right. Positions before ``i`` are
    final once ``i`` is examined, so a single pass suffices and a column is
    only moved when it is out of place. Returns an empty list when the
    orders already match.
    """
    target = list(target_order)
    _validate_permutation(current_order, target)

    working = list(current_order)
    moves = []

    for i, column in enumerate(target):
        if working[i] == column:
            continue

        move_to = MoveTarget.first() if i == 0 else MoveTarget.after_column(target[i - 1])
        moves.append(ColumnMove(column=column, position=i, target=move_to))

        working.remove(column)
        working.insert(i, column)

    return moves


def apply_moves(order: Sequence[str], moves: Sequence[ColumnMove]) -> List[str]:
    """Replay moves the way the store applies FIRST / AFTER clauses."""
    working = list(order)
    for move in moves:
        working.remove(move.column)
        if move.target.is_first:
            working.insert(0, move.column)
        else:
            working.insert(working.index(move.target.after) + 1, move.column)
    return working


class ColumnReorderPlanner:
    """Builds the CHANGE clauses that reorder a table's columns."""

    def __init__(self, store: TableStore):
        self.store = store

    async def plan(
        self,
        table: str,
        target_order: Sequence[str],
        server: Optional[ServerInfo] = None,
    ) -> List[AlterClause]:
        """Plan move clauses for a table.

        Raises:
            ValidationError: target order is not a permutation of the columns
            NoChangeError: the columns are already in the target order
        """
        current_order = await self.store.current_column_order(table)
        moves = plan_moves(current_order, target_order)
        if not moves:
            raise NoChangeError(table, "columns are already in the requested order")

        infos: Dict[str, ColumnInfo] = {
            info.name: info for info in await self.store.describe_columns(table)
        }
        missing = [move.column for move in moves if move.column not in infos]
        if missing:
            raise ValidationError(
                "Column metadata is missing for moved columns", {"columns": missing}
            )

        if server is None:
            server = await self.store.server_info()

        # plain column metadata does not carry generation expressions
        generated = [move.column for move in moves if is_generated_info(infos[move.column])]
        expressions: Dict[str, str] = {}
        if generated:
            expressions = await self.store.generation_expressions(table, generated)

        clauses = []
        for move in moves:
            descriptor = descriptor_from_info(
                infos[move.column], server, expressions.get(move.column)
            ).evolve(move_to=move.target)

            clauses.append(
                AlterClause(
                    column=move.column,
                    original_name=move.column,
                    sql=render_change(move.column, descriptor, server),
                    changed_fields=("move_to",),
                )
            )

        logger.debug(f"Planned {len(clauses)} column moves for {table}")
        return clauses
