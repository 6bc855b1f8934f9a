"""
Table mutation package for schemashift.

This package provides:
- Column descriptors and CHANGE clause building
- Column reordering plans
- The collation-change safety wrapper
- Partition definition extraction and serialization
- The mutation executor and its follow-ups
"""

from .columns import ColumnDescriptor, ColumnSet, DefaultKind, MoveTarget, descriptor_from_info
from .alter import AlterClause, build_clause, combine_clauses, render_column_definition
from .reorder import ColumnMove, ColumnReorderPlanner, apply_moves, plan_moves
from .collation import CollationGuard, CollationPlan, PreStep
from .partitions import (
    PartitionDescriptor,
    PartitionSlot,
    SubpartitionSlot,
    extract_partition_descriptor,
    parse_definition,
    render_partition_definition,
)
from .store import TableStore
from .executor import (
    ColumnChangeRequest,
    ColumnMoveRequest,
    MutationExecutor,
    MutationOptions,
    MutationResult,
    MutationStatus,
    PartitionChangeRequest,
)
from .followups import PrivilegeRenameFollowUp

__all__ = [
    "ColumnDescriptor",
    "ColumnSet",
    "DefaultKind",
    "MoveTarget",
    "descriptor_from_info",
    "AlterClause",
    "build_clause",
    "combine_clauses",
    "render_column_definition",
    "ColumnMove",
    "ColumnReorderPlanner",
    "apply_moves",
    "plan_moves",
    "CollationGuard",
    "CollationPlan",
    "PreStep",
    "PartitionDescriptor",
    "PartitionSlot",
    "SubpartitionSlot",
    "extract_partition_descriptor",
    "parse_definition",
    "render_partition_definition",
    "TableStore",
    "ColumnChangeRequest",
    "ColumnMoveRequest",
    "MutationExecutor",
    "MutationOptions",
    "MutationResult",
    "MutationStatus",
    "PartitionChangeRequest",
    "PrivilegeRenameFollowUp",
]
