"""
Mutation executor for schemashift.

Runs one mutation request against a store: plan the statements, run the
collation pre-steps if any, run the real statement, and issue a single
corrective reversion when it fails. Every outcome, including failures,
comes back as a MutationResult.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..config import MutationConfig
from ..exceptions import (
    NoChangeError,
    RevertExecutionError,
    SchemaShiftError,
    StoreExecutionError,
    ValidationError,
)
from .alter import AlterClause, build_clause, combine_clauses
from .collation import DEFAULT_GUARDED_INDEX_KINDS, CollationGuard, CollationPlan
from .columns import ColumnDescriptor, ColumnSet, descriptor_from_info, is_generated_info
from .partitions import PartitionDescriptor, extract_from_definition, render_partition_definition
from .reorder import ColumnReorderPlanner
from .sql import alter_table
from .store import TableStore


logger = logging.getLogger(__name__)


class MutationStatus(str, Enum):
    """Outcome of a mutation request."""

    SUCCESS = "success"
    NO_CHANGE = "no_change"
    INVALID = "invalid"
    PREVIEW = "preview"
    FAILED = "failed"


@dataclass(frozen=True)
class MutationOptions:
    """Explicit options of one request."""

    online_algorithm_hint: bool = False
    preview_only: bool = False
    guarded_index_kinds: Tuple[str, ...] = DEFAULT_GUARDED_INDEX_KINDS
    intermediate_type: str = "BLOB"

    @classmethod
    def from_config(cls, config: Optional[MutationConfig]) -> "MutationOptions":
        if config is None:
            return cls()
        return cls(
            online_algorithm_hint=config.online_algorithm_hint,
            preview_only=config.preview_only,
            guarded_index_kinds=tuple(config.guarded_index_kinds),
            intermediate_type=config.intermediate_type,
        )


@dataclass(frozen=True)
class ColumnChangeRequest:
    """Desired definitions for some columns of a table.

    Each desired column names the existing column it comes from through
    ``original_name``.
    """

    table: str
    columns: Tuple[ColumnDescriptor, ...]
    options: Optional[MutationOptions] = None

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))


@dataclass(frozen=True)
class ColumnMoveRequest:
    """Target physical order for all columns of a table."""

    table: str
    target_order: Tuple[str, ...]
    options: Optional[MutationOptions] = None

    def __post_init__(self):
        object.__setattr__(self, "target_order", tuple(self.target_order))


@dataclass(frozen=True)
class PartitionChangeRequest:
    """New partitioning for a table. An empty descriptor removes partitioning."""

    table: str
    partitioning: PartitionDescriptor
    options: Optional[MutationOptions] = None


@dataclass
class MutationResult:
    """Result of a mutation request."""

    table: str
    status: MutationStatus = MutationStatus.SUCCESS
    planned_statements: List[str] = field(default_factory=list)
    executed_statements: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    error: Optional[SchemaShiftError] = None
    revert_statement: Optional[str] = None
    revert_error: Optional[RevertExecutionError] = None
    column_order: List[str] = field(default_factory=list)
    renamed_columns: Dict[str, str] = field(default_factory=dict)
    follow_up_errors: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == MutationStatus.SUCCESS

    @property
    def reverted(self) -> bool:
        return self.revert_statement is not None and self.revert_error is None

    def fail(self, status: MutationStatus, error: SchemaShiftError) -> None:
        self.status = status
        self.error = error
        self.errors.append(str(error))

    def raise_for_error(self) -> None:
        """Re-raise the error of a failed or invalid request.

        A failed reversion is attached to the raised error as ``revert_error``.
        """
        if self.status not in (MutationStatus.FAILED, MutationStatus.INVALID):
            return
        if self.error is None:
            return
        if self.revert_error is not None:
            self.error.revert_error = self.revert_error
        raise self.error


FollowUp = Callable[[MutationResult], Awaitable[None]]


class MutationExecutor:
    """Executes column, move and partition mutations against a TableStore."""

    def __init__(self, store: TableStore, config: Optional[MutationConfig] = None):
        self.store = store
        self.options = MutationOptions.from_config(config)
        self.reorder_planner = ColumnReorderPlanner(store)

    def _options(self, request_options: Optional[MutationOptions]) -> MutationOptions:
        return request_options or self.options

    # -- column changes -----------------------------------------------------

    async def _capture(self, table: str, server) -> ColumnSet:
        infos = await self.store.describe_columns(table)
        generated = [info.name for info in infos if is_generated_info(info)]
        expressions: Dict[str, str] = {}
        if generated:
            expressions = await self.store.generation_expressions(table, generated)
        return ColumnSet(
            descriptor_from_info(info, server, expressions.get(info.name)) for info in infos
        )

    async def update_columns(self, request: ColumnChangeRequest) -> MutationResult:
        """Alter columns of a table in one statement."""
        start_time = time.time()
        options = self._options(request.options)
        table = request.table
        result = MutationResult(table=table)

        try:
            server = await self.store.server_info()
            desired = ColumnSet(request.columns)
            originals = await self._capture(table, server)
            desired.check_sources(originals)
            membership = await self.store.index_membership(table)

            clauses: List[AlterClause] = []
            pairs: List[Tuple[ColumnDescriptor, ColumnDescriptor]] = []
            for column in desired:
                original = originals[column.original_name]
                clause = build_clause(original, column, membership, server)
                if clause is None:
                    continue
                clauses.append(clause)
                pairs.append((original, column))

            if not clauses:
                raise NoChangeError(table, "no column differs from its current definition")

            statement = combine_clauses(table, clauses, options.online_algorithm_hint)
            guard = CollationGuard(
                options.guarded_index_kinds, options.intermediate_type, server
            )
            plan = guard.plan(table, pairs, membership)

            result.planned_statements = plan.statements + [statement]
            result.renamed_columns = {
                clause.original_name: clause.column
                for clause in clauses
                if clause.column != clause.original_name
            }
        except SchemaShiftError as e:
            return self._finish(self._planning_failed(result, e), start_time)

        if options.preview_only:
            result.status = MutationStatus.PREVIEW
            return self._finish(result, start_time)

        await self._run_with_pre_steps(result, guard, plan, statement)

        if result.succeeded:
            result.column_order = [
                result.renamed_columns.get(name, name) for name in originals.names()
            ]
            try:
                result.column_order = await self.store.current_column_order(table)
            except SchemaShiftError as e:
                logger.warning(f"Could not read back column order of {table}: {e}")

        return self._finish(result, start_time)

    async def _run_with_pre_steps(
        self,
        result: MutationResult,
        guard: CollationGuard,
        plan: CollationPlan,
        statement: str,
    ) -> None:
        parked: List[ColumnDescriptor] = []

        for step in plan.pre_steps:
            try:
                await self._execute(result, step.statement)
            except StoreExecutionError as e:
                logger.error(
                    f"Collation pre-step failed for column '{step.column.name}': {e.store_message}"
                )
                result.fail(MutationStatus.FAILED, e)
                await self._revert(result, guard, parked)
                return
            parked.append(step.column)

        try:
            await self._execute(result, statement)
        except StoreExecutionError as e:
            result.fail(MutationStatus.FAILED, e)
            await self._revert(result, guard, parked)
            return

        result.status = MutationStatus.SUCCESS

    async def _revert(
        self,
        result: MutationResult,
        guard: CollationGuard,
        parked: Sequence[ColumnDescriptor],
    ) -> None:
        statement = guard.revert_statement(result.table, parked)
        if statement is None:
            return

        result.revert_statement = statement
        logger.info(f"Reverting {len(parked)} parked columns of {result.table}")
        try:
            await self._execute(result, statement)
        except StoreExecutionError as e:
            revert_error = RevertExecutionError(
                statement, e.store_message, original_error=result.error, cause=e
            )
            logger.error(str(revert_error))
            result.revert_error = revert_error
            result.errors.append(str(revert_error))

    # -- moves --------------------------------------------------------------

    async def move_columns(self, request: ColumnMoveRequest) -> MutationResult:
        """Reorder all columns of a table in one statement."""
        start_time = time.time()
        options = self._options(request.options)
        result = MutationResult(table=request.table)

        try:
            clauses = await self.reorder_planner.plan(request.table, request.target_order)
            statement = alter_table(request.table, [clause.sql for clause in clauses])
            result.planned_statements = [statement]
        except SchemaShiftError as e:
            return self._finish(self._planning_failed(result, e), start_time)

        result.column_order = list(request.target_order)
        if options.preview_only:
            result.status = MutationStatus.PREVIEW
            return self._finish(result, start_time)

        try:
            await self._execute(result, statement)
        except StoreExecutionError as e:
            result.fail(MutationStatus.FAILED, e)
            result.column_order = []
            return self._finish(result, start_time)

        result.status = MutationStatus.SUCCESS
        return self._finish(result, start_time)

    # -- partitions ---------------------------------------------------------

    async def extract_partitions(self, table: str) -> PartitionDescriptor:
        """Read the current partitioning of a table.

        A table whose definition is unavailable or unparseable reads as
        unpartitioned.
        """
        text = await self.store.render_definition_text(table)
        return extract_from_definition(text, self.store.parse_definition)

    async def update_partitioning(self, request: PartitionChangeRequest) -> MutationResult:
        """Apply new partitioning as a statement of its own."""
        start_time = time.time()
        options = self._options(request.options)
        result = MutationResult(table=request.table)

        statement = alter_table(
            request.table, [render_partition_definition(request.partitioning)]
        )
        result.planned_statements = [statement]

        if options.preview_only:
            result.status = MutationStatus.PREVIEW
            return self._finish(result, start_time)

        try:
            await self._execute(result, statement)
        except StoreExecutionError as e:
            result.fail(MutationStatus.FAILED, e)
            return self._finish(result, start_time)

        result.status = MutationStatus.SUCCESS
        return self._finish(result, start_time)

    # -- follow-ups ---------------------------------------------------------

    async def run_follow_ups(
        self, result: MutationResult, follow_ups: Iterable[FollowUp]
    ) -> MutationResult:
        """Run best-effort actions after a successful mutation.

        Each follow-up fails on its own; failures are collected in
        ``result.follow_up_errors`` and the schema change stays in place.
        """
        if not result.succeeded:
            return result

        for follow_up in follow_ups:
            name = getattr(follow_up, "name", type(follow_up).__name__)
            try:
                await follow_up(result)
            except Exception as e:
                logger.error(f"Follow-up {name} failed for {result.table}: {e}")
                result.follow_up_errors.append(f"{name}: {e}")

        return result

    # -- helpers ------------------------------------------------------------

    async def _execute(self, result: MutationResult, statement: str) -> None:
        try:
            await self.store.execute(statement)
        except StoreExecutionError:
            raise
        except SchemaShiftError as e:
            # e.g. the connection dropped before the store could answer
            raise StoreExecutionError(statement, e.message, cause=e) from e
        result.executed_statements.append(statement)
        logger.info(f"Executed: {statement}")

    def _planning_failed(self, result: MutationResult, error: SchemaShiftError) -> MutationResult:
        if isinstance(error, NoChangeError):
            result.status = MutationStatus.NO_CHANGE
            result.error = error
            logger.info(str(error))
        elif isinstance(error, ValidationError):
            result.fail(MutationStatus.INVALID, error)
            logger.warning(f"Invalid request for {result.table}: {error}")
        else:
            result.fail(MutationStatus.FAILED, error)
            logger.error(f"Planning failed for {result.table}: {error}")
        return result

    def _finish(self, result: MutationResult, start_time: float) -> MutationResult:
        result.execution_time_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Mutation of {result.table} finished: "
            f"{result.status.value} ({result.execution_time_ms:.1f}ms)"
        )
        return result
