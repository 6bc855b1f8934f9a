"""
Command-line interface for schemashift.
"""

import asyncio
import sys
from contextlib import asynccontextmanager
from functools import wraps
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import SchemaShiftConfig, configure_logging
from .database.connection import ConnectionConfig, StoreConnection
from .database.mysql_store import MySQLTableStore
from .exceptions import ConfigurationError, SchemaShiftError
from .schema.executor import (
    ColumnMoveRequest,
    MutationExecutor,
    MutationOptions,
    MutationResult,
    MutationStatus,
)


console = Console()


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SchemaShiftError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(0)
        except Exception as e:
            console.print(f"[red]Unexpected error:[/red] {e}")
            if "--debug" in sys.argv:
                import traceback
                traceback.print_exc()
            sys.exit(1)
    return wrapper


def _load_config(config_path: Optional[str], url: Optional[str]) -> SchemaShiftConfig:
    if config_path:
        config = SchemaShiftConfig.from_yaml(config_path)
    else:
        config = SchemaShiftConfig()

    if url:
        config = config.model_copy(update={"database": ConnectionConfig.from_url(url)})
    return config


@asynccontextmanager
async def _open_store(config: SchemaShiftConfig):
    connection = StoreConnection(config.require_database())
    await connection.connect()
    try:
        yield MySQLTableStore(connection)
    finally:
        await connection.close()


def _print_result(result: MutationResult) -> None:
    colors = {
        MutationStatus.SUCCESS: "green",
        MutationStatus.PREVIEW: "blue",
        MutationStatus.NO_CHANGE: "yellow",
        MutationStatus.INVALID: "red",
        MutationStatus.FAILED: "red",
    }
    color = colors[result.status]
    console.print(f"[{color}]{result.status.value}[/{color}] {result.table}")

    if result.status == MutationStatus.PREVIEW:
        statements = result.planned_statements
    else:
        statements = result.executed_statements
    for statement in statements:
        console.print(f"  {statement}", markup=False)

    if result.status == MutationStatus.NO_CHANGE and result.error:
        console.print(f"  {result.error.reason}")
    for error in result.errors:
        console.print(f"  [red]{error}[/red]")
    if result.revert_statement:
        console.print(f"  [yellow]Revert:[/yellow] {result.revert_statement}")


def _run_move(
    config: SchemaShiftConfig, table: str, columns: Tuple[str, ...], preview: bool
) -> MutationResult:
    options = MutationOptions.from_config(config.mutation)
    if preview:
        options = MutationOptions(
            online_algorithm_hint=options.online_algorithm_hint,
            preview_only=True,
            guarded_index_kinds=options.guarded_index_kinds,
            intermediate_type=options.intermediate_type,
        )

    async def run_move():
        async with _open_store(config) as store:
            executor = MutationExecutor(store, config.mutation)
            return await executor.move_columns(
                ColumnMoveRequest(table=table, target_order=columns, options=options)
            )

    return asyncio.run(run_move())


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug mode"
)
@click.pass_context
def main(ctx, debug):
    """schemashift: table-structure mutations for MySQL-family stores."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


def connection_options(func):
    func = click.option(
        "--url", "-u", help="Store URL, e.g. mysql://user:pw@host:3306/db"
    )(func)
    func = click.option(
        "--config", "-c", type=click.Path(exists=True), help="Configuration file path"
    )(func)
    return func


@main.command("preview-move")
@click.argument("table")
@click.argument("columns", nargs=-1, required=True)
@connection_options
@handle_errors
def preview_move(table: str, columns: Tuple[str, ...], config: Optional[str], url: Optional[str]):
    """Show the statement that would put TABLE's columns in the given order."""
    schemashift_config = _load_config(config, url)
    result = _run_move(schemashift_config, table, columns, preview=True)
    _print_result(result)
    if result.status in (MutationStatus.INVALID, MutationStatus.FAILED):
        sys.exit(1)


@main.command()
@click.argument("table")
@click.argument("columns", nargs=-1, required=True)
@connection_options
@handle_errors
def move(table: str, columns: Tuple[str, ...], config: Optional[str], url: Optional[str]):
    """Reorder TABLE's columns to the given order."""
    schemashift_config = _load_config(config, url)
    logging_config = schemashift_config.logging
    if click.get_current_context().obj.get("debug"):
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    configure_logging(logging_config)
    result = _run_move(
        schemashift_config, table, columns, preview=schemashift_config.mutation.preview_only
    )
    _print_result(result)
    if result.status in (MutationStatus.INVALID, MutationStatus.FAILED):
        sys.exit(1)


@main.command()
@click.argument("table")
@connection_options
@handle_errors
def partitions(table: str, config: Optional[str], url: Optional[str]):
    """Show the partitioning of TABLE."""
    schemashift_config = _load_config(config, url)

    async def run_extract():
        async with _open_store(schemashift_config) as store:
            return await MutationExecutor(store).extract_partitions(table)

    descriptor = asyncio.run(run_extract())

    if not descriptor.is_partitioned:
        console.print(f"[yellow]{table} is not partitioned[/yellow]")
        return

    console.print(
        f"[bold cyan]{table}[/bold cyan] PARTITION BY {descriptor.method} "
        f"({descriptor.expression}) PARTITIONS {descriptor.count}"
    )
    if descriptor.subpartition_method:
        console.print(
            f"  SUBPARTITION BY {descriptor.subpartition_method} "
            f"({descriptor.subpartition_expression}) "
            f"SUBPARTITIONS {descriptor.subpartition_count}"
        )

    slots = Table(title="Partitions")
    slots.add_column("Name", style="cyan")
    slots.add_column("Values")
    slots.add_column("Engine")
    slots.add_column("Comment")
    slots.add_column("Subpartitions")

    for slot in descriptor.slots:
        values = slot.value_type
        if slot.value:
            values += f" ({slot.value})"
        slots.add_row(
            slot.name,
            values,
            slot.engine,
            slot.comment,
            ", ".join(sub.name for sub in slot.subpartitions),
        )

    console.print(slots)


@main.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)
@handle_errors
def validate_config(config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        schemashift_config = SchemaShiftConfig.from_yaml(config)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)

    console.print("[green]✓[/green] Configuration is valid")
    _display_config_summary(schemashift_config)


def _display_config_summary(config: SchemaShiftConfig) -> None:
    """Display configuration summary."""
    table = Table(title="Configuration Summary")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    if config.database:
        database = config.database
        table.add_row("Database", f"{database.user}@{database.host}:{database.port}/{database.database}")
    else:
        table.add_row("Database", "not configured")

    mutation = config.mutation
    table.add_row("Online algorithm hint", str(mutation.online_algorithm_hint))
    table.add_row("Preview only", str(mutation.preview_only))
    table.add_row("Guarded index kinds", ", ".join(mutation.guarded_index_kinds))
    table.add_row("Intermediate type", mutation.intermediate_type)
    table.add_row("Log level", config.logging.level)

    console.print(table)


if __name__ == "__main__":
    main()
