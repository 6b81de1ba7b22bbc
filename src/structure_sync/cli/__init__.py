"""CLI for schema comparison and sync.

Provides commands for listing connections and databases, reviewing a
schema diff, assembling/exporting the sync script, and executing it.

Usage:
    db-sync connections
    db-sync databases local
    db-sync test staging --database app
    db-sync compare --source prod --target staging --diff-file diff.json
    db-sync script --source prod --target staging --diff-file diff.json --tables users --output sync.sql
    db-sync execute --source prod --target staging --diff-file diff.json --all --confirm

Commands:
    connections - List configured connections
    databases   - List databases on a connection's server
    test        - Check that a connection (and its SSH tunnel) is reachable
    compare     - Show differences grouped by table
    script      - Print or export the sync script for a selection
    execute     - Run the selected statements on the target and re-compare
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from structure_sync.adapters.comparator import JsonDiffComparator
from structure_sync.adapters.directory import TomlConnectionDirectory
from structure_sync.adapters.executor import SqlAlchemyExecutionService
from structure_sync.adapters.exporter import LocalFileExporter
from structure_sync.config.loader import load_sync_config
from structure_sync.errors import SyncError
from structure_sync.schema.models import DiffResult
from structure_sync.schema.selection import Selection, group_items, group_state
from structure_sync.sync.orchestrator import ExportOutcome, Side, SyncOrchestrator

console = Console()

_CHECKBOX = {
    "checked": "[green]\\[x][/green]",
    "indeterminate": "[yellow]\\[-][/yellow]",
    "unchecked": "[dim]\\[ ][/dim]",
}

_ACTION_STYLE = {
    "Added": "green",
    "Removed": "red",
    "Modified": "yellow",
}


# ============================================================================
# Helpers
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    """Route library logging through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_orchestrator(
    args: argparse.Namespace,
    exporter: LocalFileExporter | None = None,
) -> SyncOrchestrator:
    """Wire collaborators from sync.toml and the diff file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValueError: If the config is invalid.
    """
    config = load_sync_config(getattr(args, "config", None))
    directory = TomlConnectionDirectory(config)
    diff_file = getattr(args, "diff_file", None) or "diff.json"
    return SyncOrchestrator(
        directory=directory,
        comparator=JsonDiffComparator(directory, diff_file),
        executor=SqlAlchemyExecutionService(directory),
        exporter=exporter or LocalFileExporter(),
        connections=config.connections.values(),
        settings=config.settings,
    )


async def _prepare_compare(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> bool:
    """Apply --source/--target/--source-db/--target-db.

    Returns:
        True when the orchestrator can compare; otherwise prints what is
        missing (including the available databases) and returns False.
    """
    orchestrator.set_source_connection(args.source)
    orchestrator.set_target_connection(args.target)

    for side, conn_id in ((Side.SOURCE, args.source), (Side.TARGET, args.target)):
        if orchestrator.connection(side) is None:
            console.print(f"[red]Error: Unknown connection '{conn_id}'.[/red]")
            return False

    if args.source_db:
        orchestrator.set_source_database(args.source_db)
    if args.target_db:
        orchestrator.set_target_database(args.target_db)

    if orchestrator.can_compare:
        return True

    for side, flag, chosen in (
        (Side.SOURCE, "--source-db", args.source_db),
        (Side.TARGET, "--target-db", args.target_db),
    ):
        if orchestrator.needs_database(side) and not chosen:
            conn = orchestrator.connection(side)
            console.print(
                f"[yellow]Connection [bold]{conn.id}[/bold] has no database; "
                f"pass {flag}.[/yellow]"
            )
            databases = await orchestrator.list_databases(side)
            if databases:
                console.print(f"  Available: [dim]{', '.join(databases)}[/dim]")
    return False


def _apply_selection(orchestrator: SyncOrchestrator, args: argparse.Namespace) -> None:
    """Select items from --all / --tables / --select."""
    if args.all:
        orchestrator.select_all()
        return

    ids: set[str] = set()
    if args.select:
        ids.update(i.strip() for i in args.select.split(",") if i.strip())
    if args.tables:
        wanted = {t.strip() for t in args.tables.split(",") if t.strip()}
        for group in orchestrator.groups:
            if group.table_name in wanted:
                ids.update(group.ids)
    orchestrator.set_selection(ids)

    unknown = ids - orchestrator.selection
    if unknown:
        console.print(
            f"[yellow]Ignoring unknown item id(s): {', '.join(sorted(unknown))}[/yellow]"
        )


def _render_diff(result: DiffResult, selection: Selection) -> Table:
    """Grouped diff table with checkbox state per table and item."""
    table = Table(
        title=(
            f"Schema Differences ({len(result.items)}) - "
            f"{result.source_tables} source / {result.target_tables} target tables"
        ),
        show_header=True,
        header_style="bold",
    )
    table.add_column("", width=3)
    table.add_column("Table / Object")
    table.add_column("Change")
    table.add_column("ID", style="dim")

    for group in group_items(result):
        state = group_state(group, selection)
        table.add_row(
            _CHECKBOX[state.checkbox],
            f"[bold]{group.table_name}[/bold]",
            f"[dim]{len(group.items)} item(s)[/dim]",
            "",
        )
        for item in group.items:
            marker = "checked" if item.id in selection else "unchecked"
            style = _ACTION_STYLE.get(item.diff_type.action, "")
            table.add_row(
                _CHECKBOX[marker],
                f"  {item.display_name}",
                f"[{style}]{item.diff_type.value}[/{style}]",
                item.id,
            )
    return table


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_databases(args: argparse.Namespace) -> int:
    """Async implementation for databases command.

    Returns:
        0 on success, 1 on failure.
    """
    config = load_sync_config(args.config)
    directory = TomlConnectionDirectory(config)

    databases = await directory.list_databases(args.connection)

    if not databases:
        console.print("[yellow]No user databases found.[/yellow]")
        return 0

    table = Table(title=f"Databases on {args.connection}", show_header=False)
    table.add_column("Database")
    for name in databases:
        table.add_row(name)
    console.print(table)
    return 0


async def _async_test(args: argparse.Namespace) -> int:
    """Async implementation for test command.

    Returns:
        0 when the connection answers, 1 on failure.
    """
    config = load_sync_config(args.config)
    directory = TomlConnectionDirectory(config)

    await directory.test_connection(args.connection, database=args.database or None)

    console.print(f"[bold green]v[/bold green] Connection [bold]{args.connection}[/bold] OK")
    return 0


async def _async_compare(args: argparse.Namespace) -> int:
    """Async implementation for compare command.

    Returns:
        0 on success, 1 on failure.
    """
    orchestrator = _build_orchestrator(args)
    if not await _prepare_compare(orchestrator, args):
        return 1

    console.print("Comparing schemas...", style="dim")
    result = await orchestrator.compare()

    if result is None or result.is_empty:
        console.print("[bold green]v[/bold green] Schemas are identical")
        return 0

    console.print(_render_diff(result, orchestrator.selection))
    return 0


async def _async_script(args: argparse.Namespace) -> int:
    """Async implementation for script command.

    Prints the script, or exports it when --output is given.

    Returns:
        0 on success, 1 on failure or when nothing was selected.
    """
    exporter = LocalFileExporter(args.output) if args.output else None
    orchestrator = _build_orchestrator(args, exporter=exporter)
    if not await _prepare_compare(orchestrator, args):
        return 1

    await orchestrator.compare()
    _apply_selection(orchestrator, args)

    script = orchestrator.script
    if not script:
        console.print("[yellow]No changes selected.[/yellow]")
        return 1

    if not args.output:
        console.print(Syntax(script, "sql", word_wrap=True))
        return 0

    outcome = await orchestrator.export_script()
    if outcome is ExportOutcome.EXPORTED:
        console.print(
            f"[bold green]v[/bold green] Script saved to [cyan]{orchestrator.exported_path}[/cyan]"
        )
        return 0
    console.print("[yellow]Export cancelled.[/yellow]")
    return 1


async def _async_execute(args: argparse.Namespace) -> int:
    """Async implementation for execute command.

    Without --confirm only the script is shown.

    Returns:
        0 on success, 1 on failure.
    """
    orchestrator = _build_orchestrator(args)
    if not await _prepare_compare(orchestrator, args):
        return 1

    await orchestrator.compare()
    _apply_selection(orchestrator, args)

    script = orchestrator.script
    if not script:
        console.print("[yellow]No changes selected.[/yellow]")
        return 1

    console.print(Syntax(script, "sql", word_wrap=True))

    if not args.confirm:
        console.print()
        console.print(
            "[dim]To execute on[/dim] [bold cyan]"
            f"{orchestrator.target_id}[/bold cyan][dim], add[/dim] "
            "[cyan]--confirm[/cyan] [dim]flag.[/dim]"
        )
        return 0

    console.print()
    console.print("Executing...", style="dim")
    executed = await orchestrator.execute()
    if not executed:
        console.print("[yellow]Nothing to execute.[/yellow]")
        return 1

    console.print("[bold green]v[/bold green] Sync executed.")
    remaining = orchestrator.result
    if remaining is not None:
        console.print(f"  Remaining differences: {len(remaining.items)}")
    return 0


def _run(coro_fn, args: argparse.Namespace) -> int:
    """Run an async command, turning expected failures into exit code 1."""
    try:
        return asyncio.run(coro_fn(args))
    except (SyncError, FileNotFoundError, ValueError) as e:
        console.print(f"\n[bold red]x[/bold red] {escape(str(e))}")
        return 1


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_connections(args: argparse.Namespace) -> int:
    """List configured connections.

    Reads only the local TOML config -- no database calls.

    Returns:
        0 on success, 1 if the config cannot be loaded.
    """
    try:
        config = load_sync_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    table = Table(title="Connections", show_header=True, header_style="bold")
    table.add_column("ID", style="bold cyan")
    table.add_column("Name")
    table.add_column("Dialect")
    table.add_column("Endpoint")
    table.add_column("Database")

    for conn in config.connections.values():
        table.add_row(
            conn.id,
            conn.name,
            conn.dialect.value,
            f"{conn.host}:{conn.port}",
            conn.database or "[dim](select)[/dim]",
        )
    console.print(table)
    return 0


def cmd_databases(args: argparse.Namespace) -> int:
    """List databases on a server.  Wraps the async implementation."""
    return _run(_async_databases, args)


def cmd_test(args: argparse.Namespace) -> int:
    """Check connectivity.  Wraps the async implementation."""
    return _run(_async_test, args)


def cmd_compare(args: argparse.Namespace) -> int:
    """Show grouped differences.  Wraps the async implementation."""
    return _run(_async_compare, args)


def cmd_script(args: argparse.Namespace) -> int:
    """Print or export the sync script.  Wraps the async implementation."""
    return _run(_async_script, args)


def cmd_execute(args: argparse.Namespace) -> int:
    """Execute the selection on the target.  Wraps the async implementation."""
    return _run(_async_execute, args)


# ============================================================================
# Main entry point
# ============================================================================


def _add_pair_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--source", "-s", required=True, help="Source connection id")
    parser.add_argument("--target", "-t", required=True, help="Target connection id")
    parser.add_argument("--source-db", default="", help="Database for an unbound source")
    parser.add_argument("--target-db", default="", help="Database for an unbound target")
    parser.add_argument(
        "--diff-file",
        type=Path,
        default=Path("diff.json"),
        help="JSON diff result produced by the schema comparator (default: diff.json)",
    )


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--all", action="store_true", help="Select every difference")
    parser.add_argument("--tables", default="", help="Comma-separated tables to select")
    parser.add_argument("--select", default="", help="Comma-separated diff item ids to select")


def main() -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="db-sync",
        description="Database structure comparison and sync",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=None,
        help="Path to sync.toml (default: $SYNC_CONFIG or ./sync.toml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # connections command
    p_connections = subparsers.add_parser("connections", help="List configured connections")
    p_connections.set_defaults(func=cmd_connections)

    # databases command
    p_databases = subparsers.add_parser(
        "databases", help="List databases on a connection's server"
    )
    p_databases.add_argument("connection", help="Connection id")
    p_databases.set_defaults(func=cmd_databases)

    # test command
    p_test = subparsers.add_parser("test", help="Check that a connection is reachable")
    p_test.add_argument("connection", help="Connection id")
    p_test.add_argument("--database", "-d", default="", help="Database to connect to")
    p_test.set_defaults(func=cmd_test)

    # compare command
    p_compare = subparsers.add_parser("compare", help="Show differences grouped by table")
    _add_pair_arguments(p_compare)
    p_compare.set_defaults(func=cmd_compare)

    # script command
    p_script = subparsers.add_parser(
        "script", help="Print or export the sync script for a selection"
    )
    _add_pair_arguments(p_script)
    _add_selection_arguments(p_script)
    p_script.add_argument("--output", "-o", type=Path, default=None, help="Save script to file")
    p_script.set_defaults(func=cmd_script)

    # execute command
    p_execute = subparsers.add_parser(
        "execute", help="Run the selected statements on the target and re-compare"
    )
    _add_pair_arguments(p_execute)
    _add_selection_arguments(p_execute)
    p_execute.add_argument(
        "--confirm",
        action="store_true",
        help="Actually execute (otherwise only the script is shown)",
    )
    p_execute.set_defaults(func=cmd_execute)

    args = parser.parse_args()
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
