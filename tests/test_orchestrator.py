"""Tests for SyncOrchestrator.

Collaborators are replaced with AsyncMock fakes.  Verifies:
- canCompare gating for bound and unbound connections
- compare clears result/selection before the comparator is called
- compare failure leaves the result absent
- execute guards, ordering, refresh on success, untouched state on failure
- mutual exclusion of overlapping executes
- export outcomes and flag reset
- lazy, cached database listing
"""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from structure_sync.config.models import Connection, SyncSettings
from structure_sync.errors import ConnectivityError, ExecutionError, ExportError
from structure_sync.schema.models import DiffItem, DiffResult
from structure_sync.sync.orchestrator import ExportOutcome, Side, SyncOrchestrator
from structure_sync.sync.transitions import SyncState

CREATE_USERS = "CREATE TABLE users (id INT PRIMARY KEY);"
ALTER_POSTS = "ALTER TABLE posts ADD COLUMN title VARCHAR(255);"

CONNECTIONS = [
    Connection(id="prod", name="Production", dialect="MySQL", host="db1", database="app"),
    Connection(id="staging", name="Staging", dialect="MySQL", host="db2", database="app"),
    Connection(id="pg", name="Postgres", dialect="PostgreSQL", host="db3", database="app"),
    Connection(id="local", name="Local", dialect="MySQL"),
]


def _make_result() -> DiffResult:
    return DiffResult(
        items=[
            DiffItem(id="1", diff_type="TableAdded", table_name="users", sql=CREATE_USERS),
            DiffItem(id="2", diff_type="ColumnAdded", table_name="posts", sql=ALTER_POSTS),
        ],
        source_tables=2,
        target_tables=1,
    )


def _make_orchestrator(
    result: DiffResult | None = None,
    settings: SyncSettings | None = None,
) -> tuple[SyncOrchestrator, AsyncMock, AsyncMock, AsyncMock, AsyncMock]:
    """Orchestrator wired to AsyncMock collaborators.

    Returns:
        (orchestrator, directory, comparator, executor, exporter)
    """
    directory = AsyncMock()
    directory.list_connections.return_value = list(CONNECTIONS)
    directory.list_databases.return_value = ["app", "analytics"]

    comparator = AsyncMock()
    comparator.compare.return_value = result if result is not None else _make_result()

    executor = AsyncMock()
    exporter = AsyncMock()

    orchestrator = SyncOrchestrator(
        directory=directory,
        comparator=comparator,
        executor=executor,
        exporter=exporter,
        connections=CONNECTIONS,
        settings=settings,
    )
    return orchestrator, directory, comparator, executor, exporter


async def _ready(orchestrator: SyncOrchestrator, source: str = "prod", target: str = "staging") -> None:
    orchestrator.set_source_connection(source)
    orchestrator.set_target_connection(target)
    await orchestrator.compare()


# ============================================================================
# Test: Connections and canCompare
# ============================================================================


class TestConnections:
    """Connection choice and canCompare."""

    def test_can_compare_false_without_connections(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        assert not orchestrator.can_compare
        orchestrator.set_source_connection("prod")
        assert not orchestrator.can_compare

    def test_can_compare_true_for_bound_pair(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        orchestrator.set_source_connection("prod")
        orchestrator.set_target_connection("staging")
        assert orchestrator.can_compare

    def test_unbound_side_needs_database(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        orchestrator.set_source_connection("local")
        orchestrator.set_target_connection("staging")
        assert orchestrator.source_needs_database
        assert not orchestrator.target_needs_database
        assert not orchestrator.can_compare

        orchestrator.set_source_database("app")
        assert orchestrator.can_compare

    def test_changing_connection_resets_database(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        orchestrator.set_source_connection("local")
        orchestrator.set_source_database("app")
        orchestrator.set_source_connection("prod")
        assert orchestrator.source_database == ""
        orchestrator.set_source_connection("local")
        assert not orchestrator.can_compare

    @pytest.mark.asyncio
    async def test_refresh_connections(self) -> None:
        orchestrator, directory, *_ = _make_orchestrator()
        directory.list_connections.return_value = CONNECTIONS[:1]

        connections = await orchestrator.refresh_connections()

        assert [c.id for c in connections] == ["prod"]
        assert [c.id for c in orchestrator.connections] == ["prod"]


# ============================================================================
# Test: Database listing
# ============================================================================


class TestListDatabases:
    """Lazy cached listing for unbound connections."""

    @pytest.mark.asyncio
    async def test_cached_per_connection(self) -> None:
        orchestrator, directory, *_ = _make_orchestrator()
        orchestrator.set_source_connection("local")

        first = await orchestrator.list_databases(Side.SOURCE)
        second = await orchestrator.list_databases(Side.SOURCE)

        assert first == ["app", "analytics"]
        assert second == first
        directory.list_databases.assert_awaited_once_with("local")
        assert not orchestrator.is_loading_databases(Side.SOURCE)

    @pytest.mark.asyncio
    async def test_bound_side_not_listed(self) -> None:
        orchestrator, directory, *_ = _make_orchestrator()
        orchestrator.set_target_connection("staging")

        assert await orchestrator.list_databases(Side.TARGET) == []
        directory.list_databases.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_propagates_and_is_not_cached(self) -> None:
        orchestrator, directory, *_ = _make_orchestrator()
        orchestrator.set_source_connection("local")
        directory.list_databases.side_effect = [ConnectivityError("down"), ["app"]]

        with pytest.raises(ConnectivityError):
            await orchestrator.list_databases(Side.SOURCE)
        assert not orchestrator.is_loading_databases(Side.SOURCE)

        assert await orchestrator.list_databases(Side.SOURCE) == ["app"]
        assert directory.list_databases.await_count == 2


# ============================================================================
# Test: Compare
# ============================================================================


class TestCompare:
    """compare() behavior."""

    @pytest.mark.asyncio
    async def test_guard_skips_comparator(self) -> None:
        orchestrator, _, comparator, *_ = _make_orchestrator()
        orchestrator.set_source_connection("prod")

        assert await orchestrator.compare() is None
        comparator.compare.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stores_result(self) -> None:
        orchestrator, _, comparator, *_ = _make_orchestrator()
        await _ready(orchestrator)

        comparator.compare.assert_awaited_once_with("prod", "staging", None, None)
        assert orchestrator.result == _make_result()
        assert orchestrator.state is SyncState.READY
        assert not orchestrator.is_comparing

    @pytest.mark.asyncio
    async def test_passes_database_for_unbound_side(self) -> None:
        orchestrator, _, comparator, *_ = _make_orchestrator()
        orchestrator.set_source_connection("prod")
        orchestrator.set_target_connection("local")
        orchestrator.set_target_database("analytics")

        await orchestrator.compare()

        comparator.compare.assert_awaited_once_with("prod", "local", None, "analytics")

    @pytest.mark.asyncio
    async def test_clears_result_and_selection_before_request(self) -> None:
        orchestrator, _, comparator, *_ = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.select_all()
        seen = {}

        async def compare(*args):
            seen["result"] = orchestrator.result
            seen["selection"] = orchestrator.selection
            seen["state"] = orchestrator.state
            return _make_result()

        comparator.compare.side_effect = compare
        await orchestrator.compare()

        assert seen == {"result": None, "selection": frozenset(), "state": SyncState.COMPARING}
        assert orchestrator.selection == frozenset()

    @pytest.mark.asyncio
    async def test_failure_leaves_result_absent(self) -> None:
        orchestrator, _, comparator, *_ = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.select_all()
        comparator.compare.side_effect = ConnectivityError("unreachable")

        with pytest.raises(ConnectivityError, match="unreachable"):
            await orchestrator.compare()

        assert orchestrator.result is None
        assert orchestrator.selection == frozenset()
        assert not orchestrator.is_comparing
        assert orchestrator.state is SyncState.IDLE

    @pytest.mark.asyncio
    async def test_superseded_result_dropped(self) -> None:
        orchestrator, _, comparator, *_ = _make_orchestrator()
        orchestrator.set_source_connection("prod")
        orchestrator.set_target_connection("staging")

        release = asyncio.Event()
        newer = DiffResult(
            items=[DiffItem(id="9", diff_type="TableRemoved", table_name="old", sql="DROP TABLE old;")]
        )

        async def slow_then_fast(*args):
            if comparator.compare.await_count == 1:
                await release.wait()
                return _make_result()
            return newer

        comparator.compare.side_effect = slow_then_fast

        first = asyncio.create_task(orchestrator.compare())
        await asyncio.sleep(0)
        second = await orchestrator.compare()
        release.set()

        assert await first is None
        assert second is newer
        assert orchestrator.result is newer


# ============================================================================
# Test: Selection
# ============================================================================


class TestSelection:
    """Selection operations through the orchestrator."""

    @pytest.mark.asyncio
    async def test_select_all_and_deselect_all(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        await _ready(orchestrator)

        orchestrator.select_all()
        assert len(orchestrator.selection) == len(orchestrator.result.items)
        orchestrator.deselect_all()
        assert len(orchestrator.selection) == 0

    @pytest.mark.asyncio
    async def test_toggle_group_and_item(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        await _ready(orchestrator)

        orchestrator.toggle_group("users")
        assert orchestrator.selection == {"1"}
        orchestrator.toggle_item("2")
        assert orchestrator.selection == {"1", "2"}
        orchestrator.toggle_group("users")
        assert orchestrator.selection == {"2"}

    @pytest.mark.asyncio
    async def test_groups(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        assert orchestrator.groups == []
        await _ready(orchestrator)
        assert [g.table_name for g in orchestrator.groups] == ["users", "posts"]


# ============================================================================
# Test: Script
# ============================================================================


class TestScript:
    """Assembled script for the current selection."""

    def test_empty_without_result(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        assert orchestrator.script == ""

    @pytest.mark.asyncio
    async def test_empty_with_empty_selection(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        await _ready(orchestrator)
        assert orchestrator.script == ""

    @pytest.mark.asyncio
    async def test_single_selected_fragment(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.toggle_item("1")

        script = orchestrator.script

        assert "-- Database Structure Sync v" in script
        assert "-- Source:          Production (db1:3306/app)" in script
        assert "-- Target:          Staging (db2:3306/app)" in script
        assert CREATE_USERS in script
        assert "-- End of synchronization script" in script
        assert "ALTER TABLE posts" not in script

    @pytest.mark.asyncio
    async def test_result_order_regardless_of_click_order(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.toggle_item("2")
        orchestrator.toggle_item("1")

        script = orchestrator.script

        assert "Changes:         2 item(s)" in script
        assert script.index(CREATE_USERS) < script.index(ALTER_POSTS)

    @pytest.mark.asyncio
    async def test_postgresql_target(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        await _ready(orchestrator, source="prod", target="pg")
        orchestrator.select_all()

        script = orchestrator.script

        assert "SET statement_timeout = 0;" in script
        assert "SET NAMES utf8mb4" not in script

    @pytest.mark.asyncio
    async def test_unbound_side_uses_chosen_database(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        orchestrator.set_source_connection("local")
        orchestrator.set_source_database("analytics")
        orchestrator.set_target_connection("staging")
        await orchestrator.compare()
        orchestrator.select_all()

        assert "-- Source:          Local (localhost:3306/analytics)" in orchestrator.script

    @pytest.mark.asyncio
    async def test_script_memoized(self) -> None:
        orchestrator, *_ = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.select_all()
        assert orchestrator.script is orchestrator.script


# ============================================================================
# Test: Execute
# ============================================================================


class TestExecute:
    """execute() behavior."""

    @pytest.mark.asyncio
    async def test_empty_selection_never_calls_executor(self) -> None:
        orchestrator, _, _, executor, _ = _make_orchestrator()
        await _ready(orchestrator)

        assert await orchestrator.execute() is False
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_without_result_is_noop(self) -> None:
        orchestrator, _, _, executor, _ = _make_orchestrator()
        orchestrator.set_target_connection("staging")

        assert await orchestrator.execute() is False
        executor.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_executes_in_result_order_then_refreshes(self) -> None:
        refreshed = DiffResult(items=[])
        orchestrator, _, comparator, executor, _ = _make_orchestrator()
        comparator.compare.side_effect = [_make_result(), refreshed]
        await _ready(orchestrator)
        orchestrator.toggle_item("2")
        orchestrator.toggle_item("1")

        assert await orchestrator.execute() is True

        executor.execute.assert_awaited_once_with("staging", [CREATE_USERS, ALTER_POSTS], None)
        assert comparator.compare.await_count == 2
        assert orchestrator.result is refreshed
        assert orchestrator.selection == frozenset()
        assert not orchestrator.is_executing

    @pytest.mark.asyncio
    async def test_skips_blank_fragments(self) -> None:
        result = DiffResult(
            items=[
                DiffItem(id="1", diff_type="TableAdded", table_name="users", sql=CREATE_USERS),
                DiffItem(id="2", diff_type="ColumnModified", table_name="users", sql="  \n"),
            ]
        )
        orchestrator, _, _, executor, _ = _make_orchestrator(result=result)
        await _ready(orchestrator)
        orchestrator.select_all()

        await orchestrator.execute()

        executor.execute.assert_awaited_once_with("staging", [CREATE_USERS], None)

    @pytest.mark.asyncio
    async def test_unbound_target_passes_database(self) -> None:
        orchestrator, _, _, executor, _ = _make_orchestrator()
        orchestrator.set_source_connection("prod")
        orchestrator.set_target_connection("local")
        orchestrator.set_target_database("app")
        await orchestrator.compare()
        orchestrator.toggle_item("1")

        await orchestrator.execute()

        executor.execute.assert_awaited_once_with("local", [CREATE_USERS], "app")

    @pytest.mark.asyncio
    async def test_failure_leaves_result_and_selection_untouched(self) -> None:
        orchestrator, _, comparator, executor, _ = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.toggle_item("1")
        before = orchestrator.result
        snapshot = before.model_copy(deep=True)
        executor.execute.side_effect = ExecutionError("boom", statement=CREATE_USERS, index=1)

        with pytest.raises(ExecutionError, match="boom"):
            await orchestrator.execute()

        assert orchestrator.result is before
        assert orchestrator.result == snapshot
        assert orchestrator.selection == {"1"}
        assert not orchestrator.is_executing
        assert orchestrator.state is SyncState.READY
        assert comparator.compare.await_count == 1

    @pytest.mark.asyncio
    async def test_overlapping_execute_rejected(self) -> None:
        orchestrator, _, _, executor, _ = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.toggle_item("1")

        release = asyncio.Event()

        async def slow_execute(*args):
            await release.wait()

        executor.execute.side_effect = slow_execute

        first = asyncio.create_task(orchestrator.execute())
        await asyncio.sleep(0)
        assert orchestrator.is_executing
        assert orchestrator.state is SyncState.EXECUTING

        assert await orchestrator.execute() is False

        release.set()
        assert await first is True
        executor.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_execute_rejected_while_compare_clears_result(self) -> None:
        """A compare in flight has already cleared the result it replaces."""
        orchestrator, _, comparator, executor, _ = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.toggle_item("1")

        release = asyncio.Event()

        async def slow_compare(*args):
            await release.wait()
            return _make_result()

        comparator.compare.side_effect = slow_compare
        pending = asyncio.create_task(orchestrator.compare())
        await asyncio.sleep(0)

        assert orchestrator.result is None
        assert await orchestrator.execute() is False
        executor.execute.assert_not_awaited()

        release.set()
        await pending


# ============================================================================
# Test: Export
# ============================================================================


class TestExport:
    """export_script() outcomes."""

    @pytest.mark.asyncio
    async def test_empty_script_makes_no_calls(self) -> None:
        orchestrator, _, _, _, exporter = _make_orchestrator()
        await _ready(orchestrator)

        assert await orchestrator.export_script() is ExportOutcome.NOT_EXPORTED
        exporter.choose_save_path.assert_not_awaited()
        exporter.write_file.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cancel_does_not_write(self) -> None:
        orchestrator, _, _, _, exporter = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.select_all()
        exporter.choose_save_path.return_value = None

        assert await orchestrator.export_script() is ExportOutcome.NOT_EXPORTED
        exporter.choose_save_path.assert_awaited_once_with("sync.sql", "*.sql")
        exporter.write_file.assert_not_awaited()
        assert orchestrator.exported_path is None
        assert not orchestrator.is_exporting

    @pytest.mark.asyncio
    async def test_writes_script(self) -> None:
        orchestrator, _, _, _, exporter = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.select_all()
        exporter.choose_save_path.return_value = Path("/tmp/out.sql")

        assert orchestrator.exported_path is None
        assert await orchestrator.export_script() is ExportOutcome.EXPORTED
        exporter.write_file.assert_awaited_once_with(Path("/tmp/out.sql"), orchestrator.script)
        assert orchestrator.exported_path == Path("/tmp/out.sql")
        assert not orchestrator.is_exporting

    @pytest.mark.asyncio
    async def test_uses_configured_defaults(self) -> None:
        settings = SyncSettings(default_export_name="schema.sql", export_filter="*.ddl")
        orchestrator, _, _, _, exporter = _make_orchestrator(settings=settings)
        await _ready(orchestrator)
        orchestrator.select_all()
        exporter.choose_save_path.return_value = None

        await orchestrator.export_script()

        exporter.choose_save_path.assert_awaited_once_with("schema.sql", "*.ddl")

    @pytest.mark.asyncio
    async def test_write_error_propagates_and_resets_flag(self) -> None:
        orchestrator, _, _, _, exporter = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.select_all()
        exporter.choose_save_path.return_value = Path("/tmp/out.sql")
        exporter.write_file.side_effect = ExportError("disk full")

        with pytest.raises(ExportError, match="disk full"):
            await orchestrator.export_script()

        assert not orchestrator.is_exporting
        assert len(orchestrator.selection) == 2

    @pytest.mark.asyncio
    async def test_dialog_error_propagates_and_resets_flag(self) -> None:
        orchestrator, _, _, _, exporter = _make_orchestrator()
        await _ready(orchestrator)
        orchestrator.select_all()
        exporter.choose_save_path.side_effect = ExportError("no dialog")

        with pytest.raises(ExportError):
            await orchestrator.export_script()

        assert not orchestrator.is_exporting
        exporter.write_file.assert_not_awaited()
