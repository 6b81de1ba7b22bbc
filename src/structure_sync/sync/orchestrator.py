"""Async driver for the compare -> select -> execute -> refresh workflow.

``SyncOrchestrator`` owns the ``SyncSession`` record, commits the pure
transitions from ``structure_sync.sync.transitions`` and performs the
resulting effects against the collaborators.  All operations run on the
caller's event loop; overlapping execute calls are rejected by an in-flight
flag check, not queued.

Usage:
    from structure_sync.sync.orchestrator import SyncOrchestrator

    orchestrator = SyncOrchestrator(
        directory=directory,
        comparator=comparator,
        executor=executor,
        exporter=exporter,
    )
    await orchestrator.refresh_connections()

    orchestrator.set_source_connection("prod")
    orchestrator.set_target_connection("staging")
    await orchestrator.compare()

    orchestrator.toggle_group("users")
    print(orchestrator.script)

    await orchestrator.execute()          # re-compares on success
    await orchestrator.export_script()    # ExportOutcome.EXPORTED / NOT_EXPORTED
"""

import logging
from collections.abc import Iterable
from enum import Enum
from pathlib import Path

from structure_sync.adapters.base import (
    ConnectionDirectory,
    ExecutionService,
    FileExporter,
    SchemaComparator,
)
from structure_sync.config.models import Connection, SyncSettings
from structure_sync.schema.models import DiffResult
from structure_sync.schema.script import ScriptCache, ScriptEndpoint
from structure_sync.schema.selection import (
    Selection,
    TableGroup,
    group_items,
    ordered_selection,
)
from structure_sync.sync import transitions
from structure_sync.sync.transitions import SyncSession, SyncState, Transition

logger = logging.getLogger(__name__)


class Side(str, Enum):
    """Which end of the sync."""

    SOURCE = "source"
    TARGET = "target"


class ExportOutcome(str, Enum):
    """Result of ``export_script``."""

    EXPORTED = "exported"
    NOT_EXPORTED = "not_exported"


class SyncOrchestrator:
    """State machine coordinating comparison, selection, execution and export.

    The session record and the diff result are owned here exclusively;
    callers read them through properties and change them through the
    public operations only.

    Args:
        directory: Connection records and database listing.
        comparator: Schema comparison backend.
        executor: SQL execution backend.
        exporter: Save dialog and file writer.
        connections: Initial connection records.  Call
            ``refresh_connections()`` to load them from ``directory`` instead.
        settings: Export defaults (name and extension filter).
    """

    def __init__(
        self,
        directory: ConnectionDirectory,
        comparator: SchemaComparator,
        executor: ExecutionService,
        exporter: FileExporter,
        connections: Iterable[Connection] | None = None,
        settings: SyncSettings | None = None,
    ) -> None:
        self._directory = directory
        self._comparator = comparator
        self._executor = executor
        self._exporter = exporter
        self._settings = settings or SyncSettings()
        self._connections: dict[str, Connection] = {
            conn.id: conn for conn in (connections or [])
        }
        self._session = SyncSession()
        self._script_cache = ScriptCache()
        self._database_cache: dict[str, tuple[str, ...]] = {}
        self._loading_databases: set[str] = set()
        self._exported_path: Path | None = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _commit(self, transition: Transition) -> None:
        session, _ = transition
        if session.state is not self._session.state:
            logger.debug("Sync state %s -> %s", self._session.state.value, session.state.value)
        self._session = session

    def _connection_id(self, side: Side) -> str:
        if side is Side.SOURCE:
            return self._session.source_id
        return self._session.target_id

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def refresh_connections(self) -> list[Connection]:
        """Reload connection records from the directory."""
        connections = await self._directory.list_connections()
        self._connections = {conn.id: conn for conn in connections}
        self._database_cache.clear()
        return connections

    @property
    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    def connection(self, side: Side) -> Connection | None:
        """Chosen connection record for ``side`` (``None`` if unset/unknown)."""
        return self._connections.get(self._connection_id(side))

    @property
    def source_connection(self) -> Connection | None:
        return self.connection(Side.SOURCE)

    @property
    def target_connection(self) -> Connection | None:
        return self.connection(Side.TARGET)

    def needs_database(self, side: Side) -> bool:
        """True when the chosen connection exists and is unbound."""
        conn = self.connection(side)
        return conn is not None and conn.is_unbound

    @property
    def source_needs_database(self) -> bool:
        return self.needs_database(Side.SOURCE)

    @property
    def target_needs_database(self) -> bool:
        return self.needs_database(Side.TARGET)

    def set_source_connection(self, connection_id: str) -> None:
        self._commit(transitions.select_source(self._session, connection_id))

    def set_target_connection(self, connection_id: str) -> None:
        self._commit(transitions.select_target(self._session, connection_id))

    def set_source_database(self, database: str) -> None:
        self._commit(transitions.choose_source_database(self._session, database))

    def set_target_database(self, database: str) -> None:
        self._commit(transitions.choose_target_database(self._session, database))

    async def list_databases(self, side: Side) -> list[str]:
        """Databases available to an unbound side.

        Fetched lazily and cached per connection id.  Bound or unchosen sides
        return ``[]`` without calling the directory.  Failures propagate and
        are not cached.
        """
        if not self.needs_database(side):
            return []
        connection_id = self._connection_id(side)
        cached = self._database_cache.get(connection_id)
        if cached is not None:
            return list(cached)

        self._loading_databases.add(connection_id)
        try:
            databases = await self._directory.list_databases(connection_id)
        finally:
            self._loading_databases.discard(connection_id)

        self._database_cache[connection_id] = tuple(databases)
        logger.info("Found %d database(s) on connection %s", len(databases), connection_id)
        return list(databases)

    def is_loading_databases(self, side: Side) -> bool:
        return self._connection_id(side) in self._loading_databases

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def session(self) -> SyncSession:
        """Immutable snapshot of the current session."""
        return self._session

    @property
    def state(self) -> SyncState:
        return self._session.state

    @property
    def source_id(self) -> str:
        return self._session.source_id

    @property
    def target_id(self) -> str:
        return self._session.target_id

    @property
    def source_database(self) -> str:
        return self._session.source_db

    @property
    def target_database(self) -> str:
        return self._session.target_db

    @property
    def result(self) -> DiffResult | None:
        return self._session.result

    @property
    def selection(self) -> Selection:
        return self._session.selection

    @property
    def groups(self) -> list[TableGroup]:
        return group_items(self._session.result)

    @property
    def can_compare(self) -> bool:
        return transitions.can_compare(
            self._session, self.source_needs_database, self.target_needs_database
        )

    @property
    def is_comparing(self) -> bool:
        return self._session.comparing

    @property
    def is_executing(self) -> bool:
        return self._session.executing

    @property
    def is_exporting(self) -> bool:
        return self._session.exporting

    @property
    def script(self) -> str:
        """Assembled script for the current selection ("" when empty)."""
        items = ordered_selection(self._session.result, self._session.selection)
        source = ScriptEndpoint.from_connection(self.source_connection, self._session.source_db)
        target = ScriptEndpoint.from_connection(self.target_connection, self._session.target_db)
        return self._script_cache.get(source, target, items)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def toggle_item(self, item_id: str) -> None:
        self._commit(transitions.toggle_item(self._session, item_id))

    def toggle_group(self, table_name: str) -> None:
        self._commit(transitions.toggle_group(self._session, table_name))

    def select_all(self) -> None:
        self._commit(transitions.select_all(self._session))

    def deselect_all(self) -> None:
        self._commit(transitions.deselect_all(self._session))

    def set_selection(self, item_ids: Iterable[str]) -> None:
        """Replace the selection; ids outside the current result are dropped."""
        self._commit(transitions.set_selection(self._session, frozenset(item_ids)))

    # ------------------------------------------------------------------
    # Backend operations
    # ------------------------------------------------------------------

    async def compare(self) -> DiffResult | None:
        """Compare source against target.

        Clears the current result and selection before the comparator is
        called.  On failure the error propagates and the result stays absent.

        Returns:
            The new ``DiffResult``, or ``None`` when the guard rejected the
            call (or a newer compare superseded this one).
        """
        session, request = transitions.start_compare(
            self._session, self.source_needs_database, self.target_needs_database
        )
        if request is None:
            logger.debug("Compare skipped: connections not ready")
            return None
        self._commit((session, request))

        logger.info("Comparing schemas: %s -> %s", request.source_id, request.target_id)
        try:
            result = await self._comparator.compare(
                request.source_id,
                request.target_id,
                request.source_database,
                request.target_database,
            )
        except BaseException:
            # includes cancellation
            self._commit(transitions.fail_compare(self._session, request.generation))
            raise

        self._commit(transitions.finish_compare(self._session, request.generation, result))
        if self._session.result is not result:
            logger.debug("Dropped result of superseded compare #%d", request.generation)
            return None

        logger.info(
            "Comparison finished: %d difference(s) (%d source / %d target tables)",
            len(result.items),
            result.source_tables,
            result.target_tables,
        )
        return result

    async def execute(self) -> bool:
        """Execute the selected fragments on the target, then re-compare.

        No-op (returns ``False``) when there is nothing to run or another
        compare/execute is in flight.  On failure the error propagates and
        the current result and selection are left untouched.

        Returns:
            ``True`` if the statements were executed.
        """
        session, request = transitions.start_execute(self._session, self.target_needs_database)
        if request is None:
            logger.debug("Execute skipped: nothing selected or operation in flight")
            return False
        self._commit((session, request))

        logger.info(
            "Executing %d statement(s) on target %s",
            len(request.statements),
            request.target_id,
        )
        try:
            await self._executor.execute(
                request.target_id,
                list(request.statements),
                request.target_database,
            )
        finally:
            self._commit(transitions.finish_execute(self._session))

        logger.info("Execution finished, refreshing comparison")
        await self.compare()
        return True

    async def export_script(self) -> ExportOutcome:
        """Save the current script through the file exporter.

        Returns ``NOT_EXPORTED`` without any call when the script is empty,
        and without writing when the user cancels the save dialog.  Errors
        propagate; the exporting flag is reset in every case.
        """
        session, request = transitions.start_export(
            self._session,
            self.script,
            self._settings.default_export_name,
            self._settings.export_filter,
        )
        if request is None:
            return ExportOutcome.NOT_EXPORTED
        self._commit((session, request))

        try:
            path = await self._exporter.choose_save_path(
                request.default_name, request.extension_filter
            )
            if path is None:
                logger.info("Export cancelled")
                return ExportOutcome.NOT_EXPORTED
            await self._exporter.write_file(path, request.script)
            self._exported_path = path
        finally:
            self._commit(transitions.finish_export(self._session))

        logger.info("Exported sync script to %s", path)
        return ExportOutcome.EXPORTED

    @property
    def exported_path(self) -> Path | None:
        """Where the last successful export was written (``None`` before any)."""
        return self._exported_path
