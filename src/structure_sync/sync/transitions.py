"""Sync session state machine as pure transition functions.

The whole workflow state lives in one immutable ``SyncSession`` record.
Every public operation is a function ``(session, input) -> (session, effect)``
where ``effect`` is a request the caller must perform against a backend
(or ``None``).  No I/O happens here, so ordering guarantees such as
"selection is cleared before the compare request is issued" can be checked
directly on the returned values.

States (derived from the record):

    IDLE --compare--> COMPARING --ok--> READY --execute--> EXECUTING
                          |                                   |
                          +--fail--> IDLE          ok: COMPARING (refresh)
                                                   fail: READY (unchanged)

Usage:
    session = SyncSession()
    session, _ = select_source(session, "prod")
    session, _ = select_target(session, "staging")
    session, request = start_compare(session, source_unbound=False, target_unbound=False)
    # ... perform request ...
    session, _ = finish_compare(session, request.generation, result)
"""

from dataclasses import dataclass, replace
from enum import Enum

from structure_sync.schema import selection as sel
from structure_sync.schema.models import DiffResult


class SyncState(str, Enum):
    """Coarse workflow state."""

    IDLE = "idle"
    COMPARING = "comparing"
    READY = "ready"
    EXECUTING = "executing"


@dataclass(frozen=True)
class SyncSession:
    """Single record of everything the orchestrator owns.

    Attributes:
        source_id: Chosen source connection id ("" = none).
        target_id: Chosen target connection id ("" = none).
        source_db: Explicit database for an unbound source ("" = none).
        target_db: Explicit database for an unbound target ("" = none).
        result: Current comparison result, ``None`` while absent.
        selection: Selected diff item ids (subset of ``result`` ids).
        comparing: A compare request is in flight.
        executing: An execute request is in flight.
        exporting: An export is in progress.
        generation: Incremented by every compare start; results from an
            older request are dropped.
    """

    source_id: str = ""
    target_id: str = ""
    source_db: str = ""
    target_db: str = ""
    result: DiffResult | None = None
    selection: sel.Selection = sel.EMPTY_SELECTION
    comparing: bool = False
    executing: bool = False
    exporting: bool = False
    generation: int = 0

    @property
    def state(self) -> SyncState:
        if self.executing:
            return SyncState.EXECUTING
        if self.comparing:
            return SyncState.COMPARING
        if self.result is not None:
            return SyncState.READY
        return SyncState.IDLE


# ------------------------------------------------------------------
# Effects
# ------------------------------------------------------------------


@dataclass(frozen=True)
class CompareRequest:
    """Call the schema comparator."""

    generation: int
    source_id: str
    target_id: str
    source_database: str | None = None
    target_database: str | None = None


@dataclass(frozen=True)
class ExecuteRequest:
    """Call the execution service."""

    target_id: str
    statements: tuple[str, ...]
    target_database: str | None = None


@dataclass(frozen=True)
class ExportRequest:
    """Ask for a save path and write the script."""

    script: str
    default_name: str = "sync.sql"
    extension_filter: str = "*.sql"


Effect = CompareRequest | ExecuteRequest | ExportRequest
Transition = tuple[SyncSession, Effect | None]


# ------------------------------------------------------------------
# Connection choice
# ------------------------------------------------------------------


def select_source(session: SyncSession, connection_id: str) -> Transition:
    """Choose the source connection; resets its explicit database."""
    return replace(session, source_id=connection_id, source_db=""), None


def select_target(session: SyncSession, connection_id: str) -> Transition:
    """Choose the target connection; resets its explicit database."""
    return replace(session, target_id=connection_id, target_db=""), None


def choose_source_database(session: SyncSession, database: str) -> Transition:
    return replace(session, source_db=database), None


def choose_target_database(session: SyncSession, database: str) -> Transition:
    return replace(session, target_db=database), None


def can_compare(session: SyncSession, source_unbound: bool, target_unbound: bool) -> bool:
    """Both sides chosen and every unbound side has an explicit database."""
    return bool(
        session.source_id
        and session.target_id
        and (not source_unbound or session.source_db)
        and (not target_unbound or session.target_db)
    )


# ------------------------------------------------------------------
# Compare
# ------------------------------------------------------------------


def start_compare(
    session: SyncSession, source_unbound: bool, target_unbound: bool
) -> Transition:
    """Clear result and selection, then request a comparison.

    No-op unless ``can_compare``.
    """
    if not can_compare(session, source_unbound, target_unbound):
        return session, None

    generation = session.generation + 1
    cleared = replace(
        session,
        result=None,
        selection=sel.EMPTY_SELECTION,
        comparing=True,
        generation=generation,
    )
    request = CompareRequest(
        generation=generation,
        source_id=session.source_id,
        target_id=session.target_id,
        source_database=session.source_db if source_unbound else None,
        target_database=session.target_db if target_unbound else None,
    )
    return cleared, request


def finish_compare(session: SyncSession, generation: int, result: DiffResult) -> Transition:
    """Store a comparison result unless a newer compare has started."""
    if generation != session.generation:
        return session, None
    return replace(
        session,
        result=result,
        selection=sel.EMPTY_SELECTION,
        comparing=False,
    ), None


def fail_compare(session: SyncSession, generation: int) -> Transition:
    """End a failed compare.  The result stays absent."""
    if generation != session.generation:
        return session, None
    return replace(session, comparing=False), None


# ------------------------------------------------------------------
# Execute
# ------------------------------------------------------------------


def start_execute(session: SyncSession, target_unbound: bool) -> Transition:
    """Request execution of the selected fragments.

    No-op when there is no target, no result, no selection, only blank
    fragments, or a compare/execute is already in flight.
    """
    if not session.target_id or session.result is None:
        return session, None
    if session.comparing or session.executing:
        return session, None

    statements = tuple(
        item.sql
        for item in sel.ordered_selection(session.result, session.selection)
        if item.sql.strip()
    )
    if not statements:
        return session, None

    request = ExecuteRequest(
        target_id=session.target_id,
        statements=statements,
        target_database=session.target_db if target_unbound else None,
    )
    return replace(session, executing=True), request


def finish_execute(session: SyncSession) -> Transition:
    """Clear the in-flight flag.  Result and selection are left as they are."""
    return replace(session, executing=False), None


# ------------------------------------------------------------------
# Selection
# ------------------------------------------------------------------


def toggle_item(session: SyncSession, item_id: str) -> Transition:
    return replace(session, selection=sel.toggle_item(session.selection, session.result, item_id)), None


def toggle_group(session: SyncSession, table_name: str) -> Transition:
    return replace(session, selection=sel.toggle_group(session.selection, session.result, table_name)), None


def select_all(session: SyncSession) -> Transition:
    return replace(session, selection=sel.select_all(session.result)), None


def deselect_all(session: SyncSession) -> Transition:
    return replace(session, selection=sel.deselect_all()), None


def set_selection(session: SyncSession, item_ids: frozenset[str] | set[str]) -> Transition:
    """Replace the selection, dropping ids not in the current result."""
    return replace(session, selection=sel.prune(frozenset(item_ids), session.result)), None


# ------------------------------------------------------------------
# Export
# ------------------------------------------------------------------


def start_export(
    session: SyncSession,
    script: str,
    default_name: str = "sync.sql",
    extension_filter: str = "*.sql",
) -> Transition:
    """Request an export of ``script``.  No-op when the script is empty."""
    if not script:
        return session, None
    return replace(session, exporting=True), ExportRequest(
        script=script,
        default_name=default_name,
        extension_filter=extension_filter,
    )


def finish_export(session: SyncSession) -> Transition:
    return replace(session, exporting=False), None
