"""Sync workflow: session state machine and async orchestrator.

Usage:
    from structure_sync.sync import SyncOrchestrator, ExportOutcome
"""

from structure_sync.sync.orchestrator import ExportOutcome, Side, SyncOrchestrator
from structure_sync.sync.transitions import SyncSession, SyncState

__all__ = [
    "ExportOutcome",
    "Side",
    "SyncOrchestrator",
    "SyncSession",
    "SyncState",
]
