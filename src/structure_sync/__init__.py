"""structure-sync: Compare two database schemas and sync the target.

Drives the compare -> select -> execute -> refresh workflow over pluggable
collaborators, assembles dialect-correct sync scripts (MySQL, MariaDB,
PostgreSQL) and exports them.

Usage:
    from structure_sync import SyncOrchestrator, load_sync_config
    from structure_sync import DiffResult, assemble_script
    from structure_sync import TomlConnectionDirectory, SqlAlchemyExecutionService
"""

__version__ = "0.1.0"

# Config
from structure_sync.config.loader import load_sync_config
from structure_sync.config.models import Connection, SyncConfig

# Errors
from structure_sync.errors import (
    ConnectionNotFoundError,
    ConnectivityError,
    ExecutionError,
    ExportError,
    SyncError,
)

# Schema (diff models, selection, script)
from structure_sync.schema.models import Dialect, DiffItem, DiffResult, DiffType
from structure_sync.schema.script import ScriptEndpoint, assemble_script

# Adapters
from structure_sync.adapters.base import (
    ConnectionDirectory,
    ExecutionService,
    FileExporter,
    SchemaComparator,
)
from structure_sync.adapters.comparator import JsonDiffComparator
from structure_sync.adapters.directory import TomlConnectionDirectory
from structure_sync.adapters.executor import SqlAlchemyExecutionService
from structure_sync.adapters.exporter import LocalFileExporter

# Orchestrator
from structure_sync.sync.orchestrator import ExportOutcome, Side, SyncOrchestrator

__all__ = [
    # Config
    "load_sync_config",
    "Connection",
    "SyncConfig",
    # Errors
    "SyncError",
    "ConnectionNotFoundError",
    "ConnectivityError",
    "ExecutionError",
    "ExportError",
    # Schema
    "Dialect",
    "DiffItem",
    "DiffResult",
    "DiffType",
    "ScriptEndpoint",
    "assemble_script",
    # Adapters
    "ConnectionDirectory",
    "ExecutionService",
    "FileExporter",
    "SchemaComparator",
    "JsonDiffComparator",
    "TomlConnectionDirectory",
    "SqlAlchemyExecutionService",
    "LocalFileExporter",
    # Orchestrator
    "SyncOrchestrator",
    "ExportOutcome",
    "Side",
]
