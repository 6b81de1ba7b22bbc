"""Collaborator protocols and their local implementations.

Provides the Protocols the orchestrator depends on and concrete
implementations: a TOML-backed connection directory, an async SQLAlchemy
execution service, a JSON diff-file comparator and a local file exporter.

Usage:
    from structure_sync.adapters import TomlConnectionDirectory, SqlAlchemyExecutionService
"""

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

__all__ = [
    "ConnectionDirectory",
    "ExecutionService",
    "FileExporter",
    "SchemaComparator",
    "JsonDiffComparator",
    "TomlConnectionDirectory",
    "SqlAlchemyExecutionService",
    "LocalFileExporter",
]
