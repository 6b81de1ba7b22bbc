"""Collaborator protocol definitions.

Defines the Protocols the sync orchestrator consumes.  All methods are
``async def`` -- every backend call suspends the caller.

Usage:
    from structure_sync.adapters.base import SchemaComparator

    async def refresh(comparator: SchemaComparator) -> None:
        result = await comparator.compare("prod", "staging")
        print(len(result.items))
"""

from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from structure_sync.config.models import Connection
from structure_sync.schema.models import DiffResult


class SchemaComparator(Protocol):
    """Introspects two connections and computes their differences."""

    async def compare(
        self,
        source_id: str,
        target_id: str,
        source_database: str | None = None,
        target_database: str | None = None,
    ) -> DiffResult:
        """Compare the source schema against the target schema.

        Args:
            source_id: Source connection id.
            target_id: Target connection id.
            source_database: Database to use on an unbound source.
            target_database: Database to use on an unbound target.

        Returns:
            ``DiffResult`` with one item per difference, each carrying the
            SQL that brings the target in line with the source.

        Raises:
            ConnectivityError: If either connection is unreachable or the
                credentials are invalid.
        """
        ...


class ExecutionService(Protocol):
    """Runs SQL statements against a target connection."""

    async def execute(
        self,
        target_id: str,
        sql_statements: Sequence[str],
        target_database: str | None = None,
    ) -> None:
        """Execute statements in order.

        No partial-success contract: the call either completes or raises.

        Args:
            target_id: Target connection id.
            sql_statements: Statements to run, in order.
            target_database: Database to use on an unbound target.

        Raises:
            ExecutionError: On the first failing statement.
        """
        ...


class ConnectionDirectory(Protocol):
    """Source of connection records."""

    async def list_connections(self) -> list[Connection]:
        """All known connections."""
        ...

    async def get_connection(self, connection_id: str) -> Connection | None:
        """Connection by id, or ``None`` if unknown."""
        ...

    async def require_connection(self, connection_id: str) -> Connection:
        """Connection by id.

        Raises:
            ConnectionNotFoundError: If the id is unknown.
        """
        ...

    async def list_databases(self, connection_id: str) -> list[str]:
        """User databases on the connection's server.

        Only needed for unbound connections.

        Raises:
            ConnectionNotFoundError: If the id is unknown.
            ConnectivityError: If the server is unreachable.
        """
        ...


class FileExporter(Protocol):
    """Save dialog plus file write."""

    async def choose_save_path(
        self, default_name: str, extension_filter: str
    ) -> Path | None:
        """Ask where to save.  ``None`` means the user cancelled."""
        ...

    async def write_file(self, path: Path, content: str) -> None:
        """Write ``content`` to ``path``.

        Raises:
            ExportError: If the file cannot be written.
        """
        ...
