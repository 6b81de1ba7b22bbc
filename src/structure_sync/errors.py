"""Exception hierarchy for schema sync operations.

Guard failures (compare without both connections, execute with an empty
selection, ...) are not errors -- those operations are no-ops.  The
exceptions below are raised by collaborators when a backend call fails and
are propagated by the orchestrator unmodified.

Usage:
    from structure_sync.errors import ExecutionError

    try:
        await orchestrator.execute()
    except ExecutionError as e:
        console.print(f"[red]{e}[/red]")
"""


class SyncError(Exception):
    """Base class for all schema sync errors."""

    pass


class ConnectionNotFoundError(SyncError, KeyError):
    """Raised when a connection id is not known to the directory."""

    def __init__(self, connection_id: str, available: list[str] | None = None):
        self.connection_id = connection_id
        self.available = available or []
        message = f"Connection '{connection_id}' not found"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return self.args[0]


class ConnectivityError(SyncError):
    """Raised when a connection cannot be reached (compare, list databases)."""

    pass


class ExecutionError(SyncError):
    """Raised when a statement fails on the target.

    Attributes:
        statement: The SQL statement that failed.
        index: 1-based position of the statement in the submitted batch.
    """

    def __init__(self, message: str, statement: str = "", index: int = 0):
        super().__init__(message)
        self.statement = statement
        self.index = index


class ExportError(SyncError):
    """Raised when the save dialog or the file write fails."""

    pass


class InvalidDiffResultError(SyncError, ValueError):
    """Raised when a comparison result cannot be parsed."""

    pass
