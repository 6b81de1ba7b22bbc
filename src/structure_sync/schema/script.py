"""SQL sync script assembly.

Turns the selected diff fragments into a complete, executable script with a
descriptive header and dialect-specific preamble/postamble.  Pure logic --
no I/O; the only input not passed explicitly is the clock, and that can be
pinned with ``generated_at``.

Usage:
    from structure_sync.schema.script import ScriptEndpoint, assemble_script

    script = assemble_script(
        "MySQL",
        ScriptEndpoint("Source DB", "localhost", 3306, "app"),
        ScriptEndpoint("Target DB", "db.internal", 3306, "app"),
        selected_items,
    )
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from structure_sync import __version__
from structure_sync.schema.models import Dialect, DiffItem

if TYPE_CHECKING:
    from structure_sync.config.models import Connection

logger = logging.getLogger(__name__)

UNKNOWN_DIALECT = "Unknown"
RULE = "-- ---------------------------------------------------------"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

MYSQL_PREAMBLE: tuple[str, ...] = (
    "/*!40101 SET @OLD_CHARACTER_SET_CLIENT=@@CHARACTER_SET_CLIENT */;",
    "/*!40101 SET @OLD_CHARACTER_SET_RESULTS=@@CHARACTER_SET_RESULTS */;",
    "/*!40101 SET @OLD_COLLATION_CONNECTION=@@COLLATION_CONNECTION */;",
    "/*!40101 SET NAMES utf8mb4 */;",
    "/*!40014 SET @OLD_FOREIGN_KEY_CHECKS=@@FOREIGN_KEY_CHECKS, FOREIGN_KEY_CHECKS=0 */;",
    "/*!40101 SET @OLD_SQL_MODE=@@SQL_MODE, SQL_MODE='NO_AUTO_VALUE_ON_ZERO' */;",
)

MYSQL_POSTAMBLE: tuple[str, ...] = (
    "/*!40101 SET SQL_MODE=@OLD_SQL_MODE */;",
    "/*!40014 SET FOREIGN_KEY_CHECKS=@OLD_FOREIGN_KEY_CHECKS */;",
    "/*!40101 SET CHARACTER_SET_CLIENT=@OLD_CHARACTER_SET_CLIENT */;",
    "/*!40101 SET CHARACTER_SET_RESULTS=@OLD_CHARACTER_SET_RESULTS */;",
    "/*!40101 SET COLLATION_CONNECTION=@OLD_COLLATION_CONNECTION */;",
)

POSTGRES_PREAMBLE: tuple[str, ...] = (
    "SET statement_timeout = 0;",
    "SET lock_timeout = 0;",
    "SET client_encoding = 'UTF8';",
)


@dataclass(frozen=True)
class ScriptEndpoint:
    """Human-readable description of one side of the sync."""

    name: str
    host: str
    port: int
    database: str = ""
    dialect: Dialect | None = None

    @classmethod
    def from_connection(
        cls, connection: "Connection | None", database: str | None = None
    ) -> "ScriptEndpoint | None":
        """Describe a connection, preferring an explicitly chosen database."""
        if connection is None:
            return None
        return cls(
            name=connection.name,
            host=connection.host,
            port=connection.port,
            database=database or connection.database or "",
            dialect=connection.dialect,
        )


def describe_endpoint(endpoint: ScriptEndpoint | None) -> str:
    """``name (host:port/database)`` or ``N/A``."""
    if endpoint is None:
        return "N/A"
    return f"{endpoint.name} ({endpoint.host}:{endpoint.port}/{endpoint.database})"


def resolve_dialect(
    source: ScriptEndpoint | None, target: ScriptEndpoint | None
) -> str:
    """Target dialect, falling back to source, then ``Unknown``."""
    for endpoint in (target, source):
        if endpoint is not None and endpoint.dialect is not None:
            return endpoint.dialect.value
    return UNKNOWN_DIALECT


def is_mysql_dialect(dialect: Dialect | str) -> bool:
    """Only exactly ``MySQL`` or ``MariaDB`` take the MySQL branch."""
    value = dialect.value if isinstance(dialect, Dialect) else dialect
    return value in (Dialect.MYSQL.value, Dialect.MARIADB.value)


def format_timestamp(moment: datetime | None = None) -> str:
    """UTC ``YYYY-MM-DD HH:MM:SS``, no fraction, no zone suffix."""
    if moment is None:
        moment = datetime.now(timezone.utc)
    elif moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def build_header(
    dialect: Dialect | str,
    source: ScriptEndpoint | None,
    target: ScriptEndpoint | None,
    item_count: int,
    generated_at: datetime | None = None,
    version: str = __version__,
) -> str:
    """Banner block plus the dialect preamble, ending with a blank line."""
    dialect_name = dialect.value if isinstance(dialect, Dialect) else dialect
    lines = [
        RULE,
        f"-- Database Structure Sync v{version}",
        "--",
        f"-- Generation Time: {format_timestamp(generated_at)}",
        f"-- Database Type:   {dialect_name}",
        f"-- Source:          {describe_endpoint(source)}",
        f"-- Target:          {describe_endpoint(target)}",
        f"-- Changes:         {item_count} item(s)",
        RULE,
        "",
    ]
    if is_mysql_dialect(dialect_name):
        lines.extend(MYSQL_PREAMBLE)
    else:
        lines.extend(POSTGRES_PREAMBLE)
    lines.append("")
    return "\n".join(lines)


def build_footer(dialect: Dialect | str) -> str:
    """Restore statements (MySQL family) and the closing banner."""
    lines = [""]
    if is_mysql_dialect(dialect):
        lines.extend(MYSQL_POSTAMBLE)
    lines.extend(["", RULE, "-- End of synchronization script", RULE, ""])
    return "\n".join(lines)


def assemble_script(
    dialect: Dialect | str | None,
    source: ScriptEndpoint | None,
    target: ScriptEndpoint | None,
    items: Sequence[DiffItem],
    *,
    generated_at: datetime | None = None,
    version: str = __version__,
) -> str:
    """Assemble the full sync script for the selected items.

    Args:
        dialect: Script dialect.  ``None`` resolves it from the endpoints.
        source: Source endpoint (``None`` renders ``N/A``).
        target: Target endpoint (``None`` renders ``N/A``).
        items: Selected diff items, already in result order.
        generated_at: Timestamp for the header (default: now, UTC).
        version: Product version shown in the banner.

    Returns:
        Script text, or ``""`` when no items are selected.

    Example:
        >>> script = assemble_script(None, src, tgt, [item])
        >>> script.splitlines()[1]
        '-- Database Structure Sync v0.1.0'
    """
    if not items:
        return ""
    if dialect is None:
        dialect = resolve_dialect(source, target)

    header = build_header(dialect, source, target, len(items), generated_at, version)
    body = "\n\n".join(item.sql for item in items)
    return header + "\n" + body + build_footer(dialect)


class ScriptCache:
    """Memoizes ``assemble_script`` on its declared inputs.

    The script (and so its timestamp) is recomputed only when the dialect,
    an endpoint, or the ordered selected fragments change.
    """

    def __init__(self) -> None:
        self._key: tuple | None = None
        self._script: str = ""

    def get(
        self,
        source: ScriptEndpoint | None,
        target: ScriptEndpoint | None,
        items: Sequence[DiffItem],
    ) -> str:
        dialect = resolve_dialect(source, target)
        key = (dialect, source, target, tuple((item.id, item.sql) for item in items))
        if key == self._key:
            logger.debug("Script cache hit (%d item(s))", len(items))
            return self._script
        self._script = assemble_script(dialect, source, target, items)
        self._key = key
        return self._script

    def clear(self) -> None:
        self._key = None
        self._script = ""
