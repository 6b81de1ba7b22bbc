"""Connection directory backed by sync.toml.

Connection records come from the loaded ``SyncConfig``; database listing
queries the live server.

Usage:
    from structure_sync.adapters.directory import TomlConnectionDirectory
    from structure_sync.config import load_sync_config

    directory = TomlConnectionDirectory(load_sync_config())
    print(await directory.list_databases("local"))
"""

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from structure_sync.adapters.engine import open_engine
from structure_sync.config.models import Connection, SyncConfig
from structure_sync.errors import ConnectionNotFoundError, ConnectivityError
from structure_sync.schema.models import Dialect

logger = logging.getLogger(__name__)

MYSQL_LIST_DATABASES = (
    "SELECT CAST(schema_name AS CHAR) FROM information_schema.schemata "
    "WHERE schema_name NOT IN ('information_schema', 'performance_schema', 'mysql', 'sys') "
    "ORDER BY schema_name"
)

POSTGRES_LIST_DATABASES = (
    "SELECT datname FROM pg_database "
    "WHERE datistemplate = false AND datname NOT IN ('postgres') "
    "ORDER BY datname"
)


class TomlConnectionDirectory:
    """``ConnectionDirectory`` over a loaded ``SyncConfig``.

    Args:
        config: Parsed sync.toml.
    """

    def __init__(self, config: SyncConfig) -> None:
        self._config = config

    async def list_connections(self) -> list[Connection]:
        return list(self._config.connections.values())

    async def get_connection(self, connection_id: str) -> Connection | None:
        return self._config.connections.get(connection_id)

    async def require_connection(self, connection_id: str) -> Connection:
        """Connection by id.

        Raises:
            ConnectionNotFoundError: If the id is unknown.
        """
        conn = await self.get_connection(connection_id)
        if conn is None:
            logger.error("Connection not found: %s", connection_id)
            raise ConnectionNotFoundError(
                connection_id, available=list(self._config.connections.keys())
            )
        return conn

    async def _query(self, conn: Connection, query: str, database: str | None = None) -> list:
        try:
            async with open_engine(conn, database=database) as engine:
                async with engine.connect() as db:
                    result = await db.execute(text(query))
                    return result.fetchall()
        except (SQLAlchemyError, OSError) as e:
            logger.error("Query on %s failed: %s", conn.id, e)
            raise ConnectivityError(
                f"Failed to connect to '{conn.name}' ({conn.host}:{conn.port}): {e}"
            ) from e

    async def list_databases(self, connection_id: str) -> list[str]:
        """User databases on the server, system schemas excluded."""
        conn = await self.require_connection(connection_id)
        query = (
            POSTGRES_LIST_DATABASES
            if conn.dialect is Dialect.POSTGRESQL
            else MYSQL_LIST_DATABASES
        )

        logger.info("Listing databases for connection: %s", connection_id)
        rows = await self._query(conn, query)
        return [row[0] for row in rows]

    async def test_connection(self, connection_id: str, database: str | None = None) -> None:
        """Round-trip ``SELECT 1`` through the connection's transport.

        Raises:
            ConnectionNotFoundError: If the id is unknown.
            ConnectivityError: If the server (or SSH tunnel) cannot be reached.
        """
        conn = await self.require_connection(connection_id)
        logger.info("Testing connection: %s", connection_id)
        await self._query(conn, "SELECT 1", database=database)
