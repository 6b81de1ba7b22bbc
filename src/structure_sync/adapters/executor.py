"""Execution service running sync statements through SQLAlchemy.

Statements run in order on one connection, each committed on its own --
DDL auto-commits on MySQL/MariaDB anyway, so there is no all-or-nothing
guarantee: a failure leaves the earlier statements applied.

Usage:
    from structure_sync.adapters.executor import SqlAlchemyExecutionService

    executor = SqlAlchemyExecutionService(directory)
    await executor.execute("staging", ["ALTER TABLE users ADD COLUMN email TEXT;"])
"""

import logging
from collections.abc import Sequence

from sqlalchemy.exc import SQLAlchemyError

from structure_sync.adapters.base import ConnectionDirectory
from structure_sync.adapters.engine import open_engine
from structure_sync.errors import ConnectivityError, ExecutionError

logger = logging.getLogger(__name__)


class SqlAlchemyExecutionService:
    """``ExecutionService`` backed by an async SQLAlchemy engine.

    Args:
        directory: Resolves target ids to connection records.
    """

    def __init__(self, directory: ConnectionDirectory) -> None:
        self._directory = directory

    async def execute(
        self,
        target_id: str,
        sql_statements: Sequence[str],
        target_database: str | None = None,
    ) -> None:
        """Execute statements sequentially, stopping at the first failure.

        Raises:
            ConnectionNotFoundError: If the target id is unknown.
            ConnectivityError: If the target cannot be reached.
            ExecutionError: If a statement fails, including a connection
                dropped or timed out mid-statement.
        """
        conn = await self._directory.require_connection(target_id)
        total = len(sql_statements)
        logger.info("Executing sync on target %s: %d statements", target_id, total)

        async with open_engine(conn, database=target_database) as engine:
            try:
                db = await engine.connect()
            except (SQLAlchemyError, OSError) as e:
                logger.error("Failed to connect to target %s: %s", target_id, e)
                raise ConnectivityError(
                    f"Failed to connect to '{conn.name}' ({conn.host}:{conn.port}): {e}"
                ) from e

            try:
                for index, sql in enumerate(sql_statements, start=1):
                    logger.info("Executing statement %d/%d", index, total)
                    try:
                        # exec_driver_sql: no bind-parameter parsing of DDL text
                        await db.exec_driver_sql(sql)
                        await db.commit()
                    except (SQLAlchemyError, OSError) as e:
                        logger.error("Failed to execute SQL: %s\nError: %s", sql, e)
                        raise ExecutionError(
                            f"Failed to execute: {sql}\nError: {e}",
                            statement=sql,
                            index=index,
                        ) from e
            finally:
                await db.close()

        logger.info("Sync execution completed successfully")
