"""Async SQLAlchemy engines for configured connections.

Maps a ``Connection`` to an async engine URL:

- MySQL / MariaDB -> ``mysql+aiomysql://``
- PostgreSQL      -> ``postgresql+asyncpg://``

An enabled ``ssl_config`` becomes an ``ssl.SSLContext`` in the driver's
``connect_args``; an enabled ``ssh_config`` routes the engine through a local
``SSHTunnelForwarder`` port for the lifetime of ``open_engine``.

Usage:
    from structure_sync.adapters.engine import open_engine

    async with open_engine(connection, database="app") as engine:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
"""

import asyncio
import logging
import os
import ssl
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import paramiko
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool
from sshtunnel import BaseSSHTunnelForwarderError, SSHTunnelForwarder

from structure_sync.config.models import Connection, SslConfig
from structure_sync.errors import ConnectivityError
from structure_sync.schema.models import Dialect

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 5
TUNNEL_BIND_HOST = "127.0.0.1"
TUNNEL_KEEPALIVE_SECONDS = 30.0

# Maintenance database used when an unbound PostgreSQL connection must
# connect somewhere (e.g. to list databases)
POSTGRES_MAINTENANCE_DB = "postgres"

_DRIVERS: dict[Dialect, str] = {
    Dialect.MYSQL: "mysql+aiomysql",
    Dialect.MARIADB: "mysql+aiomysql",
    Dialect.POSTGRESQL: "postgresql+asyncpg",
}


def connection_url(
    connection: Connection,
    database: str | None = None,
    host: str | None = None,
    port: int | None = None,
) -> URL:
    """Build the driver URL for a connection.

    Args:
        connection: Connection record.
        database: Overrides the connection's bound database.
        host: Overrides the connection's host (tunnel endpoint).
        port: Overrides the connection's port (tunnel endpoint).

    Returns:
        SQLAlchemy ``URL`` (password is masked when rendered with ``str()``).
    """
    db = database or connection.database
    if not db and connection.dialect is Dialect.POSTGRESQL:
        db = POSTGRES_MAINTENANCE_DB
    return URL.create(
        drivername=_DRIVERS[connection.dialect],
        username=connection.username or None,
        password=connection.password or None,
        host=host or connection.host,
        port=port or connection.port,
        database=db or None,
    )


def build_ssl_context(ssl_config: SslConfig) -> ssl.SSLContext:
    """TLS context for asyncpg / aiomysql ``connect_args["ssl"]``.

    Raises:
        OSError: If a certificate or key file cannot be read.
    """
    context = ssl.create_default_context(cafile=ssl_config.ca_cert_path)
    if not ssl_config.verify_server:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    if ssl_config.client_cert_path:
        context.load_cert_chain(ssl_config.client_cert_path, ssl_config.client_key_path)
    return context


def create_connection_engine(
    connection: Connection,
    database: str | None = None,
    host: str | None = None,
    port: int | None = None,
    **kwargs: Any,
) -> AsyncEngine:
    """Create a short-lived async engine for one connection.

    Default settings:

    - ``poolclass=NullPool``: every operation here is one-shot.
    - connect timeout of 5 seconds (driver-specific ``connect_args``).
    - ``ssl`` context when the connection's SSL config is enabled.

    Args:
        connection: Connection record.
        database: Overrides the connection's bound database.
        host: Overrides the connection's host.
        port: Overrides the connection's port.
        **kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``.

    Returns:
        Configured ``AsyncEngine``.  Callers must ``await engine.dispose()``.
    """
    if connection.dialect is Dialect.POSTGRESQL:
        connect_args: dict[str, Any] = {"timeout": CONNECT_TIMEOUT_SECONDS}
    else:
        connect_args = {"connect_timeout": CONNECT_TIMEOUT_SECONDS}
    if connection.uses_ssl:
        connect_args["ssl"] = build_ssl_context(connection.ssl_config)

    defaults: dict[str, Any] = {
        "poolclass": NullPool,
        "connect_args": connect_args,
        "echo": False,
    }
    # Caller kwargs override defaults
    merged = {**defaults, **kwargs}

    return create_async_engine(connection_url(connection, database, host, port), **merged)


def create_tunnel(connection: Connection) -> SSHTunnelForwarder:
    """SSH forwarder from a free local port to the connection's host:port."""
    ssh = connection.ssh_config
    options: dict[str, Any] = {
        "ssh_username": ssh.username,
        "remote_bind_address": (connection.host, connection.port),
        "local_bind_address": (TUNNEL_BIND_HOST, 0),
        "set_keepalive": TUNNEL_KEEPALIVE_SECONDS,
    }
    if ssh.uses_private_key:
        options["ssh_pkey"] = os.path.expanduser(ssh.private_key_path)
        options["ssh_private_key_password"] = ssh.passphrase
    else:
        options["ssh_password"] = ssh.password
    return SSHTunnelForwarder((ssh.host, ssh.port), **options)


@asynccontextmanager
async def ssh_tunnel(connection: Connection) -> AsyncIterator[tuple[str, int]]:
    """Yield the ``(host, port)`` the driver should dial.

    Without an enabled SSH config this is the connection's own endpoint.

    Raises:
        ConnectivityError: If the tunnel cannot be established.
    """
    if not connection.uses_ssh:
        yield connection.host, connection.port
        return

    ssh = connection.ssh_config
    tunnel = create_tunnel(connection)
    logger.info("Opening SSH tunnel via %s:%d for %s", ssh.host, ssh.port, connection.id)
    try:
        await asyncio.to_thread(tunnel.start)
    except (BaseSSHTunnelForwarderError, paramiko.SSHException, OSError) as e:
        logger.error("SSH tunnel to %s:%d failed: %s", ssh.host, ssh.port, e)
        raise ConnectivityError(
            f"Failed to open SSH tunnel via {ssh.host}:{ssh.port} for '{connection.name}': {e}"
        ) from e

    try:
        yield TUNNEL_BIND_HOST, tunnel.local_bind_port
    finally:
        await asyncio.to_thread(tunnel.stop)
        logger.debug("Closed SSH tunnel for %s", connection.id)


@asynccontextmanager
async def open_engine(
    connection: Connection,
    database: str | None = None,
    **kwargs: Any,
) -> AsyncIterator[AsyncEngine]:
    """Engine for ``connection``, tunneled when SSH is enabled.

    The engine is disposed (and the tunnel closed) on exit.
    """
    async with ssh_tunnel(connection) as (host, port):
        try:
            engine = create_connection_engine(
                connection, database=database, host=host, port=port, **kwargs
            )
        except OSError as e:
            logger.error("Failed to load SSL files for %s: %s", connection.id, e)
            raise ConnectivityError(
                f"Failed to set up SSL for '{connection.name}': {e}"
            ) from e
        try:
            yield engine
        finally:
            await engine.dispose()
