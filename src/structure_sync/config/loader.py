"""TOML configuration loader for sync connections."""

import os
import tomllib
from pathlib import Path

from pydantic import ValidationError

from structure_sync.config.models import Connection, SyncConfig, SyncSettings

CONFIG_ENV_VAR = "SYNC_CONFIG"
DEFAULT_CONFIG_FILE = "sync.toml"


def resolve_config_path(config_path: Path | str | None = None) -> Path:
    """Resolve the config file location.

    Priority:
    1. Explicit ``config_path`` argument
    2. ``SYNC_CONFIG`` env var
    3. ``./sync.toml``

    Args:
        config_path: Optional explicit path.

    Returns:
        Path to the config file (may not exist).
    """
    if config_path is not None:
        return Path(config_path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_sync_config(config_path: Path | str | None = None) -> SyncConfig:
    """Load connection configuration from TOML file.

    Each ``[connections.<id>]`` table becomes a ``Connection`` whose id is
    the table key.

    Args:
        config_path: Path to sync.toml (default: see ``resolve_config_path``)

    Returns:
        SyncConfig with all connections

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    path = resolve_config_path(config_path)

    if not path.exists():
        raise FileNotFoundError(
            f"Sync config not found: {path}\n"
            f"Create {DEFAULT_CONFIG_FILE} with [connections.<id>] tables "
            f"or set {CONFIG_ENV_VAR}."
        )

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path.name}: {e}") from e

    try:
        connections = {}
        for conn_id, conn_data in data.get("connections", {}).items():
            connections[conn_id] = Connection(id=conn_id, **conn_data)

        settings = SyncSettings(**data.get("sync", {}))
    except (ValidationError, TypeError) as e:
        raise ValueError(f"Invalid sync config in {path.name}: {e}") from e

    return SyncConfig(connections=connections, settings=settings)
