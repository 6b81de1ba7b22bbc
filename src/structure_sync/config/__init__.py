"""Configuration management: connections, TOML loading, and config models.

Usage:
    >>> from structure_sync.config import load_sync_config, Connection, SyncConfig
"""

from structure_sync.config.loader import load_sync_config, resolve_config_path
from structure_sync.config.models import (
    Connection,
    SshConfig,
    SslConfig,
    SyncConfig,
    SyncSettings,
)

__all__ = [
    "load_sync_config",
    "resolve_config_path",
    "Connection",
    "SshConfig",
    "SslConfig",
    "SyncConfig",
    "SyncSettings",
]
