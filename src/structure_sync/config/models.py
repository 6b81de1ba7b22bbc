"""Pydantic models for connection and sync configuration."""

from pydantic import BaseModel, Field, field_validator, model_validator

from structure_sync.schema.models import Dialect


# ============================================================================
# Transport Models
# ============================================================================


class SslConfig(BaseModel):
    """``[connections.<id>.ssl_config]`` table: TLS to the database server."""

    enabled: bool = False
    ca_cert_path: str | None = None
    client_cert_path: str | None = None
    client_key_path: str | None = None
    verify_server: bool = True

    @model_validator(mode="after")
    def _key_needs_cert(self) -> "SslConfig":
        if self.client_key_path and not self.client_cert_path:
            raise ValueError("client_key_path requires client_cert_path")
        return self


class SshConfig(BaseModel):
    """``[connections.<id>.ssh_config]`` table: SSH tunnel to the database host.

    Authenticates with ``private_key_path`` (plus optional ``passphrase``)
    when given, otherwise with ``password``.
    """

    enabled: bool = False
    host: str
    port: int = 22
    username: str
    password: str = Field(default="", repr=False)
    private_key_path: str | None = None
    passphrase: str | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def _require_credentials(self) -> "SshConfig":
        if self.enabled and not (self.password or self.private_key_path):
            raise ValueError("SSH tunnel needs a password or private_key_path")
        return self

    @property
    def uses_private_key(self) -> bool:
        return bool(self.private_key_path)


# ============================================================================
# Configuration Models
# ============================================================================


class Connection(BaseModel):
    """Database connection record from sync.toml.

    A connection without a ``database`` is *unbound*: the user must pick a
    database before it can take part in a comparison.
    """

    id: str
    name: str = ""
    dialect: Dialect
    host: str = "localhost"
    port: int = 0  # 0 = dialect default
    username: str = ""
    password: str = Field(default="", repr=False)
    database: str | None = None
    description: str = ""
    ssl_config: SslConfig | None = None
    ssh_config: SshConfig | None = None

    @field_validator("dialect", mode="before")
    @classmethod
    def _parse_dialect(cls, value: object) -> object:
        if isinstance(value, str):
            return Dialect(value)
        return value

    @field_validator("database", mode="before")
    @classmethod
    def _blank_database_is_unbound(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _apply_defaults(self) -> "Connection":
        if not self.port:
            self.port = self.dialect.default_port
        if not self.name:
            self.name = self.id
        return self

    @property
    def is_unbound(self) -> bool:
        """True when no database is fixed on the connection."""
        return self.database is None

    @property
    def uses_ssl(self) -> bool:
        return self.ssl_config is not None and self.ssl_config.enabled

    @property
    def uses_ssh(self) -> bool:
        return self.ssh_config is not None and self.ssh_config.enabled


class SyncSettings(BaseModel):
    """``[sync]`` table of sync.toml."""

    default_export_name: str = "sync.sql"
    export_filter: str = "*.sql"


class SyncConfig(BaseModel):
    """Complete configuration from sync.toml."""

    connections: dict[str, Connection] = Field(default_factory=dict)
    settings: SyncSettings = Field(default_factory=SyncSettings)
