"""Pydantic models for schema comparison results.

This module contains the diff-domain models:
- Dialect: SQL flavor of a connection (MySQL, PostgreSQL, MariaDB)
- DiffType: kind of a detected schema difference
- DiffItem: one difference plus the SQL fragment that resolves it
- DiffResult: ordered items returned by one comparison

Connection models live in structure_sync.config.models.
"""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ============================================================================
# Enumerations
# ============================================================================


class Dialect(str, Enum):
    """SQL dialect of a connection.

    Lookup is case-insensitive so config files may write ``"mysql"``.

    Example:
        >>> Dialect("postgresql")
        <Dialect.POSTGRESQL: 'PostgreSQL'>
    """

    MYSQL = "MySQL"
    POSTGRESQL = "PostgreSQL"
    MARIADB = "MariaDB"

    @classmethod
    def _missing_(cls, value: object) -> "Dialect | None":
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value.lower() == lowered:
                    return member
        return None

    @property
    def default_port(self) -> int:
        """Default server port for the dialect."""
        if self is Dialect.POSTGRESQL:
            return 5432
        return 3306

    @property
    def is_mysql_family(self) -> bool:
        """True for MySQL and MariaDB."""
        return self in (Dialect.MYSQL, Dialect.MARIADB)


class DiffType(str, Enum):
    """Kind of schema difference.

    Serialized in PascalCase (``"ColumnAdded"``); snake_case input
    (``"column_added"``) is also accepted.
    """

    TABLE_ADDED = "TableAdded"
    TABLE_REMOVED = "TableRemoved"
    COLUMN_ADDED = "ColumnAdded"
    COLUMN_REMOVED = "ColumnRemoved"
    COLUMN_MODIFIED = "ColumnModified"
    INDEX_ADDED = "IndexAdded"
    INDEX_REMOVED = "IndexRemoved"
    INDEX_MODIFIED = "IndexModified"
    FOREIGN_KEY_ADDED = "ForeignKeyAdded"
    FOREIGN_KEY_REMOVED = "ForeignKeyRemoved"
    FOREIGN_KEY_MODIFIED = "ForeignKeyModified"
    UNIQUE_CONSTRAINT_ADDED = "UniqueConstraintAdded"
    UNIQUE_CONSTRAINT_REMOVED = "UniqueConstraintRemoved"
    UNIQUE_CONSTRAINT_MODIFIED = "UniqueConstraintModified"

    @classmethod
    def _missing_(cls, value: object) -> "DiffType | None":
        if isinstance(value, str):
            key = value.strip().replace("-", "_").upper()
            if key in cls.__members__:
                return cls.__members__[key]
            # PascalCase with different casing, e.g. "tableadded"
            flat = value.replace("_", "").replace("-", "").lower()
            for member in cls:
                if member.value.lower() == flat:
                    return member
        return None

    @property
    def action(self) -> str:
        """``Added``, ``Removed`` or ``Modified``."""
        return _ACTION_RE.search(self.value).group(1)

    @property
    def object_kind(self) -> str:
        """``Table``, ``Column``, ``Index``, ``ForeignKey`` or ``UniqueConstraint``."""
        return _ACTION_RE.sub("", self.value)


_ACTION_RE = re.compile(r"(Added|Removed|Modified)$")


# ============================================================================
# Diff Models
# ============================================================================


class DiffItem(BaseModel):
    """One detected schema difference.

    ``selected`` is the comparator's suggestion only; the live selection is
    owned by the orchestrator.

    Example:
        >>> item = DiffItem(
        ...     id="1",
        ...     diff_type="TableAdded",
        ...     table_name="users",
        ...     sql="CREATE TABLE users (id INT PRIMARY KEY);",
        ... )
        >>> item.display_name
        'users'
    """

    model_config = ConfigDict(frozen=True)

    id: str
    diff_type: DiffType
    table_name: str
    object_name: str | None = None
    source_def: str | None = None
    target_def: str | None = None
    sql: str = ""
    selected: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        # Comparators may emit numeric ids
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("diff_type", mode="before")
    @classmethod
    def _parse_diff_type(cls, value: object) -> object:
        if isinstance(value, str):
            return DiffType(value)
        return value

    @property
    def display_name(self) -> str:
        """Object name when present, otherwise the table name."""
        return self.object_name or self.table_name


class DiffResult(BaseModel):
    """Ordered result of one schema comparison.

    Example:
        >>> result = DiffResult(items=[], source_tables=5, target_tables=3)
        >>> result.is_empty
        True
    """

    model_config = ConfigDict(frozen=True)

    items: list[DiffItem] = Field(default_factory=list)
    source_tables: int = 0
    target_tables: int = 0

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "DiffResult":
        seen: set[str] = set()
        for item in self.items:
            if item.id in seen:
                raise ValueError(f"Duplicate diff item id: {item.id}")
            seen.add(item.id)
        return self

    @property
    def is_empty(self) -> bool:
        """True when the schemas are identical."""
        return not self.items

    def ids(self) -> frozenset[str]:
        """All item ids in the result."""
        return frozenset(item.id for item in self.items)

    def get(self, item_id: str) -> DiffItem | None:
        """Look up an item by id."""
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def table_names(self) -> list[str]:
        """Distinct table names in first-appearance order."""
        return list(dict.fromkeys(item.table_name for item in self.items))
