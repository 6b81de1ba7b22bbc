"""Diff models, selection and script assembly.

Provides the comparison result models (``DiffResult``, ``DiffItem``), the
pure selection functions (``toggle_item``, ``toggle_group``, ...) and the
script assembler (``assemble_script``).

Usage:
    from structure_sync.schema import DiffResult, toggle_group, assemble_script
"""

from structure_sync.schema.models import Dialect, DiffItem, DiffResult, DiffType
from structure_sync.schema.selection import (
    GroupState,
    TableGroup,
    deselect_all,
    group_items,
    group_state,
    ordered_selection,
    prune,
    select_all,
    toggle_group,
    toggle_item,
)
from structure_sync.schema.script import (
    ScriptCache,
    ScriptEndpoint,
    assemble_script,
    describe_endpoint,
    resolve_dialect,
)

__all__ = [
    "Dialect",
    "DiffItem",
    "DiffResult",
    "DiffType",
    "GroupState",
    "TableGroup",
    "deselect_all",
    "group_items",
    "group_state",
    "ordered_selection",
    "prune",
    "select_all",
    "toggle_group",
    "toggle_item",
    "ScriptCache",
    "ScriptEndpoint",
    "assemble_script",
    "describe_endpoint",
    "resolve_dialect",
]
