"""Diff selection using immutable set operations.

Computes new selection values for a ``DiffResult`` -- the orchestrator
commits them.  Pure logic -- no I/O, no mutation of the inputs.

Selections are ``frozenset`` values of ``DiffItem`` ids and are always a
subset of the ids in the current result.

Usage:
    from structure_sync.schema.selection import group_items, toggle_group

    selection = frozenset()
    selection = toggle_group(selection, result, "users")
    for group in group_items(result):
        print(group.table_name, group_state(group, selection).checkbox)
"""

import logging
from dataclasses import dataclass
from typing import Literal

from structure_sync.schema.models import DiffItem, DiffResult

logger = logging.getLogger(__name__)

Selection = frozenset[str]

EMPTY_SELECTION: Selection = frozenset()


@dataclass(frozen=True)
class TableGroup:
    """Diff items that belong to one table (derived view, owns no state)."""

    table_name: str
    items: tuple[DiffItem, ...]

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(item.id for item in self.items)


@dataclass(frozen=True)
class GroupState:
    """Checkbox state of a table group.

    Only ``all_selected`` drives toggling; ``some_selected`` is the
    indeterminate visual state.
    """

    all_selected: bool
    some_selected: bool

    @property
    def checkbox(self) -> Literal["checked", "indeterminate", "unchecked"]:
        if self.all_selected:
            return "checked"
        if self.some_selected:
            return "indeterminate"
        return "unchecked"


def group_items(result: DiffResult | None) -> list[TableGroup]:
    """Group diff items by table name in first-appearance order.

    Args:
        result: Current comparison result (``None`` yields no groups).

    Returns:
        List of ``TableGroup``, items kept in result order.

    Example:
        >>> [g.table_name for g in group_items(result)]
        ['users', 'posts']
    """
    if result is None:
        return []
    grouped: dict[str, list[DiffItem]] = {}
    for item in result.items:
        grouped.setdefault(item.table_name, []).append(item)
    return [TableGroup(table_name=name, items=tuple(items)) for name, items in grouped.items()]


def find_group(result: DiffResult | None, table_name: str) -> TableGroup | None:
    """Return the group for ``table_name`` or ``None``."""
    for group in group_items(result):
        if group.table_name == table_name:
            return group
    return None


def group_state(group: TableGroup, selection: Selection) -> GroupState:
    """Tri-state of a group against a selection.

    An empty group is never "all selected".
    """
    selected = sum(1 for item in group.items if item.id in selection)
    all_selected = bool(group.items) and selected == len(group.items)
    return GroupState(
        all_selected=all_selected,
        some_selected=not all_selected and selected > 0,
    )


def toggle_item(selection: Selection, result: DiffResult | None, item_id: str) -> Selection:
    """Flip membership of ``item_id``.

    No-op when the id is not part of ``result``.
    """
    if result is None or item_id not in result.ids():
        logger.debug("Ignoring toggle of unknown diff item %s", item_id)
        return selection
    if item_id in selection:
        return selection - {item_id}
    return selection | {item_id}


def toggle_group(selection: Selection, result: DiffResult | None, table_name: str) -> Selection:
    """Toggle every item of a table group.

    Checked -> unchecked; unchecked or indeterminate -> checked.
    No-op when the table has no items in ``result``.
    """
    group = find_group(result, table_name)
    if group is None:
        logger.debug("Ignoring toggle of unknown table group %s", table_name)
        return selection
    if group_state(group, selection).all_selected:
        return selection - group.ids
    return selection | group.ids


def select_all(result: DiffResult | None) -> Selection:
    """Every id in ``result``."""
    if result is None:
        return EMPTY_SELECTION
    return result.ids()


def deselect_all() -> Selection:
    """The empty selection."""
    return EMPTY_SELECTION


def prune(selection: Selection, result: DiffResult | None) -> Selection:
    """Drop ids that are not in ``result``."""
    if result is None:
        return EMPTY_SELECTION
    return selection & result.ids()


def ordered_selection(result: DiffResult | None, selection: Selection) -> list[DiffItem]:
    """Selected items in result order (not click order)."""
    if result is None:
        return []
    return [item for item in result.items if item.id in selection]
