"""
Sort-key arithmetic for sibling ordering.

Keys are spaced by ``spacing`` (1000 by default): a reindex assigns
``(index + 1) * spacing`` and an append lands at ``max + spacing``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, TypeVar

from notetree.documents.models import EntityKind, TreeDocument, TreeFolder, TreeNode

DEFAULT_SPACING = 1000

T = TypeVar("T")


class DropPosition(str, Enum):
    INTO = "into"
    BEFORE = "before"
    AFTER = "after"


def classify_drop(
    target_kind: str,
    relative_y: Optional[float],
    middle_band: Tuple[float, float] = (0.25, 0.75),
) -> DropPosition:
    """
    Classify a drop by where the pointer sits inside the target's box.

    ``relative_y`` is 0.0 at the top edge and 1.0 at the bottom. Without a
    measurement the drop is treated as "after" (or "into" for the root).
    """
    if target_kind == "root":
        return DropPosition.INTO
    if relative_y is None:
        return DropPosition.AFTER
    low, high = middle_band
    if target_kind == "folder" and low <= relative_y <= high:
        return DropPosition.INTO
    return DropPosition.BEFORE if relative_y < 0.5 else DropPosition.AFTER


def array_move(items: Sequence[T], old_index: int, new_index: int) -> List[T]:
    """Return a copy of ``items`` with the element at ``old_index`` moved to ``new_index``."""
    moved = list(items)
    item = moved.pop(old_index)
    moved.insert(new_index, item)
    return moved


def append_sort_order(orders: Iterable[Optional[int]], spacing: int = DEFAULT_SPACING) -> int:
    """Key for a new last child: ``max + spacing``, or 0 for an empty container."""
    numeric = [o for o in orders if o is not None]
    return max(numeric) + spacing if numeric else 0


@dataclass(frozen=True)
class SortOrderChange:
    node_id: str
    entity_id: str
    kind: EntityKind
    sort_order: int
    previous: Optional[int]


def node_entity_id(node: TreeNode) -> Optional[str]:
    """Persisted id behind a tree node; None for synthesized folders."""
    if isinstance(node, TreeDocument):
        return node.document_id
    if isinstance(node, TreeFolder):
        return node.record_id
    raise TypeError(f"unexpected tree node {node!r}")


def assign_sort_orders(
    items: Sequence[TreeNode],
    skip_ids: Optional[Set[str]] = None,
    spacing: int = DEFAULT_SPACING,
) -> Tuple[Dict[str, int], List[SortOrderChange]]:
    """
    Reindex ``items`` in their given order.

    Returns every node's new key (by node id, including skipped ones) and the
    list of changes that actually need persisting: unchanged keys, skipped
    nodes and nodes without a persisted record produce no change.
    """
    assignments: Dict[str, int] = {}
    changes: List[SortOrderChange] = []
    for position, node in enumerate(items):
        sort_order = (position + 1) * spacing
        assignments[node.id] = sort_order
        if skip_ids and node.id in skip_ids:
            continue
        entity_id = node_entity_id(node)
        if entity_id is None or node.sort_order == sort_order:
            continue
        changes.append(
            SortOrderChange(
                node_id=node.id,
                entity_id=entity_id,
                kind=node.kind,
                sort_order=sort_order,
                previous=node.sort_order,
            )
        )
    return assignments, changes
