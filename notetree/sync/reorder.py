"""
notetree Reorder Engine: turns a finished drag gesture into sort-order
updates and moves.

Handles:
- Drop classification (into a folder vs. before/after a sibling)
- Same-container reorder: reindex siblings, optimistic cache patch,
  concurrent per-sibling updates, silent reconciliation
- Cross-container moves of documents: reindex source and target, then one
  authoritative move carrying the new key
- Move into a folder at the end of its children

Sibling update failures are isolated: one failed key never blocks or rolls
back the others. A failed authoritative move triggers a full reload (inside
the explorer). ``handle_drag_end`` never raises collaborator errors.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from notetree.documents.models import EntityKind, TreeDocument, TreeFolder, TreeNode
from notetree.documents.paths import DOCUMENTS_ROOT_ID
from notetree.documents.tree import find_context, find_folder
from notetree.engine.config import OrderingConfig
from notetree.engine.errors import NoteTreeError, NoteTreePartialBatchError
from notetree.engine.logging import AsyncLogQueue, log_sync_event
from notetree.sync.explorer import DocumentExplorer
from notetree.sync.ordering import (
    DropPosition,
    SortOrderChange,
    append_sort_order,
    array_move,
    assign_sort_orders,
    classify_drop,
)
from notetree.sync.transaction import Outcome, replace_records

logger = logging.getLogger("notetree.sync.reorder")

TargetKind = Literal["folder", "document", "root"]

ACTION_NONE = "none"
ACTION_REORDER = "reorder"
ACTION_MOVE = "move"
ACTION_INTO = "into"


# ---------------------------------------------------------------------------
# Gesture types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DragItem:
    node_id: str
    kind: EntityKind
    document_id: Optional[str] = None
    label: str = ""
    current_folder_path: str = ""
    sort_order: Optional[int] = None

    @classmethod
    def from_node(cls, node: TreeNode) -> "DragItem":
        if isinstance(node, TreeDocument):
            return cls(
                node_id=node.id,
                kind="document",
                document_id=node.document_id,
                label=node.name,
                current_folder_path=node.parent_path,
                sort_order=node.sort_order,
            )
        if isinstance(node, TreeFolder):
            return cls(
                node_id=node.id,
                kind="folder",
                label=node.name,
                current_folder_path=node.parent_path,
                sort_order=node.sort_order,
            )
        raise TypeError(f"unexpected tree node {node!r}")


@dataclass(frozen=True)
class DropTarget:
    """
    ``folder_path`` is the folder's own path for folder targets, the
    containing folder for document targets and "" for the root.
    """

    node_id: str
    kind: TargetKind
    folder_path: str = ""
    sort_order: Optional[int] = None

    @classmethod
    def root(cls) -> "DropTarget":
        return cls(node_id=DOCUMENTS_ROOT_ID, kind="root")

    @classmethod
    def from_node(cls, node: TreeNode) -> "DropTarget":
        if isinstance(node, TreeDocument):
            return cls(node_id=node.id, kind="document", folder_path=node.parent_path, sort_order=node.sort_order)
        if isinstance(node, TreeFolder):
            return cls(node_id=node.id, kind="folder", folder_path=node.path, sort_order=node.sort_order)
        raise TypeError(f"unexpected tree node {node!r}")


@dataclass(frozen=True)
class DragEndEvent:
    active: DragItem
    target: Optional[DropTarget] = None
    relative_y: Optional[float] = None


@dataclass
class ReorderResult:
    action: str = ACTION_NONE
    position: Optional[DropPosition] = None
    assignments: Dict[str, int] = field(default_factory=dict)
    changes: List[SortOrderChange] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    move: Optional[Outcome] = None
    error: Optional[NoteTreeError] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        if self.failed_ids:
            return False
        return self.move is None or self.move.ok


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class ReorderEngine:
    """Applies drag gestures against a DocumentExplorer."""

    def __init__(
        self,
        explorer: DocumentExplorer,
        config: Optional[OrderingConfig] = None,
        log_queue: Optional[AsyncLogQueue] = None,
    ):
        self.explorer = explorer
        self.config = config or explorer.config.ordering
        self._log_queue = log_queue if log_queue is not None else explorer.log_queue

    @property
    def middle_band(self) -> Tuple[float, float]:
        return (self.config.middle_band_low, self.config.middle_band_high)

    async def handle_drag_end(self, event: DragEndEvent) -> ReorderResult:
        active, target = event.active, event.target
        if target is None or target.node_id == active.node_id:
            return ReorderResult(reason="no target")

        position = classify_drop(target.kind, event.relative_y, self.middle_band)
        if self.explorer.is_action_pending:
            # Keys computed now would not survive the pending mutation's refresh.
            pending = self.explorer.pending_action
            logger.info(f"Ignoring drop of {active.node_id}: {pending} still pending")
            return ReorderResult(position=position, reason=f"{pending} in progress")
        logger.debug(f"Drop {active.node_id} {position.value} {target.node_id}")

        if position is DropPosition.INTO:
            folder_path = target.folder_path if target.kind == "folder" else ""
            return await self._move_into(active, folder_path)
        return await self._reposition(active, target, position)

    # -------------------------------------------------------------------
    # Into a folder
    # -------------------------------------------------------------------

    async def _move_into(self, active: DragItem, folder_path: str) -> ReorderResult:
        result = ReorderResult(position=DropPosition.INTO)
        if active.kind != "document" or not active.document_id:
            result.reason = "only documents can be moved into a folder"
            logger.info(f"Ignoring drop of folder {active.node_id} into {folder_path or 'root'}")
            return result
        if active.current_folder_path == folder_path:
            result.reason = "already in folder"
            return result

        folder = find_folder(self.explorer.tree, folder_path)
        siblings = folder.children if folder is not None else []
        sort_order = append_sort_order(
            (n.sort_order for n in siblings if n.id != active.node_id), self.config.spacing
        )
        result.action = ACTION_INTO
        result.assignments = {active.node_id: sort_order}
        move = await self.explorer.move_document(
            active.document_id, folder_path or None, sort_order, label=active.label
        )
        await self._settle_move(result, active, move)
        return result

    # -------------------------------------------------------------------
    # Before / after a sibling
    # -------------------------------------------------------------------

    async def _reposition(self, active: DragItem, target: DropTarget, position: DropPosition) -> ReorderResult:
        result = ReorderResult(position=position)
        tree = self.explorer.tree
        source = find_context(tree, active.node_id)
        destination = find_context(tree, target.node_id)
        if source is None or destination is None:
            result.reason = "node not found"
            logger.warning(f"Drop between unknown nodes {active.node_id} -> {target.node_id}")
            return result

        source_parent, source_siblings = source
        target_parent, target_siblings = destination
        source_path = source_parent.path if source_parent is not None else ""
        target_path = target_parent.path if target_parent is not None else ""

        if source_path == target_path:
            return await self._reorder_within(result, active, target, position, list(source_siblings))
        if active.kind != "document" or not active.document_id:
            result.reason = "folders cannot change container"
            logger.info(f"Ignoring cross-container drop of folder {active.node_id}")
            return result
        return await self._move_across(
            result, active, target, position, list(source_siblings), list(target_siblings), target_path
        )

    @staticmethod
    def _insertion_index(siblings: Sequence[TreeNode], active_id: str, target_id: str, position: DropPosition) -> int:
        remaining = [n for n in siblings if n.id != active_id]
        index = next(i for i, n in enumerate(remaining) if n.id == target_id)
        return index if position is DropPosition.BEFORE else index + 1

    async def _reorder_within(
        self,
        result: ReorderResult,
        active: DragItem,
        target: DropTarget,
        position: DropPosition,
        siblings: List[TreeNode],
    ) -> ReorderResult:
        old_index = next(i for i, n in enumerate(siblings) if n.id == active.node_id)
        new_index = self._insertion_index(siblings, active.node_id, target.node_id, position)
        ordered = array_move(siblings, old_index, new_index)

        result.action = ACTION_REORDER
        result.assignments, result.changes = assign_sort_orders(ordered, spacing=self.config.spacing)
        if not result.changes:
            result.reason = "order unchanged"
            return result

        self._apply_locally(result.changes)
        result.failed_ids = await self._persist(result.changes)
        result.error = self._batch_error(result)
        await self.explorer.refresh()
        return result

    async def _move_across(
        self,
        result: ReorderResult,
        active: DragItem,
        target: DropTarget,
        position: DropPosition,
        source_siblings: List[TreeNode],
        target_siblings: List[TreeNode],
        target_path: str,
    ) -> ReorderResult:
        active_node = next(n for n in source_siblings if n.id == active.node_id)
        source_rest = [n for n in source_siblings if n.id != active.node_id]
        insert_at = self._insertion_index(target_siblings, active.node_id, target.node_id, position)
        target_ordered = target_siblings[:insert_at] + [active_node] + target_siblings[insert_at:]

        spacing = self.config.spacing
        source_assignments, source_changes = assign_sort_orders(source_rest, spacing=spacing)
        target_assignments, target_changes = assign_sort_orders(
            target_ordered, skip_ids={active.node_id}, spacing=spacing
        )

        result.action = ACTION_MOVE
        result.assignments = {**source_assignments, **target_assignments}
        result.changes = source_changes + target_changes

        if result.changes:
            self._apply_locally(result.changes)
            result.failed_ids = await self._persist(result.changes)
            result.error = self._batch_error(result)

        move = await self.explorer.move_document(
            active.document_id,
            target_path or None,
            target_assignments[active.node_id],
            label=active.label,
        )
        await self._settle_move(result, active, move)
        return result

    async def _settle_move(self, result: ReorderResult, active: DragItem, move: Outcome) -> None:
        """
        Record the authoritative move. A move turned away by the gate after
        sibling keys were sent is a failed move: notice it and reload, since
        the source container now carries keys that assumed the move landed.
        """
        result.move = move
        if move.ok:
            return
        if not move.skipped:
            result.error = move.error or result.error
            return

        error = NoteTreeError(
            f'Could not move "{active.label or active.document_id}": {move.reason}',
            operation="move_document",
            entity_kind="document",
            entity_id=active.document_id,
        )
        logger.warning(error.message)
        self.explorer.notices.error(error.message)
        if self._log_queue is not None:
            self._log_queue.push(
                log_sync_event("move_skipped", level="WARNING", document_id=active.document_id, reason=move.reason)
            )
        result.error = error
        await self.explorer.reload()

    # -------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------

    def _apply_locally(self, changes: Sequence[SortOrderChange]) -> None:
        by_kind: Dict[str, Dict[str, Dict[str, int]]] = {"document": {}, "folder": {}}
        for change in changes:
            by_kind[change.kind][change.entity_id] = {"sort_order": change.sort_order}

        def apply(index):
            for kind, updates in by_kind.items():
                if updates:
                    index, _ = replace_records(index, kind, updates)
            return index

        self.explorer.store.update(apply)

    async def _persist(self, changes: Sequence[SortOrderChange]) -> List[str]:
        """Send every change concurrently; return the entity ids that failed."""
        results = await asyncio.gather(
            *(self.explorer.update_sort_order(c.entity_id, c.kind, c.sort_order) for c in changes),
            return_exceptions=True,
        )
        failed: List[str] = []
        for change, outcome in zip(changes, results):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.error(f"Sort order update for {change.entity_id} raised: {outcome}")
                failed.append(change.entity_id)
            elif not outcome.ok:
                failed.append(change.entity_id)
        return failed

    def _batch_error(self, result: ReorderResult) -> Optional[NoteTreePartialBatchError]:
        if not result.failed_ids:
            return None
        error = NoteTreePartialBatchError(
            f"{len(result.failed_ids)} of {len(result.changes)} sort order updates failed",
            operation="reorder",
            failed_ids=result.failed_ids,
            total=len(result.changes),
        )
        logger.warning(error.message)
        if self._log_queue is not None:
            self._log_queue.push(
                log_sync_event(
                    "sort_order_batch_partial",
                    level="WARNING",
                    failed_ids=result.failed_ids,
                    total=len(result.changes),
                )
            )
        return error

