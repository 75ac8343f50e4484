"""
Optimistic transactions over the IndexStore.

Lifecycle (per mutation):
    1. Snapshot the current index
    2. Apply a speculative change, recording an IndexPatch
    3. Await the remote commit
    4. On failure, replay the inverse patch and report a failed Outcome

Patches are parameterized over entity kind (document / folder), so the same
machinery serves deletes, cascades, renames, moves and sort-order changes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Set, Tuple, TypeVar

from notetree.documents.models import DocumentIndex, EntityKind, Record
from notetree.engine.errors import NoteTreeError
from notetree.engine.logging import AsyncLogQueue, log_mutation
from notetree.sync.store import IndexStore

logger = logging.getLogger("notetree.sync.transaction")

T = TypeVar("T")

RecordPredicate = Callable[[Record], bool]


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass
class Outcome(Generic[T]):
    """Result of an engine operation. Engine operations never raise collaborator errors."""

    ok: bool
    value: Optional[T] = None
    error: Optional[NoteTreeError] = None
    skipped: bool = False
    reason: Optional[str] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: NoteTreeError) -> "Outcome[T]":
        return cls(ok=False, error=error, reason=error.message)

    @classmethod
    def skip(cls, reason: str) -> "Outcome[T]":
        return cls(ok=False, skipped=True, reason=reason)


def as_notetree_error(exc: Exception, operation: str) -> NoteTreeError:
    if isinstance(exc, NoteTreeError):
        return exc
    return NoteTreeError(str(exc) or type(exc).__name__, operation=operation, cause=type(exc).__name__)


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------

@dataclass
class RemovedItem:
    kind: EntityKind
    record: Record
    index: int


@dataclass
class ReplacedItem:
    kind: EntityKind
    before: Record
    after: Record


@dataclass
class IndexPatch:
    """Everything a speculative change did, enough to invert it exactly."""

    removed: List[RemovedItem] = field(default_factory=list)
    replaced: List[ReplacedItem] = field(default_factory=list)
    inserted: List[Tuple[EntityKind, Record]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.removed or self.replaced or self.inserted)

    def removed_records(self, kind: EntityKind) -> List[Record]:
        return [item.record for item in self.removed if item.kind == kind]

    def merge(self, other: "IndexPatch") -> "IndexPatch":
        return IndexPatch(
            removed=self.removed + other.removed,
            replaced=self.replaced + other.replaced,
            inserted=self.inserted + other.inserted,
        )


def remove_where(
    index: DocumentIndex,
    kind: EntityKind,
    predicate: RecordPredicate,
) -> Tuple[DocumentIndex, IndexPatch]:
    """Remove every ``kind`` record matching ``predicate``, capturing original positions."""
    patch = IndexPatch()
    kept: List[Record] = []
    for position, record in enumerate(index.records(kind)):
        if predicate(record):
            patch.removed.append(RemovedItem(kind=kind, record=record, index=position))
        else:
            kept.append(record)
    if not patch.removed:
        return index, patch
    return index.with_records(kind, kept), patch


def replace_records(
    index: DocumentIndex,
    kind: EntityKind,
    changes: Dict[str, Dict[str, Any]],
) -> Tuple[DocumentIndex, IndexPatch]:
    """Apply per-id field updates to ``kind`` records, keeping their positions."""
    patch = IndexPatch()
    records: List[Record] = []
    for record in index.records(kind):
        update = changes.get(record.id)
        if update:
            changed = record.model_copy(update=update)
            if changed != record:
                patch.replaced.append(ReplacedItem(kind=kind, before=record, after=changed))
                record = changed
        records.append(record)
    if not patch.replaced:
        return index, patch
    return index.with_records(kind, records), patch


def insert_record(
    index: DocumentIndex,
    kind: EntityKind,
    record: Record,
) -> Tuple[DocumentIndex, IndexPatch]:
    """Append ``record`` unless a record with the same id is already present."""
    records = index.records(kind)
    if any(existing.id == record.id for existing in records):
        return index, IndexPatch()
    records.append(record)
    return index.with_records(kind, records), IndexPatch(inserted=[(kind, record)])


def revert_patch(index: DocumentIndex, patch: IndexPatch) -> DocumentIndex:
    """
    Replay the inverse of ``patch`` against ``index``.

    Removed items go back to their captured positions in ascending order,
    never duplicating an id that reappeared in the meantime.
    """
    result = index
    for kind in ("document", "folder"):
        records = result.records(kind)
        changed = False

        inserted_ids: Set[str] = {r.id for k, r in patch.inserted if k == kind}
        if inserted_ids:
            records = [r for r in records if r.id not in inserted_ids]
            changed = True

        restore: Dict[str, Record] = {}
        for item in patch.replaced:
            if item.kind == kind:
                # The earliest "before" is the pre-transaction value.
                restore.setdefault(item.after.id, item.before)
        if restore:
            records = [restore.get(r.id, r) for r in records]
            changed = True

        removed = sorted((i for i in patch.removed if i.kind == kind), key=lambda i: i.index)
        for item in removed:
            if any(r.id == item.record.id for r in records):
                continue
            position = item.index if 0 <= item.index <= len(records) else len(records)
            records.insert(position, item.record)
            changed = True

        if changed:
            result = result.with_records(kind, records)
    return result


# ---------------------------------------------------------------------------
# Transaction runner
# ---------------------------------------------------------------------------

Apply = Callable[[DocumentIndex], Tuple[DocumentIndex, IndexPatch]]


class OptimisticTransaction:
    """
    snapshot → apply → commit → (rollback on failure).

    ``on_applied`` runs right after the speculative change lands and
    ``on_rollback`` after the inverse patch is replayed; both handle side
    state that lives outside the store (navigation, open folders).
    """

    def __init__(
        self,
        store: IndexStore,
        operation: str,
        entity_kind: EntityKind,
        entity_id: str,
        log_queue: Optional[AsyncLogQueue] = None,
    ):
        self._store = store
        self.operation = operation
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self._log_queue = log_queue
        self.snapshot: Optional[DocumentIndex] = None
        self.patch = IndexPatch()

    async def run(
        self,
        apply: Apply,
        commit: Callable[[], Awaitable[T]],
        on_rollback: Optional[Callable[[], None]] = None,
        on_applied: Optional[Callable[[IndexPatch], None]] = None,
    ) -> Outcome[T]:
        start = time.monotonic()
        self.snapshot = self._store.get()
        next_index, self.patch = apply(self.snapshot)
        self._store.set(next_index)
        if on_applied is not None:
            on_applied(self.patch)

        try:
            value = await commit()
        except asyncio.CancelledError:
            self._rollback(on_rollback)
            raise
        except Exception as e:
            error = as_notetree_error(e, self.operation)
            self._rollback(on_rollback)
            logger.warning(
                f"{self.operation} {self.entity_kind} {self.entity_id} failed, rolled back: {error.message}"
            )
            self._log(start, success=False, rolled_back=True, error=error.message)
            return Outcome.failure(error)

        self._log(start, success=True)
        return Outcome.success(value)

    def _rollback(self, on_rollback: Optional[Callable[[], None]]) -> None:
        if not self.patch.is_empty:
            self._store.update(lambda current: revert_patch(current, self.patch))
        if on_rollback is not None:
            on_rollback()

    def _log(self, start: float, success: bool, rolled_back: bool = False, error: Optional[str] = None) -> None:
        if self._log_queue is None:
            return
        self._log_queue.push(
            log_mutation(
                entity_kind=self.entity_kind,
                operation=self.operation,
                entity_id=self.entity_id,
                success=success,
                duration_ms=(time.monotonic() - start) * 1000,
                rolled_back=rolled_back,
                error=error,
            )
        )
