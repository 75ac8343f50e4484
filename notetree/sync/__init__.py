"""notetree Sync — optimistic cache, reorder/move engine and autosave."""

from notetree.sync.autosave import AutosaveSession, AutosaveState  # noqa: F401
from notetree.sync.explorer import DocumentExplorer  # noqa: F401
from notetree.sync.navigation import Navigator  # noqa: F401
from notetree.sync.notices import Notice, NoticeBoard  # noqa: F401
from notetree.sync.reorder import DragEndEvent, DragItem, DropTarget, ReorderEngine, ReorderResult  # noqa: F401
from notetree.sync.store import IndexStore  # noqa: F401
from notetree.sync.transaction import OptimisticTransaction, Outcome  # noqa: F401

__all__ = [
    "AutosaveSession",
    "AutosaveState",
    "DocumentExplorer",
    "DragEndEvent",
    "DragItem",
    "DropTarget",
    "IndexStore",
    "Navigator",
    "Notice",
    "NoticeBoard",
    "OptimisticTransaction",
    "Outcome",
    "ReorderEngine",
    "ReorderResult",
]
