"""
IndexStore: the client-held mirror of the flat document store.

One instance per explorer session, injected rather than global. Every change
goes through ``set``/``update``, bumps ``version`` and notifies subscribers
synchronously so the tree can be re-derived immediately.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from notetree.documents.models import DocumentIndex

logger = logging.getLogger("notetree.sync.store")

Listener = Callable[[DocumentIndex], None]
Updater = Callable[[DocumentIndex], DocumentIndex]


class IndexStore:
    """Single shared snapshot with get/set/update/subscribe."""

    def __init__(self, initial: Optional[DocumentIndex] = None):
        self._index = initial or DocumentIndex()
        self._listeners: List[Listener] = []
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    def get(self) -> DocumentIndex:
        return self._index

    def set(self, index: DocumentIndex) -> None:
        if index is self._index:
            return
        self._index = index
        self._version += 1
        for listener in list(self._listeners):
            try:
                listener(index)
            except Exception as e:
                logger.error(f"Store listener {listener!r} failed: {e}")

    def update(self, updater: Updater) -> DocumentIndex:
        """Apply ``updater`` to the current snapshot. Returning the same object is a no-op."""
        self.set(updater(self._index))
        return self._index

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
