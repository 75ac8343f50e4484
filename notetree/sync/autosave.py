"""
notetree Autosave: debounced persistence of a document body.

State machine per open document:

    idle ──edit──▶ dirty ──timer──▶ saving ──ok──▶ saved
                     ▲                 │
                     └──── error ◀─────┘ (failed)

At most one save is in flight. Edits made while saving are kept and, once
the save settles, put the session back to dirty with a fresh timer.

A failed save does not retry on its own. The session rests in dirty with
``has_unsaved_changes`` true and no timer pending, so nothing is written
until the next ``change``, ``flush()`` or ``unmount()``.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from notetree.documents.backend import DocumentBackend
from notetree.engine.config import get_config
from notetree.engine.logging import AsyncLogQueue, get_log_queue, log_autosave_event
from notetree.sync.notices import NoticeBoard
from notetree.sync.transaction import as_notetree_error

logger = logging.getLogger("notetree.sync.autosave")


class AutosaveState(str, Enum):
    IDLE = "idle"
    DIRTY = "dirty"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


StateListener = Callable[[AutosaveState, AutosaveState], None]


class AutosaveSession:
    """
    Debounced writer for one document's content.

    After a failed save the session is dirty with no pending write: callers
    that must not lose the edit call ``flush()`` or wait for the next edit.
    """

    def __init__(
        self,
        backend: DocumentBackend,
        document_id: str,
        initial_content: str = "",
        debounce_ms: Optional[int] = None,
        notices: Optional[NoticeBoard] = None,
        log_queue: Optional[AsyncLogQueue] = None,
    ):
        self._backend = backend
        self.document_id = document_id
        self.debounce_ms = debounce_ms if debounce_ms is not None else get_config().autosave.debounce_ms
        self.notices = notices
        self._log_queue = log_queue if log_queue is not None else get_log_queue()

        self._content = initial_content
        self._saved_content = initial_content
        self._has_saved = False
        self._state = AutosaveState.IDLE
        self._timer: Optional[asyncio.Task] = None
        self._save_task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []
        self._unmounted = False
        self.last_error: Optional[str] = None

    # -------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------

    @property
    def state(self) -> AutosaveState:
        return self._state

    @property
    def content(self) -> str:
        return self._content

    @property
    def saved_content(self) -> str:
        return self._saved_content

    @property
    def has_unsaved_changes(self) -> bool:
        return self._content != self._saved_content

    @property
    def is_saving(self) -> bool:
        return self._save_task is not None and not self._save_task.done()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """``listener(previous, current)`` is called on every transition."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _transition(self, state: AutosaveState, error: Optional[str] = None) -> None:
        previous, self._state = self._state, state
        if previous == state:
            return
        logger.debug(f"Autosave {self.document_id}: {previous.value} -> {state.value}")
        if self._log_queue is not None:
            self._log_queue.push(
                log_autosave_event(
                    self.document_id,
                    previous.value,
                    state.value,
                    content_length=len(self._content),
                    error=error,
                )
            )
        for listener in list(self._listeners):
            listener(previous, state)

    # -------------------------------------------------------------------
    # Editing
    # -------------------------------------------------------------------

    def change(self, content: str) -> None:
        """Record an edit and (re)start the debounce timer."""
        if self._unmounted:
            logger.warning(f"Ignoring edit to {self.document_id} after unmount")
            return
        self._content = content

        if content == self._saved_content:
            self._cancel_timer()
            if not self.is_saving:
                self._transition(AutosaveState.SAVED if self._has_saved else AutosaveState.IDLE)
            return

        if self.is_saving:
            # Picked up when the running save settles.
            return
        self._transition(AutosaveState.DIRTY)
        self._schedule()

    def _schedule(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.ensure_future(self._debounce())

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _debounce(self) -> None:
        await asyncio.sleep(self.debounce_ms / 1000)
        self._timer = None
        self._start_save()

    def _start_save(self) -> Optional[asyncio.Task]:
        if self.is_saving:
            return self._save_task
        if not self.has_unsaved_changes:
            return None
        self._save_task = asyncio.ensure_future(self._save(self._content))
        return self._save_task

    async def _save(self, content: str) -> bool:
        self._transition(AutosaveState.SAVING)
        try:
            await self._backend.save_content(self.document_id, content)
        except asyncio.CancelledError:
            self._transition(AutosaveState.DIRTY)
            raise
        except Exception as e:
            error = as_notetree_error(e, "save_content")
            self.last_error = error.message
            logger.warning(f"Autosave of {self.document_id} failed: {error.message}")
            if self.notices is not None:
                self.notices.error(error.message or "Failed to save document")
            self._transition(AutosaveState.ERROR, error=error.message)
            self._transition(AutosaveState.DIRTY)
            return False

        self._saved_content = content
        self._has_saved = True
        self.last_error = None
        self._transition(AutosaveState.SAVED)
        if self.has_unsaved_changes and not self._unmounted:
            self._transition(AutosaveState.DIRTY)
            self._schedule()
        return True

    async def flush(self) -> bool:
        """Save pending content now instead of waiting for the timer."""
        self._cancel_timer()
        if self.is_saving:
            await self._save_task
            self._cancel_timer()
        task = self._start_save()
        if task is None:
            return True
        return await task

    # -------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------

    async def unmount(self) -> bool:
        """
        Stop autosaving. Waits for a running save, then writes any content
        still unsaved exactly once. Failures are logged, never surfaced.
        """
        self._unmounted = True
        self._cancel_timer()
        if self.is_saving:
            await self._save_task

        if not self.has_unsaved_changes:
            return True

        content = self._content
        try:
            await self._backend.save_content(self.document_id, content)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = as_notetree_error(e, "save_content")
            logger.warning(f"Final save of {self.document_id} on unmount failed: {error.message}")
            if self._log_queue is not None:
                self._log_queue.push(
                    log_autosave_event(
                        self.document_id,
                        self._state.value,
                        "unmounted",
                        content_length=len(content),
                        error=error.message,
                    )
                )
            return False

        self._saved_content = content
        self._has_saved = True
        self._transition(AutosaveState.SAVED)
        return True
