"""
notetree Document Explorer: optimistic cache and mutator for the document tree.

Handles:
- Index loading with abortable fetches (a newer load cancels a stale one)
- Create / delete / rename / move of documents and folders, applied to the
  cache first and rolled back on failure
- Cascade delete of folders with batch rollback
- Navigation fallback when the displayed document disappears, and restore
  on rollback
- Open-folder state for the rendered tree
- Silent reconciliation with the server after every successful mutation

Every public coroutine resolves to an Outcome; collaborator failures never
escape. Create/delete/rename/move are serialized by a pending-action gate.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from notetree.documents.backend import DocumentBackend
from notetree.documents.models import Document, DocumentIndex, EntityKind, Folder, TreeNode
from notetree.documents.paths import (
    basename,
    folder_node_id,
    is_within,
    join_path,
    parent_path,
    rebase_path,
    sanitize_filename,
    split_segments,
)
from notetree.documents.tree import build_tree, find_parent_folder_ids
from notetree.engine.config import NoteTreeConfig, get_config
from notetree.engine.errors import NoteTreeValidationError
from notetree.engine.logging import AsyncLogQueue, get_log_queue, log_mutation, log_sort_order_update, log_sync_event
from notetree.sync.navigation import Navigator
from notetree.sync.notices import NoticeBoard
from notetree.sync.ordering import append_sort_order
from notetree.sync.store import IndexStore
from notetree.sync.transaction import (
    IndexPatch,
    OptimisticTransaction,
    Outcome,
    as_notetree_error,
    insert_record,
    remove_where,
    replace_records,
)

logger = logging.getLogger("notetree.sync.explorer")

DEFAULT_DOCUMENT_TITLE = "untitled"
DEFAULT_FOLDER_NAME = "untitled-folder"


def trailing_sort_order(index: DocumentIndex, container: str, spacing: int, exclude_id: Optional[str] = None) -> int:
    """Provisional key placing a new record after every sibling in ``container``."""
    orders = [d.sort_order for d in index.documents if parent_path(d.path) == container and d.id != exclude_id]
    orders += [f.sort_order for f in index.folders if parent_path(f.path) == container and f.id != exclude_id]
    return append_sort_order(orders, spacing)


class DocumentExplorer:
    """
    Client-side mirror of the document store plus every mutation on it.

    Collaborators are injected: the persistence backend, the store, the
    navigator and the notice board. Defaults are created when omitted; the
    audit log queue defaults to the one started by ``init_logging``.
    """

    def __init__(
        self,
        backend: DocumentBackend,
        store: Optional[IndexStore] = None,
        navigator: Optional[Navigator] = None,
        notices: Optional[NoticeBoard] = None,
        config: Optional[NoteTreeConfig] = None,
        log_queue: Optional[AsyncLogQueue] = None,
    ):
        self._backend = backend
        self.store = store or IndexStore()
        self.navigator = navigator or Navigator()
        self.notices = notices or NoticeBoard()
        self.config = config or get_config()
        self._log_queue = log_queue if log_queue is not None else get_log_queue()

        self._open_folders: Set[str] = set()
        self._pending_action: Optional[str] = None
        self._load_task: Optional[asyncio.Task] = None
        self.is_loading = False
        self.load_error: Optional[str] = None

        self._tree: List[TreeNode] = build_tree(self.store.get().documents, self.store.get().folders)
        self._unsubscribe = self.store.subscribe(self._on_store_change)

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------

    def _on_store_change(self, index: DocumentIndex) -> None:
        self._tree = build_tree(index.documents, index.folders)

    @property
    def backend(self) -> DocumentBackend:
        return self._backend

    @property
    def tree(self) -> List[TreeNode]:
        return self._tree

    @property
    def log_queue(self) -> Optional[AsyncLogQueue]:
        return self._log_queue

    @property
    def spacing(self) -> int:
        return self.config.ordering.spacing

    @property
    def is_action_pending(self) -> bool:
        return self._pending_action is not None

    @property
    def pending_action(self) -> Optional[str]:
        """Name of the create/delete/rename/move currently holding the gate."""
        return self._pending_action

    @property
    def selected_id(self) -> Optional[str]:
        return self.navigator.selected_id

    @property
    def open_folders(self) -> Set[str]:
        """Explicitly opened folders plus every ancestor of the displayed document."""
        opened = set(self._open_folders)
        if self.selected_id:
            opened.update(find_parent_folder_ids(self._tree, self.selected_id) or [])
        return opened

    def toggle_folder(self, node_id: str) -> None:
        if node_id in self._open_folders:
            self._open_folders.discard(node_id)
        else:
            self._open_folders.add(node_id)

    def open_folder_path(self, folder_path: Optional[str]) -> None:
        segments = split_segments(folder_path)
        for depth in range(1, len(segments) + 1):
            self._open_folders.add(folder_node_id("/".join(segments[:depth])))

    def close_folder_path(self, folder_path: str) -> None:
        target = folder_node_id(folder_path)
        self._open_folders = {
            node_id for node_id in self._open_folders
            if node_id != target and not node_id.startswith(f"{target}/")
        }

    def _rebase_open_folders(self, old_path: str, new_path: str) -> None:
        old_id, new_id = folder_node_id(old_path), folder_node_id(new_path)
        self._open_folders = {rebase_path(node_id, old_id, new_id) for node_id in self._open_folders}

    # -------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------

    async def load_index(self, silent: bool = False) -> Outcome[DocumentIndex]:
        """
        Fetch the authoritative index into the store.

        A newer load cancels any load still in flight; the superseded call
        resolves to a skipped Outcome. Silent loads never touch
        ``is_loading`` / ``load_error``.
        """
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()

        task = asyncio.ensure_future(self._backend.fetch_index())
        self._load_task = task
        if not silent:
            self.is_loading = True

        try:
            index = await task
        except asyncio.CancelledError:
            if task.cancelled() and self._load_task is not task:
                logger.debug("Index load superseded by a newer request")
                return Outcome.skip("superseded")
            raise
        except Exception as e:
            error = as_notetree_error(e, "fetch_index")
            logger.warning(f"Index load failed: {error.message}")
            self._push(log_sync_event("index_load_failed", level="ERROR", silent=silent, error=error.message))
            if not silent and self._load_task is task:
                self.load_error = error.message
            return Outcome.failure(error)
        finally:
            if self._load_task is task:
                self._load_task = None
                self.is_loading = False

        if self._load_task is not None:
            # A newer load started after this one completed; let it win.
            return Outcome.skip("superseded")

        self.store.set(index)
        if not silent:
            self.load_error = None
        self._push(
            log_sync_event(
                "index_loaded",
                silent=silent,
                documents=len(index.documents),
                folders=len(index.folders),
            )
        )
        return Outcome.success(index)

    async def refresh(self) -> Outcome[DocumentIndex]:
        """Silent reconciliation: no loading state, no error banner."""
        return await self.load_index(silent=True)

    async def reload(self) -> Outcome[DocumentIndex]:
        """Full visible reload, used when local state is too ambiguous to patch."""
        return await self.load_index(silent=False)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    def _push(self, entry) -> None:
        if self._log_queue is not None:
            self._log_queue.push(entry)

    def _invalid(self, message: str, operation: str, field: str) -> Outcome[Any]:
        error = NoteTreeValidationError(message, operation=operation, field=field)
        logger.info(f"{operation} rejected: {message}")
        self.notices.error(message)
        return Outcome.failure(error)

    async def _gated(self, action: str, run: Callable[[], Awaitable[Outcome[Any]]]) -> Outcome[Any]:
        if self._pending_action is not None:
            logger.debug(f"Ignoring {action}: {self._pending_action} still pending")
            return Outcome.skip(f"{self._pending_action} in progress")
        self._pending_action = action
        try:
            return await run()
        finally:
            self._pending_action = None

    def _transaction(self, operation: str, kind: EntityKind, entity_id: str) -> OptimisticTransaction:
        return OptimisticTransaction(self.store, operation, kind, entity_id, log_queue=self._log_queue)

    def _fallback_navigation(self, removed_document_ids: Set[str]) -> Optional[str]:
        """Leave the displayed document if it was removed; returns the id to restore on rollback."""
        selected = self.navigator.selected_id
        if selected and selected in removed_document_ids:
            self.navigator.replace(None)
            return selected
        return None

    # -------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------

    async def create_document(
        self, title: Optional[str] = None, folder_path: Optional[str] = None
    ) -> Outcome[Document]:
        if title is not None and not title.strip():
            return self._invalid("Title must not be empty", "create_document", "title")
        clean_title = title.strip() if title else DEFAULT_DOCUMENT_TITLE
        return await self._gated("create_document", lambda: self._create_document(clean_title, folder_path))

    async def _create_document(self, title: str, folder_path: Optional[str]) -> Outcome[Document]:
        start = time.monotonic()
        try:
            document = await self._backend.create_document(title, folder_path or None)
        except Exception as e:
            error = as_notetree_error(e, "create_document")
            self.notices.error(error.message or "Unable to create document")
            self._push(log_mutation("document", "create", title, False, (time.monotonic() - start) * 1000, error=error.message))
            return Outcome.failure(error)

        container = parent_path(document.path)
        self.store.update(
            lambda index: insert_record(
                index,
                "document",
                document.model_copy(
                    update={"sort_order": trailing_sort_order(index, container, self.spacing, exclude_id=document.id)}
                ),
            )[0]
        )
        self._push(log_mutation("document", "create", document.id, True, (time.monotonic() - start) * 1000))
        self.open_folder_path(container)
        self.navigator.push(document.id)
        self.notices.success(f"Created {document.title or document.id}")
        await self.refresh()
        return Outcome.success(document)

    async def create_folder(
        self, parent: Optional[str] = None, name: str = DEFAULT_FOLDER_NAME
    ) -> Outcome[Folder]:
        segment = sanitize_filename(name)
        if not segment:
            return self._invalid("Folder name must contain alphanumeric characters", "create_folder", "name")
        target = join_path(parent, segment)
        return await self._gated("create_folder", lambda: self._create_folder(target))

    async def _create_folder(self, target: str) -> Outcome[Folder]:
        start = time.monotonic()
        try:
            folder = await self._backend.create_folder(target)
        except Exception as e:
            error = as_notetree_error(e, "create_folder")
            self.notices.error(error.message or "Unable to create folder")
            self._push(log_mutation("folder", "create", target, False, (time.monotonic() - start) * 1000, error=error.message))
            return Outcome.failure(error)

        container = parent_path(folder.path)
        self.store.update(
            lambda index: insert_record(
                index,
                "folder",
                folder.model_copy(
                    update={"sort_order": trailing_sort_order(index, container, self.spacing, exclude_id=folder.id)}
                ),
            )[0]
        )
        self._push(log_mutation("folder", "create", folder.id, True, (time.monotonic() - start) * 1000))
        self.open_folder_path(folder.path)
        self.notices.success(f'Created folder "{folder.name}"')
        await self.refresh()
        return Outcome.success(folder)

    # -------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------

    async def delete_document(self, document_id: str) -> Outcome[None]:
        if not document_id:
            return self._invalid("Document id must not be empty", "delete_document", "document_id")
        return await self._gated("delete_document", lambda: self._delete_document(document_id))

    async def _delete_document(self, document_id: str) -> Outcome[None]:
        restore_id: Optional[str] = None

        def apply(index: DocumentIndex):
            return remove_where(index, "document", lambda d: d.id == document_id)

        def on_applied(patch: IndexPatch) -> None:
            nonlocal restore_id
            restore_id = self._fallback_navigation({r.id for r in patch.removed_records("document")})

        def on_rollback() -> None:
            if restore_id:
                self.navigator.replace(restore_id)

        outcome = await self._transaction("delete", "document", document_id).run(
            apply,
            lambda: self._backend.delete_document(document_id),
            on_rollback=on_rollback,
            on_applied=on_applied,
        )
        if not outcome.ok:
            self.notices.error(outcome.reason or "Unable to delete document")
            return outcome
        await self.refresh()
        return outcome

    async def delete_folder(self, folder_path: str) -> Outcome[None]:
        if not folder_path or not split_segments(folder_path):
            return self._invalid("Folder path must not be empty", "delete_folder", "folder_path")
        return await self._gated("delete_folder", lambda: self._delete_folder(folder_path.strip("/")))

    async def _delete_folder(self, folder_path: str) -> Outcome[None]:
        restore_id: Optional[str] = None

        def apply(index: DocumentIndex):
            index, folders_patch = remove_where(index, "folder", lambda f: is_within(f.path, folder_path))
            index, documents_patch = remove_where(index, "document", lambda d: is_within(d.path, folder_path))
            return index, folders_patch.merge(documents_patch)

        def on_applied(patch: IndexPatch) -> None:
            nonlocal restore_id
            restore_id = self._fallback_navigation({r.id for r in patch.removed_records("document")})

        def on_rollback() -> None:
            if restore_id:
                self.navigator.replace(restore_id)

        outcome = await self._transaction("delete", "folder", folder_path).run(
            apply,
            lambda: self._backend.delete_folder(folder_path),
            on_rollback=on_rollback,
            on_applied=on_applied,
        )
        if not outcome.ok:
            self.notices.error(outcome.reason or "Unable to delete folder")
            return outcome
        await self.refresh()
        self.close_folder_path(folder_path)
        return outcome

    # -------------------------------------------------------------------
    # Rename
    # -------------------------------------------------------------------

    async def rename_document(self, document_id: str, title: str) -> Outcome[Document]:
        clean_title = (title or "").strip()
        if not clean_title:
            return self._invalid("Title must not be empty", "rename_document", "title")
        current = self.store.get().find_document(document_id)
        if current is not None and current.title == clean_title:
            return Outcome.skip("unchanged")
        return await self._gated("rename_document", lambda: self._rename_document(document_id, clean_title))

    async def _rename_document(self, document_id: str, title: str) -> Outcome[Document]:
        outcome = await self._transaction("rename", "document", document_id).run(
            lambda index: replace_records(index, "document", {document_id: {"title": title}}),
            lambda: self._backend.rename_document(document_id, title),
        )
        if not outcome.ok:
            self.notices.error(outcome.reason or "Unable to rename")
            return outcome

        renamed = outcome.value
        if renamed is not None:
            self.store.update(
                lambda index: replace_records(
                    index, "document", {document_id: {"title": renamed.title, "path": renamed.path}}
                )[0]
            )
        if self.navigator.selected_id == document_id:
            self.navigator.replace(document_id)
        label = renamed.title if renamed is not None and renamed.title else title
        self.notices.success(f'Renamed document to "{label}"')
        await self.refresh()
        return outcome

    async def rename_folder(self, folder_path: str, new_name: str) -> Outcome[None]:
        folder_path = (folder_path or "").strip("/")
        name = sanitize_filename(new_name)
        if not folder_path:
            return self._invalid("Folder path must not be empty", "rename_folder", "folder_path")
        if not name:
            return self._invalid("Folder name must contain alphanumeric characters", "rename_folder", "new_name")
        if basename(folder_path) == name:
            return Outcome.skip("unchanged")
        new_path = join_path(parent_path(folder_path), name)
        return await self._gated(
            "rename_folder", lambda: self._rename_folder(folder_path, new_path, new_name.strip())
        )

    async def _rename_folder(self, folder_path: str, new_path: str, new_name: str) -> Outcome[None]:
        def apply(index: DocumentIndex):
            folder_changes: Dict[str, Dict[str, Any]] = {
                f.id: {"path": rebase_path(f.path, folder_path, new_path)}
                for f in index.folders if is_within(f.path, folder_path)
            }
            document_changes: Dict[str, Dict[str, Any]] = {
                d.id: {"path": rebase_path(d.path, folder_path, new_path)}
                for d in index.documents if is_within(d.path, folder_path)
            }
            index, folders_patch = replace_records(index, "folder", folder_changes)
            index, documents_patch = replace_records(index, "document", document_changes)
            return index, folders_patch.merge(documents_patch)

        outcome = await self._transaction("rename", "folder", folder_path).run(
            apply,
            lambda: self._backend.rename_folder(folder_path, new_name),
        )
        if not outcome.ok:
            self.notices.error(outcome.reason or "Unable to rename")
            return outcome
        self._rebase_open_folders(folder_path, new_path)
        self.notices.success(f'Renamed folder to "{basename(new_path)}"')
        await self.refresh()
        return outcome

    # -------------------------------------------------------------------
    # Move & ordering
    # -------------------------------------------------------------------

    async def move_document(
        self,
        document_id: str,
        target_folder_path: Optional[str] = None,
        sort_order: Optional[int] = None,
        label: Optional[str] = None,
    ) -> Outcome[Document]:
        if not document_id:
            return self._invalid("Document id must not be empty", "move_document", "document_id")
        return await self._gated(
            "move_document",
            lambda: self._move_document(document_id, target_folder_path or "", sort_order, label),
        )

    async def _move_document(
        self,
        document_id: str,
        target: str,
        sort_order: Optional[int],
        label: Optional[str],
    ) -> Outcome[Document]:
        def apply(index: DocumentIndex):
            document = index.find_document(document_id)
            if document is None:
                return index, IndexPatch()
            update: Dict[str, Any] = {"path": join_path(target, basename(document.path))}
            if sort_order is not None:
                update["sort_order"] = sort_order
            return replace_records(index, "document", {document_id: update})

        outcome = await self._transaction("move", "document", document_id).run(
            apply,
            lambda: self._backend.move_document(document_id, target or None, sort_order),
        )
        if not outcome.ok:
            self.notices.error(outcome.reason or "Unable to move document")
            # Sibling reindexing may already have landed; only the server knows the result.
            await self.reload()
            return outcome

        moved = outcome.value
        if moved is not None:
            self.store.update(
                lambda index: replace_records(
                    index,
                    "document",
                    {document_id: {"path": moved.path, "sort_order": moved.sort_order, "title": moved.title}},
                )[0]
            )
            self.open_folder_path(parent_path(moved.path))
        else:
            self.open_folder_path(target)
        doc_label = (moved.title if moved is not None and moved.title else None) or label or "Document"
        self.notices.success(f'Moved "{doc_label}"')
        await self.refresh()
        return outcome

    async def update_sort_order(self, entity_id: str, kind: EntityKind, sort_order: int) -> Outcome[None]:
        """
        Persist one sibling key. Failures are logged and noticed but never
        rolled back or raised: a stale cosmetic order is reconciled by the
        next refresh.
        """
        try:
            await self._backend.update_sort_order(entity_id, kind, sort_order)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = as_notetree_error(e, "update_sort_order")
            logger.error(f"Failed to update sort order for {kind} {entity_id}: {error.message}")
            self.notices.error(error.message or "Failed to save order")
            self._push(log_sort_order_update(kind, entity_id, sort_order, False, error=error.message))
            return Outcome.failure(error)
        self._push(log_sort_order_update(kind, entity_id, sort_order, True))
        return Outcome.success()

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------

    def close(self) -> None:
        """Detach from the store and cancel any in-flight load."""
        self._unsubscribe()
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = None


__all__ = [
    "DEFAULT_DOCUMENT_TITLE",
    "DEFAULT_FOLDER_NAME",
    "DocumentExplorer",
    "trailing_sort_order",
]
