"""
In-process DocumentBackend with the same rules as the markdown server.

Handles:
- Sanitized titles and folder names, unique ``-N`` suffixes on collision
- Parent-folder existence checks on create and move
- Cascade delete of folders, idempotent delete of documents
- Folder rename rewriting every descendant path
- Server-side trailing sort order for new records

Also records every call and supports fault injection, which makes it the
collaborator of choice for exercising rollback paths.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple

from notetree.documents.backend import DocumentBackend
from notetree.documents.models import Document, DocumentIndex, EntityKind, Folder
from notetree.documents.paths import (
    basename,
    ensure_markdown_extension,
    is_within,
    join_path,
    parent_path,
    rebase_path,
    sanitize_filename,
    sanitize_folder_path,
    sanitize_folder_segments,
    strip_markdown_extension,
)
from notetree.engine.errors import (
    NoteTreeConflictError,
    NoteTreeError,
    NoteTreeNotFoundError,
    NoteTreeServerError,
)

logger = logging.getLogger("notetree.documents.memory")

MAX_SUFFIX_ATTEMPTS = 1000


class InMemoryDocumentBackend(DocumentBackend):
    """DocumentBackend holding records in process memory."""

    def __init__(
        self,
        documents: Optional[List[Document]] = None,
        folders: Optional[List[Folder]] = None,
        latency: float = 0.0,
    ):
        self._documents: Dict[str, Document] = {d.id: d for d in documents or []}
        self._folders: Dict[str, Folder] = {f.id: f for f in folders or []}
        self._content: Dict[str, str] = {}
        self.latency = latency
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self._faults: Dict[str, Deque[NoteTreeError]] = defaultdict(deque)

    # -------------------------------------------------------------------
    # Test / inspection hooks
    # -------------------------------------------------------------------

    def fail_next(self, operation: str, error: Optional[NoteTreeError] = None, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        for _ in range(times):
            self._faults[operation].append(
                error or NoteTreeServerError(f"{operation} failed", operation=operation, status_code=500)
            )

    def call_count(self, operation: str) -> int:
        return sum(1 for name, _ in self.calls if name == operation)

    def calls_of(self, operation: str) -> List[Dict[str, Any]]:
        return [args for name, args in self.calls if name == operation]

    def content_of(self, document_id: str) -> Optional[str]:
        return self._content.get(document_id)

    def snapshot(self) -> DocumentIndex:
        return DocumentIndex(
            documents=sorted(self._documents.values(), key=lambda d: d.path),
            folders=sorted(self._folders.values(), key=lambda f: f.path),
        )

    async def _enter(self, operation: str, **args: Any) -> None:
        self.calls.append((operation, args))
        if self.latency:
            await asyncio.sleep(self.latency)
        faults = self._faults.get(operation)
        if faults:
            raise faults.popleft()

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _folder_by_path(self, path: str) -> Optional[Folder]:
        return next((f for f in self._folders.values() if f.path == path), None)

    def _document_by_path(self, path: str) -> Optional[Document]:
        return next((d for d in self._documents.values() if d.path == path), None)

    def _get_document(self, document_id: str, operation: str) -> Document:
        document = self._documents.get(document_id)
        if document is None:
            raise NoteTreeNotFoundError(
                "Document not found", operation=operation, entity_kind="document", entity_id=document_id
            )
        return document

    def _require_folder(self, folder_path: str, operation: str, message: str) -> None:
        if folder_path and self._folder_by_path(folder_path) is None:
            raise NoteTreeNotFoundError(message, operation=operation, entity_kind="folder", entity_id=folder_path)

    def _next_sort_order(self, container: str) -> int:
        orders = [d.sort_order for d in self._documents.values() if parent_path(d.path) == container]
        orders += [f.sort_order for f in self._folders.values() if parent_path(f.path) == container]
        return max(orders) + 1000 if orders else 0

    def _available_document_path(self, base: str, folder_path: str, exclude_id: Optional[str] = None) -> str:
        for attempt in range(MAX_SUFFIX_ATTEMPTS):
            suffix = "" if attempt == 0 else f"-{attempt}"
            candidate = join_path(folder_path, ensure_markdown_extension(f"{base}{suffix}"))
            existing = self._document_by_path(candidate)
            if existing is None or existing.id == exclude_id:
                return candidate
        raise NoteTreeServerError("Unable to create a unique filename", status_code=500)

    # -------------------------------------------------------------------
    # DocumentBackend
    # -------------------------------------------------------------------

    async def fetch_index(self) -> DocumentIndex:
        await self._enter("fetch_index")
        return self.snapshot()

    async def create_document(self, title: str, folder_path: Optional[str] = None) -> Document:
        await self._enter("create_document", title=title, folder_path=folder_path)
        clean_title = (title or "").strip()
        base = sanitize_filename(clean_title)
        if not base:
            raise NoteTreeServerError(
                "Title must contain alphanumeric characters", operation="create_document", status_code=422
            )
        folder = ""
        if folder_path:
            folder = sanitize_folder_path(folder_path)
            if not folder:
                raise NoteTreeServerError("Invalid folder path", operation="create_document", status_code=422)
            self._require_folder(folder, "create_document", "Folder does not exist")

        now = self._now()
        document = Document(
            id=str(uuid.uuid4()),
            title=clean_title,
            path=self._available_document_path(base, folder),
            sort_order=self._next_sort_order(folder),
            created_at=now,
            updated_at=now,
        )
        self._documents[document.id] = document
        self._content[document.id] = ""
        logger.info(f"Created document {document.id} at {document.path}")
        return document

    async def create_folder(self, path: str) -> Folder:
        await self._enter("create_folder", path=path)
        segments = sanitize_folder_segments(path)
        if not segments:
            raise NoteTreeServerError(
                "Folder name must contain alphanumeric characters", operation="create_folder", status_code=422
            )
        parent = "/".join(segments[:-1])
        self._require_folder(parent, "create_folder", "Parent folder does not exist")

        folder_path = ""
        for attempt in range(MAX_SUFFIX_ATTEMPTS):
            suffix = "" if attempt == 0 else f"-{attempt}"
            candidate = join_path(parent, f"{segments[-1]}{suffix}")
            if self._folder_by_path(candidate) is None:
                folder_path = candidate
                break
        if not folder_path:
            raise NoteTreeServerError("Unable to create a unique folder name", status_code=500)

        now = self._now()
        folder = Folder(
            id=str(uuid.uuid4()),
            path=folder_path,
            sort_order=self._next_sort_order(parent),
            created_at=now,
            updated_at=now,
        )
        self._folders[folder.id] = folder
        logger.info(f"Created folder {folder.id} at {folder.path}")
        return folder

    async def delete_document(self, document_id: str) -> None:
        await self._enter("delete_document", document_id=document_id)
        self._documents.pop(document_id, None)
        self._content.pop(document_id, None)

    async def delete_folder(self, path: str) -> None:
        await self._enter("delete_folder", path=path)
        folder_path = sanitize_folder_path(path)
        if not folder_path:
            raise NoteTreeServerError("Invalid folder path", operation="delete_folder", status_code=422)
        if self._folder_by_path(folder_path) is None:
            raise NoteTreeNotFoundError(
                "Folder not found", operation="delete_folder", entity_kind="folder", entity_id=folder_path
            )
        for document_id in [d.id for d in self._documents.values() if is_within(d.path, folder_path)]:
            del self._documents[document_id]
            self._content.pop(document_id, None)
        for folder_id in [f.id for f in self._folders.values() if is_within(f.path, folder_path)]:
            del self._folders[folder_id]
        logger.info(f"Deleted folder {folder_path} and its descendants")

    async def move_document(
        self,
        document_id: str,
        target_folder_path: Optional[str] = None,
        sort_order: Optional[int] = None,
    ) -> Document:
        await self._enter(
            "move_document",
            document_id=document_id,
            target_folder_path=target_folder_path,
            sort_order=sort_order,
        )
        document = self._get_document(document_id, "move_document")
        target = sanitize_folder_path(target_folder_path)
        self._require_folder(target, "move_document", "Target folder does not exist")

        base = sanitize_filename(strip_markdown_extension(basename(document.path)))
        new_path = document.path
        if parent_path(document.path) != target:
            new_path = self._available_document_path(base, target, exclude_id=document.id)

        updates: Dict[str, Any] = {"path": new_path, "updated_at": self._now()}
        if sort_order is not None:
            updates["sort_order"] = sort_order
        moved = document.model_copy(update=updates)
        self._documents[document_id] = moved
        return moved

    async def update_sort_order(self, entity_id: str, kind: EntityKind, sort_order: int) -> None:
        await self._enter("update_sort_order", entity_id=entity_id, kind=kind, sort_order=sort_order)
        records: Dict[str, Any] = self._documents if kind == "document" else self._folders
        record = records.get(entity_id)
        if record is None:
            raise NoteTreeNotFoundError(
                f"{kind.capitalize()} not found", operation="update_sort_order", entity_kind=kind, entity_id=entity_id
            )
        records[entity_id] = record.model_copy(update={"sort_order": sort_order, "updated_at": self._now()})

    async def rename_document(self, document_id: str, title: str) -> Document:
        await self._enter("rename_document", document_id=document_id, title=title)
        clean_title = (title or "").strip()
        base = sanitize_filename(clean_title)
        if not base:
            raise NoteTreeServerError(
                "Title must contain alphanumeric characters", operation="rename_document", status_code=422
            )
        document = self._get_document(document_id, "rename_document")
        new_path = join_path(parent_path(document.path), ensure_markdown_extension(base))
        if new_path != document.path:
            conflict = self._document_by_path(new_path)
            if conflict is not None and conflict.id != document_id:
                raise NoteTreeConflictError(
                    "A document with that title already exists", operation="rename_document", entity_id=document_id
                )
        renamed = document.model_copy(update={"title": clean_title, "path": new_path, "updated_at": self._now()})
        self._documents[document_id] = renamed
        return renamed

    async def rename_folder(self, path: str, new_name: str) -> None:
        await self._enter("rename_folder", path=path, new_name=new_name)
        folder_path = sanitize_folder_path(path)
        name = sanitize_filename(new_name)
        if not folder_path or not name:
            raise NoteTreeServerError(
                "Folder name must contain alphanumeric characters", operation="rename_folder", status_code=422
            )
        if self._folder_by_path(folder_path) is None:
            raise NoteTreeNotFoundError(
                "Folder not found", operation="rename_folder", entity_kind="folder", entity_id=folder_path
            )
        new_path = join_path(parent_path(folder_path), name)
        if new_path == folder_path:
            return
        if self._folder_by_path(new_path) is not None:
            raise NoteTreeConflictError(
                "A folder with that name already exists", operation="rename_folder", entity_id=folder_path
            )
        now = self._now()
        for folder_id, folder in list(self._folders.items()):
            if is_within(folder.path, folder_path):
                self._folders[folder_id] = folder.model_copy(
                    update={"path": rebase_path(folder.path, folder_path, new_path), "updated_at": now}
                )
        for document_id, document in list(self._documents.items()):
            if is_within(document.path, folder_path):
                self._documents[document_id] = document.model_copy(
                    update={"path": rebase_path(document.path, folder_path, new_path), "updated_at": now}
                )

    async def save_content(self, document_id: str, content: str) -> None:
        await self._enter("save_content", document_id=document_id, content=content)
        document = self._get_document(document_id, "save_content")
        self._content[document_id] = content
        self._documents[document_id] = document.model_copy(update={"updated_at": self._now()})
