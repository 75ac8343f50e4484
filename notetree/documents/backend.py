"""
Persistence contract required by the sync engine.

Every method is a coroutine and reports failure by raising a NoteTreeError
subclass. Callers in ``notetree.sync`` convert those into outcomes; nothing
in the engine lets them escape uncaught.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from notetree.documents.models import Document, DocumentIndex, EntityKind, Folder


class DocumentBackend(ABC):
    """Operations the remote document store must expose."""

    @abstractmethod
    async def fetch_index(self) -> DocumentIndex:
        """Return every document and folder."""

    @abstractmethod
    async def create_document(self, title: str, folder_path: Optional[str] = None) -> Document:
        """Create a document; the server assigns the id and final path."""

    @abstractmethod
    async def create_folder(self, path: str) -> Folder:
        """Create a folder. The parent folder must exist."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> None:
        """Delete a document. Deleting an absent document succeeds."""

    @abstractmethod
    async def delete_folder(self, path: str) -> None:
        """Delete a folder and every record beneath it."""

    @abstractmethod
    async def move_document(
        self,
        document_id: str,
        target_folder_path: Optional[str] = None,
        sort_order: Optional[int] = None,
    ) -> Document:
        """Move a document into ``target_folder_path`` (root when None)."""

    @abstractmethod
    async def update_sort_order(self, entity_id: str, kind: EntityKind, sort_order: int) -> None:
        """Persist one sibling ordering key."""

    @abstractmethod
    async def rename_document(self, document_id: str, title: str) -> Document:
        """Change a document's title (the server may also change its path)."""

    @abstractmethod
    async def rename_folder(self, path: str, new_name: str) -> None:
        """Rename the last segment of a folder path, rewriting descendants."""

    @abstractmethod
    async def save_content(self, document_id: str, content: str) -> None:
        """Persist a document body."""

    async def aclose(self) -> None:
        """Release transport resources. No-op by default."""
