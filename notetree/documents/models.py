"""
notetree Document & Folder Models: pydantic definitions for the flat store
and the derived tree.

Document / Folder: records as returned by the persistence collaborator.
DocumentIndex: the flat snapshot {documents, folders} held by the client cache.
TreeFolder / TreeDocument: nodes of the derived forest, a tagged union on ``kind``.

Wire format uses camelCase (documentPath, folderPath, sortOrder, createdAt);
Python attributes use snake_case. Both are accepted on input.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger("notetree.documents.models")

EntityKind = Literal["document", "folder"]


def _default_sort_order(v: Any) -> int:
    # Records without an explicit key sort to the top, like synthesized folders.
    return 0 if v is None else v


# ---------------------------------------------------------------------------
# Flat store records
# ---------------------------------------------------------------------------

class Document(BaseModel):
    """
    Document metadata. ``path`` is the storage position (``notes/todo.md``);
    ``title`` is the display name and may differ from the filename.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(description="Opaque server-assigned identifier")
    title: str = Field(default="", description="Display name")
    path: str = Field(alias="documentPath", description="Slash-delimited storage path")
    sort_order: int = Field(default=0, alias="sortOrder")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("sort_order", mode="before")
    @classmethod
    def _normalize_sort_order(cls, v: Any) -> int:
        return _default_sort_order(v)

    @property
    def kind(self) -> EntityKind:
        return "document"

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Folder(BaseModel):
    """Folder record. Has no content; ``path`` is unique."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    path: str = Field(alias="folderPath")
    sort_order: int = Field(default=0, alias="sortOrder")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @field_validator("sort_order", mode="before")
    @classmethod
    def _normalize_sort_order(cls, v: Any) -> int:
        return _default_sort_order(v)

    @property
    def kind(self) -> EntityKind:
        return "folder"

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


Record = Union[Document, Folder]


class DocumentIndex(BaseModel):
    """Flat snapshot of every document and folder the user owns."""

    model_config = ConfigDict(extra="ignore")

    documents: List[Document] = Field(default_factory=list)
    folders: List[Folder] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_files_key(cls, data: Any) -> Any:
        # Older servers answer with "files" instead of "documents".
        if isinstance(data, dict) and "documents" not in data and "files" in data:
            data = dict(data)
            data["documents"] = data.pop("files")
        return data

    def records(self, kind: EntityKind) -> List[Record]:
        if kind == "document":
            return list(self.documents)
        if kind == "folder":
            return list(self.folders)
        raise ValueError(f"unknown entity kind: {kind}")

    def with_records(self, kind: EntityKind, records: List[Record]) -> "DocumentIndex":
        if kind == "document":
            return self.model_copy(update={"documents": list(records)})
        if kind == "folder":
            return self.model_copy(update={"folders": list(records)})
        raise ValueError(f"unknown entity kind: {kind}")

    def find_document(self, document_id: str) -> Optional[Document]:
        return next((d for d in self.documents if d.id == document_id), None)

    def find_folder(self, folder_path: str) -> Optional[Folder]:
        return next((f for f in self.folders if f.path == folder_path), None)


# ---------------------------------------------------------------------------
# Derived tree (rebuilt on every read)
# ---------------------------------------------------------------------------

class TreeDocument(BaseModel):
    kind: Literal["document"] = "document"
    id: str
    name: str
    parent_path: str = ""
    sort_order: Optional[int] = 0
    document_id: str
    path: str


class TreeFolder(BaseModel):
    kind: Literal["folder"] = "folder"
    id: str
    name: str
    parent_path: str = ""
    sort_order: Optional[int] = 0
    path: str
    record_id: Optional[str] = Field(
        default=None, description="Persisted folder id; None when synthesized from a document path"
    )
    children: List["TreeNode"] = Field(default_factory=list)


TreeNode = Annotated[Union[TreeFolder, TreeDocument], Field(discriminator="kind")]

TreeFolder.model_rebuild()
