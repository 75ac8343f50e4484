"""
notetree HTTP Backend: the persistence contract over the ``/api/markdown`` endpoint.

Wire protocol (JSON bodies, single endpoint):
    GET                                         → {documents, folders}
    POST   {title, folderPath?}                 → {document}
    POST   {type: "folder", folderPath}         → {folder}
    DELETE {id}
    DELETE {type: "folder", folderPath}
    PATCH  {id, type, sortOrder}                (sort order)
    PATCH  {id, targetFolderPath, sortOrder}    → {document}   (move)
    PATCH  {type: "folder", folderPath, newName}
    PATCH  {id, title}                          → {document}   (rename)
    PATCH  {id, content}                        (autosave)

Errors: non-2xx answers carry ``{"error": "..."}``; that message wins over the
per-call default. Transport failures become NoteTreeNetworkError.

Uses httpx.AsyncClient with a pooled connection, one client per backend.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from notetree.documents.backend import DocumentBackend
from notetree.documents.models import Document, DocumentIndex, EntityKind, Folder
from notetree.engine.config import ApiConfig
from notetree.engine.errors import NoteTreeNetworkError, NoteTreeServerError, error_for_status

logger = logging.getLogger("notetree.documents.client")


class HttpDocumentBackend(DocumentBackend):
    """
    DocumentBackend backed by the markdown API.

    A pre-built ``httpx.AsyncClient`` may be injected (tests pass one with a
    MockTransport); otherwise one is created lazily from the ApiConfig.
    """

    def __init__(
        self,
        config: Optional[ApiConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._config = config or ApiConfig()
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_config(cls, config: ApiConfig) -> "HttpDocumentBackend":
        return cls(config=config)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            limits = httpx.Limits(
                max_connections=self._config.max_connections,
                max_keepalive_connections=self._config.max_keepalive,
            )
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url,
                limits=limits,
                timeout=httpx.Timeout(self._config.timeout, connect=self._config.connect_timeout),
                follow_redirects=True,
            )
            logger.info(f"Created httpx client for {self._config.base_url}")
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        *,
        operation: str,
        error_message: str,
        body: Optional[Dict[str, Any]] = None,
    ) -> Optional[Any]:
        client = self._get_client()
        try:
            response = await client.request(method, self._config.endpoint, json=body)
        except httpx.HTTPError as e:
            logger.warning(f"{operation} transport failure: {e}")
            raise NoteTreeNetworkError(
                f"{error_message}: {e}",
                operation=operation,
                url=self._config.endpoint,
            ) from e

        if response.is_error:
            message = error_message
            try:
                data = response.json()
                if isinstance(data, dict) and data.get("error"):
                    message = str(data["error"])
            except ValueError:
                pass
            logger.warning(f"{operation} failed with HTTP {response.status_code}: {message}")
            raise error_for_status(
                response.status_code,
                message,
                operation=operation,
                response_body=response.text[:500],
            )

        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _require(data: Optional[Any], key: str, operation: str) -> Dict[str, Any]:
        payload = data.get(key) if isinstance(data, dict) else None
        if not isinstance(payload, dict):
            raise NoteTreeServerError(f"Missing {key} payload", operation=operation)
        return payload

    # -------------------------------------------------------------------
    # DocumentBackend
    # -------------------------------------------------------------------

    async def fetch_index(self) -> DocumentIndex:
        data = await self._request(
            "GET", operation="fetch_index", error_message="Unable to load markdown files"
        )
        return DocumentIndex.model_validate(data or {"documents": [], "folders": []})

    async def create_document(self, title: str, folder_path: Optional[str] = None) -> Document:
        body: Dict[str, Any] = {"title": title}
        if folder_path:
            body["folderPath"] = folder_path
        data = await self._request(
            "POST", operation="create_document", error_message="Failed to create document", body=body
        )
        return Document.model_validate(self._require(data, "document", "create_document"))

    async def create_folder(self, path: str) -> Folder:
        data = await self._request(
            "POST",
            operation="create_folder",
            error_message="Failed to create folder",
            body={"type": "folder", "folderPath": path},
        )
        return Folder.model_validate(self._require(data, "folder", "create_folder"))

    async def delete_document(self, document_id: str) -> None:
        await self._request(
            "DELETE",
            operation="delete_document",
            error_message="Failed to delete document",
            body={"id": document_id},
        )

    async def delete_folder(self, path: str) -> None:
        await self._request(
            "DELETE",
            operation="delete_folder",
            error_message="Failed to delete folder",
            body={"type": "folder", "folderPath": path},
        )

    async def move_document(
        self,
        document_id: str,
        target_folder_path: Optional[str] = None,
        sort_order: Optional[int] = None,
    ) -> Document:
        body: Dict[str, Any] = {"id": document_id, "targetFolderPath": target_folder_path or None}
        if sort_order is not None:
            body["sortOrder"] = sort_order
        data = await self._request(
            "PATCH", operation="move_document", error_message="Failed to move document", body=body
        )
        return Document.model_validate(self._require(data, "document", "move_document"))

    async def update_sort_order(self, entity_id: str, kind: EntityKind, sort_order: int) -> None:
        await self._request(
            "PATCH",
            operation="update_sort_order",
            error_message="Failed to save order",
            body={"id": entity_id, "type": kind, "sortOrder": sort_order},
        )

    async def rename_document(self, document_id: str, title: str) -> Document:
        data = await self._request(
            "PATCH",
            operation="rename_document",
            error_message="Failed to rename document",
            body={"id": document_id, "title": title},
        )
        return Document.model_validate(self._require(data, "document", "rename_document"))

    async def rename_folder(self, path: str, new_name: str) -> None:
        await self._request(
            "PATCH",
            operation="rename_folder",
            error_message="Failed to rename folder",
            body={"type": "folder", "folderPath": path, "newName": new_name},
        )

    async def save_content(self, document_id: str, content: str) -> None:
        await self._request(
            "PATCH",
            operation="save_content",
            error_message="Failed to save document",
            body={"id": document_id, "content": content},
        )
