"""
Navigation state: which document is on screen.

``selected_id is None`` means the default listing (``/documents``).
"""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import quote

logger = logging.getLogger("notetree.sync.navigation")

DOCUMENTS_LISTING = "/documents"


def build_documents_path(document_id: Optional[str]) -> str:
    if not document_id:
        return DOCUMENTS_LISTING
    return DOCUMENTS_LISTING + "/" + "/".join(quote(s, safe="") for s in document_id.split("/"))


class Navigator:
    """Holds the displayed document and a history of locations."""

    def __init__(self, selected_id: Optional[str] = None):
        self._selected_id = selected_id
        self.history: List[str] = [build_documents_path(selected_id)]

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def location(self) -> str:
        return build_documents_path(self._selected_id)

    def push(self, document_id: Optional[str]) -> None:
        """Open ``document_id`` as a new history entry."""
        self._selected_id = document_id
        self.history.append(self.location)
        logger.debug(f"Navigated to {self.location}")

    def replace(self, document_id: Optional[str]) -> None:
        """Swap the current location without adding history."""
        self._selected_id = document_id
        self.history[-1] = self.location
        logger.debug(f"Replaced location with {self.location}")
