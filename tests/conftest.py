"""
notetree Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from typing import List

import pytest

from notetree.documents.memory import InMemoryDocumentBackend
from notetree.documents.models import Document, DocumentIndex, Folder
from notetree.engine.config import NoteTreeConfig


# ---------------------------------------------------------------------------
# Global state isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch, tmp_path):
    """Reset the config singleton and keep auto-discovery inside tmp_path."""
    import notetree.engine.config as cfg_mod
    import notetree.engine.logging as log_mod

    cfg_mod._config = None
    log_mod._global_queue = None
    monkeypatch.chdir(tmp_path)
    yield
    log_mod.shutdown_logging()
    cfg_mod._config = None


@pytest.fixture
def config():
    """Default config with a zero debounce so autosave tests stay fast."""
    return NoteTreeConfig(autosave={"debounce_ms": 0})


# ---------------------------------------------------------------------------
# Sample records
# ---------------------------------------------------------------------------

@pytest.fixture
def documents() -> List[Document]:
    return [
        Document(id="a", title="Alpha", path="x.md", sort_order=1000),
        Document(id="b", title="Beta", path="y.md", sort_order=2000),
        Document(id="d", title="Draft", path="notes/d.md", sort_order=1000),
        Document(id="e", title="Essay", path="notes/sub/e.md", sort_order=1000),
    ]


@pytest.fixture
def folders() -> List[Folder]:
    return [
        Folder(id="f-notes", path="notes", sort_order=3000),
        Folder(id="f-sub", path="notes/sub", sort_order=2000),
        Folder(id="f-archive", path="archive", sort_order=4000),
    ]


@pytest.fixture
def index(documents, folders) -> DocumentIndex:
    return DocumentIndex(documents=documents, folders=folders)


@pytest.fixture
def backend(documents, folders) -> InMemoryDocumentBackend:
    return InMemoryDocumentBackend(documents=documents, folders=folders)
