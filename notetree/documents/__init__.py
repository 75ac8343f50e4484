"""
notetree Documents: records, path rules, tree building and persistence backends.
"""

from notetree.documents.backend import DocumentBackend
from notetree.documents.client import HttpDocumentBackend
from notetree.documents.memory import InMemoryDocumentBackend
from notetree.documents.models import (
    Document,
    DocumentIndex,
    Folder,
    TreeDocument,
    TreeFolder,
    TreeNode,
)
from notetree.documents.tree import build_tree, flatten_tree, sort_tree

__all__ = [
    "Document",
    "DocumentIndex",
    "Folder",
    "TreeDocument",
    "TreeFolder",
    "TreeNode",
    "DocumentBackend",
    "HttpDocumentBackend",
    "InMemoryDocumentBackend",
    "build_tree",
    "flatten_tree",
    "sort_tree",
]
