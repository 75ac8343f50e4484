"""
Tree Builder: turns the flat document/folder collections into an ordered forest.

Pure functions only. The folder set is the union of persisted Folder records
and every path prefix implied by a document path; prefixes without a record
are synthesized with ``sort_order = 0`` and ``record_id = None``.
"""

from __future__ import annotations

import logging
from functools import cmp_to_key
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from notetree.documents.models import Document, Folder, TreeDocument, TreeFolder, TreeNode
from notetree.documents.paths import (
    DOCUMENTS_ROOT_ID,
    folder_node_id,
    split_path,
    split_segments,
    strip_markdown_extension,
)

logger = logging.getLogger("notetree.documents.tree")

SiblingContext = Tuple[Optional[TreeFolder], List[TreeNode]]


def _root_node(children: Optional[List[TreeNode]] = None) -> TreeFolder:
    return TreeFolder(
        id=DOCUMENTS_ROOT_ID,
        name="documents",
        path="",
        sort_order=None,
        children=children if children is not None else [],
    )


def build_tree(documents: Iterable[Document], folders: Iterable[Folder]) -> List[TreeNode]:
    """
    Build the sorted forest for the given records.

    Identical input always yields an identical structure.
    """
    root = _root_node()
    by_path: Dict[str, TreeFolder] = {"": root}

    def ensure_folder_node(segments: Sequence[str]) -> TreeFolder:
        current = root
        accumulated: List[str] = []
        for segment in segments:
            accumulated.append(segment)
            folder_path = "/".join(accumulated)
            node = by_path.get(folder_path)
            if node is None:
                node = TreeFolder(
                    id=folder_node_id(folder_path),
                    name=segment,
                    parent_path=current.path,
                    sort_order=0,
                    path=folder_path,
                )
                current.children.append(node)
                by_path[folder_path] = node
            current = node
        return current

    for folder in folders:
        segments = split_segments(folder.path)
        if not segments:
            logger.warning(f"Skipping folder {folder.id} with empty path")
            continue
        node = ensure_folder_node(segments)
        node.sort_order = folder.sort_order
        node.record_id = folder.id

    for document in documents:
        segments, filename = split_path(document.path)
        if not filename:
            logger.warning(f"Skipping document {document.id} with empty path")
            continue
        parent = ensure_folder_node(segments)
        display_name = document.title if document.title.strip() else strip_markdown_extension(filename)
        parent.children.append(
            TreeDocument(
                id=document.id,
                name=display_name,
                parent_path=parent.path,
                sort_order=document.sort_order,
                document_id=document.id,
                path=document.path,
            )
        )

    return sort_tree(root.children)


def _compare_nodes(a: TreeNode, b: TreeNode) -> int:
    if a.sort_order is not None and b.sort_order is not None and a.sort_order != b.sort_order:
        return -1 if a.sort_order < b.sort_order else 1
    key_a = (a.name.casefold(), a.name, a.id)
    key_b = (b.name.casefold(), b.name, b.id)
    if key_a == key_b:
        return 0
    return -1 if key_a < key_b else 1


def sort_tree(nodes: Sequence[TreeNode]) -> List[TreeNode]:
    """
    Return a recursively sorted copy of ``nodes``.

    Siblings compare by ``sort_order`` when both carry one and they differ,
    otherwise by name (case-insensitive first), then id.
    """
    ordered: List[TreeNode] = []
    for node in sorted(nodes, key=cmp_to_key(_compare_nodes)):
        if isinstance(node, TreeFolder):
            node = node.model_copy(update={"children": sort_tree(node.children)})
        ordered.append(node)
    return ordered


def flatten_tree(nodes: Sequence[TreeNode]) -> Iterator[TreeNode]:
    """Yield every node depth-first, parents before children."""
    for node in nodes:
        yield node
        if isinstance(node, TreeFolder):
            yield from flatten_tree(node.children)


def collect_record_ids(nodes: Sequence[TreeNode]) -> Tuple[Set[str], Set[str]]:
    """Return (document ids, persisted folder ids) present in the forest."""
    document_ids: Set[str] = set()
    folder_ids: Set[str] = set()
    for node in flatten_tree(nodes):
        if isinstance(node, TreeDocument):
            document_ids.add(node.document_id)
        elif isinstance(node, TreeFolder):
            if node.record_id is not None:
                folder_ids.add(node.record_id)
        else:
            raise TypeError(f"unexpected tree node {node!r}")
    return document_ids, folder_ids


def find_context(nodes: List[TreeNode], node_id: str) -> Optional[SiblingContext]:
    """
    Locate ``node_id`` and return (parent folder or None for root, sibling list).
    The sibling list is the live list inside the forest.
    """
    for node in nodes:
        if node.id == node_id:
            return None, nodes
    for node in nodes:
        if isinstance(node, TreeFolder) and node.children:
            if any(child.id == node_id for child in node.children):
                return node, node.children
            found = find_context(node.children, node_id)
            if found is not None:
                return found
    return None


def find_folder(nodes: List[TreeNode], folder_path: Optional[str]) -> Optional[TreeFolder]:
    """Find a folder node by path. An empty path returns a synthetic root holding ``nodes``."""
    if not folder_path:
        return _root_node(nodes)
    for node in nodes:
        if isinstance(node, TreeFolder):
            if node.path == folder_path:
                return node
            found = find_folder(node.children, folder_path)
            if found is not None:
                return found
    return None


def find_parent_folder_ids(
    nodes: Sequence[TreeNode],
    document_id: str,
    parents: Optional[List[str]] = None,
) -> Optional[List[str]]:
    """Folder node ids from the root down to the folder holding ``document_id``."""
    parents = parents or []
    for node in nodes:
        if isinstance(node, TreeDocument):
            if node.document_id == document_id:
                return parents
        elif isinstance(node, TreeFolder):
            if node.children:
                found = find_parent_folder_ids(node.children, document_id, parents + [node.id])
                if found is not None:
                    return found
    return None
