"""
notetree CLI — inspect and edit a remote document tree.

Commands:
- notetree tree    — Print the document tree from the configured server
- notetree mkdir   — Create a folder (parents must exist)
- notetree rm      — Delete a document by id, or a folder with --folder
- notetree mv      — Move a document to another folder and/or sort position

Every command loads notetree.yaml (auto-discovered, or --config) and talks
to the server through HttpDocumentBackend.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, List, Optional, Sequence

from notetree.documents.backend import DocumentBackend
from notetree.documents.client import HttpDocumentBackend
from notetree.documents.models import TreeFolder, TreeNode
from notetree.documents.paths import basename, parent_path
from notetree.engine.config import NoteTreeConfig, load_config
from notetree.engine.errors import NoteTreeConfigError
from notetree.engine.logging import configure_logging, init_logging, shutdown_logging
from notetree.sync.explorer import DocumentExplorer
from notetree.sync.transaction import Outcome

logger = logging.getLogger("notetree.cli")

Action = Callable[[DocumentExplorer], Awaitable[Outcome]]


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=None, help="Path to notetree.yaml (default: auto-discover)")

    parser = argparse.ArgumentParser(
        prog="notetree",
        description="notetree — remote markdown document tree",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # notetree tree
    tree_parser = subparsers.add_parser("tree", parents=[common], help="Print the document tree")
    tree_parser.add_argument("--ids", action="store_true", help="Show document ids and sort keys")

    # notetree mkdir
    mkdir_parser = subparsers.add_parser("mkdir", parents=[common], help="Create a folder")
    mkdir_parser.add_argument("path", help="Folder path (e.g., notes/drafts)")

    # notetree rm
    rm_parser = subparsers.add_parser("rm", parents=[common], help="Delete a document or folder")
    rm_parser.add_argument("target", help="Document id, or folder path with --folder")
    rm_parser.add_argument("--folder", action="store_true", help="Treat target as a folder path (cascades)")

    # notetree mv
    mv_parser = subparsers.add_parser("mv", parents=[common], help="Move a document")
    mv_parser.add_argument("document_id", help="Document id")
    mv_parser.add_argument("--to", dest="folder", default=None, help="Target folder path (default: root)")
    mv_parser.add_argument("--order", type=int, default=None, help="Sort key in the target folder")

    args = parser.parse_args(argv)

    if args.command == "tree":
        return cmd_tree(args)
    elif args.command == "mkdir":
        return cmd_mkdir(args)
    elif args.command == "rm":
        return cmd_rm(args)
    elif args.command == "mv":
        return cmd_mv(args)
    else:
        parser.print_help()
        return 0


# ---------------------------------------------------------------------------
# Plumbing
# ---------------------------------------------------------------------------

def _load(args: argparse.Namespace) -> Optional[NoteTreeConfig]:
    try:
        config = load_config(args.config)
    except NoteTreeConfigError as e:
        print(f"[ERROR] {e.message}")
        return None
    configure_logging(config.logging.level)
    return config


def _make_backend(config: NoteTreeConfig) -> DocumentBackend:
    return HttpDocumentBackend.from_config(config.api)


async def _with_explorer(config: NoteTreeConfig, action: Action) -> int:
    log_queue = init_logging(config.logging)
    backend = _make_backend(config)
    explorer = DocumentExplorer(backend, config=config, log_queue=log_queue)
    try:
        loaded = await explorer.load_index()
        if not loaded.ok:
            print(f"[ERROR] Could not load documents: {loaded.reason}")
            return 1
        outcome = await action(explorer)
        for notice in explorer.notices.drain():
            tag = "OK" if notice.level == "success" else "ERROR"
            print(f"[{tag}] {notice.message}")
        if outcome.skipped:
            print(f"[INFO] Nothing to do: {outcome.reason}")
            return 0
        return 0 if outcome.ok else 1
    finally:
        explorer.close()
        await backend.aclose()
        shutdown_logging()


def _run(args: argparse.Namespace, action: Action) -> int:
    config = _load(args)
    if config is None:
        return 1
    return asyncio.run(_with_explorer(config, action))


def render_tree(nodes: Sequence[TreeNode], show_ids: bool = False, depth: int = 0) -> List[str]:
    """Indented text lines for a forest, folders suffixed with '/'."""
    lines: List[str] = []
    for node in nodes:
        indent = "  " * depth
        if isinstance(node, TreeFolder):
            suffix = f"  [{node.sort_order}]" if show_ids else ""
            lines.append(f"{indent}{node.name}/{suffix}")
            lines.extend(render_tree(node.children, show_ids, depth + 1))
        else:
            suffix = f"  ({node.document_id}, {node.sort_order})" if show_ids else ""
            lines.append(f"{indent}{node.name}{suffix}")
    return lines


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_tree(args: argparse.Namespace) -> int:
    """Print the tree as served right now."""

    async def action(explorer: DocumentExplorer) -> Outcome:
        lines = render_tree(explorer.tree, show_ids=args.ids)
        print("\n".join(lines) if lines else "(no documents)")
        return Outcome.success()

    return _run(args, action)


def cmd_mkdir(args: argparse.Namespace) -> int:
    path = args.path.strip("/")
    if not path:
        print("[ERROR] Folder path must not be empty")
        return 1
    return _run(args, lambda explorer: explorer.create_folder(parent_path(path) or None, basename(path)))


def cmd_rm(args: argparse.Namespace) -> int:
    if args.folder:
        return _run(args, lambda explorer: explorer.delete_folder(args.target))
    return _run(args, lambda explorer: explorer.delete_document(args.target))


def cmd_mv(args: argparse.Namespace) -> int:
    return _run(
        args,
        lambda explorer: explorer.move_document(args.document_id, args.folder, args.order),
    )


if __name__ == "__main__":
    sys.exit(main())
