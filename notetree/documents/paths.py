"""
Path helpers for the slash-delimited document hierarchy.

Paths never carry a leading or trailing slash. The root container is the
empty string. Folder tree nodes are addressed as ``documents-root/<path>``.
"""

from __future__ import annotations

import re
from typing import List, Optional, Tuple

DOCUMENTS_ROOT_ID = "documents-root"
MARKDOWN_EXTENSION = ".md"

_MARKDOWN_EXTENSION_RE = re.compile(r"\.md$", re.IGNORECASE)
_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9\-_ ]+")
_WHITESPACE_RE = re.compile(r"\s+")
_DASHES_RE = re.compile(r"-+")


def sanitize_filename(text: Optional[str]) -> str:
    """
    Reduce free text to a safe path segment.

    Returns an empty string when nothing usable remains; callers treat
    that as a validation failure.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return ""
    safe = _MARKDOWN_EXTENSION_RE.sub("", trimmed)
    safe = _UNSAFE_RE.sub("-", safe)
    safe = _WHITESPACE_RE.sub("-", safe)
    return _DASHES_RE.sub("-", safe).strip("-")


def sanitize_folder_segments(text: Optional[str]) -> List[str]:
    segments = (sanitize_filename(s) for s in (text or "").split("/"))
    return [s for s in segments if s]


def sanitize_folder_path(text: Optional[str]) -> str:
    return "/".join(sanitize_folder_segments(text))


def ensure_markdown_extension(filename: str) -> str:
    if filename.lower().endswith(MARKDOWN_EXTENSION):
        return filename
    return f"{filename}{MARKDOWN_EXTENSION}"


def strip_markdown_extension(filename: str) -> str:
    return _MARKDOWN_EXTENSION_RE.sub("", filename)


def split_segments(path: Optional[str]) -> List[str]:
    return [s for s in (path or "").split("/") if s]


def split_path(path: str) -> Tuple[List[str], Optional[str]]:
    """Split a document path into (folder segments, leaf name)."""
    segments = split_segments(path)
    if not segments:
        return [], None
    return segments[:-1], segments[-1]


def parent_path(path: str) -> str:
    """Folder path containing ``path``; empty string for the root."""
    return "/".join(split_segments(path)[:-1])


def basename(path: str) -> str:
    segments = split_segments(path)
    return segments[-1] if segments else ""


def join_path(*parts: Optional[str]) -> str:
    segments: List[str] = []
    for part in parts:
        segments.extend(split_segments(part))
    return "/".join(segments)


def is_within(path: str, folder_path: str) -> bool:
    """True when ``path`` is the folder itself or nested anywhere beneath it."""
    if not folder_path:
        return False
    return path == folder_path or path.startswith(f"{folder_path}/")


def rebase_path(path: str, old_prefix: str, new_prefix: str) -> str:
    """Rewrite ``old_prefix`` at the start of ``path`` to ``new_prefix``."""
    if path == old_prefix:
        return new_prefix
    if is_within(path, old_prefix):
        return f"{new_prefix}{path[len(old_prefix):]}"
    return path


def folder_node_id(folder_path: str) -> str:
    return f"{DOCUMENTS_ROOT_ID}/{folder_path}"
