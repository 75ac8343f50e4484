"""
notetree — client-side document tree engine.

Keeps a local mirror of a remote hierarchy of markdown documents and folders
consistent under optimistic edits, drag-and-drop reordering, cross-folder
moves and debounced autosave.

Subpackages:
    notetree.documents  records, path rules, tree builder, persistence backends
    notetree.sync       optimistic cache, reorder engine, autosave
    notetree.engine     errors, configuration, structured logging
"""

__version__ = "0.3.0"
__all__ = ["documents", "sync", "engine"]
