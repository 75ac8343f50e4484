"""notetree Engine — errors, configuration and structured logging."""

from notetree.engine.config import NoteTreeConfig, get_config, load_config  # noqa: F401
from notetree.engine.errors import NoteTreeError  # noqa: F401

__all__ = [
    "NoteTreeConfig",
    "NoteTreeError",
    "get_config",
    "load_config",
]
