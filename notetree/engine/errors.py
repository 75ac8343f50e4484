"""
notetree Error Hierarchy: structured exceptions for sync failures.

Every error carries the operation and entity it concerns so that a failed
optimistic mutation can be logged, surfaced as a notice and rolled back
without losing context. All context is serializable to JSON for the
structured log files.

Hierarchy:
    NoteTreeError
    ├── NoteTreeValidationError     Empty name/path, rejected before any network call
    ├── NoteTreeNetworkError        Transport failure or timeout
    ├── NoteTreeServerError         Non-2xx response from the persistence API
    │   ├── NoteTreeNotFoundError   Record missing on the server (404)
    │   └── NoteTreeConflictError   Path collision (409)
    ├── NoteTreePartialBatchError   Some sibling sort-order updates failed
    └── NoteTreeConfigError         Invalid notetree.yaml
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class NoteTreeError(Exception):
    """
    Base error for all notetree failures.
    Structured for logging: all context serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.operation: Optional[str] = context.get("operation")
        self.entity_kind: Optional[str] = context.get("entity_kind")
        self.entity_id: Optional[str] = context.get("entity_id")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "operation": self.operation,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("operation", "entity_kind", "entity_id")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.operation:
            parts.append(f"operation={self.operation}")
        if self.entity_id:
            parts.append(f"entity_id={self.entity_id}")
        return " | ".join(parts)


class NoteTreeValidationError(NoteTreeError):
    """
    Input validation failed (blank title, unsanitizable folder name).
    Raised before any network call is made.
    """

    def __init__(self, message: str, **context: Any):
        self.field: Optional[str] = context.get("field")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["field"] = self.field
        return d


class NoteTreeNetworkError(NoteTreeError):
    """The request never produced a response (connection, timeout, cancelled transport)."""

    def __init__(self, message: str, **context: Any):
        self.url: Optional[str] = context.get("url")
        super().__init__(message, **context)


class NoteTreeServerError(NoteTreeError):
    """The persistence API answered with a non-2xx status."""

    def __init__(self, message: str, **context: Any):
        self.status_code: Optional[int] = context.get("status_code")
        self.response_body: Optional[str] = context.get("response_body")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["status_code"] = self.status_code
        return d


class NoteTreeNotFoundError(NoteTreeServerError):
    """Record not found on the server."""

    def __init__(self, message: str, **context: Any):
        context.setdefault("status_code", 404)
        super().__init__(message, **context)


class NoteTreeConflictError(NoteTreeServerError):
    """Another record already occupies the requested path."""

    def __init__(self, message: str, **context: Any):
        context.setdefault("status_code", 409)
        super().__init__(message, **context)


class NoteTreePartialBatchError(NoteTreeError):
    """
    Some sibling sort-order updates of a reorder batch failed.
    Never rolls back the triggering move; reported for logging only.
    """

    def __init__(self, message: str, **context: Any):
        self.failed_ids: List[str] = list(context.get("failed_ids", []))
        self.total: int = int(context.get("total", 0))
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["failed_ids"] = self.failed_ids
        d["total"] = self.total
        return d


class NoteTreeConfigError(NoteTreeError):
    """Configuration error: invalid notetree.yaml."""
    pass


def error_for_status(status_code: int, message: str, **context: Any) -> NoteTreeServerError:
    """Map an HTTP status to the most specific server error class."""
    if status_code == 404:
        return NoteTreeNotFoundError(message, status_code=status_code, **context)
    if status_code == 409:
        return NoteTreeConflictError(message, status_code=status_code, **context)
    return NoteTreeServerError(message, status_code=status_code, **context)
