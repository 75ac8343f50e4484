"""
notetree Logging System: structured JSON file logging with an async queue.

Implements:
- FileLogger: per-object-type, per-category log files (daily rotation)
- AsyncLogQueue: bounded queue drained by a background thread, built from LoggingConfig
- Log entry builders for mutations, sort-order updates, autosave and sync events

Layout: {log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl
"""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from datetime import date, datetime, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, Iterable, List, Optional

from notetree.engine.config import LoggingConfig

logger = logging.getLogger("notetree.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "documents": ["execution", "errors"],
    "folders": ["execution", "errors"],
    "ordering": ["execution", "errors"],
    "autosave": ["execution", "errors"],
    "system": ["execution", "errors"],
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


class FileLogger:
    """
    Appends JSONL entries to ``{log_dir}/{object_type}/{category}/{day}.jsonl``.

    Unknown object types land in ``system`` and unknown categories in
    ``execution``. Writers on different threads are serialized per file.
    """

    def __init__(self, log_dir: str = ".notetree/logs"):
        self.log_dir = Path(log_dir)
        self._locks: Dict[Path, threading.Lock] = defaultdict(threading.Lock)
        for object_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for category in categories:
                (self.log_dir / object_type / category).mkdir(parents=True, exist_ok=True)

    def path_for(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        if object_type not in OBJECT_TYPE_CATEGORIES:
            object_type = "system"
        if category not in OBJECT_TYPE_CATEGORIES[object_type]:
            category = "execution"
        return self.log_dir / object_type / category / f"{(day or date.today()).isoformat()}.jsonl"

    def write(self, entry: LogEntry) -> None:
        self.write_batch([entry])

    def write_batch(self, entries: Iterable[LogEntry]) -> None:
        lines_by_path: Dict[Path, List[str]] = defaultdict(list)
        for entry in entries:
            lines_by_path[self.path_for(entry.object_type, entry.category)].append(entry.to_json())

        for path, lines in lines_by_path.items():
            with self._locks[path], open(path, "a", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")

    def read(self, object_type: str, category: str, day: Optional[date] = None) -> List[Dict[str, Any]]:
        """One day's entries, oldest first. Malformed lines are skipped."""
        path = self.path_for(object_type, category, day)
        if not path.exists():
            return []
        with self._locks[path], open(path, "r", encoding="utf-8") as f:
            lines = [line for line in f if line.strip()]

        entries: List[Dict[str, Any]] = []
        for number, line in enumerate(lines, start=1):
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                logger.warning(f"Skipping malformed audit line {path}:{number}")
        return entries


class AsyncLogQueue:
    """
    Bounded queue drained into a FileLogger by a daemon thread.

    ``push`` never blocks the event loop; a full queue counts the entry as
    dropped. The thread waits up to ``flush_interval_ms`` for the next entry
    and then writes whatever has accumulated, at most ``flush_batch_size``
    entries per write.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self.file_logger = file_logger
        self._interval = flush_interval_ms / 1000.0
        self._batch_size = max(1, flush_batch_size)
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._dropped = 0

    @classmethod
    def from_config(cls, config: LoggingConfig) -> "AsyncLogQueue":
        return cls(
            FileLogger(config.directory),
            flush_interval_ms=config.flush_interval_ms,
            flush_batch_size=config.flush_batch_size,
            max_queue_size=config.max_queue_size,
        )

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="notetree-audit-log", daemon=True)
        self._thread.start()
        logger.debug(f"Audit log writing to {self.file_logger.log_dir}")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the thread, then write everything still queued."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self.flush()
        if self._dropped:
            logger.warning(f"Audit log dropped {self._dropped} entries (queue full)")

    def push(self, entry: LogEntry) -> bool:
        try:
            self._queue.put_nowait(entry)
        except Full:
            self._dropped += 1
            return False
        return True

    def flush(self) -> int:
        """Write every queued entry from the calling thread; returns how many."""
        batch = self._take()
        self._write(batch)
        return len(batch)

    def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                first = self._queue.get(timeout=self._interval)
            except Empty:
                continue
            self._write([first] + self._take(self._batch_size - 1))

    def _take(self, limit: Optional[int] = None) -> List[LogEntry]:
        batch: List[LogEntry] = []
        while limit is None or len(batch) < limit:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        return batch

    def _write(self, batch: List[LogEntry]) -> None:
        if not batch:
            return
        try:
            self.file_logger.write_batch(batch)
        except OSError as e:
            logger.error(f"Audit log write failed, {len(batch)} entries lost: {e}")


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(event: str, level: str, **extra: Any) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    entry.update({k: v for k, v in extra.items() if v is not None})
    return entry


def log_mutation(
    entity_kind: str,
    operation: str,
    entity_id: str,
    success: bool,
    duration_ms: float,
    rolled_back: bool = False,
    error: Optional[str] = None,
) -> LogEntry:
    """Build an optimistic mutation log entry (create/delete/rename/move)."""
    data = _base_entry(
        event=f"{entity_kind}_{operation}",
        level="INFO" if success else "ERROR",
        entity_kind=entity_kind,
        operation=operation,
        entity_id=entity_id,
        duration_ms=round(duration_ms, 2),
        success=success,
        rolled_back=rolled_back,
        error=error,
    )
    object_type = "folders" if entity_kind == "folder" else "documents"
    return LogEntry(object_type, "execution" if success else "errors", data)


def log_sort_order_update(
    entity_kind: str,
    entity_id: str,
    sort_order: int,
    success: bool,
    error: Optional[str] = None,
) -> LogEntry:
    """Build a single sibling sort-order update entry."""
    data = _base_entry(
        event="sort_order_updated",
        level="INFO" if success else "WARNING",
        entity_kind=entity_kind,
        entity_id=entity_id,
        sort_order=sort_order,
        success=success,
        error=error,
    )
    return LogEntry("ordering", "execution" if success else "errors", data)


def log_autosave_event(
    document_id: str,
    from_state: str,
    to_state: str,
    content_length: Optional[int] = None,
    error: Optional[str] = None,
) -> LogEntry:
    """Build an autosave state transition entry."""
    data = _base_entry(
        event="autosave_transition",
        level="ERROR" if error else "INFO",
        document_id=document_id,
        from_state=from_state,
        to_state=to_state,
        content_length=content_length,
        error=error,
    )
    return LogEntry("autosave", "errors" if error else "execution", data)


def log_sync_event(
    event: str,
    level: str = "INFO",
    **details: Any,
) -> LogEntry:
    """Build a generic sync event entry (index loads, reloads, batch failures)."""
    data = _base_entry(event=event, level=level, **details)
    return LogEntry("system", "errors" if level in ("ERROR", "WARNING") else "execution", data)


# ---------------------------------------------------------------------------
# Convenience: Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def configure_logging(level: str = "INFO") -> None:
    """Configure the stdlib ``notetree`` logger hierarchy for console output."""
    root = logging.getLogger("notetree")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root.addHandler(handler)


def init_logging(config: Optional[LoggingConfig] = None) -> AsyncLogQueue:
    """Start the process-wide audit queue, replacing any running one."""
    global _global_queue
    shutdown_logging()
    _global_queue = AsyncLogQueue.from_config(config or LoggingConfig())
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    return _global_queue


def shutdown_logging() -> None:
    """Flush and stop the process-wide audit queue, if one is running."""
    global _global_queue
    if _global_queue is not None:
        _global_queue.stop()
        _global_queue = None
