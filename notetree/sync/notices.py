"""
User-facing notices (the toast channel).

The engine reports outcomes here; a UI drains or subscribes to the board.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Literal

logger = logging.getLogger("notetree.sync.notices")

NoticeLevel = Literal["success", "error"]


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NoticeBoard:
    """Collects notices in order and fans them out to subscribers."""

    def __init__(self, max_notices: int = 200):
        self._notices: List[Notice] = []
        self._max = max_notices
        self._listeners: List[Callable[[Notice], None]] = []

    def success(self, message: str) -> Notice:
        return self._post(Notice("success", message))

    def error(self, message: str) -> Notice:
        return self._post(Notice("error", message))

    def _post(self, notice: Notice) -> Notice:
        log = logger.info if notice.level == "success" else logger.warning
        log(f"[{notice.level}] {notice.message}")
        self._notices.append(notice)
        if len(self._notices) > self._max:
            del self._notices[: len(self._notices) - self._max]
        for listener in list(self._listeners):
            listener(notice)
        return notice

    def subscribe(self, listener: Callable[[Notice], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    @property
    def notices(self) -> List[Notice]:
        return list(self._notices)

    def messages(self, level: NoticeLevel) -> List[str]:
        return [n.message for n in self._notices if n.level == level]

    def drain(self) -> List[Notice]:
        drained, self._notices = self._notices, []
        return drained
