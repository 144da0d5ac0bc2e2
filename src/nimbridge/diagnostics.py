"""Diagnostic event sink for the nimbridge proxy."""

import itertools
import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Protocol

from .models import LogEntry

logger = logging.getLogger(__name__)

LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "debug": logging.DEBUG,
}


class DiagnosticSink(Protocol):
    """Anything the translation core can report its decisions to."""

    def emit(
        self,
        level: str,
        category: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None: ...


class DiagnosticLog:
    """
    Bounded, newest-first record of diagnostic events.

    Every event is also written to the standard logger. emit() never raises:
    a broken metadata value is reported through the logger and dropped.
    """

    def __init__(self, max_entries: int = 100):
        self.max_entries = max_entries
        self._entries: Deque[LogEntry] = deque(maxlen=max_entries)
        self._ids = itertools.count(1)

    def emit(
        self,
        level: str,
        category: str,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            entry = LogEntry(
                id=next(self._ids),
                timestamp=datetime.now(timezone.utc).isoformat(),
                level=level,
                category=category,
                message=message,
                metadata=dict(metadata or {}),
            )
            self._entries.appendleft(entry)
            logger.log(
                LEVELS.get(level, logging.INFO),
                "[%s] %s %s",
                category.upper(),
                message,
                entry.metadata,
            )
        except Exception as e:
            logger.warning(f"Dropped diagnostic event {category}/{message}: {str(e)}")

    def entries(
        self,
        level: Optional[str] = None,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[LogEntry]:
        """Return entries newest first, optionally filtered."""
        result = list(self._entries)
        if level:
            result = [e for e in result if e.level == level]
        if category:
            result = [e for e in result if e.category == category]
        if limit is not None:
            result = result[: max(limit, 0)]
        return result

    def clear(self) -> int:
        """Drop every entry and return how many there were."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> Dict[str, int]:
        entries = list(self._entries)
        return {
            "totalLogs": len(entries),
            "errors": sum(1 for e in entries if e.level == "error"),
            "requests": sum(1 for e in entries if e.category == "request"),
            "successes": sum(1 for e in entries if e.level == "success"),
        }

    def __len__(self) -> int:
        return len(self._entries)
