"""
engine/event_log.py
===================
Bounded, append-only record of notable simulation events.

Entries live in a fixed-capacity ring buffer; once full, the oldest
entry is evicted on every append.  Each entry is also forwarded to the
``engine.events`` logger so that file logs carry the same history.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Dict, List, Tuple

log = logging.getLogger("engine.events")


class LogCategory(Enum):
    INFO = "INFO"
    JAM = "JAM"
    EMERGENCY = "EMERGENCY"
    OPTIMIZATION = "OPTIMIZATION"
    OVERRIDE = "OVERRIDE"


_LEVELS: Dict[LogCategory, int] = {
    LogCategory.INFO: logging.INFO,
    LogCategory.JAM: logging.WARNING,
    LogCategory.EMERGENCY: logging.WARNING,
    LogCategory.OPTIMIZATION: logging.INFO,
    LogCategory.OVERRIDE: logging.INFO,
}


@dataclass(frozen=True)
class LogEntry:
    """One event: sequence number, simulated time, category and text."""

    seq: int
    timestamp: float
    category: LogCategory
    message: str

    def as_dict(self) -> dict:
        return {
            "seq": self.seq,
            "timestamp": self.timestamp,
            "category": self.category.value,
            "message": self.message,
        }


class EventLog:
    """Ring buffer of :class:`LogEntry` objects.

    Parameters
    ----------
    capacity : int
        Maximum number of retained entries (at least 1).
    """

    def __init__(self, capacity: int = 200) -> None:
        self.capacity = max(1, int(capacity))
        self._entries: Deque[LogEntry] = deque(maxlen=self.capacity)
        self._seq = 0

    def append(self, timestamp: float, category: LogCategory, message: str) -> LogEntry:
        self._seq += 1
        entry = LogEntry(self._seq, float(timestamp), category, message)
        self._entries.append(entry)
        log.log(_LEVELS[category], "[t=%.1f] %s %s", entry.timestamp, category.value, message)
        return entry

    def entries(self) -> Tuple[LogEntry, ...]:
        """Oldest-first copy of the retained entries."""
        return tuple(self._entries)

    def latest(self, n: int) -> List[LogEntry]:
        """The *n* most recent entries, newest first."""
        if n <= 0:
            return []
        return list(self._entries)[-n:][::-1]

    def by_category(self, category: LogCategory) -> List[LogEntry]:
        return [e for e in self._entries if e.category is category]

    @property
    def total_appended(self) -> int:
        """Entries ever appended, including evicted ones."""
        return self._seq

    def __len__(self) -> int:
        return len(self._entries)
