import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from audit.logger import logger

MAX_ENTRIES = 100
MAX_SNAPSHOT = 50


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_AUDIT_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    level: str
    message: str
    data: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LogBuffer:
    """
    Bounded, newest-first list of operational events exposed on GET /logs.

    Entries are kept in memory only and are lost on restart. Every entry is
    also written to the audit logger so the file log has the full history.
    """

    def __init__(self, capacity: int = MAX_ENTRIES):
        self._entries = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(self, level, message: str, data: Any = None) -> LogEntry:
        level = LogLevel(level)
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=level.value,
            message=message,
            data=data,
        )

        # appendleft on a bounded deque drops the oldest entry at the right end
        with self._lock:
            self._entries.appendleft(entry)

        if data is None:
            logger.log(_AUDIT_LEVELS[level], message)
        else:
            logger.log(_AUDIT_LEVELS[level], f"{message} | data={data}")

        return entry

    def info(self, message: str, data: Any = None) -> LogEntry:
        return self.record(LogLevel.INFO, message, data)

    def warn(self, message: str, data: Any = None) -> LogEntry:
        return self.record(LogLevel.WARN, message, data)

    def error(self, message: str, data: Any = None) -> LogEntry:
        return self.record(LogLevel.ERROR, message, data)

    def snapshot(self, limit: Optional[int] = MAX_SNAPSHOT) -> Dict[str, Any]:
        if limit is None or limit > MAX_SNAPSHOT:
            limit = MAX_SNAPSHOT
        limit = max(limit, 0)

        with self._lock:
            entries: List[LogEntry] = list(self._entries)

        return {
            "logs": [entry.to_dict() for entry in entries[:limit]],
            "total": len(entries),
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
