import json
import logging
import os
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    timestamp: float
    message: str
    severity: Severity

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "message": self.message, "severity": self.severity.value}


class ScanLog:
    """Bounded, append-only operator log. Keeps the newest `capacity` entries.

    Every entry is mirrored to the module logger so headless runs see it too.
    """

    def __init__(self, capacity: int = 100, clock=time.time) -> None:
        self._entries: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._clock = clock

    def append(self, message: str, severity: Severity = Severity.INFO) -> LogEntry:
        entry = LogEntry(timestamp=self._clock(), message=message, severity=severity)
        with self._lock:
            self._entries.append(entry)
        if severity is Severity.ERROR:
            logger.error(message)
        else:
            logger.info(message)
        return entry

    def info(self, message: str) -> LogEntry:
        return self.append(message, Severity.INFO)

    def success(self, message: str) -> LogEntry:
        return self.append(message, Severity.SUCCESS)

    def error(self, message: str) -> LogEntry:
        return self.append(message, Severity.ERROR)

    def entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        """Newest first."""
        with self._lock:
            items = list(reversed(self._entries))
        return items[:limit] if limit is not None else items

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class EventLogger:
    """Thread-safe JSONL event logger for classification request visibility.

    Writes compact JSON objects per line to a file. Each event gets a monotonically
    increasing sequence number `seq` and a timestamp `ts`. A None path disables it.
    """
    def __init__(self, path: Optional[str]) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._seq = 0
        self._fp = None
        if path:
            # Lazy open on first write
            os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)

    def _ensure_open(self):
        if self._fp is None and self.path:
            self._fp = open(self.path, "a", encoding="utf-8")

    def emit(self, ev: Dict[str, Any]) -> None:
        if not self.path:
            return
        try:
            with self._lock:
                self._ensure_open()
                self._seq += 1
                ev_out = dict(ev)
                ev_out.setdefault("seq", self._seq)
                ev_out.setdefault("ts", time.time())
                self._fp.write(json.dumps(ev_out, ensure_ascii=False, default=str) + "\n")
                self._fp.flush()
        except OSError as e:
            # Event logging must never break a scan
            logger.warning("event log write failed (%s): %s", self.path, e)

    def close(self):
        with self._lock:
            if self._fp is not None:
                self._fp.close()
                self._fp = None
