"""
Bounded audit trail of sync operations.

Every mutation, watcher event and reconciliation pass leaves one entry,
newest last. Old entries fall off once the log is full.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass, asdict
from typing import List, Optional


@dataclass
class SyncLogEntry:
    timestamp: float
    operation: str        # write, create, move, delete, reconcile
    path: str
    status: str           # synced, disk_only, desynced, failed
    target: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class SyncLog:
    MAX_ENTRIES = 500

    def __init__(self, max_entries: Optional[int] = None):
        self._entries = deque(maxlen=max_entries or self.MAX_ENTRIES)
        self._lock = threading.Lock()

    def record(self, operation: str, path: str, status: str,
               target: Optional[str] = None, error: Optional[str] = None) -> SyncLogEntry:
        entry = SyncLogEntry(
            timestamp=time.time(),
            operation=operation,
            path=path,
            status=status,
            target=target,
            error=error,
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def recent(self, limit: int = 50) -> List[SyncLogEntry]:
        with self._lock:
            entries = list(self._entries)
        return entries[-limit:] if limit > 0 else []

    def since(self, ts: float) -> List[SyncLogEntry]:
        with self._lock:
            return [e for e in self._entries if e.timestamp >= ts]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
