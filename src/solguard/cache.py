"""In-memory report cache keyed by fingerprint.

Entries are immutable ``SecurityScanResult`` values, so a reader never sees
a partially written report.  Least recently used entries are evicted once
``max_entries`` is reached.
"""

from __future__ import annotations

import threading
from collections import OrderedDict

from solguard.defaults import CACHE_MAX_ENTRIES
from solguard.models import SecurityScanResult


class ReportCache:
    def __init__(self, max_entries: int = CACHE_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._entries: OrderedDict[str, SecurityScanResult] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> SecurityScanResult | None:
        with self._lock:
            report = self._entries.get(key)
            if report is None:
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            return report

    def put(self, key: str, report: SecurityScanResult) -> None:
        with self._lock:
            self._entries[key] = report
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0
