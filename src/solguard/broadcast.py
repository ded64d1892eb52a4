"""Listener broadcast: best-effort fan-out of scan results. Never raises."""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Callable

from solguard.models import SecurityScanResult

log = logging.getLogger("solguard.broadcast")

Listener = Callable[[SecurityScanResult | None], None]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``subscribe``; pass it back to ``unsubscribe``."""

    id: int


class Broadcaster:
    """Delivers each published report to subscribers in subscription order.

    ``publish(None)`` means the analysis was cleared.
    """

    def __init__(self) -> None:
        self._listeners: dict[int, Listener] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, callback: Listener) -> Subscription:
        with self._lock:
            token = Subscription(next(self._ids))
            self._listeners[token.id] = callback
        return token

    def unsubscribe(self, token: Subscription) -> bool:
        with self._lock:
            return self._listeners.pop(token.id, None) is not None

    def publish(self, report: SecurityScanResult | None) -> None:
        with self._lock:
            # dicts keep insertion order, which is subscription order
            listeners = list(self._listeners.items())
        for sub_id, callback in listeners:
            try:
                callback(report)
            except Exception:
                log.exception("Listener %d failed", sub_id)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
