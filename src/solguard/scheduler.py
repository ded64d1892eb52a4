"""Scan scheduler: debounce, sequencing and cancellation.

State machine per engine::

    idle --trigger--> pending --timer fires--> scanning --done--> idle
                        ^                          |
                        +------- trigger ----------+   (in-flight scan cancelled)

Every trigger and every forced scan takes the next value of a monotonic
sequence number.  A finished scan is committed (cached and published) only
if its sequence number is still the latest; anything older is discarded.
A single scan lock keeps at most one pipeline running at a time (reentrant,
so a listener may force a scan from inside a publish), and each
request carries a cancel event that is set as soon as it is superseded so
a pending AI call is abandoned instead of awaited.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from solguard import observability
from solguard.config import ScanConfig
from solguard.errors import EngineDisposed, EngineError
from solguard.models import SecurityScanResult

log = logging.getLogger("solguard.scheduler")


class ScanState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    SCANNING = "scanning"


@dataclass(frozen=True)
class ScanRequest:
    seq: int
    source: str
    config: ScanConfig
    cancelled: threading.Event = field(default_factory=threading.Event, compare=False)


ScanFn = Callable[[ScanRequest], SecurityScanResult]
CommitFn = Callable[[ScanRequest, SecurityScanResult], None]
PublishFn = Callable[[SecurityScanResult], None]


class ScanScheduler:
    def __init__(
        self,
        scan: ScanFn,
        commit: CommitFn,
        publish: PublishFn,
        get_config: Callable[[], ScanConfig],
    ) -> None:
        self._scan = scan
        self._commit = commit
        self._publish = publish
        self._get_config = get_config

        self._lock = threading.RLock()
        self._scan_lock = threading.RLock()
        self._seq = 0
        self._latest_source: str | None = None
        self._timer: threading.Timer | None = None
        self._active: ScanRequest | None = None
        self._disposed = False

        self.scans_started = 0
        self.scans_committed = 0
        self.scans_discarded = 0

    # -- state ---------------------------------------------------------------

    @property
    def state(self) -> ScanState:
        with self._lock:
            if self._active is not None and not self._active.cancelled.is_set():
                return ScanState.SCANNING
            if self._timer is not None:
                return ScanState.PENDING
            return ScanState.IDLE

    @property
    def latest_seq(self) -> int:
        with self._lock:
            return self._seq

    @property
    def latest_source(self) -> str | None:
        with self._lock:
            return self._latest_source

    def _check_alive(self) -> None:
        if self._disposed:
            raise EngineDisposed("Scan scheduler has been disposed")

    def _supersede(self) -> int:
        """Take the next sequence number, dropping the timer and cancelling in-flight work."""
        self._seq += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._active is not None:
            self._active.cancelled.set()
        return self._seq

    # -- entry points --------------------------------------------------------

    def trigger(self, source: str) -> None:
        """Record *source* and (re)start the debounce timer."""
        with self._lock:
            self._check_alive()
            self._latest_source = source
            config = self._get_config()
            if not config.enable_realtime:
                log.debug("Realtime analysis disabled; trigger recorded without scheduling")
                return
            seq = self._supersede()
            timer = threading.Timer(config.debounce_ms / 1000.0, self._fire, args=(seq,))
            timer.daemon = True
            self._timer = timer
            timer.start()
            log.debug("Scan %d scheduled in %dms", seq, config.debounce_ms, extra={"scan_seq": seq})

    def perform_analysis(self, source: str | None = None) -> SecurityScanResult:
        """Scan the latest source now, superseding any pending or running scan."""
        with self._lock:
            self._check_alive()
            if source is not None:
                self._latest_source = source
            seq = self._supersede()
            request = ScanRequest(seq, self._latest_source or "", self._get_config())
        report = self._execute(request, forced=True)
        if report is None:
            raise EngineDisposed("Scan scheduler has been disposed")
        return report

    def cancel(self) -> None:
        """Drop pending and in-flight work without scheduling anything new."""
        with self._lock:
            self._check_alive()
            self._supersede()

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._supersede()
            self._disposed = True

    # -- execution -----------------------------------------------------------

    def _fire(self, seq: int) -> None:
        with self._lock:
            if self._disposed or seq != self._seq:
                return
            self._timer = None
            request = ScanRequest(seq, self._latest_source or "", self._get_config())
        try:
            self._execute(request, forced=False)
        except EngineError as e:
            log.warning("Debounced scan %d refused: %s", seq, e, extra={"scan_seq": seq})
        except Exception:
            log.exception("Debounced scan %d failed", seq, extra={"scan_seq": seq})

    def _execute(self, request: ScanRequest, *, forced: bool) -> SecurityScanResult | None:
        with self._scan_lock:
            with self._lock:
                if self._disposed:
                    return None
                if not forced and request.seq != self._seq:
                    self._discard(request, "superseded before start")
                    return None
                self._active = request
                self.scans_started += 1

            try:
                report = self._scan(request)
            finally:
                with self._lock:
                    if self._active is request:
                        self._active = None

            with self._lock:
                current = request.seq == self._seq and not self._disposed
                if current:
                    self._commit(request, report)
                    self.scans_committed += 1
                else:
                    self._discard(request, "superseded while scanning")
            if current:
                self._publish(report)
            return report

    def _discard(self, request: ScanRequest, reason: str) -> None:
        self.scans_discarded += 1
        observability.record_discarded_scan()
        log.debug("Scan %d discarded: %s", request.seq, reason, extra={"scan_seq": request.seq})
