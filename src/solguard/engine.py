"""Security analysis engine.

One ``SecurityEngine`` per editor session.  It owns its cache, scheduler
state and listener registry; nothing is shared between instances.

Pipeline for one scan:
1. Refuse sources longer than ``max_code_length`` (``SourceTooLarge``)
2. Fingerprint (source, relevant config) and consult the cache
3. On a miss run the detectors, then the AI pass when enabled
4. Aggregate: dedupe, filter by threshold, order, score
5. Commit (cache + last result) only if the scan is still the latest,
   then publish to listeners
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Mapping, Sequence

from solguard import observability
from solguard.aggregator import aggregate
from solguard.ai.port import AIAnalysisPort, AIUnavailable
from solguard.ai.registry import CallRateLimiter, create_adapter, rate_limit_from_env
from solguard.ai.runner import AIRunner
from solguard.broadcast import Broadcaster, Listener, Subscription
from solguard.cache import ReportCache
from solguard.config import ScanConfig
from solguard.defaults import DETECTOR_BUDGET_SECONDS
from solguard.errors import EngineDisposed, SourceTooLarge, StaleFixTarget
from solguard.fingerprint import fingerprint
from solguard.fixes import generate_fix
from solguard.models import SecurityIssue, SecurityScanResult
from solguard.ports import EditorPort
from solguard.rules import DEFAULT_DETECTORS, Detector, DetectorRun, SourceText, run_detectors
from solguard.scheduler import ScanRequest, ScanScheduler, ScanState

log = logging.getLogger("solguard.engine")

_MS_PER_SECOND = 1000


class SecurityEngine:
    """Debounced, cached security analysis over one editor's source text."""

    def __init__(
        self,
        config: ScanConfig | Mapping[str, Any] | None = None,
        *,
        editor: EditorPort | None = None,
        ai_adapter: AIAnalysisPort | None = None,
        ai_runner: AIRunner | None = None,
        detectors: Sequence[Detector] | None = None,
        detector_budget: float = DETECTOR_BUDGET_SECONDS,
        cache: ReportCache | None = None,
        score_unreported: bool = False,
    ) -> None:
        if config is None:
            config = ScanConfig()
        elif not isinstance(config, ScanConfig):
            config = ScanConfig.from_mapping(config)
        self._config = config
        self._config_lock = threading.Lock()

        self.editor = editor
        self.detectors: tuple[Detector, ...] = tuple(DEFAULT_DETECTORS if detectors is None else detectors)
        self.detector_budget = detector_budget
        self.ai = ai_runner or AIRunner(
            ai_adapter or create_adapter(),
            limiter=CallRateLimiter(rate_limit_from_env()),
        )
        self.cache = cache or ReportCache()
        self.score_unreported = score_unreported
        self.broadcaster = Broadcaster()

        self._last_result: SecurityScanResult | None = None
        self._disposed = False
        self._scheduler = ScanScheduler(
            scan=self._scan,
            commit=self._commit,
            publish=self.broadcaster.publish,
            get_config=lambda: self.config,
        )

    # -- lifecycle -----------------------------------------------------------

    def _check_alive(self) -> None:
        if self._disposed:
            raise EngineDisposed("SecurityEngine has been disposed")

    def dispose(self) -> None:
        """Cancel pending work, drop all listeners and cached reports."""
        if self._disposed:
            return
        self._disposed = True
        self._scheduler.dispose()
        self.broadcaster.clear()
        self.cache.clear()
        self._last_result = None
        log.debug("Engine disposed")

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __enter__(self) -> SecurityEngine:
        return self

    def __exit__(self, *exc: object) -> None:
        self.dispose()

    # -- configuration -------------------------------------------------------

    @property
    def config(self) -> ScanConfig:
        with self._config_lock:
            return self._config

    def update_config(self, partial: Mapping[str, Any]) -> ScanConfig:
        """Merge *partial* into the live configuration; affects later scans only."""
        self._check_alive()
        with self._config_lock:
            self._config = self._config.merged(partial)
            return self._config

    # -- state ---------------------------------------------------------------

    @property
    def last_result(self) -> SecurityScanResult | None:
        return self._last_result

    @property
    def state(self) -> ScanState:
        return self._scheduler.state

    @property
    def is_scanning(self) -> bool:
        return self._scheduler.state == ScanState.SCANNING

    def stats(self) -> dict[str, int]:
        return {
            "scans_started": self._scheduler.scans_started,
            "scans_committed": self._scheduler.scans_committed,
            "scans_discarded": self._scheduler.scans_discarded,
            "cache_hits": self.cache.hits,
            "cache_misses": self.cache.misses,
            "cache_entries": len(self.cache),
        }

    # -- entry points --------------------------------------------------------

    def _current_source(self, source: str | None) -> str | None:
        if source is not None:
            return source
        if self.editor is not None:
            return self.editor.get_text()
        return None

    def perform_analysis(self, source: str | None = None) -> SecurityScanResult:
        """Scan immediately, bypassing the debounce.

        Uses *source*, else the editor's text, else the last triggered source.
        Raises ``SourceTooLarge`` or ``EngineDisposed``.
        """
        self._check_alive()
        return self._scheduler.perform_analysis(self._current_source(source))

    def trigger(self, source: str | None = None) -> None:
        """Debounced entry point for realtime mode. Fire-and-forget."""
        self._check_alive()
        text = self._current_source(source)
        if text is None:
            raise ValueError("trigger() needs a source when no editor is attached")
        self._scheduler.trigger(text)

    def clear_results(self) -> None:
        """Drop pending work and the current report, then publish ``None``."""
        self._check_alive()
        self._scheduler.cancel()
        self._last_result = None
        self.broadcaster.publish(None)

    def subscribe(self, callback: Listener) -> Subscription:
        self._check_alive()
        return self.broadcaster.subscribe(callback)

    def unsubscribe(self, token: Subscription) -> bool:
        self._check_alive()
        return self.broadcaster.unsubscribe(token)

    def auto_fix_issue(self, issue: SecurityIssue) -> bool:
        """Apply the fix for *issue* and schedule a re-scan.

        Returns False, leaving the text untouched, when auto-fix is disabled,
        the issue has no fix, or its range is stale.
        """
        self._check_alive()
        if not self.config.enable_auto_fix or not issue.auto_fix_available:
            return False
        current = self._current_source(None)
        if current is None:
            current = self._scheduler.latest_source
        if current is None:
            return False

        try:
            replacement = generate_fix(issue, current)
        except StaleFixTarget as e:
            log.info("Auto-fix skipped for %s: %s", issue.rule_id, e)
            return False
        if replacement is None:
            return False

        if self.editor is not None:
            self.editor.replace_range(issue.range, replacement)
            updated = self.editor.get_text()
        else:
            updated = SourceText(current).replace(issue.range, replacement)
        log.info("Applied auto-fix for %s at line %d", issue.rule_id, issue.line)
        self._scheduler.trigger(updated)
        return True

    def jump_to_issue(self, issue: SecurityIssue) -> bool:
        """Reveal *issue*'s range in the editor. Returns False if it cannot be shown."""
        self._check_alive()
        if self.editor is None:
            return False
        if not SourceText(self.editor.get_text()).contains(issue.range):
            return False
        self.editor.reveal_range(issue.range)
        return True

    # -- pipeline ------------------------------------------------------------

    def _scan(self, request: ScanRequest) -> SecurityScanResult:
        started = time.perf_counter()
        source, config = request.source, request.config
        extra: dict[str, Any] = {"scan_seq": request.seq}

        if len(source) > config.max_code_length:
            observability.record_refused_scan("too_large")
            raise SourceTooLarge(len(source), config.max_code_length)

        key = fingerprint(source, config)
        extra["fingerprint"] = key[:12]
        cached = self.cache.get(key)
        if cached is not None:
            elapsed = time.perf_counter() - started
            observability.record_scan(elapsed, cache_hit=True, degraded=False)
            log.debug("Scan %d served from cache", request.seq, extra=extra)
            return replace(cached, cache_hit=True, scan_time_ms=round(elapsed * _MS_PER_SECOND, 3))

        if config.enable_pattern_matching:
            run = run_detectors(source, self.detectors, budget=self.detector_budget)
        else:
            run = DetectorRun()

        ai = None
        if config.enable_ai_analysis:
            if request.cancelled.is_set():
                ai = AIUnavailable("cancelled")
            else:
                context = {
                    "severity_threshold": config.severity_threshold.value,
                    "pattern_findings": sorted({i.title for i in run.issues}),
                }
                ai = self.ai.run(source, context, cancelled=request.cancelled)

        agg = aggregate(run.issues, ai, config.severity_threshold, score_unreported=self.score_unreported)
        elapsed = time.perf_counter() - started
        report = SecurityScanResult(
            issues=agg.issues,
            overall_score=agg.overall_score,
            fingerprint=key,
            scan_time_ms=round(elapsed * _MS_PER_SECOND, 3),
            ai_analysis_used=agg.ai_analysis_used,
            ai_requested=config.enable_ai_analysis,
            cache_hit=False,
            skipped_detectors=tuple(run.skipped),
        )
        observability.record_scan(elapsed, cache_hit=False, degraded=report.degraded)
        log.info(
            "Scan %d complete: %d issue(s), score %d", request.seq, len(report.issues), report.overall_score,
            extra={**extra, "issues": len(report.issues), "duration_ms": report.scan_time_ms},
        )
        return report

    def _commit(self, request: ScanRequest, report: SecurityScanResult) -> None:
        # degraded reports are not cached so the next scan retries the full pipeline
        if not report.cache_hit and not report.degraded:
            self.cache.put(report.fingerprint, report)
        self._last_result = report


def scan_source(
    source: str,
    config: ScanConfig | Mapping[str, Any] | None = None,
    **engine_kwargs: Any,
) -> SecurityScanResult:
    """One-shot scan with a throwaway engine."""
    with SecurityEngine(config, **engine_kwargs) as engine:
        return engine.perform_analysis(source)
