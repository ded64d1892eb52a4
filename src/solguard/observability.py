"""Observability: structured logging and Prometheus-compatible scan metrics."""

from __future__ import annotations

import json
import logging
import threading
from collections import defaultdict
from typing import Any

# Extra fields copied from log records into the JSON payload
_EXTRA_FIELDS = ("fingerprint", "scan_seq", "detector", "provider", "duration_ms", "issues")


# ---------------------------------------------------------------------------
# Structured JSON logging
# ---------------------------------------------------------------------------

class JsonFormatter(logging.Formatter):
    """Emit log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        log_dict: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_dict["exception"] = self.formatException(record.exc_info)
        for key in _EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_dict[key] = val
        return json.dumps(log_dict, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with JSON output on stderr."""
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # Quiet noisy client loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Prometheus-compatible metrics (no external dependency)
# ---------------------------------------------------------------------------

_lock = threading.Lock()
_scan_count: dict[str, int] = defaultdict(int)          # outcome -> count
_scan_latency_sum = 0.0
_scan_latency_count = 0
_skipped_detectors: dict[str, int] = defaultdict(int)
_ai_calls: dict[str, int] = defaultdict(int)            # used | unavailable


def record_scan(duration: float, *, cache_hit: bool, degraded: bool) -> None:
    global _scan_latency_sum, _scan_latency_count
    outcome = "cache_hit" if cache_hit else ("degraded" if degraded else "complete")
    with _lock:
        _scan_count[outcome] += 1
        _scan_latency_sum += duration
        _scan_latency_count += 1


def record_refused_scan(reason: str) -> None:
    with _lock:
        _scan_count[f"refused_{reason}"] += 1


def record_discarded_scan() -> None:
    with _lock:
        _scan_count["discarded"] += 1


def record_skipped_detector(detector_id: str) -> None:
    with _lock:
        _skipped_detectors[detector_id] += 1


def record_ai_call(used: bool) -> None:
    with _lock:
        _ai_calls["used" if used else "unavailable"] += 1


def snapshot() -> dict[str, Any]:
    """Current counter values as plain dicts."""
    with _lock:
        return {
            "scans": dict(_scan_count),
            "scan_latency_sum": _scan_latency_sum,
            "scan_latency_count": _scan_latency_count,
            "skipped_detectors": dict(_skipped_detectors),
            "ai_calls": dict(_ai_calls),
        }


def generate_metrics() -> str:
    """Render metrics in Prometheus text exposition format."""
    snap = snapshot()
    lines: list[str] = []

    lines.append("# HELP solguard_scans_total Scans by outcome.")
    lines.append("# TYPE solguard_scans_total counter")
    for outcome, count in sorted(snap["scans"].items()):
        lines.append(f'solguard_scans_total{{outcome="{outcome}"}} {count}')

    lines.append("# HELP solguard_scan_duration_seconds Scan duration.")
    lines.append("# TYPE solguard_scan_duration_seconds summary")
    lines.append(f"solguard_scan_duration_seconds_sum {snap['scan_latency_sum']:.6f}")
    lines.append(f"solguard_scan_duration_seconds_count {snap['scan_latency_count']}")

    lines.append("# HELP solguard_detector_skipped_total Detectors skipped for budget or failure.")
    lines.append("# TYPE solguard_detector_skipped_total counter")
    for det, count in sorted(snap["skipped_detectors"].items()):
        lines.append(f'solguard_detector_skipped_total{{detector="{det}"}} {count}')

    lines.append("# HELP solguard_ai_calls_total AI analysis calls by result.")
    lines.append("# TYPE solguard_ai_calls_total counter")
    for result, count in sorted(snap["ai_calls"].items()):
        lines.append(f'solguard_ai_calls_total{{result="{result}"}} {count}')

    return "\n".join(lines) + "\n"


def reset_metrics() -> None:
    """Clear all counters (for tests)."""
    global _scan_latency_sum, _scan_latency_count
    with _lock:
        _scan_count.clear()
        _skipped_detectors.clear()
        _ai_calls.clear()
        _scan_latency_sum = 0.0
        _scan_latency_count = 0
