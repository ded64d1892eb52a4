"""Core data types for solguard."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown severity: {value!r}") from None


_SEVERITY_RANK = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class IssueKind(str, Enum):
    VULNERABILITY = "vulnerability"
    GAS_OPTIMIZATION = "gas-optimization"
    BEST_PRACTICE = "best-practice"


class IssueSource(str, Enum):
    PATTERN = "pattern"
    AI = "ai"


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------

@dataclass(frozen=True, order=True)
class TextRange:
    """1-based editor range. ``end_column`` is one past the last character."""

    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def to_dict(self) -> dict[str, int]:
        return {
            "start_line": self.start_line,
            "start_column": self.start_column,
            "end_line": self.end_line,
            "end_column": self.end_column,
        }


@dataclass(frozen=True)
class SecurityIssue:
    kind: IssueKind
    severity: Severity
    title: str
    message: str
    range: TextRange
    suggestion: str = ""
    auto_fix_available: bool = False
    rule_id: str = ""
    evidence: str = ""                    # matched source text
    source: IssueSource = IssueSource.PATTERN

    @property
    def id(self) -> str:
        r = self.range
        raw = f"{self.rule_id}|{self.kind.value}|{r.start_line}:{r.start_column}-{r.end_line}:{r.end_column}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:12]

    @property
    def line(self) -> int:
        return self.range.start_line

    @property
    def column(self) -> int:
        return self.range.start_column

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "title": self.title,
            "message": self.message,
            "suggestion": self.suggestion,
            "range": self.range.to_dict(),
            "auto_fix_available": self.auto_fix_available,
            "rule_id": self.rule_id,
            "evidence": self.evidence,
            "source": self.source.value,
        }


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SecurityScanResult:
    issues: tuple[SecurityIssue, ...]
    overall_score: int
    fingerprint: str
    scan_time_ms: float = 0.0
    ai_analysis_used: bool = False
    ai_requested: bool = False
    cache_hit: bool = False
    skipped_detectors: tuple[str, ...] = ()
    produced_at: str = field(default_factory=now_iso)

    @property
    def degraded(self) -> bool:
        """True when a detector was skipped or a requested AI pass was unavailable."""
        return bool(self.skipped_detectors) or (self.ai_requested and not self.ai_analysis_used)

    def summary(self) -> dict[str, Any]:
        from solguard.aggregator import score_label

        counts = {s.value: 0 for s in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return {
            "total_issues": len(self.issues),
            "critical_issues": counts["critical"],
            "high_issues": counts["high"],
            "medium_issues": counts["medium"],
            "low_issues": counts["low"],
            "fixable_issues": sum(1 for i in self.issues if i.auto_fix_available),
            "gas_optimizations": sum(1 for i in self.issues if i.kind == IssueKind.GAS_OPTIMIZATION),
            "security_score": self.overall_score,
            "score_label": score_label(self.overall_score),
            "analysis_time_ms": self.scan_time_ms,
            "ai_analysis_used": self.ai_analysis_used,
            "cache_hit": self.cache_hit,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "overall_score": self.overall_score,
            "fingerprint": self.fingerprint,
            "scan_time_ms": self.scan_time_ms,
            "ai_analysis_used": self.ai_analysis_used,
            "cache_hit": self.cache_hit,
            "skipped_detectors": list(self.skipped_detectors),
            "degraded": self.degraded,
            "produced_at": self.produced_at,
        }
