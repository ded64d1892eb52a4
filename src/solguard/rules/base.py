"""Detector type and the detector runner.

A detector is one value of a single closed type: it is tagged by ``kind``
and carries exactly one matcher, either a compiled regex or a structural
callable that yields offset spans.  Detectors never see each other's
results, so they can run in any order.

Regex matchers run on the ``regex`` engine with a match timeout, since a
backtracking stdlib ``re`` match holds the GIL and cannot be waited out.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Sequence

import regex

from solguard import observability
from solguard.defaults import DETECTOR_BUDGET_SECONDS
from solguard.errors import DetectorBudgetExceeded
from solguard.models import IssueKind, IssueSource, SecurityIssue, Severity
from solguard.resilience import OperationTimeout, call_with_timeout
from solguard.rules.source import SourceText

log = logging.getLogger("solguard.rules")

Span = tuple[int, int]
StructuralMatcher = Callable[[SourceText], Iterable[Span]]

_clock = time.monotonic


@dataclass(frozen=True)
class Detector:
    id: str
    kind: IssueKind
    severity: Severity
    title: str
    message: str                          # may contain {evidence}
    suggestion: str = ""
    pattern: regex.Pattern | re.Pattern[str] | None = None
    match: StructuralMatcher | None = None
    auto_fix: bool = False
    use_raw: bool = False                 # match against comments and strings too

    def __post_init__(self) -> None:
        if (self.pattern is None) == (self.match is None):
            raise ValueError(f"Detector '{self.id}' needs exactly one of pattern or match")
        if isinstance(self.pattern, re.Pattern):
            object.__setattr__(self, "pattern", regex.compile(self.pattern.pattern, self.pattern.flags))

    def spans(self, src: SourceText, timeout: float | None = None) -> Iterator[Span]:
        """Offset spans matched in *src*.

        *timeout* bounds each regex search; ``TimeoutError`` propagates.
        """
        if self.match is not None:
            yield from self.match(src)
        elif self.pattern is not None:
            text = src.raw if self.use_raw else src.code
            has_target = "target" in self.pattern.groupindex
            for m in self.pattern.finditer(text, timeout=timeout):
                if has_target and m.group("target") is not None:
                    yield m.span("target")
                else:
                    yield m.span()

    def detect(self, src: SourceText, timeout: float | None = None) -> list[SecurityIssue]:
        issues: list[SecurityIssue] = []
        for start, end in self.spans(src, timeout):
            start, end = src.trim(start, end)
            if end <= start:
                continue
            evidence = src.raw[start:end]
            issues.append(SecurityIssue(
                kind=self.kind,
                severity=self.severity,
                title=self.title,
                message=self.message.replace("{evidence}", evidence),
                suggestion=self.suggestion,
                range=src.range_for(start, end),
                auto_fix_available=self.auto_fix,
                rule_id=self.id,
                evidence=evidence,
                source=IssueSource.PATTERN,
            ))
        return issues

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "title": self.title,
            "auto_fix": self.auto_fix,
        }


@dataclass
class DetectorRun:
    issues: list[SecurityIssue] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def _skip(run: DetectorRun, det: Detector, reason: str) -> None:
    log.warning("Detector %s skipped: %s", det.id, reason, extra={"detector": det.id})
    observability.record_skipped_detector(det.id)
    run.skipped.append(det.id)


def run_detectors(
    source: str | SourceText,
    detectors: Sequence[Detector],
    *,
    budget: float = DETECTOR_BUDGET_SECONDS,
) -> DetectorRun:
    """Run every detector against *source*, each bounded by *budget* seconds.

    A detector that overruns its budget or raises is skipped and listed in
    ``DetectorRun.skipped``; the rest of the run continues.  Regex matchers
    are stopped by the match timeout.  A structural matcher cannot be
    interrupted, so one that returns late has its findings discarded.
    """
    src = source if isinstance(source, SourceText) else SourceText(source)
    run = DetectorRun()
    for det in detectors:
        started = _clock()
        try:
            found = call_with_timeout(det.detect, budget, src, timeout=budget)
        except (OperationTimeout, TimeoutError):
            _skip(run, det, str(DetectorBudgetExceeded(det.id, budget)))
            continue
        except Exception as e:
            log.debug("Detector %s raised", det.id, exc_info=True)
            _skip(run, det, f"raised {type(e).__name__}: {e}")
            continue
        elapsed = _clock() - started
        if elapsed > budget:
            _skip(run, det, str(DetectorBudgetExceeded(det.id, budget)))
            continue
        log.debug(
            "Detector %s found %d issue(s)", det.id, len(found),
            extra={"detector": det.id, "duration_ms": round(elapsed * 1000, 2)},
        )
        run.issues.extend(found)
    run.skipped.sort()
    return run
