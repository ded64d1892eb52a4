"""Score aggregation: merge, dedupe, filter, order and score findings.

Score = 100 minus a fixed penalty per finding (by severity), plus the AI
score delta, clamped to [0, 100].  By default only reported findings
(those at or above the severity threshold) count toward the deduction;
``score_unreported=True`` makes filtered-out findings count as well.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from solguard.ai.port import AIAnalysis, AIUnavailable
from solguard.defaults import (
    AI_SCORE_DELTA_LIMIT,
    MAX_SCORE,
    MIN_SCORE,
    SCORE_LABEL_FLOOR,
    SCORE_LABELS,
    SEVERITY_PENALTIES,
)
from solguard.models import SecurityIssue, Severity


@dataclass(frozen=True)
class Aggregate:
    issues: tuple[SecurityIssue, ...]
    overall_score: int
    ai_analysis_used: bool


def sort_key(issue: SecurityIssue) -> tuple[int, int, int, str, str, int, int, str]:
    """Total order: severity desc, line, column, kind, title, then end position and rule."""
    r = issue.range
    return (
        -issue.severity.rank,
        r.start_line,
        r.start_column,
        issue.kind.value,
        issue.title,
        r.end_line,
        r.end_column,
        issue.rule_id,
    )


def _preferred(a: SecurityIssue, b: SecurityIssue) -> SecurityIssue:
    if a.severity.rank != b.severity.rank:
        return a if a.severity.rank > b.severity.rank else b
    return min(a, b, key=lambda i: (i.title, i.rule_id, i.source.value, i.message, i.suggestion))


def dedupe(issues: Iterable[SecurityIssue]) -> list[SecurityIssue]:
    """Collapse findings sharing (range, kind), keeping the higher severity."""
    kept: dict[tuple, SecurityIssue] = {}
    for issue in issues:
        key = (issue.range, issue.kind)
        current = kept.get(key)
        kept[key] = issue if current is None else _preferred(current, issue)
    return list(kept.values())


def penalty(issues: Iterable[SecurityIssue]) -> int:
    return sum(SEVERITY_PENALTIES[i.severity.value] for i in issues)


def compute_score(issues: Iterable[SecurityIssue], ai_delta: int = 0) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, MAX_SCORE - penalty(issues) + ai_delta))


def aggregate(
    pattern_issues: Iterable[SecurityIssue],
    ai: AIAnalysis | AIUnavailable | None,
    threshold: Severity,
    *,
    score_unreported: bool = False,
) -> Aggregate:
    ai_used = isinstance(ai, AIAnalysis)
    merged = list(pattern_issues)
    ai_delta = 0
    if isinstance(ai, AIAnalysis):
        merged.extend(ai.findings)
        ai_delta = max(-AI_SCORE_DELTA_LIMIT, min(AI_SCORE_DELTA_LIMIT, ai.score_delta))

    unique = dedupe(merged)
    reported = sorted((i for i in unique if i.severity.rank >= threshold.rank), key=sort_key)
    score = compute_score(unique if score_unreported else reported, ai_delta)
    return Aggregate(issues=tuple(reported), overall_score=score, ai_analysis_used=ai_used)


def score_label(score: int) -> str:
    for floor, label in SCORE_LABELS:
        if score >= floor:
            return label
    return SCORE_LABEL_FLOOR
