"""Prompt building and response parsing shared by the AI adapters.

Adapter output is opaque, so every finding is validated against the issue
schema and its location clamped into the scanned source.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any

from solguard.ai.port import AIAnalysis
from solguard.defaults import AI_MAX_SOURCE_CHARS, AI_SCORE_DELTA_LIMIT
from solguard.errors import AdapterUnavailable
from solguard.models import IssueKind, IssueSource, SecurityIssue, Severity, TextRange
from solguard.rules.source import SourceText

log = logging.getLogger("solguard.ai.schema")

_KIND_ALIASES = {
    "vulnerability": IssueKind.VULNERABILITY,
    "security": IssueKind.VULNERABILITY,
    "gas": IssueKind.GAS_OPTIMIZATION,
    "gas-optimization": IssueKind.GAS_OPTIMIZATION,
    "gas_optimization": IssueKind.GAS_OPTIMIZATION,
    "best-practice": IssueKind.BEST_PRACTICE,
    "best_practice": IssueKind.BEST_PRACTICE,
    "style": IssueKind.BEST_PRACTICE,
}


def build_prompt(source: str, context: dict[str, Any]) -> str:
    """Build the analysis prompt."""
    return (
        "You are a Solidity security auditor. Review the contract below and report "
        "vulnerabilities, gas optimizations and best-practice violations that simple "
        "pattern matching would miss.\n\n"
        f"## Context\n```json\n{json.dumps(context, indent=2, sort_keys=True, default=str)}\n```\n\n"
        f"## Source\n```solidity\n{source[:AI_MAX_SOURCE_CHARS]}\n```\n\n"
        "Respond in JSON with keys: findings (list of objects with kind, severity, title, "
        "message, suggestion, line, column, end_line, end_column) and score_delta "
        f"(integer between -{AI_SCORE_DELTA_LIMIT} and {AI_SCORE_DELTA_LIMIT})."
    )


def extract_json(text: str) -> dict[str, Any]:
    """Pull the outermost JSON object out of a free-text model response."""
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise AdapterUnavailable("AI response contained no JSON object")
    try:
        data = json.loads(text[start:end])
    except json.JSONDecodeError as e:
        raise AdapterUnavailable(f"AI response was not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise AdapterUnavailable("AI response JSON was not an object")
    return data


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _clamp_range(item: dict[str, Any], src: SourceText) -> TextRange:
    line = min(max(_as_int(item.get("line"), 1), 1), src.line_count)
    col = min(max(_as_int(item.get("column"), 1), 1), src.line_length(line) + 1)
    end_line = min(max(_as_int(item.get("end_line"), line), line), src.line_count)
    default_end_col = src.line_length(end_line) + 1
    end_col = min(max(_as_int(item.get("end_column"), default_end_col), 1), src.line_length(end_line) + 1)
    if end_line == line and end_col < col:
        end_col = col
    return TextRange(line, col, end_line, end_col)


def parse_finding(item: Any, src: SourceText) -> SecurityIssue | None:
    if not isinstance(item, dict):
        return None
    title = str(item.get("title", "")).strip()
    if not title:
        return None
    kind = _KIND_ALIASES.get(str(item.get("kind", "vulnerability")).strip().lower())
    if kind is None:
        return None
    try:
        severity = Severity.parse(item.get("severity", "medium"))
    except ValueError:
        return None
    rng = _clamp_range(item, src)
    return SecurityIssue(
        kind=kind,
        severity=severity,
        title=title,
        message=str(item.get("message", "")).strip(),
        suggestion=str(item.get("suggestion", "")).strip(),
        range=rng,
        auto_fix_available=False,
        rule_id="ai",
        evidence=src.text_at(rng),
        source=IssueSource.AI,
    )


def parse_analysis(data: dict[str, Any], source: str, *, provider: str) -> AIAnalysis:
    """Validate a decoded adapter payload into an ``AIAnalysis``.

    Items that do not fit the issue schema are dropped; a payload without a
    findings list is rejected.
    """
    items = data.get("findings", [])
    if not isinstance(items, list):
        raise AdapterUnavailable("AI response 'findings' was not a list")
    src = SourceText(source)
    findings: list[SecurityIssue] = []
    if source:
        for item in items:
            issue = parse_finding(item, src)
            if issue is None:
                log.debug("Dropping malformed AI finding: %r", item)
                continue
            findings.append(issue)
    delta = _as_int(data.get("score_delta"), 0)
    delta = max(-AI_SCORE_DELTA_LIMIT, min(AI_SCORE_DELTA_LIMIT, delta))
    return AIAnalysis(findings=findings, score_delta=delta, provider=provider)


def sanitize_analysis(analysis: AIAnalysis, source: str) -> AIAnalysis:
    """Re-check an adapter's result against the scanned source.

    Applies to every adapter, including injected ones that skip
    ``parse_analysis``: findings outside the source are dropped, the rest
    are marked as AI findings without an auto-fix, and the score delta is
    clamped.
    """
    src = SourceText(source)
    findings: list[SecurityIssue] = []
    for issue in analysis.findings:
        if not isinstance(issue, SecurityIssue) or not src.contains(issue.range):
            log.debug("Dropping out-of-range AI finding: %r", issue)
            continue
        findings.append(replace(issue, auto_fix_available=False, source=IssueSource.AI))
    delta = max(-AI_SCORE_DELTA_LIMIT, min(AI_SCORE_DELTA_LIMIT, _as_int(analysis.score_delta, 0)))
    return AIAnalysis(findings=findings, score_delta=delta, provider=analysis.provider)
