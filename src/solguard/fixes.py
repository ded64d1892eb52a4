"""Auto-fix generation.

Each fix is keyed by ``(kind, title pattern)`` and maps the issue's matched
text to a replacement for exactly the issue's range.  Fixes never guess:
when the current source no longer holds the matched text at the range,
``StaleFixTarget`` is raised.
"""

from __future__ import annotations

import re
from typing import Callable

from solguard.defaults import REQUIRE_FALLBACK_MESSAGE
from solguard.errors import StaleFixTarget
from solguard.models import IssueKind, IssueSource, SecurityIssue
from solguard.rules.catalog import find_closing_paren
from solguard.rules.source import SourceText

FixGenerator = Callable[[SecurityIssue], str | None]


def _tx_origin(issue: SecurityIssue) -> str | None:
    return "msg.sender" if issue.evidence == "tx.origin" else None


def _external_visibility(issue: SecurityIssue) -> str | None:
    return "external" if issue.evidence == "public" else None


def _prefix_increment(issue: SecurityIssue) -> str | None:
    m = re.fullmatch(r"(\w+)\+\+", issue.evidence)
    return f"++{m.group(1)}" if m else None


def _require_message(issue: SecurityIssue) -> str | None:
    m = re.match(r"require\s*\(", issue.evidence)
    if m is None:
        return None
    close_idx = find_closing_paren(issue.evidence, m.end() - 1)
    if close_idx is None or close_idx != len(issue.evidence) - 1:
        return None
    condition = issue.evidence[m.end():close_idx].strip()
    if not condition:
        return None
    return f'require({condition}, "{REQUIRE_FALLBACK_MESSAGE}")'


def _pin_pragma(issue: SecurityIssue) -> str | None:
    m = re.fullmatch(r"\^\s*(\d+\.\d+(?:\.\d+)?)", issue.evidence)
    return m.group(1) if m else None


_FIXES: list[tuple[IssueKind, re.Pattern[str], FixGenerator]] = [
    (IssueKind.VULNERABILITY, re.compile(r"tx\.origin"), _tx_origin),
    (IssueKind.GAS_OPTIMIZATION, re.compile(r"Function Visibility"), _external_visibility),
    (IssueKind.GAS_OPTIMIZATION, re.compile(r"Prefix Increment"), _prefix_increment),
    (IssueKind.BEST_PRACTICE, re.compile(r"Error Message"), _require_message),
    (IssueKind.BEST_PRACTICE, re.compile(r"Floating Pragma"), _pin_pragma),
]


def check_target(issue: SecurityIssue, source: str | SourceText) -> None:
    """Raise ``StaleFixTarget`` unless *source* still holds the issue's text at its range."""
    src = source if isinstance(source, SourceText) else SourceText(source)
    if not src.contains(issue.range):
        raise StaleFixTarget(f"Range {issue.range} is outside the current source")
    if issue.evidence and src.text_at(issue.range) != issue.evidence:
        raise StaleFixTarget(f"Text at {issue.range} changed since the issue was reported")


def generate_fix(issue: SecurityIssue, source: str | SourceText | None = None) -> str | None:
    """Replacement text for *issue*'s range, or None when no deterministic fix exists.

    When *source* is given the target range is validated against it first.
    """
    if issue.source is IssueSource.AI:
        return None
    for kind, title_re, generator in _FIXES:
        if issue.kind == kind and title_re.search(issue.title):
            replacement = generator(issue)
            if replacement is None:
                return None
            if source is not None:
                check_target(issue, source)
            return replacement
    return None


def apply_fix(source: str, issue: SecurityIssue) -> str | None:
    """Return *source* with the fix for *issue* applied, or None if there is no fix."""
    src = SourceText(source)
    replacement = generate_fix(issue, src)
    if replacement is None:
        return None
    return src.replace(issue.range, replacement)
