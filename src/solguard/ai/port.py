"""AI port: protocol definition for external analysis adapters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from solguard.models import SecurityIssue


@dataclass
class AIAnalysis:
    """Findings and score contribution returned by an AI adapter."""

    findings: list[SecurityIssue] = field(default_factory=list)
    score_delta: int = 0
    provider: str = ""


@dataclass(frozen=True)
class AIUnavailable:
    """Explicit signal that the AI pass produced nothing usable."""

    reason: str


@runtime_checkable
class AIAnalysisPort(Protocol):
    """Protocol for AI analysis adapters."""

    @property
    def provider_name(self) -> str: ...

    def analyze(self, source: str, context: dict[str, Any]) -> AIAnalysis: ...

    def is_available(self) -> bool: ...
