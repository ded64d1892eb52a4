"""Null AI adapter: no-op default when no AI provider is configured."""

from __future__ import annotations

from typing import Any

from solguard.ai.port import AIAnalysis


class NullAIAdapter:
    """No-op adapter. Default when no AI provider is configured."""

    @property
    def provider_name(self) -> str:
        return "null"

    def analyze(self, source: str, context: dict[str, Any]) -> AIAnalysis:
        return AIAnalysis(provider=self.provider_name)

    def is_available(self) -> bool:
        return False
