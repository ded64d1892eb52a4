"""Anthropic Claude adapter for AI-assisted contract analysis."""

from __future__ import annotations

import logging
from typing import Any

from solguard.ai.port import AIAnalysis
from solguard.ai.schema import build_prompt, extract_json, parse_analysis
from solguard.defaults import AI_DEFAULT_ANTHROPIC_MODEL, AI_MAX_TOKENS

log = logging.getLogger("solguard.ai.anthropic")


class AnthropicAIAdapter:
    """Anthropic Claude adapter for contract analysis."""

    def __init__(self, api_key: str, model: str = AI_DEFAULT_ANTHROPIC_MODEL):
        import anthropic

        self._client = anthropic.Anthropic(api_key=api_key)
        self._model = model

    @property
    def provider_name(self) -> str:
        return "anthropic"

    def analyze(self, source: str, context: dict[str, Any]) -> AIAnalysis:
        prompt = build_prompt(source, context)
        response = self._client.messages.create(
            model=self._model,
            max_tokens=AI_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
        text = "".join(getattr(block, "text", "") for block in response.content)
        log.debug("Anthropic response: %d chars", len(text), extra={"provider": self.provider_name})
        return parse_analysis(extract_json(text), source, provider=self.provider_name)

    def is_available(self) -> bool:
        return self._client is not None
