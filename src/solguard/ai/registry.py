"""AI adapter selection and call rate limiting.

Provider selection (env vars):
    SOLGUARD_AI_PROVIDER    null | anthropic | http (default null)
    SOLGUARD_AI_API_KEY     API key / bearer token
    SOLGUARD_AI_MODEL       model name for model providers
    SOLGUARD_AI_ENDPOINT    URL for the http provider
    SOLGUARD_AI_RATE_LIMIT  max calls per hour (default 30)
"""

from __future__ import annotations

import logging
import os
import threading
import time
from typing import Mapping

from solguard.ai.null_adapter import NullAIAdapter
from solguard.ai.port import AIAnalysisPort
from solguard.defaults import AI_DEFAULT_ANTHROPIC_MODEL, AI_RATE_LIMIT_PER_HOUR

log = logging.getLogger("solguard.ai.registry")

_WINDOW_SECONDS = 3600


def create_adapter(environ: Mapping[str, str] | None = None) -> AIAnalysisPort:
    """Build the AI adapter configured in the environment."""
    env = os.environ if environ is None else environ
    provider = env.get("SOLGUARD_AI_PROVIDER", "null").strip().lower()
    api_key = env.get("SOLGUARD_AI_API_KEY", "")
    model = env.get("SOLGUARD_AI_MODEL", "")

    if provider == "anthropic" and api_key:
        from solguard.ai.anthropic_adapter import AnthropicAIAdapter

        return AnthropicAIAdapter(api_key, model or AI_DEFAULT_ANTHROPIC_MODEL)
    if provider == "http":
        endpoint = env.get("SOLGUARD_AI_ENDPOINT", "")
        if endpoint:
            from solguard.ai.http_adapter import HttpAIAdapter

            return HttpAIAdapter(endpoint, api_key)
        log.warning("SOLGUARD_AI_PROVIDER=http without SOLGUARD_AI_ENDPOINT; using null adapter")
    elif provider not in ("null", "", "anthropic"):
        log.warning("Unknown AI provider %r; using null adapter", provider)
    return NullAIAdapter()


def rate_limit_from_env(environ: Mapping[str, str] | None = None) -> int:
    env = os.environ if environ is None else environ
    try:
        return int(env.get("SOLGUARD_AI_RATE_LIMIT", str(AI_RATE_LIMIT_PER_HOUR)))
    except ValueError:
        return AI_RATE_LIMIT_PER_HOUR


class CallRateLimiter:
    """Sliding one-hour window of AI calls."""

    def __init__(self, max_calls: int = AI_RATE_LIMIT_PER_HOUR, window_seconds: float = _WINDOW_SECONDS) -> None:
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._timestamps: list[float] = []
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        """Record a call and return True if under the limit, else False."""
        now = time.monotonic()
        with self._lock:
            self._timestamps[:] = [t for t in self._timestamps if now - t < self.window_seconds]
            if len(self._timestamps) >= self.max_calls:
                return False
            self._timestamps.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._timestamps.clear()
