"""Failure boundary around the AI adapter.

``AIRunner.run`` never raises: every failure mode (not configured, open
breaker, rate limited, timeout, adapter error, malformed output,
cancellation) comes back as an ``AIUnavailable`` value.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from solguard import observability
from solguard.ai.port import AIAnalysis, AIAnalysisPort, AIUnavailable
from solguard.ai.registry import CallRateLimiter
from solguard.ai.schema import sanitize_analysis
from solguard.defaults import (
    AI_BREAKER_FAILURE_THRESHOLD,
    AI_BREAKER_RECOVERY_SECONDS,
    AI_TIMEOUT_SECONDS,
)
from solguard.errors import AdapterUnavailable
from solguard.resilience import (
    CircuitBreaker,
    OperationCancelled,
    OperationTimeout,
    call_with_timeout,
)

log = logging.getLogger("solguard.ai")


class AIRunner:
    def __init__(
        self,
        adapter: AIAnalysisPort,
        *,
        timeout: float = AI_TIMEOUT_SECONDS,
        breaker: CircuitBreaker | None = None,
        limiter: CallRateLimiter | None = None,
    ) -> None:
        self.adapter = adapter
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker(
            failure_threshold=AI_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=AI_BREAKER_RECOVERY_SECONDS,
            name=f"ai-{adapter.provider_name}",
        )
        self.limiter = limiter or CallRateLimiter()

    def run(
        self,
        source: str,
        context: dict[str, Any],
        *,
        cancelled: threading.Event | None = None,
    ) -> AIAnalysis | AIUnavailable:
        outcome = self._run(source, context, cancelled)
        observability.record_ai_call(isinstance(outcome, AIAnalysis))
        if isinstance(outcome, AIUnavailable):
            log.info("AI analysis unavailable: %s", outcome.reason, extra={"provider": self.adapter.provider_name})
        return outcome

    def _run(
        self,
        source: str,
        context: dict[str, Any],
        cancelled: threading.Event | None,
    ) -> AIAnalysis | AIUnavailable:
        if not self.adapter.is_available():
            return AIUnavailable("adapter not configured")
        if not self.breaker.allow():
            return AIUnavailable(f"circuit breaker '{self.breaker.name}' is open")
        if not self.limiter.try_acquire():
            return AIUnavailable("rate limit reached")

        try:
            result = call_with_timeout(
                self.adapter.analyze, self.timeout, source, context, cancelled=cancelled,
            )
        except OperationCancelled:
            # superseded by newer input; not the adapter's fault
            return AIUnavailable("cancelled")
        except OperationTimeout:
            self.breaker.record_failure()
            return AIUnavailable(f"timed out after {self.timeout}s")
        except AdapterUnavailable as e:
            self.breaker.record_failure()
            return AIUnavailable(str(e))
        except Exception as e:
            self.breaker.record_failure()
            log.warning("AI adapter %s raised: %s", self.adapter.provider_name, e, exc_info=True)
            return AIUnavailable(f"adapter error: {e}")

        if not isinstance(result, AIAnalysis):
            self.breaker.record_failure()
            return AIUnavailable("adapter returned an unexpected result type")
        self.breaker.record_success()
        return sanitize_analysis(result, source)
