"""HTTP adapter: POSTs source to a JSON analysis endpoint.

The endpoint receives ``{"source": ..., "context": ...}`` and must answer
with the same JSON shape the model adapters produce
(``{"findings": [...], "score_delta": n}``).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from solguard.ai.port import AIAnalysis
from solguard.ai.schema import parse_analysis
from solguard.defaults import AI_MAX_SOURCE_CHARS, AI_TIMEOUT_SECONDS
from solguard.errors import AdapterUnavailable
from solguard.resilience import retry

log = logging.getLogger("solguard.ai.http")


class HttpAIAdapter:
    """JSON-over-HTTP analysis service adapter."""

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        *,
        timeout: float = AI_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
    ) -> None:
        self._endpoint = endpoint
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        self._client = client or httpx.Client(timeout=timeout)

    @property
    def provider_name(self) -> str:
        return "http"

    @retry(max_attempts=2, base_delay=0.2, exceptions=(httpx.TransportError,))
    def _post(self, body: dict[str, Any]) -> httpx.Response:
        return self._client.post(self._endpoint, json=body, headers=self._headers)

    def analyze(self, source: str, context: dict[str, Any]) -> AIAnalysis:
        resp = self._post({"source": source[:AI_MAX_SOURCE_CHARS], "context": context})
        if resp.status_code >= 400:
            raise AdapterUnavailable(f"Analysis endpoint returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise AdapterUnavailable("Analysis endpoint returned invalid JSON") from e
        if not isinstance(data, dict):
            raise AdapterUnavailable("Analysis endpoint returned a non-object payload")
        return parse_analysis(data, source, provider=self.provider_name)

    def is_available(self) -> bool:
        return bool(self._endpoint)

    def close(self) -> None:
        self._client.close()
