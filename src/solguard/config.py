"""Scan configuration.

``ScanConfig`` is an immutable value; runtime updates build a new value and
swap it in, so a reader always sees a consistent snapshot.  Loading follows
defaults -> config file -> environment (highest priority).  Environment keys
are ``SOLGUARD_<FIELD>`` (e.g. ``SOLGUARD_DEBOUNCE_MS``).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from solguard.defaults import (
    DEFAULT_DEBOUNCE_MS,
    DEFAULT_MAX_CODE_LENGTH,
    DEFAULT_SEVERITY_THRESHOLD,
)
from solguard.models import Severity

log = logging.getLogger("solguard.config")

_CONFIG_PATHS = [Path(".solguard/config.json"), Path("solguard.json")]

# camelCase names used by editor integrations
_ALIASES: dict[str, str] = {
    "enableRealtime": "enable_realtime",
    "enableAIAnalysis": "enable_ai_analysis",
    "enablePatternMatching": "enable_pattern_matching",
    "debounceMs": "debounce_ms",
    "severityThreshold": "severity_threshold",
    "maxCodeLength": "max_code_length",
    "enableAutoFix": "enable_auto_fix",
}

_TRUE = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class ScanConfig:
    enable_realtime: bool = True
    enable_ai_analysis: bool = False
    enable_pattern_matching: bool = True
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    severity_threshold: Severity = Severity(DEFAULT_SEVERITY_THRESHOLD)
    max_code_length: int = DEFAULT_MAX_CODE_LENGTH
    enable_auto_fix: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity_threshold", Severity.parse(self.severity_threshold))
        for name in ("debounce_ms", "max_code_length"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ScanConfig:
        return cls().merged(data)

    def merged(self, partial: Mapping[str, Any]) -> ScanConfig:
        """Return a copy with *partial* applied.

        Unknown keys and ``None`` values are ignored.
        """
        changes = _normalize(partial)
        if not changes:
            return self
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["severity_threshold"] = self.severity_threshold.value
        return d


def _normalize(partial: Mapping[str, Any]) -> dict[str, Any]:
    known = {f.name for f in fields(ScanConfig)}
    out: dict[str, Any] = {}
    for key, value in partial.items():
        name = _ALIASES.get(key, key)
        if name not in known:
            log.debug("Ignoring unknown config field %s", key)
            continue
        if value is None:
            continue
        out[name] = value
    return out


def _coerce_env(name: str, raw: str) -> Any:
    default = getattr(ScanConfig(), name)
    if isinstance(default, bool):
        return raw.strip().lower() in _TRUE
    if isinstance(default, int):
        return int(raw)
    return raw


def load_config(path: str | Path | None = None, environ: Mapping[str, str] | None = None) -> ScanConfig:
    """Load configuration from defaults, a JSON file, then the environment."""
    env = os.environ if environ is None else environ
    config = ScanConfig()

    candidates = [Path(path)] if path else _CONFIG_PATHS
    for p in candidates:
        if p.exists():
            try:
                data = json.loads(p.read_text())
            except (json.JSONDecodeError, OSError):
                log.warning("Could not read config file %s", p)
                break
            if isinstance(data, dict):
                config = config.merged(data)
            break

    overrides: dict[str, Any] = {}
    for f in fields(ScanConfig):
        raw = env.get(f"SOLGUARD_{f.name.upper()}")
        if raw is not None:
            try:
                overrides[f.name] = _coerce_env(f.name, raw)
            except ValueError:
                log.warning("Ignoring invalid value for SOLGUARD_%s: %r", f.name.upper(), raw)
    return config.merged(overrides)
