"""Deterministic fingerprint of a (source, scan-relevant config) pair.

Used as the cache key.  Same input always produces the same fingerprint;
any change to the source bytes or to a config field that can change scan
output produces a different one.
"""

from __future__ import annotations

import hashlib
from typing import Any

from solguard.config import ScanConfig


def relevant_config(config: ScanConfig) -> dict[str, Any]:
    """Config fields that can change scan output."""
    return {
        "enable_ai_analysis": config.enable_ai_analysis,
        "enable_pattern_matching": config.enable_pattern_matching,
        "severity_threshold": config.severity_threshold.value,
    }


def build_canonical_text(config: ScanConfig) -> str:
    """Config section of the fingerprint input; keys emitted in sorted order."""
    rel = relevant_config(config)
    return "\n".join(f"{key}={rel[key]}" for key in sorted(rel))


def fingerprint(source: str, config: ScanConfig) -> str:
    """Return the SHA-256 hex digest of the config section and the exact source bytes."""
    h = hashlib.sha256()
    header = build_canonical_text(config).encode("utf-8")
    # length-prefix the header so no source text can impersonate a config line
    h.update(len(header).to_bytes(8, "big"))
    h.update(header)
    h.update(source.encode("utf-8", "surrogatepass"))
    return h.hexdigest()
