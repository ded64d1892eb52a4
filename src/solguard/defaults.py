"""Single source of truth for shared constants and configuration defaults.

Every magic number, threshold, or default that appears in more than one module
is defined here.  Domain-specific constants that are truly local to one module
(e.g. a regex used by a single detector) stay in that module.
"""

from __future__ import annotations


# ---------------------------------------------------------------------------
# Scan configuration defaults
# ---------------------------------------------------------------------------

DEFAULT_DEBOUNCE_MS = 2000
DEFAULT_MAX_CODE_LENGTH = 10_000
DEFAULT_SEVERITY_THRESHOLD = "low"

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

MAX_SCORE = 100
MIN_SCORE = 0

SEVERITY_PENALTIES: dict[str, int] = {
    "critical": 25,
    "high": 15,
    "medium": 8,
    "low": 3,
}

AI_SCORE_DELTA_LIMIT = 20

SCORE_LABELS: list[tuple[int, str]] = [
    (90, "Excellent"),
    (80, "Good"),
    (60, "Fair"),
    (40, "Poor"),
]
SCORE_LABEL_FLOOR = "Critical"

# ---------------------------------------------------------------------------
# Rule engine
# ---------------------------------------------------------------------------

DETECTOR_BUDGET_SECONDS = 0.5

# ---------------------------------------------------------------------------
# AI adapter
# ---------------------------------------------------------------------------

AI_TIMEOUT_SECONDS = 15.0
AI_MAX_SOURCE_CHARS = 12_000
AI_MAX_TOKENS = 1500
AI_DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
AI_RATE_LIMIT_PER_HOUR = 30
AI_BREAKER_FAILURE_THRESHOLD = 3
AI_BREAKER_RECOVERY_SECONDS = 60.0
AI_CANCEL_POLL_SECONDS = 0.02

# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

CACHE_MAX_ENTRIES = 128

# ---------------------------------------------------------------------------
# Auto-fix
# ---------------------------------------------------------------------------

REQUIRE_FALLBACK_MESSAGE = "Condition failed"
