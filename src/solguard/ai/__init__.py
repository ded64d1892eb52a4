"""AI-assisted analysis: adapters and the failure boundary around them."""

from solguard.ai.null_adapter import NullAIAdapter
from solguard.ai.port import AIAnalysis, AIAnalysisPort, AIUnavailable
from solguard.ai.registry import CallRateLimiter, create_adapter
from solguard.ai.runner import AIRunner

__all__ = [
    "AIAnalysis",
    "AIAnalysisPort",
    "AIRunner",
    "AIUnavailable",
    "CallRateLimiter",
    "NullAIAdapter",
    "create_adapter",
]
