"""SolGuard: real-time security analysis for Solidity source."""

from solguard.config import ScanConfig, load_config
from solguard.engine import SecurityEngine, scan_source
from solguard.models import (
    IssueKind,
    IssueSource,
    SecurityIssue,
    SecurityScanResult,
    Severity,
    TextRange,
)

__version__ = "0.1.0"

__all__ = [
    "IssueKind",
    "IssueSource",
    "ScanConfig",
    "SecurityEngine",
    "SecurityIssue",
    "SecurityScanResult",
    "Severity",
    "TextRange",
    "load_config",
    "scan_source",
]
