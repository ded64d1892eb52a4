"""Rule engine: detectors over Solidity source text."""

from solguard.rules.base import Detector, DetectorRun, run_detectors
from solguard.rules.catalog import DEFAULT_DETECTORS, get_detector
from solguard.rules.source import SourceText, mask_comments

__all__ = [
    "DEFAULT_DETECTORS",
    "Detector",
    "DetectorRun",
    "SourceText",
    "get_detector",
    "mask_comments",
    "run_detectors",
]
