"""Engine error taxonomy.

Only ``SourceTooLarge`` and ``EngineDisposed`` reach callers of the engine.
The others are raised inside the pipeline and recovered where they occur.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for all solguard engine errors."""


class SourceTooLarge(EngineError):
    """Source length exceeds ``max_code_length``; the scan was refused."""

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(f"Source is {length} characters, limit is {limit}")
        self.length = length
        self.limit = limit


class AdapterUnavailable(EngineError):
    """The AI adapter failed, timed out or is not configured."""


class DetectorBudgetExceeded(EngineError):
    """A single detector ran past its time budget."""

    def __init__(self, detector_id: str, budget: float) -> None:
        super().__init__(f"Detector '{detector_id}' exceeded budget of {budget}s")
        self.detector_id = detector_id
        self.budget = budget


class StaleFixTarget(EngineError):
    """The issue's range no longer matches the current source."""


class EngineDisposed(EngineError):
    """The engine was used after ``dispose()``."""
