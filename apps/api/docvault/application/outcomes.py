"""
Where processing outcomes come from.

No real connector exists yet, so production draws outcomes at random; tests
feed a fixed sequence instead.
"""

import os
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from docvault.core.domain.ingestion import ErrorCategory, IngestionJob

SUCCESS_RATE = float(os.environ.get("INGEST_SUCCESS_RATE", "0.7"))

# Cumulative thresholds: 60% transient, 30% permanent, 10% unknown.
CATEGORY_WEIGHTS: Tuple[Tuple[float, ErrorCategory], ...] = (
    (0.6, ErrorCategory.TRANSIENT),
    (0.9, ErrorCategory.PERMANENT),
    (1.0, ErrorCategory.UNKNOWN),
)

ERROR_MESSAGES: Dict[ErrorCategory, List[str]] = {
    ErrorCategory.TRANSIENT: [
        "Connection timed out",
        "Service temporarily unavailable",
        "Rate limit exceeded",
        "Database connection error",
        "Network connectivity issue",
    ],
    ErrorCategory.PERMANENT: [
        "Invalid document format",
        "Authorization failed",
        "Resource not found",
        "Unsupported file type",
        "Malformed content structure",
    ],
    ErrorCategory.UNKNOWN: [
        "Unexpected processing error",
        "Internal server error",
        "Undefined exception occurred",
        "Service unavailable",
        "Unknown parsing error",
    ],
}


@dataclass(frozen=True)
class Outcome:
    success: bool
    category: Optional[ErrorCategory] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls) -> "Outcome":
        return cls(success=True)

    @classmethod
    def failure(cls, category: ErrorCategory, error_message: Optional[str] = None) -> "Outcome":
        return cls(
            success=False,
            category=category,
            error_message=error_message or ERROR_MESSAGES[category][0],
        )


class OutcomeSource(Protocol):
    def next_outcome(self, job: IngestionJob) -> Outcome: ...


class RandomOutcomeSource:
    def __init__(self, success_rate: float = SUCCESS_RATE, rng: Optional[random.Random] = None) -> None:
        self.success_rate = success_rate
        self._rng = rng or random.Random()

    def next_outcome(self, job: IngestionJob) -> Outcome:
        if self._rng.random() < self.success_rate:
            return Outcome.ok()
        category = self._pick_category()
        return Outcome.failure(category, self._rng.choice(ERROR_MESSAGES[category]))

    def _pick_category(self) -> ErrorCategory:
        roll = self._rng.random()
        for threshold, category in CATEGORY_WEIGHTS:
            if roll < threshold:
                return category
        return ErrorCategory.UNKNOWN


class SequenceOutcomeSource:
    """Replays ``outcomes`` in order; once exhausted the last one repeats."""

    def __init__(self, outcomes: Iterable[Outcome]) -> None:
        self._outcomes = list(outcomes)
        if not self._outcomes:
            raise ValueError("SequenceOutcomeSource needs at least one outcome")
        self._index = 0
        self.served: List[Tuple[str, Outcome]] = []

    def next_outcome(self, job: IngestionJob) -> Outcome:
        outcome = self._outcomes[min(self._index, len(self._outcomes) - 1)]
        self._index += 1
        self.served.append((job.job_id, outcome))
        return outcome
