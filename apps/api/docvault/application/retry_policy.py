"""Retry eligibility and exponential backoff for failed ingestion attempts."""

import os
import random
from dataclasses import dataclass
from typing import Optional

from docvault.core.domain.ingestion import ErrorCategory

RETRYABLE_CATEGORIES = frozenset({ErrorCategory.TRANSIENT, ErrorCategory.UNKNOWN})
JITTER_FACTOR = 0.3


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 3
    base_delay_ms: int = 2000
    max_delay_ms: int = 30000
    exponential_backoff: bool = True

    @classmethod
    def from_env(cls) -> "RetryConfig":
        return cls(
            max_retries=int(os.environ.get("INGEST_MAX_RETRIES", "3")),
            base_delay_ms=int(os.environ.get("INGEST_BASE_DELAY_MS", "2000")),
            max_delay_ms=int(os.environ.get("INGEST_MAX_DELAY_MS", "30000")),
            exponential_backoff=_env_flag("INGEST_EXPONENTIAL_BACKOFF", True),
        )


class RetryPolicy:
    def __init__(self, config: Optional[RetryConfig] = None, rng: Optional[random.Random] = None) -> None:
        self.config = config or RetryConfig()
        self._rng = rng or random.Random()

    @property
    def max_retries(self) -> int:
        return self.config.max_retries

    def should_retry(self, category: ErrorCategory, attempts: int) -> bool:
        # Exhausted attempts win over category.
        if attempts >= self.config.max_retries:
            return False
        return category in RETRYABLE_CATEGORIES

    def compute_delay(self, attempt: int) -> float:
        """
        Milliseconds to wait before retry number ``attempt`` (1-based).

        ``base * 2**attempt`` plus up to 30% jitter, never above ``max_delay_ms``.
        """
        if not self.config.exponential_backoff:
            return float(self.config.base_delay_ms)

        exponential = self.config.base_delay_ms * (2 ** attempt)
        jitter = self._rng.random() * JITTER_FACTOR * exponential
        return float(min(exponential + jitter, self.config.max_delay_ms))
