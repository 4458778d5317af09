"""Retry policy for download tasks."""

from dataclasses import dataclass

from .models import DEFAULT_MAX_ATTEMPTS, DEFAULT_RETRY_DELAY_BASE


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: ``base_delay * 2 ** (attempt - 1)`` seconds."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_RETRY_DELAY_BASE

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        if attempt < 1:
            raise ValueError(f"attempt must be positive, got {attempt}")
        return self.base_delay * (2 ** (attempt - 1))

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts
