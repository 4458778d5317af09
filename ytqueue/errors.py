"""Exception taxonomy and failure analysis for the download queue."""

from datetime import datetime
from typing import Dict, List, Optional

from .logger import console
from .models import FailurePattern


class YtQueueError(Exception):
    """Base class for all errors raised by this package."""


class OutputDirectoryError(YtQueueError):
    """Raised when the output directory cannot be created. Fatal to a run."""


class QueueLockError(YtQueueError):
    """Raised when the queue file lock cannot be acquired."""


class FetchError(YtQueueError):
    """Base class for per-task errors that are retried."""


class ResolutionError(FetchError):
    """Raised when metadata for an identifier cannot be resolved."""


class NoSuitableVariantError(FetchError):
    """Raised when the selection policy finds no variant to download."""


class TransferError(FetchError):
    """Raised when the byte stream for a variant fails."""


class FailureAnalyzer:
    """Categorizes terminal task failures and summarizes them after a run."""

    CATEGORIES = (
        "video_unavailable",
        "private_deleted",
        "age_restricted",
        "geo_restricted",
        "rate_limit",
        "no_variant",
        "network",
        "unknown",
    )

    def __init__(self, error_log_path: Optional[str] = None) -> None:
        self.patterns: Dict[str, FailurePattern] = {
            name: FailurePattern(name) for name in self.CATEGORIES
        }
        self.total_failures = 0
        self.error_log_path = error_log_path

    def categorize(self, error: BaseException) -> str:
        if isinstance(error, NoSuitableVariantError):
            return "no_variant"

        lowered = str(error).lower()

        # Order matters - more specific first
        if any(x in lowered for x in ["not available in your country", "geo", "region"]):
            return "geo_restricted"
        if any(x in lowered for x in ["sign in to confirm your age", "age-restricted", "age restricted"]):
            return "age_restricted"
        if any(x in lowered for x in ["private", "deleted", "removed", "uploader has not made"]):
            return "private_deleted"
        if any(x in lowered for x in ["video unavailable", "content isn't available", "content is not available"]):
            return "video_unavailable"
        if any(x in lowered for x in ["403", "forbidden", "429", "too many requests", "rate limit"]):
            return "rate_limit"
        if isinstance(error, (TransferError, OSError)) or any(
            x in lowered for x in ["timed out", "connection", "network", "unreachable"]
        ):
            return "network"
        return "unknown"

    def record(self, identifier: Optional[str], error: BaseException) -> str:
        """Categorize a failure and record it. Returns the failure category."""
        category = self.categorize(error)
        message = str(error) or error.__class__.__name__
        self.total_failures += 1
        self.patterns[category].record(identifier, message)

        if self.error_log_path:
            self._append_to_error_log(identifier, category, message)

        return category

    def _append_to_error_log(self, identifier: Optional[str], category: str, message: str) -> None:
        try:
            timestamp = datetime.now().isoformat()
            entry = f"[{timestamp}] [{category}] {identifier or 'unknown'}: {message}\n"
            with open(self.error_log_path, "a", encoding="utf-8") as handle:
                handle.write(entry)
        except OSError as exc:
            # Don't fail the run if error logging fails
            console.warning(f"Warning: Failed to write to error log: {exc}")

    def summary_lines(self) -> List[str]:
        if self.total_failures == 0:
            return []

        lines = [f"Total failures: {self.total_failures}"]
        ordered = sorted(self.patterns.values(), key=lambda p: p.count, reverse=True)
        for pattern in ordered:
            if not pattern.count:
                continue
            lines.append(
                f"{pattern.category.replace('_', ' ').title()}: {pattern.count} "
                f"({len(pattern.identifiers)} identifiers)"
            )
            if pattern.sample_messages:
                lines.append(f"  Sample: {pattern.sample_messages[0][:80]}")
        return lines

    def print_summary(self) -> None:
        """Print a formatted summary of failure categories."""
        lines = self.summary_lines()
        if not lines:
            return

        console.info("\n" + "=" * 70)
        console.info("Failure Analysis")
        console.info("=" * 70)
        for line in lines:
            console.info(line)
        if self.error_log_path:
            console.info(f"\nDetailed error log: {self.error_log_path}")
        console.info("=" * 70)
