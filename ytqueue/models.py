"""Data models, enums, and constants for the download queue."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional


# Constants
DEFAULT_QUEUE_FILE = "urls.txt"
DEFAULT_OUTPUT_DIR_NAME = "videos"
DEFAULT_CONCURRENCY_LIMIT = 4  # Max concurrent downloads
DEFAULT_MAX_ATTEMPTS = 3  # Attempts per identifier before giving up for this run
DEFAULT_RETRY_DELAY_BASE = 2.0  # Seconds; doubles after every failed attempt
DEFAULT_LOCK_RETRIES = 5
DEFAULT_LOCK_TIMEOUT = 10.0
DEFAULT_EXTENSION = "mp4"
DEFAULT_PREFERRED_FORMAT = "18"  # YouTube's muxed 360p mp4
DEFAULT_PREFERRED_HEIGHT = 360
DEFAULT_SOCKET_TIMEOUT = 30.0
DEFAULT_CHUNK_SIZE = 64 * 1024


class TaskState(Enum):
    """Lifecycle of a single download task."""

    RESOLVING = "resolving"
    EXISTING = "existing"
    TRANSFERRING = "transferring"
    RETRYING = "retrying"
    DONE = "done"
    FAILED = "failed"


class TaskOutcome(Enum):
    """Terminal outcome of a download task."""

    SUCCESS = "success"
    SKIPPED_EXISTING = "skipped-existing"
    FAILURE = "failure"

    @property
    def dequeues(self) -> bool:
        return self is not TaskOutcome.FAILURE


@dataclass(frozen=True)
class Variant:
    """A single downloadable rendition of a resource."""

    format_id: str
    ext: Optional[str] = None
    height: Optional[int] = None
    has_video: bool = False
    has_audio: bool = False
    url: Optional[str] = None
    http_headers: Dict[str, str] = field(default_factory=dict, compare=False, hash=False)
    filesize: Optional[int] = None
    protocol: Optional[str] = None

    def describe(self) -> str:
        parts = [self.format_id]
        if self.height:
            parts.append(f"{self.height}p")
        if self.ext:
            parts.append(self.ext)
        if self.has_video and self.has_audio:
            parts.append("muxed")
        elif self.has_video:
            parts.append("video-only")
        elif self.has_audio:
            parts.append("audio-only")
        return " ".join(parts)


@dataclass(frozen=True)
class Metadata:
    """Resolved metadata for one identifier."""

    identifier: str
    title: str
    variants: List[Variant] = field(default_factory=list)


@dataclass
class TaskResult:
    """What a download task reports back to the scheduler."""

    identifier: str
    outcome: TaskOutcome
    attempts: int
    target: Optional[Path] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome.dequeues


@dataclass
class RunSummary:
    """Aggregated results of one scheduler run."""

    dispatched: int = 0
    succeeded: List[str] = field(default_factory=list)
    skipped_existing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    def record(self, result: TaskResult) -> None:
        if result.outcome is TaskOutcome.SUCCESS:
            self.succeeded.append(result.identifier)
        elif result.outcome is TaskOutcome.SKIPPED_EXISTING:
            self.skipped_existing.append(result.identifier)
        else:
            self.failed.append(result.identifier)

    @property
    def settled(self) -> int:
        return len(self.succeeded) + len(self.skipped_existing) + len(self.failed)


@dataclass
class FailurePattern:
    """Tracks a specific failure category and its occurrences."""

    category: str
    count: int = 0
    identifiers: List[str] = field(default_factory=list)
    sample_messages: List[str] = field(default_factory=list)

    def record(self, identifier: Optional[str], message: str) -> None:
        """Record an occurrence of this failure category."""
        self.count += 1

        if identifier and identifier not in self.identifiers:
            self.identifiers.append(identifier)

        # Keep only the first 5 sample messages to avoid memory bloat
        if len(self.sample_messages) < 5 and message not in self.sample_messages:
            self.sample_messages.append(message)
