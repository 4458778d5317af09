"""Resumable, file-backed YouTube download queue."""

# Import main components for easier access
from .config import Settings, build_settings, load_config_file, parse_args, positive_int
from .errors import (
    FailureAnalyzer,
    FetchError,
    NoSuitableVariantError,
    OutputDirectoryError,
    QueueLockError,
    ResolutionError,
    TransferError,
    YtQueueError,
)
from .fetcher import ByteStream, Fetcher, YtDlpFetcher
from .logger import DownloadLogger
from .models import (
    DEFAULT_CONCURRENCY_LIMIT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_RETRY_DELAY_BASE,
    Metadata,
    RunSummary,
    TaskOutcome,
    TaskResult,
    TaskState,
    Variant,
)
from .paths import PathLocks, ensure_output_dir, target_path_for
from .retry import RetryPolicy
from .runner import main, run_queue
from .scheduler import Scheduler
from .task import DownloadTask
from .work_queue import WorkQueue

__all__ = [
    # Main entry points
    "main",
    "run_queue",
    "parse_args",
    "build_settings",
    # Orchestration
    "WorkQueue",
    "RetryPolicy",
    "DownloadTask",
    "Scheduler",
    # Fetching
    "Fetcher",
    "YtDlpFetcher",
    "ByteStream",
    # Models and data structures
    "Metadata",
    "Variant",
    "TaskState",
    "TaskOutcome",
    "TaskResult",
    "RunSummary",
    "Settings",
    "DownloadLogger",
    "FailureAnalyzer",
    "PathLocks",
    # Errors
    "YtQueueError",
    "OutputDirectoryError",
    "QueueLockError",
    "FetchError",
    "ResolutionError",
    "NoSuitableVariantError",
    "TransferError",
    # Helpers
    "ensure_output_dir",
    "target_path_for",
    "load_config_file",
    "positive_int",
    # Constants
    "DEFAULT_CONCURRENCY_LIMIT",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_RETRY_DELAY_BASE",
]
