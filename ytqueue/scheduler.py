"""Bounded-concurrency dispatcher for download tasks."""

import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Union

from .errors import FailureAnalyzer
from .fetcher import Fetcher
from .logger import console
from .models import DEFAULT_CONCURRENCY_LIMIT, DEFAULT_EXTENSION, RunSummary, TaskOutcome, TaskResult
from .paths import PathLocks
from .retry import RetryPolicy
from .task import DownloadTask
from .work_queue import WorkQueue


class Scheduler:
    """Runs one DownloadTask per snapshot identifier, at most N at a time.

    Task failures never escape ``run``; failed identifiers stay queued and
    are listed in the returned summary.
    """

    def __init__(
        self,
        queue: WorkQueue,
        fetcher: Fetcher,
        output_dir: Union[str, Path],
        retry_policy: Optional[RetryPolicy] = None,
        concurrency_limit: int = DEFAULT_CONCURRENCY_LIMIT,
        extension: str = DEFAULT_EXTENSION,
        sleep: Callable[[float], None] = time.sleep,
        analyzer: Optional[FailureAnalyzer] = None,
    ) -> None:
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self.queue = queue
        self.fetcher = fetcher
        self.output_dir = Path(output_dir)
        self.retry_policy = retry_policy or RetryPolicy()
        self.concurrency_limit = concurrency_limit
        self.extension = extension
        self.sleep = sleep
        self.analyzer = analyzer or FailureAnalyzer()

    def create_task(self, identifier: str, path_locks: PathLocks) -> DownloadTask:
        return DownloadTask(
            identifier,
            self.fetcher,
            self.queue,
            self.output_dir,
            retry_policy=self.retry_policy,
            extension=self.extension,
            path_locks=path_locks,
            sleep=self.sleep,
        )

    def run(self, snapshot: Sequence[str], concurrency_limit: Optional[int] = None) -> RunSummary:
        limit = concurrency_limit if concurrency_limit is not None else self.concurrency_limit
        if limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        identifiers = list(snapshot)
        summary = RunSummary(dispatched=len(identifiers))
        if not identifiers:
            console.info(f"No valid URLs found in {self.queue.path.name}.")
            return summary

        console.info(f"Starting download of {len(identifiers)} videos (concurrency={limit})...")

        path_locks = PathLocks()
        tasks: Dict[Future, DownloadTask] = {}
        with ThreadPoolExecutor(
            max_workers=min(limit, len(identifiers)),
            thread_name_prefix="ytqueue",
        ) as executor:
            for identifier in identifiers:
                task = self.create_task(identifier, path_locks)
                tasks[executor.submit(task.run)] = task

            for future in as_completed(tasks):
                task = tasks[future]
                try:
                    result = future.result()
                except Exception as exc:
                    console.record_exception(exc)
                    task.last_error = exc
                    result = TaskResult(
                        identifier=task.identifier,
                        outcome=TaskOutcome.FAILURE,
                        attempts=task.attempt,
                        target=task.target,
                        error=str(exc),
                    )

                summary.record(result)
                if not result.succeeded:
                    self.analyzer.record(
                        result.identifier,
                        task.last_error or RuntimeError(result.error or "unknown error"),
                    )
                    console.warning(
                        f"[scheduler] Failed to download {result.identifier}, "
                        f"keeping in {self.queue.path.name}"
                    )

        self._print_summary(summary)
        return summary

    def _print_summary(self, summary: RunSummary) -> None:
        console.info("\n" + "=" * 70)
        console.info("Download Summary")
        console.info("=" * 70)
        console.info(f"Dispatched: {summary.dispatched}")
        console.info(f"Downloaded: {len(summary.succeeded)}")
        console.info(f"Already present: {len(summary.skipped_existing)}")
        console.info(f"Failed (kept in queue): {len(summary.failed)}")
        for identifier in summary.failed:
            console.info(f"  - {identifier}")
        console.info("=" * 70)
        self.analyzer.print_summary()
        if summary.failed:
            console.info("Downloads finished; failed items will be retried on the next run.")
        else:
            console.info("All downloads complete!")
