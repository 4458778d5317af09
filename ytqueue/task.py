"""Per-identifier download state machine."""

import contextlib
import os
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from .errors import NoSuitableVariantError
from .fetcher import Fetcher
from .logger import DownloadLogger, ProgressReporter
from .models import DEFAULT_EXTENSION, Metadata, TaskOutcome, TaskResult, TaskState, Variant
from .paths import PathLocks, target_path_for
from .retry import RetryPolicy
from .work_queue import WorkQueue


class DownloadTask:
    """Drives one identifier through resolve, existence check, and transfer.

    The identifier is removed from the queue only when the target file
    already exists or a transfer completed. Every other path leaves it queued.
    """

    def __init__(
        self,
        identifier: str,
        fetcher: Fetcher,
        queue: WorkQueue,
        output_dir: Union[str, Path],
        retry_policy: Optional[RetryPolicy] = None,
        extension: str = DEFAULT_EXTENSION,
        path_locks: Optional[PathLocks] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.identifier = identifier
        self.fetcher = fetcher
        self.queue = queue
        self.output_dir = Path(output_dir)
        self.retry_policy = retry_policy or RetryPolicy()
        self.extension = extension
        self.path_locks = path_locks or PathLocks()
        self.sleep = sleep
        self.logger = DownloadLogger(identifier)

        self.attempt = 1
        self.state = TaskState.RESOLVING
        self.history: List[TaskState] = []
        self.outcome: Optional[TaskOutcome] = None
        self.target: Optional[Path] = None
        self.last_error: Optional[BaseException] = None

    def _transition(self, state: TaskState) -> None:
        self.state = state
        self.history.append(state)

    def run(self) -> TaskResult:
        while True:
            self.logger.set_attempt(self.attempt)
            try:
                return self._attempt_once()
            except Exception as exc:
                self.last_error = exc
                self.logger.error(f"Error downloading {self.identifier}: {exc}")

            if not self.retry_policy.should_retry(self.attempt):
                break

            delay = self.retry_policy.delay(self.attempt)
            self._transition(TaskState.RETRYING)
            self.logger.info(f"Retrying {self.identifier} in {delay:g}s...")
            self.sleep(delay)
            self.attempt += 1

        self._transition(TaskState.FAILED)
        self.outcome = TaskOutcome.FAILURE
        self.logger.error(f"Max retries reached for {self.identifier}, keeping it queued.")
        return self._result(error=str(self.last_error) if self.last_error else None)

    def _attempt_once(self) -> TaskResult:
        self._transition(TaskState.RESOLVING)
        metadata = self.fetcher.resolve(self.identifier)
        target = target_path_for(self.output_dir, metadata.title, self.identifier, self.extension)
        self.target = target

        with self.path_locks.for_path(target):
            if target.exists():
                self._transition(TaskState.EXISTING)
                self.logger.info(f'"{target.name}" already downloaded, skipping.')
                outcome = TaskOutcome.SKIPPED_EXISTING
            else:
                variant = self.fetcher.select_variant(metadata.variants)
                if variant is None:
                    raise NoSuitableVariantError(
                        f"No suitable variant among {len(metadata.variants)} for {self.identifier}"
                    )
                self._transfer(metadata, variant, target)
                outcome = TaskOutcome.SUCCESS

        self.queue.remove(self.identifier)
        self._transition(TaskState.DONE)
        self.outcome = outcome
        return self._result()

    def _transfer(self, metadata: Metadata, variant: Variant, target: Path) -> None:
        self._transition(TaskState.TRANSFERRING)
        label = metadata.title or self.identifier
        part_path = target.with_name(target.name + ".part")
        progress = ProgressReporter(self.logger, label)

        self.logger.info(f'Starting download for "{label}" using {variant.describe()}')
        try:
            with self.fetcher.open_stream(self.identifier, variant) as stream:
                with open(part_path, "wb") as handle:
                    for chunk in stream:
                        handle.write(chunk)
                        progress.update(len(chunk), stream.downloaded, stream.total)
            os.replace(part_path, target)
        except Exception:
            with contextlib.suppress(OSError):
                os.remove(part_path)
            raise
        self.logger.info(f'Finished downloading "{label}"')

    def _result(self, error: Optional[str] = None) -> TaskResult:
        return TaskResult(
            identifier=self.identifier,
            outcome=self.outcome or TaskOutcome.FAILURE,
            attempts=self.attempt,
            target=self.target,
            error=error,
        )
