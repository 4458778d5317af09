"""Durable, file-backed queue of pending identifiers."""

import contextlib
import logging
import os
import time
from pathlib import Path
from typing import Callable, List, Optional, Union

from filelock import FileLock, Timeout

from .errors import QueueLockError
from .logger import DownloadLogger, console
from .models import DEFAULT_LOCK_RETRIES, DEFAULT_LOCK_TIMEOUT

logging.getLogger("filelock").setLevel(logging.INFO)

LOCK_RETRY_PAUSE = 0.1  # seconds, doubled after every timed-out acquisition


def _accept_all(_: str) -> bool:
    return True


class WorkQueue:
    """Pending identifiers stored one per line in a UTF-8 text file.

    ``load`` always returns a snapshot. ``remove`` is the only mutator and
    runs its read-filter-rewrite cycle under an exclusive cross-process lock
    on ``<path>.lock``.
    """

    def __init__(
        self,
        path: Union[str, Path],
        validator: Optional[Callable[[str], bool]] = None,
        lock_retries: int = DEFAULT_LOCK_RETRIES,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        logger: Optional[DownloadLogger] = None,
    ) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.validator = validator or _accept_all
        self.lock_retries = max(1, lock_retries)
        self.lock_timeout = lock_timeout
        self.logger = logger or console

    def _parse(self, data: str) -> List[str]:
        identifiers = []
        for raw_line in data.split("\n"):
            stripped = raw_line.strip()
            if not stripped:
                continue
            if not self.validator(stripped):
                continue
            identifiers.append(stripped)
        return identifiers

    def _read(self) -> List[str]:
        with open(self.path, "r", encoding="utf-8") as handle:
            return self._parse(handle.read())

    def load(self) -> List[str]:
        """Return the valid identifiers currently queued.

        A missing file is created empty. Any other read failure is reported
        and treated as an empty queue.
        """
        try:
            return self._read()
        except FileNotFoundError:
            self.logger.info(f"[queue] {self.path.name} not found, creating empty file.")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.touch()
            except OSError as exc:
                self.logger.warning(f"[queue] Failed to create {self.path}: {exc}")
            return []
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning(f"[queue] Error reading {self.path}: {exc}")
            return []

    def _write(self, identifiers: List[str]) -> None:
        data = "\n".join(identifiers) + ("\n" if identifiers else "")
        temp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8", newline="\n") as handle:
                handle.write(data)
            os.replace(temp_path, self.path)
        except OSError:
            with contextlib.suppress(OSError):
                os.remove(temp_path)
            raise

    def _acquire(self) -> FileLock:
        lock = FileLock(str(self.lock_path))
        pause = LOCK_RETRY_PAUSE
        for attempt in range(1, self.lock_retries + 1):
            try:
                lock.acquire(timeout=self.lock_timeout)
                return lock
            except Timeout:
                if attempt == self.lock_retries:
                    break
                time.sleep(pause)
                pause *= 2
        raise QueueLockError(
            f"Could not lock {self.path} after {self.lock_retries} attempts"
        )

    def remove(self, identifier: str) -> bool:
        """Durably drop *identifier* from the queue file.

        Returns ``False`` when the lock could not be taken or the file could
        not be rewritten; the identifier then stays queued for the next run.
        """
        try:
            lock = self._acquire()
        except (QueueLockError, OSError) as exc:
            self.logger.warning(f"[queue] Error updating {self.path.name} for {identifier}: {exc}")
            return False

        try:
            try:
                identifiers = self._read()
            except FileNotFoundError:
                identifiers = []
            remaining = [entry for entry in identifiers if entry != identifier]
            self._write(remaining)
            self.logger.info(f"[queue] Removed {identifier} from {self.path.name}")
            return True
        except (OSError, UnicodeDecodeError) as exc:
            self.logger.warning(f"[queue] Error updating {self.path.name} for {identifier}: {exc}")
            return False
        finally:
            lock.release()
