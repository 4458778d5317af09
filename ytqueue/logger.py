"""Console logger shared by the queue, the tasks, and yt-dlp."""

import sys
import threading
from typing import Optional

_print_lock = threading.Lock()


class DownloadLogger:
    """Prints context-prefixed messages and counts the errors it sees.

    Instances are also handed to yt-dlp as its ``logger`` option, so the
    method names follow the interface yt-dlp calls.
    """

    UNAVAILABLE_FRAGMENTS = (
        "video unavailable",
        "video is unavailable",
        "content isn't available",
        "content is not available",
        "members-only",
        "this video is private",
        "sign in to confirm your age",
        "http error 410",
    )

    RATE_LIMIT_FRAGMENTS = (
        "http error 403",
        "http error 429",
        "forbidden",
        "too many requests",
    )

    def __init__(
        self,
        identifier: Optional[str] = None,
        attempt: Optional[int] = None,
    ) -> None:
        self.identifier = identifier
        self.attempt = attempt
        self.video_unavailable_errors = 0
        self.rate_limit_errors = 0
        self.other_errors = 0
        self.last_error: Optional[str] = None

    def set_attempt(self, attempt: Optional[int]) -> None:
        self.attempt = attempt

    def _format_with_context(self, message: str) -> str:
        context_parts = []
        if self.identifier:
            context_parts.append(f"id={self.identifier}")
        if self.attempt:
            context_parts.append(f"attempt={self.attempt}")
        if context_parts:
            message = f"[{' '.join(context_parts)}] {message}"
        return message

    def _print(self, message: str, file=None) -> None:
        stream = file if file is not None else sys.stdout
        with _print_lock:
            print(self._format_with_context(message), file=stream)
            stream.flush()

    def _handle_error_text(self, text: str) -> None:
        lowered = text.lower()
        self.last_error = text
        if any(fragment in lowered for fragment in self.UNAVAILABLE_FRAGMENTS):
            self.video_unavailable_errors += 1
        elif any(fragment in lowered for fragment in self.RATE_LIMIT_FRAGMENTS):
            self.rate_limit_errors += 1
        else:
            self.other_errors += 1

    @staticmethod
    def _ensure_text(message) -> str:
        if isinstance(message, bytes):
            return message.decode("utf-8", "ignore")
        return str(message)

    def debug(self, message) -> None:  # yt-dlp calls this
        pass

    def info(self, message) -> None:
        self._print(self._ensure_text(message))

    def warning(self, message) -> None:
        self._print(self._ensure_text(message), file=sys.stderr)

    def error(self, message) -> None:
        text = self._ensure_text(message)
        self._print(text, file=sys.stderr)
        self._handle_error_text(text)

    def record_exception(self, exc: BaseException) -> None:
        text = self._ensure_text(str(exc) or exc.__class__.__name__)
        self._print(text, file=sys.stderr)
        self._handle_error_text(text)


class ProgressReporter:
    """Logs transfer progress in whole-percent steps."""

    def __init__(self, logger: DownloadLogger, label: str, step: int = 10) -> None:
        self.logger = logger
        self.label = label
        self.step = max(1, step)
        self._next_report = self.step

    def update(self, chunk_length: int, downloaded: int, total: Optional[int]) -> None:
        if not total:
            return
        percent = int(downloaded * 100 / total)
        if percent < self._next_report:
            return
        self._next_report = (percent // self.step + 1) * self.step
        self.logger.info(f'Downloading "{self.label}": {downloaded * 100 / total:.2f}%')


# Logger for messages that do not belong to a single task.
console = DownloadLogger()
