"""Entry point wiring settings, queue, fetcher, and scheduler together."""

import time
from typing import Callable, List, Mapping, Optional

from .config import Settings, build_settings, parse_args
from .errors import FailureAnalyzer, OutputDirectoryError
from .fetcher import Fetcher, YtDlpFetcher
from .logger import console
from .paths import ensure_output_dir
from .retry import RetryPolicy
from .scheduler import Scheduler
from .work_queue import WorkQueue


def build_fetcher(settings: Settings) -> YtDlpFetcher:
    return YtDlpFetcher(
        preferred_format=settings.preferred_format,
        preferred_height=settings.preferred_height,
        extension=settings.extension,
        socket_timeout=settings.socket_timeout,
        cookies_from_browser=settings.cookies_from_browser,
        proxy=settings.proxy,
    )


def run_queue(
    settings: Settings,
    fetcher: Optional[Fetcher] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Process the queue once. Returns the process exit code."""

    try:
        ensure_output_dir(settings.output)
    except OutputDirectoryError as exc:
        console.error(str(exc))
        return 1

    if fetcher is None:
        fetcher = build_fetcher(settings)

    queue = WorkQueue(
        settings.queue_file,
        validator=fetcher.validate,
        lock_retries=settings.lock_retries,
        lock_timeout=settings.lock_timeout,
    )
    snapshot = queue.load()

    scheduler = Scheduler(
        queue,
        fetcher,
        settings.output,
        retry_policy=RetryPolicy(settings.max_retries, settings.retry_delay_base),
        concurrency_limit=settings.concurrency,
        extension=settings.extension,
        sleep=sleep,
        analyzer=FailureAnalyzer(settings.error_log),
    )
    scheduler.run(snapshot, settings.concurrency)
    return 0


def main(
    argv: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    fetcher: Optional[Fetcher] = None,
) -> int:
    """Main entry point."""

    args = parse_args(argv)
    settings = build_settings(args, environ)
    return run_queue(settings, fetcher=fetcher)
