"""Tests for bounded-concurrency dispatch."""

from __future__ import annotations

import io
import sys
import threading
import time
from pathlib import Path
from typing import Dict, List

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from ytqueue.errors import FailureAnalyzer, ResolutionError
from ytqueue.fetcher import ByteStream, Fetcher
from ytqueue.models import Metadata, Variant
from ytqueue.retry import RetryPolicy
from ytqueue.scheduler import Scheduler
from ytqueue.task import DownloadTask
from ytqueue.work_queue import WorkQueue

MUXED = Variant("18", ext="mp4", height=360, has_video=True, has_audio=True, url="https://cdn/18")


class SlowSource(io.BytesIO):
    def read(self, size=-1):
        time.sleep(0.01)
        return super().read(size)


class CountingFetcher(Fetcher):
    """Fake fetcher that tracks how many transfers are open at once."""

    def __init__(self, failing=(), crashing=()):
        self.failing = set(failing)
        self.crashing = set(crashing)
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.resolve_counts: Dict[str, int] = {}
        self.streams: List[str] = []

    def validate(self, raw: str) -> bool:
        return raw.startswith("id")

    def resolve(self, identifier: str) -> Metadata:
        with self.lock:
            self.resolve_counts[identifier] = self.resolve_counts.get(identifier, 0) + 1
        if identifier in self.crashing:
            raise RuntimeError("unexpected bug")
        if identifier in self.failing:
            raise ResolutionError("Video unavailable")
        return Metadata(identifier, f"Title {identifier}", [MUXED])

    def select_variant(self, variants):
        return variants[0] if variants else None

    def open_stream(self, identifier: str, variant: Variant) -> ByteStream:
        fetcher = self

        class TrackedStream(ByteStream):
            def __iter__(self):
                with fetcher.lock:
                    fetcher.active += 1
                    fetcher.max_active = max(fetcher.max_active, fetcher.active)
                try:
                    yield from super().__iter__()
                finally:
                    with fetcher.lock:
                        fetcher.active -= 1

        with self.lock:
            self.streams.append(identifier)
        return TrackedStream(SlowSource(b"0123456789" * 4), total=40, chunk_size=8)


def make_scheduler(tmp_path, fetcher, identifiers, **kwargs):
    queue_path = tmp_path / "urls.txt"
    queue_path.write_text("".join(f"{i}\n" for i in identifiers), encoding="utf-8")
    queue = WorkQueue(queue_path, validator=fetcher.validate)
    output = tmp_path / "videos"
    output.mkdir()
    sleeps: List[float] = []
    scheduler = Scheduler(queue, fetcher, output, sleep=sleeps.append, **kwargs)
    return scheduler, queue, output, sleeps


def test_all_successful_downloads_empty_the_queue(tmp_path):
    fetcher = CountingFetcher()
    scheduler, queue, output, _ = make_scheduler(tmp_path, fetcher, ["id1", "id2"])

    summary = scheduler.run(queue.load(), concurrency_limit=2)

    assert sorted(summary.succeeded) == ["id1", "id2"]
    assert summary.failed == []
    assert queue.path.read_text(encoding="utf-8") == ""
    assert (output / "Title id1.mp4").exists()
    assert (output / "Title id2.mp4").exists()


@pytest.mark.parametrize("limit", [1, 2, 3])
def test_concurrency_never_exceeds_limit(tmp_path, limit):
    fetcher = CountingFetcher()
    identifiers = [f"id{i}" for i in range(8)]
    scheduler, queue, _, _ = make_scheduler(tmp_path, fetcher, identifiers)

    summary = scheduler.run(queue.load(), concurrency_limit=limit)

    assert summary.settled == len(identifiers)
    assert 1 <= fetcher.max_active <= limit
    assert sorted(fetcher.streams) == sorted(identifiers)


def test_failed_identifiers_stay_queued(tmp_path, capsys):
    fetcher = CountingFetcher(failing={"id2"})
    scheduler, queue, _, sleeps = make_scheduler(
        tmp_path, fetcher, ["id1", "id2", "id3"], retry_policy=RetryPolicy(3, 1.0)
    )

    summary = scheduler.run(queue.load())

    assert summary.failed == ["id2"]
    assert sorted(summary.succeeded) == ["id1", "id3"]
    assert fetcher.resolve_counts["id2"] == 3
    assert sorted(sleeps) == [1.0, 2.0]
    assert queue.path.read_text(encoding="utf-8") == "id2\n"
    assert scheduler.analyzer.patterns["video_unavailable"].identifiers == ["id2"]

    out, err = capsys.readouterr()
    assert "Failed to download id2" in err
    assert "Failed (kept in queue): 1" in out


def test_unexpected_resolve_error_is_retried_with_backoff(tmp_path):
    fetcher = CountingFetcher(crashing={"id1"})
    scheduler, queue, _, sleeps = make_scheduler(tmp_path, fetcher, ["id1", "id2"])

    summary = scheduler.run(queue.load())

    assert summary.failed == ["id1"]
    assert summary.succeeded == ["id2"]
    assert fetcher.resolve_counts["id1"] == 3
    assert sleeps == [2.0, 4.0]
    assert queue.load() == ["id1"]
    assert scheduler.analyzer.total_failures == 1


def test_task_crash_does_not_abort_run(tmp_path, monkeypatch: pytest.MonkeyPatch):
    fetcher = CountingFetcher()
    scheduler, queue, _, _ = make_scheduler(tmp_path, fetcher, ["id1", "id2"])
    original_run = DownloadTask.run

    def crashing_run(task):
        if task.identifier == "id1":
            raise RuntimeError("unexpected bug")
        return original_run(task)

    monkeypatch.setattr(DownloadTask, "run", crashing_run)

    summary = scheduler.run(queue.load())

    assert summary.failed == ["id1"]
    assert summary.succeeded == ["id2"]
    assert queue.load() == ["id1"]
    assert scheduler.analyzer.patterns["unknown"].identifiers == ["id1"]


def test_rerun_only_processes_remaining_identifiers(tmp_path):
    fetcher = CountingFetcher(failing={"id2"})
    scheduler, queue, _, _ = make_scheduler(tmp_path, fetcher, ["id1", "id2"])
    scheduler.run(queue.load())

    fetcher.failing.clear()
    fetcher.streams.clear()
    summary = scheduler.run(queue.load())

    assert fetcher.streams == ["id2"]
    assert summary.dispatched == 1
    assert summary.succeeded == ["id2"]
    assert queue.load() == []


def test_empty_snapshot_reports_no_work(tmp_path, capsys):
    fetcher = CountingFetcher()
    scheduler, queue, _, _ = make_scheduler(tmp_path, fetcher, [])

    summary = scheduler.run([])

    assert summary.dispatched == 0
    assert summary.settled == 0
    out, _ = capsys.readouterr()
    assert "No valid URLs found" in out


def test_rejects_non_positive_limits(tmp_path):
    fetcher = CountingFetcher()
    queue = WorkQueue(tmp_path / "urls.txt")
    with pytest.raises(ValueError):
        Scheduler(queue, fetcher, tmp_path, concurrency_limit=0)

    scheduler = Scheduler(queue, fetcher, tmp_path, analyzer=FailureAnalyzer())
    with pytest.raises(ValueError):
        scheduler.run(["id1"], concurrency_limit=0)
