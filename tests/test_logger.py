import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from ytqueue.errors import FailureAnalyzer, NoSuitableVariantError, ResolutionError, TransferError
from ytqueue.logger import DownloadLogger, ProgressReporter


def test_context_prefix_includes_identifier_and_attempt(capsys):
    logger = DownloadLogger("id1", attempt=2)
    logger.info("hello")

    out, _ = capsys.readouterr()
    assert out.strip() == "[id=id1 attempt=2] hello"


def test_errors_go_to_stderr_and_are_counted(capsys):
    logger = DownloadLogger()
    logger.error("ERROR: Video unavailable")
    logger.error("HTTP Error 429: Too Many Requests")
    logger.error(b"Unexpected failure")
    logger.debug("ignored")

    out, err = capsys.readouterr()
    assert out == ""
    assert "Unexpected failure" in err
    assert logger.video_unavailable_errors == 1
    assert logger.rate_limit_errors == 1
    assert logger.other_errors == 1
    assert logger.last_error == "Unexpected failure"


def test_progress_reporter_logs_whole_steps(capsys):
    reporter = ProgressReporter(DownloadLogger(), "Clip", step=25)
    for downloaded in range(10, 101, 10):
        reporter.update(10, downloaded, 100)
    reporter.update(10, 50, None)

    out, _ = capsys.readouterr()
    lines = out.strip().splitlines()
    assert lines == [
        'Downloading "Clip": 30.00%',
        'Downloading "Clip": 50.00%',
        'Downloading "Clip": 80.00%',
        'Downloading "Clip": 100.00%',
    ]


@pytest.mark.parametrize(
    "error, expected",
    [
        (ResolutionError("This video is not available in your country"), "geo_restricted"),
        (ResolutionError("Sign in to confirm your age"), "age_restricted"),
        (ResolutionError("Private video"), "private_deleted"),
        (ResolutionError("Video unavailable"), "video_unavailable"),
        (TransferError("HTTP Error 403: Forbidden"), "rate_limit"),
        (NoSuitableVariantError("nothing matched"), "no_variant"),
        (TransferError("stream ended after 3 of 10 bytes"), "network"),
        (ResolutionError("something odd"), "unknown"),
    ],
)
def test_failure_analyzer_categories(error, expected):
    analyzer = FailureAnalyzer()

    assert analyzer.record("id1", error) == expected
    assert analyzer.patterns[expected].identifiers == ["id1"]


def test_failure_analyzer_writes_error_log_and_summary(tmp_path, capsys):
    log_path = tmp_path / "errors.log"
    analyzer = FailureAnalyzer(str(log_path))
    analyzer.record("id1", ResolutionError("Video unavailable"))
    analyzer.record("id2", ResolutionError("Video unavailable"))

    assert log_path.read_text(encoding="utf-8").count("[video_unavailable]") == 2

    analyzer.print_summary()
    out, _ = capsys.readouterr()
    assert "Total failures: 2" in out
    assert "Video Unavailable: 2 (2 identifiers)" in out


def test_failure_analyzer_silent_without_failures(capsys):
    FailureAnalyzer().print_summary()

    out, _ = capsys.readouterr()
    assert out == ""
