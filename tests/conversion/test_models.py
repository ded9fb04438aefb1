from __future__ import annotations

from convert_hub.conversion.models import (
    Artifact,
    BatchResult,
    ConversionJob,
    ProgressReporter,
)


def test_progress_is_monotonic_and_clamped():
    seen: list[int] = []
    reporter = ProgressReporter(seen.append)

    for value in (10, 5, 30, 30, -4, 250):
        reporter.report(value)

    assert seen == [10, 30, 100]
    assert reporter.closed is True


def test_nothing_is_forwarded_after_completion():
    seen: list[int] = []
    reporter = ProgressReporter(seen.append)

    reporter.report(100)
    reporter.report(100)

    assert seen == [100]


def test_fail_closes_without_reporting_completion():
    seen: list[int] = []
    reporter = ProgressReporter(seen.append)

    reporter.report(10)
    reporter.fail()
    reporter.report(100)

    assert seen == [10]
    assert reporter.closed is True
    assert reporter.last == 10


def test_reporter_without_sink_tracks_last_value():
    reporter = ProgressReporter()

    assert reporter.last == 0
    reporter.report(42)
    assert reporter.last == 42


def test_job_defaults():
    job = ConversionJob(
        key="notes.md",
        data=b"# hi",
        source_format=".md",
        target_format=".html",
    )

    assert job.result is None
    assert job.compression.value == "none"
    assert job.progress.closed is False


def test_batch_result_len():
    artifact = Artifact(data=b"x", filename="a.txt", mime_type="text/plain")

    assert len(BatchResult()) == 0
    assert len(BatchResult(artifacts=(artifact, artifact))) == 2
