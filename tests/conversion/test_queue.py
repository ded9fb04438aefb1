from __future__ import annotations

import asyncio

import pytest

from convert_hub.conversion.errors import ConversionFailure
from convert_hub.conversion.models import Artifact, ConversionJob
from convert_hub.conversion.queue import ConversionQueue


def _job(key: str) -> ConversionJob:
    return ConversionJob(
        key=key, data=key.encode(), source_format=".txt", target_format=".md"
    )


class RecordingRunner:
    def __init__(self, *, delay: float = 0.01, fail: tuple[str, ...] = ()):
        self.delay = delay
        self.fail = set(fail)
        self.started: list[str] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, job: ConversionJob) -> Artifact:
        self.started.append(job.key)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if job.key in self.fail:
                raise ConversionFailure(f"cannot convert {job.key}")
            return Artifact(
                data=job.data.upper(),
                filename=f"{job.key}.md",
                mime_type="text/markdown",
            )
        finally:
            self.active -= 1


def test_never_runs_more_than_the_ceiling():
    runner = RecordingRunner()
    queue = ConversionQueue(runner, max_concurrent=2)

    async def scenario():
        futures = [queue.submit(_job(f"f{index}")) for index in range(5)]
        assert queue.pending_count() == 5
        results = await asyncio.gather(*futures)
        await queue.aclose()
        return results

    results = asyncio.run(scenario())

    assert [artifact.filename for artifact in results] == [
        f"f{index}.md" for index in range(5)
    ]
    assert runner.max_active == 2
    assert queue.peak_active == 2
    assert queue.active_count() == 0


def test_jobs_start_in_submission_order():
    runner = RecordingRunner(delay=0)
    queue = ConversionQueue(runner, max_concurrent=2)
    keys = ["a", "b", "c", "d", "e", "f"]

    async def scenario():
        await asyncio.gather(*(queue.submit(_job(key)) for key in keys))
        await queue.aclose()

    asyncio.run(scenario())

    assert runner.started == keys


def test_one_failure_does_not_stop_the_queue():
    runner = RecordingRunner(fail=("bad",))
    queue = ConversionQueue(runner, max_concurrent=2)

    async def scenario():
        futures = [queue.submit(_job(key)) for key in ("ok1", "bad", "ok2")]
        results = await asyncio.gather(*futures, return_exceptions=True)
        await queue.aclose()
        return results

    first, failed, last = asyncio.run(scenario())

    assert first.filename == "ok1.md"
    assert isinstance(failed, ConversionFailure)
    assert last.filename == "ok2.md"
    assert runner.started == ["ok1", "bad", "ok2"]


def test_serial_queue_with_ceiling_one():
    runner = RecordingRunner()
    queue = ConversionQueue(runner, max_concurrent=1)

    async def scenario():
        await asyncio.gather(*(queue.submit(_job(str(i))) for i in range(4)))
        await queue.aclose()

    asyncio.run(scenario())

    assert runner.max_active == 1


def test_clear_drops_only_pending_jobs():
    seen: list[str] = []

    async def scenario():
        release = asyncio.Event()

        async def runner(job: ConversionJob) -> Artifact:
            seen.append(job.key)
            await release.wait()
            return Artifact(job.data, job.key, "text/plain")

        queue = ConversionQueue(runner, max_concurrent=1)
        jobs = [_job(f"j{index}") for index in range(4)]
        futures = [queue.submit(job) for job in jobs]
        await asyncio.sleep(0.01)

        dropped = queue.clear()
        release.set()
        running = await futures[0]
        await queue.aclose()
        return dropped, running, futures, jobs

    dropped, running, futures, jobs = asyncio.run(scenario())

    assert dropped == 3
    assert running.filename == "j0"
    assert all(future.cancelled() for future in futures[1:])
    assert all(job.progress.closed for job in jobs[1:])
    assert seen == ["j0"]


def test_cancelled_pending_job_is_skipped():
    runner = RecordingRunner()
    queue = ConversionQueue(runner, max_concurrent=1)

    async def scenario():
        first = queue.submit(_job("first"))
        second = queue.submit(_job("second"))
        third = queue.submit(_job("third"))
        second.cancel()
        await asyncio.gather(first, third)
        await queue.aclose()

    asyncio.run(scenario())

    assert runner.started == ["first", "third"]


def test_aclose_waits_for_running_jobs():
    runner = RecordingRunner(delay=0.05)
    queue = ConversionQueue(runner, max_concurrent=2)

    async def scenario():
        future = queue.submit(_job("slow"))
        await asyncio.sleep(0)
        await queue.aclose()
        assert future.done()
        with pytest.raises(RuntimeError):
            queue.submit(_job("late"))
        return future.result()

    assert asyncio.run(scenario()).filename == "slow.md"


def test_invalid_ceiling_is_rejected():
    with pytest.raises(ValueError):
        ConversionQueue(RecordingRunner(), max_concurrent=0)


def test_submit_requires_running_loop():
    queue = ConversionQueue(RecordingRunner())

    with pytest.raises(RuntimeError):
        queue.submit(_job("orphan"))
