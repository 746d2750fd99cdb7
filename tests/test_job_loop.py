"""
Tests for the JobLoop state machine.
"""

import asyncio
from datetime import timedelta

import pytest

from catalogworker.core.handle import JobHandle, JobState
from catalogworker.core.limiter import ConcurrencyLimiter
from catalogworker.core.loop import JobLoop, diagnostic_name
from catalogworker.entries import ExportEntry, LinkFeedSource
from catalogworker.errors import ConfigurationError, PermanentParseError, TransientSourceError

from conftest import FakeBody, wait_until


def make_entry(name="feed", rate=timedelta(seconds=30)):
    return ExportEntry(
        file_name=name,
        update_rate=rate,
        sources=[LinkFeedSource(link=f"https://{name}.example.com/feed.xml")],
    )


async def run_loop(handle, body, limiter=None, **kwargs):
    loop = JobLoop(handle, body, limiter or ConcurrencyLimiter("test", 1), **kwargs)
    return asyncio.create_task(loop.run())


async def stop(handle, task):
    handle.stop.set()
    await asyncio.wait_for(task, timeout=2)


class TestOutcomes:
    """Success, transient retry and permanent failure."""

    @pytest.mark.asyncio
    async def test_success_sets_status(self):
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody(["ok"])
        task = await run_loop(handle, body)

        await wait_until(lambda: handle.status.state == JobState.SUCCESS)
        assert body.calls == 1
        assert handle.progress is None
        assert handle.last_success_at is not None
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_transient_twice_then_success(self):
        """Two transient failures then success: 3 attempts, counter reset."""
        handle = JobHandle(owner="shop", config=make_entry())
        err = TransientSourceError("https://feed.example.com/feed.xml", "timeout")
        body = FakeBody([err, err, "ok"])
        task = await run_loop(handle, body)

        await wait_until(lambda: handle.status.state == JobState.SUCCESS)
        assert body.calls == 3
        assert handle.retry_count == 0
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_transient_exhausts_retries(self):
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody([TransientSourceError("x", "down")])
        task = await run_loop(handle, body, max_retries=2)

        await wait_until(lambda: handle.status.state == JobState.FAILURE)
        assert body.calls == 3
        assert handle.retry_count == 0
        assert "down" in handle.status.reason
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_parse_failure_dumps_payload(self, tmp_path):
        """Permanent parse failure: no retry, raw payload saved."""
        locator = "https://bad.example.com/feed.xml"
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody([PermanentParseError(locator, "junk", b"<not xml")])
        task = await run_loop(handle, body, diagnostics_dir=tmp_path)

        await wait_until(lambda: handle.status.state == JobState.FAILURE)
        assert body.calls == 1
        dump = tmp_path / diagnostic_name(locator)
        await wait_until(dump.exists)
        assert dump.read_bytes() == b"<not xml"
        assert dump.name.endswith(".xml.tmp")
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_configuration_error_not_retried(self, tmp_path):
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody([ConfigurationError("API token is empty")])
        task = await run_loop(handle, body, diagnostics_dir=tmp_path)

        await wait_until(lambda: handle.status.state == JobState.FAILURE)
        assert body.calls == 1
        assert list(tmp_path.iterdir()) == []
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_unexpected_error_is_failure(self):
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody([RuntimeError("boom")])
        task = await run_loop(handle, body)

        await wait_until(lambda: handle.status.state == JobState.FAILURE)
        assert "boom" in handle.status.reason
        assert not task.done()
        await stop(handle, task)


class TestScheduling:
    """Freshness, idle wait, Start and Stop."""

    @pytest.mark.asyncio
    async def test_fresh_result_skips_body(self):
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody(age=timedelta(seconds=1))
        task = await run_loop(handle, body)

        await wait_until(lambda: handle.status.state == JobState.SUCCESS)
        await asyncio.sleep(0.05)
        assert body.calls == 0
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_start_forces_run_when_fresh(self):
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody(age=timedelta(seconds=1))
        task = await run_loop(handle, body)
        await wait_until(lambda: handle.status.state == JobState.SUCCESS)

        handle.start.fire()
        await wait_until(lambda: body.calls == 1)
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_start_shortens_idle_wait(self):
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody()
        task = await run_loop(handle, body)
        await wait_until(lambda: body.calls == 1 and handle.status.state == JobState.SUCCESS)

        handle.start.fire()
        await wait_until(lambda: body.calls == 2)
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_reruns_after_interval(self):
        handle = JobHandle(owner="shop", config=make_entry(rate=timedelta(milliseconds=50)))
        body = FakeBody()
        task = await run_loop(handle, body)

        await wait_until(lambda: body.calls >= 3)
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_start_while_in_progress_has_no_effect(self):
        """Firing Start during a run never overlaps executions."""
        handle = JobHandle(owner="shop", config=make_entry())
        body = FakeBody()
        body.release = asyncio.Event()
        task = await run_loop(handle, body)
        await wait_until(lambda: handle.status.state == JobState.IN_PROGRESS)

        for _ in range(5):
            handle.start.fire()
        body.release.set()

        await wait_until(lambda: handle.status.state == JobState.SUCCESS)
        await asyncio.sleep(0.05)
        assert body.calls == 1
        assert body.max_running == 1
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        handle = JobHandle(owner="shop", config=make_entry())
        task = await run_loop(handle, FakeBody())
        await wait_until(lambda: handle.status.state == JobState.SUCCESS)

        handle.stop.set()
        handle.stop.set()
        await asyncio.wait_for(task, timeout=2)
        assert task.done()

    @pytest.mark.asyncio
    async def test_disarmed_waits_for_start(self):
        handle = JobHandle(owner="shop", config=make_entry(), armed=False)
        body = FakeBody()
        task = await run_loop(handle, body)

        await wait_until(lambda: handle.status.state == JobState.SUSPENDED)
        assert body.calls == 0

        handle.armed = True
        handle.start.fire()
        await wait_until(lambda: body.calls == 1)
        await stop(handle, task)


class TestSuspend:
    """Pause / resume broadcasts."""

    @pytest.mark.asyncio
    async def test_pause_while_idle_then_resume(self):
        handle = JobHandle(owner="shop", config=make_entry(rate=timedelta(milliseconds=200)))
        body = FakeBody()
        task = await run_loop(handle, body)
        await wait_until(lambda: handle.status.state == JobState.SUCCESS)

        handle.suspend.broadcast(True)
        await wait_until(lambda: handle.status.state == JobState.SUSPENDED, timeout=0.1)
        await asyncio.sleep(0.3)
        assert body.calls == 1

        handle.suspend.broadcast(False)
        await wait_until(lambda: body.calls == 2)
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_paused_before_start(self):
        handle = JobHandle(owner="shop", config=make_entry())
        handle.suspend.broadcast(True)
        body = FakeBody()
        task = await run_loop(handle, body)

        await wait_until(lambda: handle.status.state == JobState.SUSPENDED)
        assert body.calls == 0

        handle.suspend.broadcast(False)
        await wait_until(lambda: body.calls == 1)
        await stop(handle, task)

    @pytest.mark.asyncio
    async def test_last_value_wins(self):
        handle = JobHandle(owner="shop", config=make_entry())
        handle.suspend.broadcast(True)
        handle.suspend.broadcast(False)
        body = FakeBody()
        task = await run_loop(handle, body)

        await wait_until(lambda: body.calls == 1)
        await stop(handle, task)


class TestLimiter:
    """Concurrency bound across handles."""

    @pytest.mark.asyncio
    async def test_bound_never_exceeded(self):
        limiter = ConcurrencyLimiter("export", 2)
        body = FakeBody(delay=0.05)
        handles = [JobHandle(owner="shop", config=make_entry(f"feed{i}")) for i in range(6)]
        tasks = [await run_loop(h, body, limiter) for h in handles]

        await wait_until(lambda: body.calls == 6)
        await wait_until(lambda: all(h.status.state == JobState.SUCCESS for h in handles))
        assert body.max_running == 2

        for handle, task in zip(handles, tasks):
            await stop(handle, task)

    @pytest.mark.asyncio
    async def test_queued_handle_is_enqueued(self):
        limiter = ConcurrencyLimiter("import", 1)
        body = FakeBody()
        body.release = asyncio.Event()
        first = JobHandle(owner="shop", config=make_entry("a"))
        second = JobHandle(owner="shop", config=make_entry("b"))
        t1 = await run_loop(first, body, limiter)
        await wait_until(lambda: first.status.state == JobState.IN_PROGRESS)
        t2 = await run_loop(second, body, limiter)

        await wait_until(lambda: second.status.state == JobState.ENQUEUED)
        body.release.set()
        await wait_until(lambda: second.status.state == JobState.SUCCESS)

        await stop(first, t1)
        await stop(second, t2)

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter("export", 0)
