"""Tests for the APScheduler-driven breach monitor."""

import asyncio

import pytest

from slawatch.sla.domain import MonitorConfig
from slawatch.sla.infrastructure import SLAMonitor, MonitorState


def fast_config(**overrides):
    # Intervals in minutes; 0.001 min = 60 ms
    values = dict(
        check_interval_minutes=10,
        recovery_interval_minutes=0.001,
        shutdown_grace_seconds=0.5,
    )
    values.update(overrides)
    return MonitorConfig(**values)


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class TestSLAMonitor:
    def test_stopped_before_start(self):
        async def job():
            return None

        monitor = SLAMonitor(job, fast_config())

        assert monitor.state == MonitorState.STOPPED
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_runs_immediate_pass_then_sleeps(self):
        calls = []

        async def job():
            calls.append(1)
            return {"ok": True}

        monitor = SLAMonitor(job, fast_config())
        await monitor.start()
        await wait_until(lambda: monitor.state == MonitorState.SLEEPING)

        assert calls == [1]
        assert monitor.passes_completed == 1
        assert monitor.last_result == {"ok": True}
        assert monitor.interval_minutes == 10

        await monitor.stop()
        assert monitor.state == MonitorState.STOPPED
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_failed_pass_switches_to_recovery_interval(self):
        async def job():
            raise RuntimeError("database unavailable")

        monitor = SLAMonitor(job, fast_config(recovery_interval_minutes=5))
        await monitor.start()
        await wait_until(lambda: monitor.passes_failed == 1)

        assert monitor.interval_minutes == 5
        assert monitor.is_running

        await monitor.stop()

    @pytest.mark.asyncio
    async def test_successful_pass_restores_check_interval(self):
        attempts = []

        async def job():
            attempts.append(1)
            if len(attempts) < 3:
                raise RuntimeError("database unavailable")

        monitor = SLAMonitor(job, fast_config())
        await monitor.start()
        await wait_until(lambda: monitor.passes_completed == 1)

        assert monitor.passes_failed == 2
        assert monitor.interval_minutes == 10
        assert monitor.is_running

        await monitor.stop()

    @pytest.mark.asyncio
    async def test_stop_while_sleeping_is_prompt(self):
        async def job():
            return None

        monitor = SLAMonitor(job, fast_config(check_interval_minutes=60))
        await monitor.start()
        await wait_until(lambda: monitor.state == MonitorState.SLEEPING)

        await asyncio.wait_for(monitor.stop(), timeout=1.0)

        assert monitor.state == MonitorState.STOPPED

    @pytest.mark.asyncio
    async def test_stop_cancels_pass_exceeding_grace_period(self):
        started = asyncio.Event()

        async def job():
            started.set()
            await asyncio.sleep(60)

        monitor = SLAMonitor(job, fast_config(shutdown_grace_seconds=0.05))
        await monitor.start()
        await asyncio.wait_for(started.wait(), timeout=2.0)

        await asyncio.wait_for(monitor.stop(), timeout=1.0)

        assert not monitor.is_running
        assert monitor.passes_completed == 0

    @pytest.mark.asyncio
    async def test_stop_waits_for_pass_within_grace_period(self):
        started = asyncio.Event()
        release = asyncio.Event()
        seen = []

        async def job():
            started.set()
            await release.wait()
            seen.append(monitor.stop_requested)

        monitor = SLAMonitor(job, fast_config())
        await monitor.start()
        await asyncio.wait_for(started.wait(), timeout=2.0)

        stopping = asyncio.create_task(monitor.stop())
        await asyncio.sleep(0)
        release.set()
        await stopping

        assert seen == [True]
        assert monitor.passes_completed == 1

    @pytest.mark.asyncio
    async def test_start_twice_keeps_single_job(self):
        calls = []

        async def job():
            calls.append(1)

        monitor = SLAMonitor(job, fast_config())
        await monitor.start()
        await monitor.start()
        await wait_until(lambda: monitor.state == MonitorState.SLEEPING)

        assert calls == [1]
        await monitor.stop()
