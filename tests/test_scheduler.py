"""Tests for UpdateScheduler — debounce, ceiling, re-arming, finalization."""

from __future__ import annotations

import asyncio

import pytest

from semdex.index.scheduler import SchedulerState, UpdateScheduler


class _Recorder:
    """Scheduler callback that records run times and reports scripted pending flags."""

    def __init__(self, pending: list[bool] | None = None, delay: float = 0.0) -> None:
        self.pending = list(pending or [])
        self.delay = delay
        self.started: list[float] = []
        self.gate: asyncio.Event | None = None

    async def __call__(self) -> bool:
        self.started.append(asyncio.get_running_loop().time())
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.pending.pop(0) if self.pending else False


# ==================================================================
# Arming
# ==================================================================


class TestArming:
    @pytest.mark.asyncio
    async def test_starts_idle(self):
        scheduler = UpdateScheduler(_Recorder(), debounce_interval=0.01, idle_timeout=1.0)
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_arm_runs_once(self):
        callback = _Recorder()
        scheduler = UpdateScheduler(callback, debounce_interval=0.01, idle_timeout=1.0)
        assert scheduler.arm() is True
        assert scheduler.is_armed
        await scheduler.wait_idle()
        assert len(callback.started) == 1
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.runs == 1

    @pytest.mark.asyncio
    async def test_burst_collapses_into_one_run(self):
        callback = _Recorder()
        scheduler = UpdateScheduler(callback, debounce_interval=0.2, idle_timeout=5.0)
        for _ in range(10):
            scheduler.arm()
            await asyncio.sleep(0.005)
        await scheduler.wait_idle()
        assert len(callback.started) == 1

    @pytest.mark.asyncio
    async def test_rearm_keeps_first_deadline(self):
        callback = _Recorder()
        loop = asyncio.get_running_loop()
        scheduler = UpdateScheduler(callback, debounce_interval=0.1, idle_timeout=5.0)
        first = loop.time()
        assert scheduler.arm() is True
        await asyncio.sleep(0.06)
        assert scheduler.arm() is False
        await scheduler.wait_idle()
        assert 0.09 <= callback.started[0] - first < 0.15

    @pytest.mark.asyncio
    async def test_steady_churn_runs_after_one_interval(self):
        callback = _Recorder()
        loop = asyncio.get_running_loop()
        scheduler = UpdateScheduler(callback, debounce_interval=0.1, idle_timeout=5.0)
        first = loop.time()
        while loop.time() - first < 0.5:
            scheduler.arm()
            await asyncio.sleep(0.02)
        await scheduler.wait_idle()
        assert callback.started[0] - first < 0.15
        assert len(callback.started) >= 3

    @pytest.mark.asyncio
    async def test_immediate_pulls_deadline_forward(self):
        callback = _Recorder()
        loop = asyncio.get_running_loop()
        scheduler = UpdateScheduler(callback, debounce_interval=10.0, idle_timeout=60.0)
        first = loop.time()
        scheduler.arm()
        assert scheduler.arm(immediate=True) is True
        await scheduler.wait_idle()
        assert callback.started[0] - first < 1.0

    @pytest.mark.asyncio
    async def test_ceiling_bounds_deferral(self):
        callback = _Recorder()
        loop = asyncio.get_running_loop()
        scheduler = UpdateScheduler(callback, debounce_interval=10.0, idle_timeout=0.05)
        first = loop.time()
        scheduler.arm()
        await scheduler.wait_idle()
        assert callback.started[0] - first < 1.0

    @pytest.mark.asyncio
    async def test_immediate(self):
        callback = _Recorder()
        loop = asyncio.get_running_loop()
        scheduler = UpdateScheduler(callback, debounce_interval=10.0, idle_timeout=60.0)
        first = loop.time()
        scheduler.arm(immediate=True)
        await scheduler.wait_idle()
        assert callback.started[0] - first < 1.0


# ==================================================================
# Running
# ==================================================================


class TestRunning:
    @pytest.mark.asyncio
    async def test_arm_while_running_is_noop(self):
        callback = _Recorder()
        callback.gate = asyncio.Event()
        scheduler = UpdateScheduler(callback, debounce_interval=0.0, idle_timeout=1.0)
        scheduler.arm()
        while not scheduler.is_running:
            await asyncio.sleep(0.001)

        assert scheduler.arm() is False
        callback.gate.set()
        await scheduler.wait_idle()
        assert len(callback.started) == 1

    @pytest.mark.asyncio
    async def test_pending_rearms_immediately(self):
        callback = _Recorder(pending=[True, True, False])
        scheduler = UpdateScheduler(callback, debounce_interval=0.01, idle_timeout=1.0)
        scheduler.arm()
        await scheduler.wait_idle()
        assert len(callback.started) == 3
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_callback_exception_is_logged(self, caplog):
        async def _boom() -> bool:
            raise RuntimeError("pass exploded")

        scheduler = UpdateScheduler(_boom, debounce_interval=0.0, idle_timeout=1.0)
        with caplog.at_level("ERROR", logger="semdex.index.scheduler"):
            scheduler.arm()
            await scheduler.wait_idle()
        assert "Index update pass failed" in caplog.text
        assert scheduler.state is SchedulerState.IDLE
        assert scheduler.arm() is True
        await scheduler.wait_idle()


# ==================================================================
# Disarm / finalize
# ==================================================================


class TestFinalize:
    @pytest.mark.asyncio
    async def test_disarm_cancels_armed_pass(self):
        callback = _Recorder()
        scheduler = UpdateScheduler(callback, debounce_interval=0.05, idle_timeout=1.0)
        scheduler.arm()
        scheduler.disarm()
        await asyncio.sleep(0.1)
        assert callback.started == []
        assert scheduler.state is SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_finalize_prevents_arming(self):
        callback = _Recorder()
        scheduler = UpdateScheduler(callback, debounce_interval=0.01, idle_timeout=1.0)
        scheduler.arm()
        scheduler.finalize()
        assert scheduler.is_finalized
        assert scheduler.arm() is False
        await asyncio.sleep(0.05)
        assert callback.started == []

    @pytest.mark.asyncio
    async def test_finalize_does_not_wait_for_running_pass(self):
        callback = _Recorder(pending=[True])
        callback.gate = asyncio.Event()
        scheduler = UpdateScheduler(callback, debounce_interval=0.0, idle_timeout=1.0)
        scheduler.arm()
        while not scheduler.is_running:
            await asyncio.sleep(0.001)

        scheduler.finalize()
        assert scheduler.is_finalized
        callback.gate.set()
        await scheduler.wait_idle()
        # The in-flight pass finished but reported pending work; no re-arm after finalize.
        assert len(callback.started) == 1
        assert scheduler.is_finalized
