"""UpdateScheduler — debounced, re-armable deferred maintenance pass."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    """Lifecycle of the deferred pass."""

    IDLE = "idle"
    ARMED = "armed"
    RUNNING = "running"
    FINALIZED = "finalized"


class UpdateScheduler:
    """Collapses bursts of change notifications into single maintenance passes.

    State machine::

        IDLE --arm()--> ARMED --deadline--> RUNNING --pass done--> IDLE
                          ^                    |
                          +----- pending ------+   (re-armed with no delay)

    - ``arm()`` from IDLE sets a deadline ``debounce_interval`` away.
    - ``arm()`` while ARMED is a no-op: the deadline set by the first arm
      stands, so a pass runs one quiet interval after a burst begins even
      under continuous churn.  ``arm(immediate=True)`` pulls it forward.
    - ``idle_timeout`` bounds the deadline from above.
    - ``arm()`` while RUNNING is a no-op; the running pass re-arms itself
      when it reports pending work.
    - At most one pass runs at a time.  A pass is never cancelled once
      started; :meth:`finalize` only stops future passes.

    *callback* runs one pass and returns True when more work remains.
    Exceptions from it are logged and treated as "no pending work".
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[bool]],
        *,
        debounce_interval: float,
        idle_timeout: float,
    ) -> None:
        self._callback = callback
        self._interval = debounce_interval
        self._idle_timeout = idle_timeout
        self._state = SchedulerState.IDLE
        self._deadline = 0.0
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_armed(self) -> bool:
        return self._state is SchedulerState.ARMED

    @property
    def is_running(self) -> bool:
        return self._state is SchedulerState.RUNNING

    @property
    def is_finalized(self) -> bool:
        return self._state is SchedulerState.FINALIZED

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def arm(self, *, immediate: bool = False) -> bool:
        """Schedule a pass. Returns False when the call had no effect.

        With *immediate*, the pass runs on the next loop iteration instead
        of after the quiet interval.  Must be called from within the
        running event loop.
        """
        if self._state in (SchedulerState.FINALIZED, SchedulerState.RUNNING):
            return False

        loop = asyncio.get_running_loop()
        now = loop.time()
        if self._state is SchedulerState.ARMED:
            if not immediate:
                return False
            self._deadline = now
            self._wakeup.set()
            return True

        self._state = SchedulerState.ARMED
        self._deadline = now if immediate else now + min(self._interval, self._idle_timeout)
        self._wakeup = asyncio.Event()
        self._task = loop.create_task(self._wait_and_run())
        return True

    def disarm(self) -> None:
        """Drop an armed (not yet running) pass."""
        if self._state is not SchedulerState.ARMED:
            return
        self._state = SchedulerState.IDLE
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def finalize(self) -> None:
        """Disarm permanently without waiting for an in-flight pass.

        A running pass finishes (or fails) on its own but will not re-arm.
        """
        self.disarm()
        self._state = SchedulerState.FINALIZED

    async def wait_idle(self) -> None:
        """Wait until no pass is armed or running (including re-armed passes)."""
        while self._task is not None and not self._task.done():
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _wait_and_run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            remaining = self._deadline - loop.time()
            if remaining <= 0:
                break
            self._wakeup.clear()
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=remaining)
            except TimeoutError:
                pass

        if self._state is not SchedulerState.ARMED:
            return

        self._state = SchedulerState.RUNNING
        pending = False
        try:
            self.runs += 1
            pending = await self._callback()
        except Exception:
            logger.exception("Index update pass failed")
        finally:
            if self._state is SchedulerState.RUNNING:
                self._state = SchedulerState.IDLE

        if pending and self._state is SchedulerState.IDLE:
            logger.debug("Work remains; re-arming update pass")
            self.arm(immediate=True)
