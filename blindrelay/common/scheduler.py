"""Cancellable periodic tasks on the asyncio event loop."""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from blindrelay.common.errors import BlindRelayError


logger = structlog.get_logger(__name__)


class PeriodicTask:
    """
    Runs `tick` every `interval` seconds until stopped.

    Each tick is awaited to completion before the interval starts again, so
    two ticks of the same task never overlap. stop() ends the schedule at
    once but lets an in-flight tick finish; the tick itself is expected to
    re-check its owner's state before applying side effects.

    Errors raised by a tick are logged and the schedule carries on.
    """

    def __init__(
        self,
        name: str,
        interval: float,
        tick: Callable[[], Awaitable[None]],
        run_immediately: bool = True,
    ):
        self.name = name
        self.interval = interval
        self._tick = tick
        self._run_immediately = run_immediately
        self._stopped: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._stopped is not None and not self._stopped.is_set()

    def start(self) -> None:
        if self.running:
            return
        # every run gets its own stop flag; a stopped run still finishing
        # its last tick cannot be revived by a later start()
        self._stopped = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._stopped), name=self.name
        )

    def stop(self) -> None:
        if self._stopped is not None:
            self._stopped.set()

    async def wait(self) -> None:
        """Wait for the loop (and any in-flight tick) to finish after stop()."""
        if self._task is not None:
            await self._task

    async def _sleep(self, stopped: asyncio.Event) -> bool:
        """Sleep one interval. Returns False if stopped meanwhile."""
        try:
            await asyncio.wait_for(stopped.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return True
        return False

    async def _run(self, stopped: asyncio.Event) -> None:
        if not self._run_immediately and not await self._sleep(stopped):
            return
        while not stopped.is_set():
            await self.run_once()
            if not await self._sleep(stopped):
                break
        logger.debug("periodic_task_stopped", task=self.name, ticks=self.ticks)

    async def run_once(self) -> None:
        """Run a single tick with the task's error policy applied."""
        self.ticks += 1
        try:
            await self._tick()
        except BlindRelayError as exc:
            logger.warning("tick_failed", task=self.name, error=str(exc), kind=type(exc).__name__)
        except Exception:
            logger.exception("tick_crashed", task=self.name)
