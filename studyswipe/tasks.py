"""Cancelable periodic background tasks.

A failed cycle is logged and the next tick runs as scheduled; only
``stop()`` (or cancellation of the owning task) ends the loop.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from studyswipe.logger import logger


class PeriodicTask:
    """Run ``fn`` now and then every ``interval`` seconds on the running loop."""

    def __init__(
        self,
        name: str,
        fn: Callable[[], Awaitable[None]],
        interval: float,
        *,
        timeout: Optional[float] = None,
    ):
        self.name = name
        self.fn = fn
        self.interval = interval
        self.timeout = timeout
        self.cycles = 0
        self.failures = 0
        self._halted = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._halted = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def run_once(self) -> bool:
        """Run one cycle. Returns False when the cycle failed."""
        self.cycles += 1
        try:
            await asyncio.wait_for(self.fn(), self.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.failures += 1
            logger.warning(f"{self.name}: cycle {self.cycles} failed: {e!r}")
            return False
        return True

    def halt(self) -> None:
        """End the loop after the current cycle. Safe to call from inside ``fn``."""
        self._halted = True

    async def _run(self) -> None:
        while not self._halted:
            await self.run_once()
            if self._halted:
                break
            await asyncio.sleep(self.interval)
