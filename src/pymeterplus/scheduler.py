"""Fixed-period refresh scheduling.

Ticks fire every ``refresh_period_seconds``. A tick that finds the engine
busy is dropped: it is not queued and there is no catch-up later.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from pymeterplus.engine import RefreshEngine

_logger = logging.getLogger(__name__)


class RefreshScheduler:
    def __init__(
        self,
        engine: RefreshEngine,
        *,
        period_seconds: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._engine = engine
        self._period = period_seconds if period_seconds is not None else engine.config.refresh_period_seconds
        self._sleep = sleep
        self._loop_task: asyncio.Task[None] | None = None
        self._cycles: set[asyncio.Task[object]] = set()
        self.dispatched = 0
        self.dropped = 0

    @property
    def period_seconds(self) -> float:
        return self._period

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def tick(self) -> bool:
        """Dispatch one refresh cycle unless one is still running.

        Returns ``True`` if a cycle was dispatched, ``False`` if the tick was
        dropped.
        """
        # A dispatched cycle that hasn't started yet counts as in progress.
        if self._engine.in_progress or self._cycles:
            self.dropped += 1
            _logger.debug("Refresh still in progress, dropping tick")
            return False
        task = asyncio.create_task(self._engine.run_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._on_cycle_done)
        self.dispatched += 1
        return True

    def _on_cycle_done(self, task: asyncio.Task[object]) -> None:
        self._cycles.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Refresh cycle crashed", exc_info=exc)

    async def _run(self, run_immediately: bool) -> None:
        if run_immediately:
            self.tick()
        while True:
            await self._sleep(self._period)
            self.tick()

    def start(self, *, run_immediately: bool = True) -> None:
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._run(run_immediately))

    async def stop(self) -> None:
        """Stop ticking and wait for the in-flight cycle, if any, to finish."""
        task = self._loop_task
        self._loop_task = None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if self._cycles:
            await asyncio.gather(*self._cycles, return_exceptions=True)
