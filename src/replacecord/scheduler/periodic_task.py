"""Generic runner for periodic maintenance jobs.

Runs a coroutine on a fixed interval until shut down. Used for the stale
request sweep and the rate-limit cleanup. Failures inside one run are logged
and do not stop the loop.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from replacecord.util.logger import get_logger

logger = get_logger("periodic_task")


class PeriodicTask:
    """
    Reusable scheduler for a periodic job.

    Args:
        name: Human-readable name for logging (e.g., "stale-sweep").
        job: Zero-argument coroutine function run once per interval.
        get_interval: Callable returning the interval in seconds (called at start).
        run_immediately: Run the job once before the first sleep.
    """

    def __init__(
        self,
        name: str,
        job: Callable[[], Awaitable[Any]],
        get_interval: Callable[[], float],
        *,
        run_immediately: bool = False,
    ) -> None:
        self._name = name
        self._job = job
        self._get_interval = get_interval
        self._run_immediately = run_immediately
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> None:
        """Run the job a single time, logging instead of raising."""
        try:
            await self._job()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[%s] Unexpected error during run: %s", self._name, exc)

    async def _run_loop(self, interval: float) -> None:
        """Infinite loop: run, sleep, repeat."""
        logger.info("[%s] Starting periodic task (interval=%.1fs)", self._name, interval)
        try:
            if self._run_immediately:
                await self.run_once()
            while True:
                await asyncio.sleep(interval)
                await self.run_once()
        except asyncio.CancelledError:
            logger.info("[%s] Periodic task cancelled", self._name)
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.warning("[%s] Task already running", self._name)
            return
        interval = self._get_interval()
        self._task = asyncio.create_task(self._run_loop(interval), name=f"replacecord-{self._name}")

    async def shutdown(self) -> None:
        """Cancel the task and wait for it to finish."""
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[%s] Scheduler shutdown complete", self._name)
