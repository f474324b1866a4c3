"""Periodic background reconciliation."""

import asyncio
import time
from typing import Optional

from loguru import logger

from scim_mirror.sync.orchestrator import SyncOrchestrator


class SyncScheduler:
    """
    Runs orchestrator.run_once() every interval_seconds on the event loop.

    Ticks are measured from the start of the previous pass. A pass that runs
    longer than the interval delays the next tick instead of overlapping it.
    """

    def __init__(self, orchestrator: SyncOrchestrator, interval_seconds: float = 60.0):
        self.orchestrator = orchestrator
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name="scim-mirror-sync")
        logger.info("Sync scheduler started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Sync scheduler stopped")

    async def _tick(self) -> None:
        try:
            report = await self.orchestrator.run_once()
        except Exception as e:
            logger.exception(f"Scheduled sync pass raised: {e}")
            return
        if not report.skipped:
            logger.info(
                "Scheduled sync pass completed",
                run_id=report.run_id,
                success=report.success,
            )

    async def _loop(self) -> None:
        while True:
            started = time.monotonic()
            await self._tick()
            elapsed = time.monotonic() - started
            await asyncio.sleep(max(self.interval_seconds - elapsed, 0))
