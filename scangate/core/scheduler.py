"""Periodic reconciliation driver.

Fires a sweep right away and then every ``interval_seconds``. Whether a tick
may start while the previous sweep is still running is a setting
(``allow_overlapping_sweeps``): per-profile writes are idempotent so overlap
is tolerated, but by default a busy tick is skipped.
"""

from __future__ import annotations

import asyncio
from typing import Protocol

from scangate.core.logging import get_logger

logger = get_logger(__name__)


class SupportsSweep(Protocol):
    async def sweep(self) -> dict[str, int]: ...


class SweepScheduler:
    def __init__(
        self,
        reconciler: SupportsSweep,
        *,
        interval_seconds: float,
        allow_overlap: bool = False,
    ) -> None:
        self._reconciler = reconciler
        self._interval = interval_seconds
        self._allow_overlap = allow_overlap
        self._in_flight: set[asyncio.Task] = set()
        self._sweeps_started = 0

    @property
    def busy(self) -> bool:
        return bool(self._in_flight)

    def tick(self) -> asyncio.Task | None:
        """Launch a sweep unless one is running and overlap is disabled."""
        if self._in_flight and not self._allow_overlap:
            logger.warning("Previous sweep still running, skipping this interval")
            return None
        self._sweeps_started += 1
        task = asyncio.create_task(self._run_sweep(), name=f"sweep-{self._sweeps_started}")
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def run_forever(self) -> None:
        logger.info(
            "Reconciler scheduler started",
            interval_s=self._interval,
            allow_overlap=self._allow_overlap,
        )
        try:
            while True:
                self.tick()
                await asyncio.sleep(self._interval)
        finally:
            await self.stop()
            logger.info("Reconciler scheduler stopped")

    async def stop(self) -> None:
        """Cancel any sweep still in flight and wait for it to unwind."""
        tasks = list(self._in_flight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_sweep(self) -> None:
        try:
            await self._reconciler.sweep()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Sweep failed, will retry next interval")
