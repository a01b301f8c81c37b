"""
Cycle scheduler: drives the reconciler on a fixed interval.

Cycles never overlap: a tick that arrives while a cycle is still in
flight is skipped. stop() lets an in-flight cycle finish before the
loop exits.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from spcontroller import notifier
from spcontroller.models import CycleReport
from spcontroller.reconciler import Reconciler


class CycleScheduler:
    def __init__(self, reconciler: Reconciler, interval: float) -> None:
        self.reconciler = reconciler
        self.interval = interval
        self.cycles_run = 0
        self.ticks_skipped = 0
        self._cycle_lock = asyncio.Lock()
        self._stopping = asyncio.Event()

    @property
    def running_cycle(self) -> bool:
        return self._cycle_lock.locked()

    async def run(self) -> None:
        """Tick until stop() is called."""
        notifier.print_info("scheduler", f"reconciling every {self.interval}s")
        while not self._stopping.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def tick(self) -> Optional[CycleReport]:
        """
        Run one cycle unless one is already running.

        Returns the cycle's report, or None if the tick was skipped or
        the cycle raised.
        """
        if self._stopping.is_set():
            return None
        if self._cycle_lock.locked():
            self.ticks_skipped += 1
            notifier.print_warning("scheduler", "previous cycle still running, skipping tick")
            return None

        async with self._cycle_lock:
            try:
                report = await self.reconciler.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                notifier.print_error("scheduler", f"cycle failed: {exc!r}")
                return None
            finally:
                self.cycles_run += 1

        notifier.print_cycle_summary(report)
        return report

    async def stop(self) -> None:
        """Stop ticking and wait for an in-flight cycle to finish."""
        self._stopping.set()
        async with self._cycle_lock:
            pass
