"""
Main entry point — the StatuspageController process.

Builds the New Relic and statuspage.io clients on one shared aiohttp
session, wires them into the reconciler, serves the admin API and runs
the cycle scheduler until SIGINT/SIGTERM, letting any in-flight cycle
finish before exiting.

Usage:
    spcontroller
    python -m spcontroller.main
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import List, Optional

import aiohttp
from aiohttp import web

from spcontroller import notifier
from spcontroller.api import create_app
from spcontroller.config import ConfigError, load_config
from spcontroller.models import ControllerSettings
from spcontroller.newrelic import NewRelicClient
from spcontroller.observers import ConsoleObserver, StatusObserver
from spcontroller.reconciler import Reconciler
from spcontroller.scheduler import CycleScheduler
from spcontroller.statuspage import StatusPageClient


class StatuspageController:
    """
    Top-level orchestrator.

    Owns the shared aiohttp session, the reconciler, the scheduler and
    the admin API server for the lifetime of the process.
    """

    def __init__(self, settings: ControllerSettings) -> None:
        self.settings = settings
        self.reconciler: Optional[Reconciler] = None
        self.scheduler: Optional[CycleScheduler] = None
        self._observers: List[StatusObserver] = [ConsoleObserver()]
        self._stop_task: Optional[asyncio.Task] = None

    def add_observer(self, observer: StatusObserver) -> None:
        """Register a transition listener; applied when run() wires the reconciler."""
        self._observers.append(observer)

    async def run(self) -> None:
        """Serve the admin API and reconcile until shutdown()."""
        notifier.print_banner()
        notifier.print_config(
            self.settings.poll_interval,
            self.settings.port,
            self.settings.nr_api_keys,
            self.settings.spio_page_id,
            self.settings.spio_api_key,
        )

        connector = aiohttp.TCPConnector(limit_per_host=5)
        async with aiohttp.ClientSession(connector=connector) as session:
            newrelic = NewRelicClient(
                session,
                base_url=self.settings.nr_api_url,
                timeout=self.settings.request_timeout,
            )
            statuspage = StatusPageClient(
                session,
                page_id=self.settings.spio_page_id,
                api_key=self.settings.spio_api_key,
                base_url=self.settings.spio_api_url,
                timeout=self.settings.request_timeout,
            )
            self.reconciler = Reconciler(self.settings, newrelic, statuspage)
            for observer in self._observers:
                self.reconciler.add_observer(observer)
            self.scheduler = CycleScheduler(self.reconciler, self.settings.poll_interval)

            runner = web.AppRunner(create_app(self.reconciler, self.scheduler))
            await runner.setup()
            site = web.TCPSite(runner, "0.0.0.0", self.settings.port)
            await site.start()
            notifier.print_info("api", f"admin API listening on port {self.settings.port}")

            try:
                await self.scheduler.run()
            finally:
                await runner.cleanup()
                self.reconciler.overrides.cancel_all()
                self.reconciler.observers.close()

    def shutdown(self) -> None:
        """Stop scheduling; an in-flight cycle is allowed to finish."""
        if self.scheduler is not None and self._stop_task is None:
            self._stop_task = asyncio.ensure_future(self.scheduler.stop())


def _handle_signals(controller: StatuspageController, loop: asyncio.AbstractEventLoop) -> None:
    """Register signal handlers for graceful shutdown."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(
                sig,
                lambda: _do_shutdown(controller),
            )
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def _do_shutdown(controller: StatuspageController) -> None:
    """Trigger graceful shutdown."""
    notifier.print_shutdown()
    controller.shutdown()


async def async_main() -> None:
    """Async entry point."""
    settings = load_config()
    controller = StatuspageController(settings)

    loop = asyncio.get_running_loop()
    _handle_signals(controller, loop)

    await controller.run()


def main() -> None:
    """Sync entry point."""
    try:
        asyncio.run(async_main())
    except ConfigError as exc:
        notifier.print_error("config", str(exc))
        sys.exit(1)
    except KeyboardInterrupt:
        # Signal handler already printed shutdown message
        sys.exit(0)


if __name__ == "__main__":
    main()
