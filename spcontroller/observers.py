"""
Observer hooks for component status transitions.

Observers are plain listeners: the reconciler calls ``notify`` once per
detected transition, before the status page is updated, and ignores
whatever comes back. An observer that fails or hangs is logged and
skipped; it never blocks the update or the rest of the cycle.

Blocking observers run on a small dedicated thread pool. A thread cannot
be interrupted, so a sync observer that outlives its timeout keeps its
worker busy until it returns; once every worker is stuck, later sync
calls queue and time out too. The loop's default executor is not shared.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Protocol

from spcontroller import notifier
from spcontroller.models import Component, Violation


class StatusObserver(Protocol):
    """Anything with a ``notify`` method, sync or ``async``."""

    def notify(
        self,
        component: Component,
        status: str,
        violation: Optional[Violation],
    ) -> Any: ...


class ConsoleObserver:
    """Prints every transition to the console."""

    def notify(
        self,
        component: Component,
        status: str,
        violation: Optional[Violation],
    ) -> None:
        notifier.print_separator()
        notifier.print_transition(component, status, violation)


class ObserverRegistry:
    """
    Ordered fan-out to registered observers.

    Attributes:
        timeout: Seconds each observer call may take before it is abandoned.
        max_workers: Threads available to blocking observers.
    """

    def __init__(self, timeout: float = 5.0, max_workers: int = 4) -> None:
        self.timeout = timeout
        self._observers: List[StatusObserver] = []
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="observer"
        )

    def add(self, observer: StatusObserver) -> None:
        if not callable(getattr(observer, "notify", None)):
            raise TypeError(f"{observer!r} has no notify() method")
        self._observers.append(observer)

    def __len__(self) -> int:
        return len(self._observers)

    async def notify(
        self,
        component: Component,
        status: str,
        violation: Optional[Violation] = None,
    ) -> None:
        """Call every observer in registration order, isolating failures."""
        for observer in list(self._observers):
            name = type(observer).__name__
            try:
                await asyncio.wait_for(
                    self._call(observer, component, status, violation),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError:
                notifier.print_error("observers", f"{name} timed out after {self.timeout}s")
            except Exception as exc:
                notifier.print_error("observers", f"{name} failed: {exc!r}")

    def close(self) -> None:
        """Release the worker threads without waiting for stuck observers."""
        self._executor.shutdown(wait=False)

    async def _call(
        self,
        observer: StatusObserver,
        component: Component,
        status: str,
        violation: Optional[Violation],
    ) -> None:
        if inspect.iscoroutinefunction(observer.notify):
            await observer.notify(component, status, violation)
        else:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(
                self._executor,
                functools.partial(observer.notify, component, status, violation),
            )
