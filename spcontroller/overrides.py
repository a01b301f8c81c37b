"""
Override store: manual, time-bounded suppression of automatic updates.

Overrides are keyed by normalized component name. Each registration
arms one fire-once expiry timer on the running event loop; registering
again for the same component cancels the pending timer first, so there
is never more than one expiry in flight per key.

The store is written by the admin API and read by the reconciler, so
every access goes through a lock.
"""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Callable, Dict, Optional

from spcontroller.models import Override, normalize_name

# One month, the longest override the API accepts
MAX_OVERRIDE_SECONDS = 2628000


class OverrideStore:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Override] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def set(
        self,
        component_name: str,
        ttl_seconds: float,
        new_status: Optional[str] = None,
    ) -> Override:
        """Register (or replace) the override for a component."""
        key = normalize_name(component_name)
        if not key:
            raise ValueError("component_name must not be empty")
        if ttl_seconds < 0 or ttl_seconds > MAX_OVERRIDE_SECONDS:
            raise ValueError(f"seconds must be between 0 and {MAX_OVERRIDE_SECONDS}")

        override = Override(
            component_key=key,
            seconds=ttl_seconds,
            expires_at=self._clock() + ttl_seconds,
            new_status=new_status,
        )

        with self._lock:
            self._cancel_timer(key)
            self._entries[key] = override
            timer = self._arm_timer(key, override)
            if timer is not None:
                self._timers[key] = timer

        return override

    def is_active(self, component_name: str) -> bool:
        return self.get(component_name) is not None

    def get(self, component_name: str) -> Optional[Override]:
        key = normalize_name(component_name)
        with self._lock:
            override = self._entries.get(key)
            if override is None:
                return None
            # A late timer must never extend an override past its expiry
            if self._clock() >= override.expires_at:
                self._remove(key)
                return None
            return override

    def clear(self, component_name: str) -> bool:
        """Drop an override early. Returns False if none was registered."""
        key = normalize_name(component_name)
        with self._lock:
            if key not in self._entries:
                return False
            self._remove(key)
            return True

    def snapshot(self) -> Dict[str, Override]:
        """Currently active overrides, keyed by component."""
        now = self._clock()
        with self._lock:
            return {
                key: override
                for key, override in self._entries.items()
                if now < override.expires_at
            }

    def cancel_all(self) -> None:
        """Disarm every pending expiry timer and forget all overrides."""
        with self._lock:
            for key in list(self._entries):
                self._remove(key)

    def __len__(self) -> int:
        return len(self.snapshot())

    # ─── Internals (callers hold the lock) ────────────────────

    def _arm_timer(self, key: str, override: Override) -> Optional[asyncio.TimerHandle]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop expiry is enforced lazily by get()
            return None
        return loop.call_later(override.seconds, self._expire, key, override)

    def _expire(self, key: str, override: Override) -> None:
        with self._lock:
            # Only remove the registration this timer was armed for
            if self._entries.get(key) is override:
                self._remove(key)

    def _cancel_timer(self, key: str) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _remove(self, key: str) -> None:
        self._cancel_timer(key)
        self._entries.pop(key, None)
