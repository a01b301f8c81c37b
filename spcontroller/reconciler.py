"""
Reconciler — the core engine.

One run_cycle() call:
  1. Aggregates New Relic policies and the longest-open violation per policy
  2. Fetches the status page's component list
  3. For every component linked to a policy (by normalized name) and not
     under a manual override, maps the violation duration to a status
  4. Notifies observers and patches the component when the status differs

A stable system converges to zero updates per cycle. If either backend
cannot be read completely, the previous cycle's caches are kept and no
component is touched until a later cycle succeeds.
"""

from __future__ import annotations

import asyncio
import dataclasses
from typing import Dict, Optional, Tuple

import aiohttp

from spcontroller import notifier
from spcontroller.aggregator import ViolationAggregator
from spcontroller.models import (
    KNOWN_STATUSES,
    OPERATIONAL,
    AlertPolicy,
    Component,
    ControllerSettings,
    CycleReport,
    Override,
    Violation,
    normalize_name,
)
from spcontroller.newrelic import NewRelicClient
from spcontroller.observers import ObserverRegistry, StatusObserver
from spcontroller.overrides import OverrideStore
from spcontroller.severity import classify, sort_rules
from spcontroller.statuspage import StatusPageClient, StatusPageError

_STATUSPAGE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, StatusPageError)


class Reconciler:
    """
    Owns the per-cycle caches and applies status transitions.

    Attributes:
        settings: Controller settings (credentials, thresholds, timeouts).
        overrides: Manual suppressions, shared with the admin API.
        observers: Transition listeners.
        policies: Alert policies from the last complete cycle.
        components: Status page components from the last complete cycle.
        oldest_violation_per_policy: Longest-open violation per policy.
    """

    def __init__(
        self,
        settings: ControllerSettings,
        newrelic: NewRelicClient,
        statuspage: StatusPageClient,
        overrides: Optional[OverrideStore] = None,
        observers: Optional[ObserverRegistry] = None,
    ) -> None:
        self.settings = settings
        self.statuspage = statuspage
        self.newrelic = newrelic
        self.aggregator = ViolationAggregator(newrelic, debug=self._debug)
        self.overrides = overrides if overrides is not None else OverrideStore()
        self.observers = (
            observers
            if observers is not None
            else ObserverRegistry(timeout=settings.observer_timeout)
        )
        self.thresholds = sort_rules(settings.thresholds)

        self.policies: Dict[str, AlertPolicy] = {}
        self.components: Dict[str, Component] = {}
        self.oldest_violation_per_policy: Dict[str, Violation] = {}

    @property
    def _debug(self) -> bool:
        return self.settings.log_level.upper() == "DEBUG"

    def add_observer(self, observer: StatusObserver) -> None:
        self.observers.add(observer)

    async def run_cycle(self) -> CycleReport:
        """Run one fetch-aggregate-reconcile pass."""
        report = CycleReport()

        # ── 1. Alerting backend ───────────────────────────
        snapshot = await self.aggregator.refresh(self.settings.nr_api_keys)
        if not snapshot.complete:
            report.skipped = True
            report.reason = "New Relic data incomplete, keeping previous state"
            return report

        # ── 2. Status page components ─────────────────────
        try:
            components = await self.statuspage.list_components()
        except _STATUSPAGE_ERRORS as exc:
            notifier.print_error("statuspage", f"could not list components: {exc!r}")
            report.skipped = True
            report.reason = "statuspage.io unavailable, keeping previous state"
            return report

        self.policies = snapshot.policies
        self.oldest_violation_per_policy = snapshot.oldest_violation_per_policy
        self.components = {component.key: component for component in components}

        # ── 3. Per-component decisions ────────────────────
        for component in components:
            await self._reconcile(component, report)

        if self._debug and not report.updated and not report.failed:
            notifier.print_no_changes()
        return report

    async def _reconcile(self, component: Component, report: CycleReport) -> None:
        key = component.key

        if key not in self.policies:
            report.unmanaged += 1
            if self._debug:
                notifier.print_debug("cycle", f"component not linked, skipping: {key}")
            return

        if self.overrides.is_active(key):
            report.overridden += 1
            if self._debug:
                notifier.print_debug("cycle", f"component overridden, skipping: {key}")
            return

        violation = self.oldest_violation_per_policy.get(key)
        if violation is not None:
            target = classify(violation.duration, self.thresholds)
        else:
            target = OPERATIONAL

        if normalize_name(component.status) == normalize_name(target):
            return

        await self.observers.notify(component, target, violation)

        # An override may have been registered while observers ran
        if self.overrides.is_active(key):
            report.overridden += 1
            notifier.print_info("cycle", f"{key} overridden during cycle, not updating")
            return

        if await self._push(component, target):
            report.updated.append(key)
        else:
            report.failed.append(key)

    async def _push(self, component: Component, status: str) -> bool:
        """Patch one component; failures are logged and left for the next cycle."""
        try:
            ok = await self.statuspage.update_status(component, status)
        except _STATUSPAGE_ERRORS as exc:
            notifier.print_error(
                "statuspage",
                f"error updating {component.display_name} to {status}: {exc!r}",
            )
            return False

        notifier.print_update_result(component, status, ok)
        if ok:
            self.components[component.key] = dataclasses.replace(component, status=status)
        return ok

    async def register_override(
        self,
        component_name: str,
        ttl_seconds: float,
        new_status: Optional[str] = None,
    ) -> Override:
        """
        Suspend automatic control of a component for ``ttl_seconds``.

        If ``new_status`` is given it is pushed to the status page right
        away, provided the component is known from the last cycle.
        """
        if new_status is not None:
            new_status = normalize_name(new_status)
            if new_status not in KNOWN_STATUSES:
                raise ValueError(f"unknown status: {new_status}")

        override = self.overrides.set(component_name, ttl_seconds, new_status)
        notifier.print_override(override)

        if new_status:
            component = self.components.get(override.component_key)
            if component is None:
                notifier.print_warning(
                    "overrides",
                    f"cannot set {new_status} on unknown component {override.component_key}",
                )
            else:
                await self._push(component, new_status)
        return override

    async def health_check(self) -> Tuple[bool, str]:
        """Check both backends; returns (ok, message)."""
        nr_ok, sp_ok = await asyncio.gather(
            self.newrelic.health_check(self.settings.nr_api_keys),
            self.statuspage.health_check(),
        )
        if nr_ok and sp_ok:
            return True, "New Relic and statuspage.io connections established."
        if not nr_ok and not sp_ok:
            return False, "Trouble connecting to New Relic and statuspage.io APIs"
        if not nr_ok:
            return False, "Trouble connecting to New Relic API, check your New Relic API keys."
        return False, "Trouble connecting to statuspage.io API, check your API key and page ID."
