"""
Shared fixtures: in-memory stand-ins for the New Relic and statuspage.io
clients, a controllable clock and a wired-up Reconciler.
"""

from dataclasses import replace
from typing import Dict, List, Set, Tuple

import aiohttp
import pytest

from spcontroller.models import AlertPolicy, Component, ControllerSettings, Violation
from spcontroller.overrides import OverrideStore
from spcontroller.reconciler import Reconciler


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeNewRelic:
    """Serves pre-baked pages per credential; an empty page ends pagination."""

    def __init__(self) -> None:
        self.pages: Dict[Tuple[str, str], List[list]] = {}
        self.fail_at: Dict[Tuple[str, str], int] = {}
        self.calls: List[Tuple[str, str, int]] = []
        self.healthy = True

    def add_policies(self, credential: str, *names: str) -> None:
        page = [AlertPolicy(name=name, id=i) for i, name in enumerate(names)]
        self.pages.setdefault(("policies", credential), []).append(page)

    def add_violations(self, credential: str, *entries: Tuple[str, int]) -> None:
        page = [Violation(policy_name=name, duration=duration) for name, duration in entries]
        self.pages.setdefault(("violations", credential), []).append(page)

    def clear_violations(self) -> None:
        for key in [k for k in self.pages if k[0] == "violations"]:
            del self.pages[key]

    async def list_policies(self, credential: str, page: int) -> List[AlertPolicy]:
        return self._page("policies", credential, page)

    async def list_open_violations(self, credential: str, page: int) -> List[Violation]:
        return self._page("violations", credential, page)

    async def health_check(self, credentials) -> bool:
        return self.healthy

    def _page(self, kind: str, credential: str, page: int) -> list:
        self.calls.append((kind, credential, page))
        if self.fail_at.get((kind, credential)) == page:
            raise aiohttp.ClientConnectionError(f"{kind} page {page} unreachable")
        pages = self.pages.get((kind, credential), [])
        return list(pages[page - 1]) if page <= len(pages) else []


class FakeStatusPage:
    """Component list that applies accepted updates to itself."""

    def __init__(self) -> None:
        self.components: Dict[str, Component] = {}
        self.updates: List[Tuple[str, str]] = []
        self.rejected: Set[str] = set()
        self.down = False

    def add(self, name: str, status: str = "operational", group_name: str = "") -> Component:
        component = Component(
            id=f"cmp{len(self.components) + 1}",
            name=name,
            status=status,
            group_name=group_name,
        )
        self.components[component.id] = component
        return component

    def status_of(self, name: str) -> str:
        return next(c.status for c in self.components.values() if c.name == name)

    async def list_components(self) -> List[Component]:
        if self.down:
            raise aiohttp.ClientConnectionError("statuspage.io unreachable")
        return list(self.components.values())

    async def update_status(self, component: Component, status: str) -> bool:
        self.updates.append((component.name, status))
        if component.id in self.rejected:
            return False
        self.components[component.id] = replace(self.components[component.id], status=status)
        return True

    async def health_check(self) -> bool:
        return not self.down


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return ControllerSettings(
        nr_api_keys=["key-a"],
        spio_page_id="page-id",
        spio_api_key="sp-key",
        observer_timeout=1.0,
    )


@pytest.fixture
def newrelic():
    return FakeNewRelic()


@pytest.fixture
def statuspage():
    return FakeStatusPage()


@pytest.fixture
def reconciler(settings, newrelic, statuspage, clock):
    return Reconciler(settings, newrelic, statuspage, overrides=OverrideStore(clock=clock))
