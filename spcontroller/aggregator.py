"""
Violation Aggregator.

Pages through every configured New Relic account and folds the results
into one snapshot: the union of alert policies and, per policy, the
violation that has been open the longest.
"""

from __future__ import annotations

import asyncio
import functools
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Sequence, TypeVar

import aiohttp

from spcontroller import notifier
from spcontroller.models import AggregateSnapshot, AlertPolicy, Violation
from spcontroller.newrelic import AlertingBackendError, NewRelicClient

T = TypeVar("T")

# Errors that end one credential's pagination without failing the cycle
_FETCH_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, AlertingBackendError)


class PageFetchError(Exception):
    """A page request failed part-way through pagination."""

    def __init__(self, page: int, cause: BaseException) -> None:
        super().__init__(f"page {page}: {cause}")
        self.page = page
        self.cause = cause


async def iter_pages(
    fetch: Callable[[int], Awaitable[List[T]]],
    start: int = 1,
) -> AsyncIterator[List[T]]:
    """
    Yield successive non-empty pages until an empty page comes back.

    A failed request ends iteration by raising PageFetchError, after
    every page before it has already been yielded.
    """
    page = start
    while True:
        try:
            items = await fetch(page)
        except _FETCH_ERRORS as exc:
            raise PageFetchError(page, exc) from exc
        if not items:
            return
        yield items
        page += 1


class ViolationAggregator:
    """Builds a fresh AggregateSnapshot on every refresh()."""

    def __init__(self, client: NewRelicClient, debug: bool = False) -> None:
        self.client = client
        self.debug = debug

    async def refresh(self, credentials: Sequence[str]) -> AggregateSnapshot:
        snapshot = AggregateSnapshot()

        for index, credential in enumerate(credentials, start=1):
            label = f"newrelic[{index}]"
            if not await self._collect_policies(credential, label, snapshot):
                # Policy listing failed, skip this account
                continue
            await self._collect_violations(credential, label, snapshot)

        if self.debug:
            notifier.print_debug(
                "newrelic",
                f"{len(snapshot.policies)} policies, "
                f"{len(snapshot.oldest_violation_per_policy)} with open violations",
            )
        return snapshot

    async def _collect_policies(
        self,
        credential: str,
        label: str,
        snapshot: AggregateSnapshot,
    ) -> bool:
        fetch = functools.partial(self.client.list_policies, credential)
        try:
            async for policies in iter_pages(fetch):
                merge_policies(snapshot.policies, policies)
        except PageFetchError as exc:
            self._record_failure(snapshot, f"{label} policies {exc}")
            return False
        return True

    async def _collect_violations(
        self,
        credential: str,
        label: str,
        snapshot: AggregateSnapshot,
    ) -> None:
        fetch = functools.partial(self.client.list_open_violations, credential)
        try:
            async for violations in iter_pages(fetch):
                merge_violations(snapshot.oldest_violation_per_policy, violations)
        except PageFetchError as exc:
            self._record_failure(snapshot, f"{label} violations {exc}")

    @staticmethod
    def _record_failure(snapshot: AggregateSnapshot, message: str) -> None:
        notifier.print_error("newrelic", message)
        snapshot.failures.append(message)


def merge_policies(into: Dict[str, AlertPolicy], policies: Sequence[AlertPolicy]) -> None:
    """Union by normalized name; a later policy with the same key wins."""
    for policy in policies:
        into[policy.key] = policy


def merge_violations(into: Dict[str, Violation], violations: Sequence[Violation]) -> None:
    """Keep, per normalized policy name, the violation with the longest duration."""
    for violation in violations:
        current = into.get(violation.key)
        if current is None or violation.duration > current.duration:
            into[violation.key] = violation
