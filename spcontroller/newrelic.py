"""
New Relic Alerts REST (v2) client.

Stateless: every call takes the API key it should use, so a single
client serves any number of New Relic accounts. One call fetches one
page; pagination is driven by the caller.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, TypeVar

import aiohttp

from spcontroller import notifier
from spcontroller.models import AlertPolicy, Violation


T = TypeVar("T")


class AlertingBackendError(Exception):
    """New Relic answered with something that is not a policy/violation page."""


class NewRelicClient:
    """
    Thin async wrapper around the New Relic alerts endpoints.

    Attributes:
        session: Shared aiohttp session.
        base_url: API root, e.g. ``https://api.newrelic.com/v2``.
        timeout: Total seconds allowed for one page request.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str = "https://api.newrelic.com/v2",
        timeout: float = 15.0,
    ) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def list_policies(self, credential: str, page: int) -> List[AlertPolicy]:
        """Fetch one page of alert policies. An empty list means no more pages."""
        data = await self._get(credential, "/alerts_policies.json", {"page": page})
        raw = data.get("policies")
        if not isinstance(raw, list):
            raise AlertingBackendError("response has no 'policies' list")
        return _parse_entries(raw, _parse_policy)

    async def list_open_violations(self, credential: str, page: int) -> List[Violation]:
        """Fetch one page of currently open violations."""
        data = await self._get(
            credential,
            "/alerts_violations.json",
            {"only_open": "true", "page": page},
        )
        raw = data.get("violations")
        if not isinstance(raw, list):
            raise AlertingBackendError("response has no 'violations' list")
        return _parse_entries(raw, _parse_violation)

    async def health_check(self, credentials: Sequence[str]) -> bool:
        """True if every configured API key can list policies."""
        try:
            for credential in credentials:
                await self.list_policies(credential, 1)
        except (aiohttp.ClientError, AlertingBackendError, asyncio.TimeoutError):
            return False
        return True

    async def _get(self, credential: str, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        async with self.session.get(
            self.base_url + path,
            params={k: str(v) for k, v in params.items()},
            headers={"X-Api-Key": credential, "Accept": "application/json"},
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)

        if not isinstance(data, dict):
            raise AlertingBackendError(f"unexpected payload from {path}")
        return data


# ─── Payload parsing ──────────────────────────────────────────


def _parse_entries(raw: List[Any], parse: Callable[[Any], T]) -> List[T]:
    """Parse a page entry by entry; a malformed record is logged and dropped."""
    parsed: List[T] = []
    for entry in raw:
        try:
            parsed.append(parse(entry))
        except AlertingBackendError as exc:
            notifier.print_warning("newrelic", f"skipping entry: {exc}")
    return parsed


def _parse_policy(entry: Dict[str, Any]) -> AlertPolicy:
    try:
        name = entry["name"]
    except (KeyError, TypeError) as exc:
        raise AlertingBackendError(f"policy without a name: {entry!r}") from exc
    return AlertPolicy(name=name, id=entry.get("id"), attributes=entry)


def _parse_violation(entry: Dict[str, Any]) -> Violation:
    try:
        policy_name = entry["policy_name"]
        duration = int(entry.get("duration") or 0)
    except (KeyError, TypeError, ValueError) as exc:
        raise AlertingBackendError(f"malformed violation: {entry!r}") from exc

    return Violation(
        policy_name=policy_name,
        duration=duration,
        id=entry.get("id"),
        opened_at=_parse_epoch_ms(entry.get("opened_at")),
        label=entry.get("label") or "",
        priority=entry.get("priority") or "",
        attributes=entry,
    )


def _parse_epoch_ms(value: Any) -> Optional[datetime]:
    """New Relic reports timestamps as epoch milliseconds."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
