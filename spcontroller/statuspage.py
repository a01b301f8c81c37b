"""
statuspage.io REST (v1) client.

Lists the page's components, flattening component groups so a grouped
component is addressable as ``"<group>-<name>"``, and patches a single
component's status.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp
from dateutil import parser as dateutil_parser

from spcontroller.models import Component


class StatusPageError(Exception):
    """statuspage.io answered with something that is not a component list."""


class StatusPageClient:
    """
    Async client bound to one status page.

    Attributes:
        session: Shared aiohttp session.
        page_id: statuspage.io page identifier.
        timeout: Total seconds allowed for one request.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        page_id: str,
        api_key: str,
        base_url: str = "https://api.statuspage.io/v1",
        timeout: float = 15.0,
    ) -> None:
        self.session = session
        self.page_id = page_id
        self.page_url = f"{base_url.rstrip('/')}/pages/{page_id}"
        self.timeout = timeout
        self._headers = {"Authorization": f"OAuth {api_key}"}

    async def list_components(self) -> List[Component]:
        """
        Fetch every component on the page.

        Group containers are dropped; their members carry the group name.
        """
        async with self.session.get(
            self.page_url + "/components.json",
            headers=self._headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            resp.raise_for_status()
            data = await resp.json(content_type=None)

        if not isinstance(data, list):
            raise StatusPageError("components response is not a list")
        return flatten_components(data)

    async def update_status(self, component: Component, status: str) -> bool:
        """
        Set one component's status. Returns False if statuspage.io
        rejected the change; transport errors propagate.
        """
        async with self.session.patch(
            f"{self.page_url}/components/{component.id}.json",
            data={"component[status]": status},
            headers=self._headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as resp:
            return 200 <= resp.status < 300

    async def health_check(self) -> bool:
        """True if the page's components can be listed."""
        try:
            await self.list_components()
        except (aiohttp.ClientError, StatusPageError, asyncio.TimeoutError):
            return False
        return True


def flatten_components(data: List[Dict[str, Any]]) -> List[Component]:
    """Turn the raw component list into Component objects, resolving group names."""
    group_names: Dict[str, str] = {
        entry["id"]: entry.get("name", "")
        for entry in data
        if entry.get("group") and "id" in entry
    }

    components: List[Component] = []
    for entry in data:
        if entry.get("group"):
            continue
        try:
            components.append(
                Component(
                    id=str(entry["id"]),
                    name=entry["name"],
                    status=entry.get("status") or "",
                    group_name=group_names.get(entry.get("group_id") or "", ""),
                    updated_at=_safe_parse_datetime(entry.get("updated_at")),
                )
            )
        except KeyError as exc:
            raise StatusPageError(f"component missing {exc}: {entry!r}") from exc
    return components


def _safe_parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return dateutil_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None
