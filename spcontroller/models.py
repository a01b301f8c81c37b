"""
Data models for the statuspage controller.

Structured representations for alert policies, open violations, status
page components, threshold rules and manual overrides, plus the global
controller settings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

OPERATIONAL = "operational"

# Statuses statuspage.io accepts for a component
KNOWN_STATUSES = (
    "operational",
    "degraded_performance",
    "partial_outage",
    "major_outage",
    "under_maintenance",
)


def normalize_name(name: Optional[str]) -> str:
    """Lookup key shared by policies, components and overrides."""
    return (name or "").strip().lower()


@dataclass(frozen=True)
class AlertPolicy:
    """A named alerting rule group in New Relic."""

    name: str
    id: Optional[int] = None
    attributes: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def key(self) -> str:
        return normalize_name(self.name)


@dataclass(frozen=True)
class Violation:
    """
    An open alert instance under a policy.

    Attributes:
        policy_name: Name of the owning alert policy.
        duration: Seconds the violation has been continuously open.
        id: Backend identifier.
        opened_at: When the violation opened, if the backend reported it.
        label: Human-readable violation label.
        priority: Backend priority ("Critical", "Warning", ...).
    """

    policy_name: str
    duration: int
    id: Optional[int] = None
    opened_at: Optional[datetime] = None
    label: str = ""
    priority: str = ""
    attributes: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def key(self) -> str:
        return normalize_name(self.policy_name)


@dataclass(frozen=True)
class Component:
    """A unit on the public status page."""

    id: str
    name: str
    status: str = ""
    group_name: str = ""
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        # Grouped components are addressed as "<group>-<name>"
        if self.group_name:
            return f"{normalize_name(self.group_name)}-{normalize_name(self.name)}"
        return normalize_name(self.name)

    @property
    def display_name(self) -> str:
        return f"{self.group_name} / {self.name}" if self.group_name else self.name

    def __str__(self) -> str:
        return f"{self.display_name} ({self.status})" if self.status else self.display_name


@dataclass(frozen=True)
class ThresholdRule:
    """Violations open longer than ``duration`` seconds map to ``status``."""

    duration: int
    status: str


@dataclass(frozen=True)
class Override:
    """A time-bounded manual suppression of automatic control."""

    component_key: str
    seconds: float
    expires_at: float  # epoch seconds
    new_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component_name": self.component_key,
            "seconds": self.seconds,
            "expires_at": self.expires_at,
            "new_status": self.new_status,
        }


@dataclass
class AggregateSnapshot:
    """One cycle's view of the alerting backend."""

    policies: Dict[str, AlertPolicy] = field(default_factory=dict)
    oldest_violation_per_policy: Dict[str, Violation] = field(default_factory=dict)
    failures: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures


@dataclass
class CycleReport:
    """Outcome counters for a single reconciliation cycle."""

    skipped: bool = False
    reason: str = ""
    updated: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    unmanaged: int = 0
    overridden: int = 0


def _default_thresholds() -> List[ThresholdRule]:
    return [
        ThresholdRule(600, "degraded_performance"),
        ThresholdRule(1200, "partial_outage"),
        ThresholdRule(1800, "major_outage"),
    ]


@dataclass
class ControllerSettings:
    """Global controller settings."""

    nr_api_keys: List[str] = field(default_factory=list)
    spio_page_id: str = ""
    spio_api_key: str = ""
    poll_interval: int = 30  # seconds
    port: int = 8080
    thresholds: List[ThresholdRule] = field(default_factory=_default_thresholds)
    request_timeout: float = 15.0
    observer_timeout: float = 5.0
    log_level: str = "INFO"
    nr_api_url: str = "https://api.newrelic.com/v2"
    spio_api_url: str = "https://api.statuspage.io/v1"
