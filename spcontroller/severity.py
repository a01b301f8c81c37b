"""
Severity mapping: violation duration -> component status.

The threshold table is ordered longest-first and scanned once; the first
rule whose duration has been strictly exceeded wins. Anything that does
not exceed a rule stays ``operational``.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from spcontroller.models import OPERATIONAL, ThresholdRule


def sort_rules(rules: Iterable[ThresholdRule]) -> List[ThresholdRule]:
    """Return the rules ordered by duration, longest first."""
    return sorted(rules, key=lambda rule: rule.duration, reverse=True)


def classify(duration: Optional[float], rules: Iterable[ThresholdRule]) -> str:
    """
    Map how long a violation has been open to a status.

    A violation open for exactly a rule's duration does not qualify for
    that rule yet; it has to be exceeded.
    """
    if duration is None or duration < 0:
        return OPERATIONAL

    for rule in sort_rules(rules):
        if duration > rule.duration:
            return rule.status
    return OPERATIONAL
