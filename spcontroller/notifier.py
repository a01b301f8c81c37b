"""
Console Notifier — timestamped, colored console output.

Every message the controller emits goes through these helpers so the
process log stays uniform: ``[timestamp] LEVEL source: message``.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import List, Optional

from spcontroller.models import Component, CycleReport, Override, Violation

# ANSI color codes for terminal styling
_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[91m"
_GREEN = "\033[92m"
_YELLOW = "\033[93m"
_BLUE = "\033[94m"
_MAGENTA = "\033[95m"
_CYAN = "\033[96m"
_WHITE = "\033[97m"
_GRAY = "\033[90m"


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _status_color(status: str) -> str:
    """Pick a color based on component status."""
    s = (status or "").lower()
    if s == "operational":
        return _GREEN
    elif "degraded" in s:
        return _YELLOW
    elif "partial" in s:
        return _MAGENTA
    elif "major" in s:
        return _RED
    elif "maintenance" in s:
        return _BLUE
    else:
        return _WHITE


def mask(secret: Optional[str]) -> str:
    """Hide all but the last four characters of a credential."""
    return "***" + secret[-4:] if secret else "undefined"


def print_banner() -> None:
    """Print the startup banner."""
    banner = f"""
{_BOLD}{_CYAN}+------------------------------------------------------------------+
|          Statuspage Controller -- New Relic -> statuspage.io     |
|          Reconciling * Async * Override-aware                    |
+------------------------------------------------------------------+{_RESET}
"""
    print(banner)


def print_config(
    poll_interval: int,
    port: int,
    nr_api_keys: List[str],
    spio_page_id: str,
    spio_api_key: str,
) -> None:
    """Print the effective configuration with credentials masked."""
    keys = ", ".join(mask(k) for k in nr_api_keys)
    print(f"  {_BOLD}Poll interval     :{_RESET} every {poll_interval}s")
    print(f"  {_BOLD}API port          :{_RESET} {port}")
    print(f"  {_BOLD}New Relic API keys:{_RESET} [{keys}]")
    print(f"  {_BOLD}Status page ID    :{_RESET} {mask(spio_page_id)}")
    print(f"  {_BOLD}Status page key   :{_RESET} {mask(spio_api_key)}")
    print()


def print_info(source: str, message: str) -> None:
    print(f"  {_GRAY}[{_now()}]{_RESET} {_BOLD}{source}:{_RESET} {message}")


def print_debug(source: str, message: str) -> None:
    """Low-priority chatter; call sites gate this on log_level == DEBUG."""
    print(f"  {_DIM}[{_now()}] {source}: {message}{_RESET}")


def print_warning(source: str, message: str) -> None:
    print(
        f"  {_GRAY}[{_now()}]{_RESET} {_YELLOW}WARN{_RESET} "
        f"{_BOLD}{source}:{_RESET} {message}"
    )


def print_error(source: str, message: str) -> None:
    """Print an error message."""
    print(
        f"  {_GRAY}[{_now()}]{_RESET} {_RED}ERROR{_RESET} "
        f"{_BOLD}{source}:{_RESET} {message}",
        file=sys.stderr,
    )


def print_separator() -> None:
    """Print a visual separator line."""
    print(f"{_DIM}{'─' * 68}{_RESET}")


def print_transition(
    component: Component,
    status: str,
    violation: Optional[Violation] = None,
) -> None:
    """Print a detected status change for one component."""
    old_color = _status_color(component.status)
    new_color = _status_color(status)
    print(
        f"  {_GRAY}[{_now()}]{_RESET} {_BOLD}STATUS CHANGE{_RESET} "
        f"{_WHITE}{component.display_name}{_RESET}: "
        f"{old_color}{component.status or 'unknown'}{_RESET} -> "
        f"{new_color}{status}{_RESET}"
    )
    if violation is not None:
        detail = f"open {violation.duration}s"
        if violation.label:
            detail = f"{violation.label} ({detail})"
        print(f"    {_BOLD}Violation:{_RESET} {_DIM}{detail}{_RESET}")


def print_update_result(component: Component, status: str, ok: bool) -> None:
    if ok:
        print_info("statuspage", f"updated {component.display_name} to {status}")
    else:
        print_error("statuspage", f"failed to update {component.display_name} to {status}")


def print_override(override: Override) -> None:
    suffix = f", status forced to {override.new_status}" if override.new_status else ""
    print_info(
        "overrides",
        f"{override.component_key} overridden for {override.seconds:g}s{suffix}",
    )


def print_cycle_summary(report: CycleReport) -> None:
    """Print the outcome of one reconciliation cycle."""
    if report.skipped:
        print_warning("cycle", f"skipped: {report.reason}")
        return
    print_info(
        "cycle",
        f"{len(report.updated)} updated, {len(report.failed)} failed, "
        f"{report.overridden} overridden, {report.unmanaged} unlinked",
    )


def print_no_changes() -> None:
    """Print a subtle heartbeat when nothing needed updating (debug level)."""
    ts = datetime.now(timezone.utc).strftime("%H:%M:%S")
    print(f"  {_DIM}[{ts}] All components in sync{_RESET}", end="\r")
    sys.stdout.flush()


def print_shutdown() -> None:
    """Print shutdown message."""
    print(f"\n{_BOLD}{_CYAN}Controller stopped. Goodbye!{_RESET}\n")
