"""
YAML configuration loader.

Reads config.yaml, applies environment overrides and produces a typed
ControllerSettings. Missing credentials are fatal: the controller must
not start reconciling without them.

Environment variables (take precedence over the file):
    NR_API_KEYS    comma-separated New Relic API key(s)
    SPIO_PAGE_ID   statuspage.io page ID
    SPIO_API_KEY   statuspage.io API key
    POLL_INTERVAL  seconds between cycles
    PORT           admin API port
    LOG_LEVEL      INFO or DEBUG
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from spcontroller import notifier
from spcontroller.models import ControllerSettings, ThresholdRule

# Default path: config.yaml next to the project root
_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


class ConfigError(Exception):
    """The configuration cannot be used to start the controller."""


def load_config(
    path: str | Path | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ControllerSettings:
    """
    Load, merge and validate the controller configuration.

    Raises:
        ConfigError: if credentials are missing or a value is malformed.
    """
    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH
    env = os.environ if environ is None else environ

    raw: Dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, "r") as fh:
            raw = yaml.safe_load(fh) or {}
        if not isinstance(raw, dict):
            raise ConfigError(f"{config_path} must contain a mapping")
    else:
        notifier.print_warning("config", f"config file not found at {config_path}, using environment only")

    newrelic = raw.get("newrelic") or {}
    statuspage = raw.get("statuspage") or {}
    raw_settings = raw.get("settings") or {}

    defaults = ControllerSettings()
    try:
        settings = ControllerSettings(
            nr_api_keys=_parse_keys(env.get("NR_API_KEYS") or newrelic.get("api_keys")),
            spio_page_id=env.get("SPIO_PAGE_ID") or statuspage.get("page_id") or "",
            spio_api_key=env.get("SPIO_API_KEY") or statuspage.get("api_key") or "",
            poll_interval=int(env.get("POLL_INTERVAL") or raw_settings.get("poll_interval", defaults.poll_interval)),
            port=int(env.get("PORT") or raw_settings.get("port", defaults.port)),
            request_timeout=float(raw_settings.get("request_timeout", defaults.request_timeout)),
            observer_timeout=float(raw_settings.get("observer_timeout", defaults.observer_timeout)),
            log_level=str(env.get("LOG_LEVEL") or raw_settings.get("log_level", defaults.log_level)).upper(),
            nr_api_url=newrelic.get("api_url", defaults.nr_api_url),
            spio_api_url=statuspage.get("api_url", defaults.spio_api_url),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid setting: {exc}") from exc

    if "thresholds" in raw:
        settings.thresholds = parse_thresholds(raw["thresholds"])

    validate(settings)
    return settings


def parse_thresholds(entries: Any) -> List[ThresholdRule]:
    """Turn ``[{duration, status}, ...]`` into ThresholdRule objects."""
    if not isinstance(entries, list) or not entries:
        raise ConfigError("thresholds must be a non-empty list")

    rules: List[ThresholdRule] = []
    for entry in entries:
        try:
            duration = int(entry["duration"])
            status = str(entry["status"]).strip().lower()
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"invalid threshold rule: {entry!r}") from exc
        if duration < 0 or not status:
            raise ConfigError(f"invalid threshold rule: {entry!r}")
        rules.append(ThresholdRule(duration=duration, status=status))
    return rules


def validate(settings: ControllerSettings) -> None:
    missing = []
    if not settings.nr_api_keys:
        missing.append("NR_API_KEYS - your New Relic API key(s)")
    if not settings.spio_page_id:
        missing.append("SPIO_PAGE_ID - your statuspage.io page ID")
    if not settings.spio_api_key:
        missing.append("SPIO_API_KEY - your statuspage.io API key")
    if missing:
        raise ConfigError("missing required API keys: " + "; ".join(missing))

    if settings.poll_interval <= 0:
        raise ConfigError("poll_interval must be positive")
    if settings.log_level not in ("INFO", "DEBUG"):
        raise ConfigError(f"unsupported log_level: {settings.log_level}")


def _parse_keys(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(key).strip() for key in value if str(key).strip()]
