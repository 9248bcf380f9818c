"""homecal.core.config_loader

Config loader for homecal.

- Reads YAML via PyYAML.
- Exposes a typed dataclass `Config`, a `load_config()` helper that accepts
  an optional path override, and `config_from_env()` for HOMECAL_* overrides.
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "HOMECAL_"

# Bounded integer keys: (default, minimum, maximum)
_BOUNDED_INTS: dict[str, tuple[int, int, int]] = {
    "reminder_check_interval_minutes": (5, 1, 60),
    "external_sync_interval_minutes": (15, 1, 1440),
}

_PLAIN_INTS: dict[str, int] = {
    "reminder_lock_ttl_minutes": 10,
    "external_sync_lock_ttl_minutes": 30,
    "dedupe_lookback_hours": 24,
    "feed_past_days": 30,
    "feed_future_days": 90,
    "feed_not_modified_window_seconds": 300,
    "server_port": 8080,
}

_TRUTHY = ("1", "true", "yes", "on")


@dataclass
class Config:
    """Typed configuration for homecal.

    Fields:
        reminder_check_interval_minutes: reminder cycle period (1..60); also the
            lookahead slack for recurring events
        reminder_lock_ttl_minutes: TTL of the reminder cycle lock
        external_sync_interval_minutes: sync-due cycle period (1..1440)
        external_sync_lock_ttl_minutes: TTL of the sync cycle lock
        dedupe_lookback_hours: how far back prior reminders suppress new ones
        feed_past_days / feed_future_days: rolling feed window
        feed_calendar_name: X-WR-CALNAME of rendered feeds
        feed_product_id: PRODID of rendered feeds
        feed_include_overrides: emit RECURRENCE-ID records for overridden occurrences
        feed_not_modified_window_seconds: If-Modified-Since freshness window
        server_bind / server_port: HTTP listener
        log_level: root logging level name
        debug_logging: DEBUG for homecal loggers
        data_file: optional YAML fixture loaded into the in-memory store
    """

    reminder_check_interval_minutes: int = 5
    reminder_lock_ttl_minutes: int = 10
    external_sync_interval_minutes: int = 15
    external_sync_lock_ttl_minutes: int = 30
    dedupe_lookback_hours: int = 24
    feed_past_days: int = 30
    feed_future_days: int = 90
    feed_calendar_name: str = "Home Calendar"
    feed_product_id: str = "-//HomeCal//Household Calendar//EN"
    feed_include_overrides: bool = False
    feed_not_modified_window_seconds: int = 300
    server_bind: str = "0.0.0.0"  # nosec: B104 - default bind for local/dev; override via config/env
    server_port: int = 8080
    log_level: str = "INFO"
    debug_logging: bool = False
    data_file: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced to int (falling back to the default with a
        warning), bounded intervals are clamped with a warning, and booleans accept
        the usual truthy strings. Unknown keys are ignored.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int) -> int:
            raw = data.get(key, default)
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default

        def _coerce_bool(key: str, default: bool) -> bool:
            raw = data.get(key, default)
            if isinstance(raw, bool):
                return raw
            if raw is None:
                return default
            return str(raw).strip().lower() in _TRUTHY

        values: dict[str, Any] = {}
        for key, (default, minimum, maximum) in _BOUNDED_INTS.items():
            value = _coerce_int(key, default)
            if value < minimum:
                logger.warning("%s %d below minimum; coercing to %d", key, value, minimum)
                value = minimum
            elif value > maximum:
                logger.warning("%s %d above maximum; coercing to %d", key, value, maximum)
                value = maximum
            values[key] = value

        for key, default in _PLAIN_INTS.items():
            value = _coerce_int(key, default)
            if value < 0:
                logger.warning("%s %d is negative; using default %d", key, value, default)
                value = default
            values[key] = value

        values["feed_calendar_name"] = str(data.get("feed_calendar_name") or "Home Calendar")
        values["feed_product_id"] = str(data.get("feed_product_id") or "-//HomeCal//Household Calendar//EN")
        values["feed_include_overrides"] = _coerce_bool("feed_include_overrides", False)
        values["debug_logging"] = _coerce_bool("debug_logging", False)

        server_bind = data.get("server_bind", "0.0.0.0")  # nosec: B104 - default used for local development
        values["server_bind"] = str(server_bind) if server_bind is not None else "0.0.0.0"  # nosec: B104

        log_level = data.get("log_level", "INFO")
        values["log_level"] = str(log_level).upper() if log_level is not None else "INFO"

        data_file = data.get("data_file")
        values["data_file"] = str(data_file) if data_file else None

        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def _load_yaml(path: Path) -> Any:
    """Load a YAML document; an empty file yields an empty mapping."""
    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    if loaded is None:
        return {}
    return loaded


def load_config(path: Optional[str] = None) -> Config:
    """Load configuration from a YAML file and return a Config instance.

    Args:
        path: Optional path to the config file. If not provided the default is
              ./homecal.yaml (relative to current working dir).

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    p = Path(path) if path else Path.cwd() / "homecal.yaml"
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config()

    raw = _load_yaml(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg


def env_overrides(environ: Optional[dict[str, str]] = None) -> dict[str, str]:
    """Collect HOMECAL_<FIELD> variables that name a Config field."""
    environ = os.environ if environ is None else environ
    field_names = {f.name for f in dataclasses.fields(Config)}
    overrides: dict[str, str] = {}
    for name, value in environ.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):].lower()
        if key in field_names:
            overrides[key] = value
    return overrides


def config_from_env(path: Optional[str] = None, environ: Optional[dict[str, str]] = None) -> Config:
    """Load the config file (HOMECAL_CONFIG or ``path``) and apply HOMECAL_* overrides."""
    environ = os.environ if environ is None else environ
    cfg_path = path or environ.get(f"{ENV_PREFIX}CONFIG")
    base = load_config(cfg_path).to_dict()
    overrides = env_overrides(environ)
    if overrides:
        logger.debug("Applying environment overrides for: %s", ", ".join(sorted(overrides)))
    base.update(overrides)
    return Config.from_dict(base)
