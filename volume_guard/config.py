"""Daemon configuration helpers."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from .app.detection.classifier import DEFAULT_QUOTA_HEADROOM_FACTOR
from .app.errors import ConfigError

CONFIG_FILE_ENV = "VOLUME_GUARD_CONFIG_FILE"

# Keys of the legacy config.json file and the environment variables they seed.
_FILE_KEYS: Dict[str, str] = {
    "containers_directory": "VOLUMES_DIRECTORY",
    "panel_url": "PANEL_URL",
    "admin_api_key": "ADMIN_API_KEY",
    "client_api_key": "CLIENT_API_KEY",
    "check_interval_in_seconds": "CHECK_INTERVAL_SECONDS",
    "check_interval_threshold_in_gb": "SUDDEN_GROWTH_THRESHOLD_GB",
    "cumulative_change_threshold_in_gb": "CUMULATIVE_GROWTH_THRESHOLD_GB",
    "servers_list_cache_time_in_seconds": "SERVERS_LIST_CACHE_TTL_SECONDS",
    "discord_webhook_url": "WEBHOOK_URL",
}


@dataclass(frozen=True)
class DaemonConfig:
    """Configuration for the enforcement daemon, loaded once at startup."""

    panel_url: str
    admin_api_key: str
    client_api_key: Optional[str]
    volumes_directory: str
    reserved_prefixes: Tuple[str, ...]
    check_interval_seconds: float
    sudden_growth_threshold_gb: float
    cumulative_growth_threshold_gb: float
    quota_headroom_factor: float
    enforce_quota: bool
    cumulative_cache_ttl_seconds: float
    servers_list_cache_ttl_seconds: float
    webhook_url: Optional[str]
    http_timeout_seconds: float
    measurement_timeout_seconds: float
    wipe_timeout_seconds: float
    max_measurement_workers: int
    kill_before_wipe: bool
    wipe_on_enforcement: bool
    rewipe_after_suspend: bool
    suspend_delay_seconds: float
    dry_run: bool
    log_level: str


def normalize_panel_url(value: str) -> str:
    """Ensure the panel URL has a scheme and no trailing slash."""

    url = value.strip()
    if not url:
        return url
    if not (url.startswith("http://") or url.startswith("https://")):
        url = "http://" + url
    return url.rstrip("/")


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(name: str, value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(message=f"{name}: expected integer value, got {value!r}") from exc


def _to_float(name: str, value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(message=f"{name}: expected number, got {value!r}") from exc


def _to_list(value: Optional[str], *, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def read_config_file(path: str) -> Dict[str, str]:
    """Translate a legacy ``config.json`` into environment-style keys."""

    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except OSError as exc:
        raise ConfigError(message=f"Error reading config file {path}: {exc.strerror or exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(message=f"Error parsing config file {path}: {exc.msg}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(message=f"Config file {path} must contain a JSON object")

    values: Dict[str, str] = {}
    for key, env_name in _FILE_KEYS.items():
        if raw.get(key) is not None:
            values[env_name] = str(raw[key])
    return values


def load_daemon_config(env: Optional[Mapping[str, str]] = None) -> DaemonConfig:
    """Load :class:`DaemonConfig` from environment variables.

    When ``VOLUME_GUARD_CONFIG_FILE`` names a JSON file its values are used as
    defaults; environment variables take precedence.
    """

    env_mapping: Mapping[str, str] = os.environ if env is None else env
    config_file = env_mapping.get(CONFIG_FILE_ENV)
    if config_file:
        merged: Dict[str, str] = read_config_file(config_file)
        merged.update(env_mapping)
        env_mapping = merged

    panel_url = normalize_panel_url(env_mapping.get("PANEL_URL", ""))
    if not panel_url:
        raise ConfigError(message="PANEL_URL is required")
    admin_api_key = (env_mapping.get("ADMIN_API_KEY") or "").strip()
    if not admin_api_key:
        raise ConfigError(message="ADMIN_API_KEY is required")

    check_interval = _to_float(
        "CHECK_INTERVAL_SECONDS", env_mapping.get("CHECK_INTERVAL_SECONDS"), default=60.0
    )
    if check_interval <= 0:
        raise ConfigError(message="CHECK_INTERVAL_SECONDS must be positive")

    headroom = _to_float(
        "QUOTA_HEADROOM_FACTOR",
        env_mapping.get("QUOTA_HEADROOM_FACTOR"),
        default=DEFAULT_QUOTA_HEADROOM_FACTOR,
    )
    if headroom < 1.0:
        raise ConfigError(message="QUOTA_HEADROOM_FACTOR must be at least 1.0")

    return DaemonConfig(
        panel_url=panel_url,
        admin_api_key=admin_api_key,
        client_api_key=(env_mapping.get("CLIENT_API_KEY") or "").strip() or None,
        volumes_directory=env_mapping.get("VOLUMES_DIRECTORY", "/var/lib/pterodactyl/volumes"),
        reserved_prefixes=_to_list(env_mapping.get("RESERVED_VOLUME_PREFIXES"), default=(".sftp",)),
        check_interval_seconds=check_interval,
        sudden_growth_threshold_gb=_to_float(
            "SUDDEN_GROWTH_THRESHOLD_GB", env_mapping.get("SUDDEN_GROWTH_THRESHOLD_GB"), default=5.0
        ),
        cumulative_growth_threshold_gb=_to_float(
            "CUMULATIVE_GROWTH_THRESHOLD_GB", env_mapping.get("CUMULATIVE_GROWTH_THRESHOLD_GB"), default=20.0
        ),
        quota_headroom_factor=headroom,
        enforce_quota=_to_bool(env_mapping.get("ENFORCE_QUOTA"), default=True),
        cumulative_cache_ttl_seconds=max(
            1.0,
            _to_float(
                "CUMULATIVE_CACHE_TTL_SECONDS", env_mapping.get("CUMULATIVE_CACHE_TTL_SECONDS"), default=86400.0
            ),
        ),
        servers_list_cache_ttl_seconds=max(
            1.0,
            _to_float(
                "SERVERS_LIST_CACHE_TTL_SECONDS", env_mapping.get("SERVERS_LIST_CACHE_TTL_SECONDS"), default=300.0
            ),
        ),
        webhook_url=(env_mapping.get("WEBHOOK_URL") or "").strip() or None,
        http_timeout_seconds=max(
            0.1, _to_float("HTTP_TIMEOUT_SECONDS", env_mapping.get("HTTP_TIMEOUT_SECONDS"), default=5.0)
        ),
        measurement_timeout_seconds=max(
            0.1,
            _to_float(
                "MEASUREMENT_TIMEOUT_SECONDS", env_mapping.get("MEASUREMENT_TIMEOUT_SECONDS"), default=10.0
            ),
        ),
        wipe_timeout_seconds=max(
            0.1, _to_float("WIPE_TIMEOUT_SECONDS", env_mapping.get("WIPE_TIMEOUT_SECONDS"), default=10.0)
        ),
        max_measurement_workers=max(
            1, _to_int("MAX_MEASUREMENT_WORKERS", env_mapping.get("MAX_MEASUREMENT_WORKERS"), default=4)
        ),
        kill_before_wipe=_to_bool(env_mapping.get("KILL_BEFORE_WIPE"), default=True),
        wipe_on_enforcement=_to_bool(env_mapping.get("WIPE_ON_ENFORCEMENT"), default=True),
        rewipe_after_suspend=_to_bool(env_mapping.get("REWIPE_AFTER_SUSPEND"), default=True),
        suspend_delay_seconds=max(
            0.0, _to_float("SUSPEND_DELAY_SECONDS", env_mapping.get("SUSPEND_DELAY_SECONDS"), default=1.0)
        ),
        dry_run=_to_bool(env_mapping.get("DRY_RUN"), default=False),
        log_level=(env_mapping.get("LOG_LEVEL") or "INFO").strip().upper() or "INFO",
    )


__all__ = [
    "CONFIG_FILE_ENV",
    "DaemonConfig",
    "load_daemon_config",
    "normalize_panel_url",
    "read_config_file",
]
