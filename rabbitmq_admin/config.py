"""
Console Configuration Loader.

Loads settings from built-in defaults, an optional YAML file and
environment variables, in that order of precedence (later wins).

Usage:
    from rabbitmq_admin.config import load_settings

    settings = load_settings()
    print(settings.api_url, settings.cache_policies["queues"].ttl)
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field, replace
from datetime import timedelta
from pathlib import Path
from typing import Any

import structlog
import yaml

from rabbitmq_admin.cache.registry import (
    DEFAULT_CACHE_POLICIES,
    DEFAULT_CLEANUP_INTERVAL,
    CachePolicy,
)

logger = structlog.get_logger(__name__)

ENV_PREFIX = "RMQ_ADMIN_"
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "console.yaml"


def expand_bash_vars(value: str) -> str:
    """Expand bash-style environment variables with default values.

    Handles ``$VAR``, ``${VAR}``, ``${VAR:-default}`` (default when unset
    or empty) and ``${VAR-default}`` (default only when unset).
    """
    if not value or "$" not in value:
        return value

    pattern = r"\$\{([^}:-]+)(:-|-)?([^}]*)\}"

    def replace_var(match: re.Match) -> str:
        var_name, operator, default = match.group(1), match.group(2), match.group(3) or ""
        env_value = os.environ.get(var_name)
        if operator == ":-":
            return env_value if env_value else default
        if operator == "-":
            return env_value if env_value is not None else default
        return env_value or ""

    return os.path.expandvars(re.sub(pattern, replace_var, value))


def _expand(data: Any) -> Any:
    if isinstance(data, str):
        return expand_bash_vars(data)
    if isinstance(data, dict):
        return {key: _expand(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand(item) for item in data]
    return data


@dataclass
class ConsoleSettings:
    """Runtime settings for the console process."""

    api_url: str = "http://localhost:8080/api"
    request_timeout: float = 30.0
    cache_policies: dict[str, CachePolicy] = field(
        default_factory=lambda: dict(DEFAULT_CACHE_POLICIES)
    )
    cleanup_interval: timedelta = DEFAULT_CLEANUP_INTERVAL
    stats_interval: timedelta = timedelta(seconds=5)
    stale_time: timedelta = timedelta(seconds=15)
    stale_check_interval: timedelta = timedelta(seconds=5)
    auto_refresh_interval: timedelta = timedelta(seconds=30)
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    def to_dict(self) -> dict[str, Any]:
        """Export as dictionary (durations in seconds)."""
        return {
            "api_url": self.api_url,
            "request_timeout": self.request_timeout,
            "cache_policies": {
                name: {"ttl_seconds": policy.ttl.total_seconds(), "max_size": policy.max_size}
                for name, policy in self.cache_policies.items()
            },
            "cleanup_interval_seconds": self.cleanup_interval.total_seconds(),
            "stats_interval_seconds": self.stats_interval.total_seconds(),
            "stale_time_seconds": self.stale_time.total_seconds(),
            "stale_check_interval_seconds": self.stale_check_interval.total_seconds(),
            "auto_refresh_interval_seconds": self.auto_refresh_interval.total_seconds(),
            "api_host": self.api_host,
            "api_port": self.api_port,
        }


def _seconds(value: Any, name: str) -> timedelta:
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number of seconds, got {value!r}") from None
    if seconds < 0:
        raise ValueError(f"{name} must not be negative, got {seconds}")
    return timedelta(seconds=seconds)


def _interval(value: Any, name: str) -> timedelta:
    """Timer periods must be positive; zero is only meaningful for TTLs."""
    interval = _seconds(value, name)
    if interval <= timedelta(0):
        raise ValueError(f"{name} must be greater than zero, got {value!r}")
    return interval


def _positive_int(value: Any, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be an integer, got {value!r}") from None
    if number < 1:
        raise ValueError(f"{name} must be at least 1, got {number}")
    return number


def _apply_yaml(settings: ConsoleSettings, data: dict[str, Any]) -> ConsoleSettings:
    gateway = data.get("gateway") or {}
    cache = data.get("cache") or {}
    refresh = data.get("refresh") or {}
    api = data.get("api") or {}

    changes: dict[str, Any] = {}
    if "url" in gateway:
        changes["api_url"] = str(gateway["url"])
    if "timeout_seconds" in gateway:
        changes["request_timeout"] = _interval(gateway["timeout_seconds"], "gateway.timeout_seconds").total_seconds()

    policies = dict(settings.cache_policies)
    for name, policy_data in (cache.get("policies") or {}).items():
        base = policies.get(name, CachePolicy(ttl=timedelta(minutes=5)))
        policy_data = policy_data or {}
        policies[name] = CachePolicy(
            ttl=_seconds(policy_data["ttl_seconds"], f"cache.policies.{name}.ttl_seconds")
            if "ttl_seconds" in policy_data
            else base.ttl,
            max_size=_positive_int(policy_data["max_size"], f"cache.policies.{name}.max_size")
            if "max_size" in policy_data
            else base.max_size,
        )
    changes["cache_policies"] = policies

    if "cleanup_interval_seconds" in cache:
        changes["cleanup_interval"] = _interval(cache["cleanup_interval_seconds"], "cache.cleanup_interval_seconds")
    if "stats_interval_seconds" in cache:
        changes["stats_interval"] = _interval(cache["stats_interval_seconds"], "cache.stats_interval_seconds")
    if "stale_time_seconds" in refresh:
        changes["stale_time"] = _seconds(refresh["stale_time_seconds"], "refresh.stale_time_seconds")
    if "stale_check_interval_seconds" in refresh:
        changes["stale_check_interval"] = _interval(
            refresh["stale_check_interval_seconds"], "refresh.stale_check_interval_seconds"
        )
    if "auto_refresh_interval_seconds" in refresh:
        changes["auto_refresh_interval"] = _interval(
            refresh["auto_refresh_interval_seconds"], "refresh.auto_refresh_interval_seconds"
        )
    if "host" in api:
        changes["api_host"] = str(api["host"])
    if "port" in api:
        changes["api_port"] = _positive_int(api["port"], "api.port")

    return replace(settings, **changes)


def _apply_env(settings: ConsoleSettings, environ: dict[str, str]) -> ConsoleSettings:
    def env(name: str) -> str | None:
        value = environ.get(f"{ENV_PREFIX}{name}")
        return value if value not in (None, "") else None

    changes: dict[str, Any] = {}
    if (value := env("API_URL")) is not None:
        changes["api_url"] = value
    if (value := env("REQUEST_TIMEOUT")) is not None:
        changes["request_timeout"] = _interval(value, "RMQ_ADMIN_REQUEST_TIMEOUT").total_seconds()

    policies = dict(settings.cache_policies)
    for name, policy in settings.cache_policies.items():
        ttl = env(f"CACHE_TTL_{name.upper()}")
        max_size = env(f"CACHE_MAX_{name.upper()}")
        if ttl is None and max_size is None:
            continue
        policies[name] = CachePolicy(
            ttl=_seconds(ttl, f"RMQ_ADMIN_CACHE_TTL_{name.upper()}") if ttl is not None else policy.ttl,
            max_size=_positive_int(max_size, f"RMQ_ADMIN_CACHE_MAX_{name.upper()}")
            if max_size is not None
            else policy.max_size,
        )
    changes["cache_policies"] = policies

    durations = {
        "CLEANUP_INTERVAL": ("cleanup_interval", _interval),
        "STATS_INTERVAL": ("stats_interval", _interval),
        "STALE_TIME": ("stale_time", _seconds),
        "STALE_CHECK_INTERVAL": ("stale_check_interval", _interval),
        "AUTO_REFRESH_INTERVAL": ("auto_refresh_interval", _interval),
    }
    for env_name, (attr, parse) in durations.items():
        if (value := env(env_name)) is not None:
            changes[attr] = parse(value, f"{ENV_PREFIX}{env_name}")

    if (value := env("API_HOST")) is not None:
        changes["api_host"] = value
    if (value := env("API_PORT")) is not None:
        changes["api_port"] = _positive_int(value, "RMQ_ADMIN_API_PORT")

    return replace(settings, **changes)


def load_settings(
    config_path: str | Path | None = None,
    environ: dict[str, str] | None = None,
) -> ConsoleSettings:
    """
    Load console settings.

    Args:
        config_path: YAML file. Defaults to RMQ_ADMIN_CONFIG, then
            config/console.yaml; a missing file is not an error
        environ: Environment mapping (defaults to os.environ)

    Returns:
        ConsoleSettings

    Raises:
        ValueError: A configured value is malformed
    """
    environ = dict(os.environ) if environ is None else environ
    settings = ConsoleSettings()

    if config_path is None:
        config_path = environ.get(f"{ENV_PREFIX}CONFIG") or DEFAULT_CONFIG_PATH
    config_path = Path(config_path)

    if config_path.exists():
        logger.info("Loading console configuration", path=str(config_path))
        with open(config_path) as f:
            data = yaml.safe_load(f)
        if data:
            settings = _apply_yaml(settings, _expand(data))
    else:
        logger.debug("Console config file not found, using defaults", path=str(config_path))

    return _apply_env(settings, environ)
