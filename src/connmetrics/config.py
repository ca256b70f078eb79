"""
Centralized configuration for connmetrics.

Settings are read once from environment variables and cached. Call
``get_config.cache_clear()`` to pick up changed variables (tests do this).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import cache

from .errors import ConfigError

DEFAULT_METRIC_GROUP = "connmetrics.metrics"
DEFAULT_METRIC_TYPE = "Client"
DEFAULT_RECENT_STATS_LIMIT = 100
DEFAULT_SAMPLE_INTERVAL = 10.0
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class MetricsConfig:
    """Metrics configuration from environment variables.

    Attributes:
        metric_group: Prefix for every registered metric name
        metric_type: Category under which client metrics are registered
        recent_stats_limit: How many recent client stats a tracker keeps
        sample_interval: Seconds between periodic registry samples
        log_level: Logging level name for ``setup_logging``
    """

    metric_group: str = DEFAULT_METRIC_GROUP
    metric_type: str = DEFAULT_METRIC_TYPE
    recent_stats_limit: int = DEFAULT_RECENT_STATS_LIMIT
    sample_interval: float = DEFAULT_SAMPLE_INTERVAL
    log_level: str = DEFAULT_LOG_LEVEL


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


@cache
def get_config() -> MetricsConfig:
    """Load metrics configuration from environment variables.

    Environment variables:
        - CONNMETRICS_METRIC_GROUP → metric_group
        - CONNMETRICS_METRIC_TYPE → metric_type
        - CONNMETRICS_RECENT_STATS_LIMIT → recent_stats_limit
        - CONNMETRICS_SAMPLE_INTERVAL → sample_interval
        - CONNMETRICS_LOG_LEVEL → log_level

    Returns:
        MetricsConfig with validated settings.

    Raises:
        ConfigError: If a numeric setting is malformed or not positive.
    """
    return MetricsConfig(
        metric_group=os.environ.get("CONNMETRICS_METRIC_GROUP") or DEFAULT_METRIC_GROUP,
        metric_type=os.environ.get("CONNMETRICS_METRIC_TYPE") or DEFAULT_METRIC_TYPE,
        recent_stats_limit=_env_int("CONNMETRICS_RECENT_STATS_LIMIT", DEFAULT_RECENT_STATS_LIMIT),
        sample_interval=_env_float("CONNMETRICS_SAMPLE_INTERVAL", DEFAULT_SAMPLE_INTERVAL),
        log_level=(os.environ.get("CONNMETRICS_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
    )
