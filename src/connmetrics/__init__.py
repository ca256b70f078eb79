"""
connmetrics - process-wide client connection metrics for network servers.

Aggregates connection counts, per-user and per-protocol-version breakdowns,
and auth/request event counters across every server in the process, and
exposes them as gauges and meters in a metrics registry.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _metadata_version

from .aggregator import (
    ClientMetrics,
    get_client_metrics,
    reset_client_metrics,
    set_client_metrics,
)
from .config import MetricsConfig, get_config
from .errors import ConfigError, ConnMetricsError, DuplicateMetricError, NotInitializedError
from .registry import (
    AtomicCounter,
    DefaultNameFactory,
    Gauge,
    Meter,
    MetricName,
    MetricNameFactory,
    MetricsRegistry,
)
from .sampler import PeriodicSampler
from .server import ClientStat, ConnectedClient, Server
from .tracker import ConnectionTracker, create_connection_tracker

try:
    __version__ = _metadata_version("connmetrics")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    # Aggregation
    "ClientMetrics",
    "get_client_metrics",
    "set_client_metrics",
    "reset_client_metrics",
    # Registry
    "AtomicCounter",
    "DefaultNameFactory",
    "Gauge",
    "Meter",
    "MetricName",
    "MetricNameFactory",
    "MetricsRegistry",
    "PeriodicSampler",
    # Servers
    "ClientStat",
    "ConnectedClient",
    "ConnectionTracker",
    "Server",
    "create_connection_tracker",
    # Config and errors
    "MetricsConfig",
    "get_config",
    "ConnMetricsError",
    "ConfigError",
    "DuplicateMetricError",
    "NotInitializedError",
]
