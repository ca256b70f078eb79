"""
In-process metrics registry.

Provides the registration capability the client metrics aggregator needs:
named gauges whose value is recomputed on every read, monotonically
increasing meters, and a hierarchical name factory.

Example:
    registry = MetricsRegistry()
    factory = DefaultNameFactory("Client")

    name = factory.create_metric_name("connectedNativeClients").metric_name
    registry.gauge(name, lambda: 3)

    meter = registry.meter(factory.create_metric_name("AuthSuccess").metric_name)
    meter.mark()

    registry.sample()
    # {"connmetrics.metrics.Client.connectedNativeClients": 3,
    #  "connmetrics.metrics.Client.AuthSuccess": 1}
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Protocol, TypeVar

from .config import get_config
from .errors import DuplicateMetricError
from .logging import get_logger, log_with_context

logger = get_logger("Registry")

T = TypeVar("T")


# =============================================================================
# Metric Names
# =============================================================================


@dataclass(frozen=True)
class MetricName:
    """Hierarchical metric name: ``group.type[.scope].name``."""

    group: str
    type: str
    name: str
    scope: str | None = None

    @property
    def metric_name(self) -> str:
        """Render the dotted registry name."""
        parts = [self.group, self.type]
        if self.scope:
            parts.append(self.scope)
        parts.append(self.name)
        return ".".join(parts)


class MetricNameFactory(Protocol):
    """Creates fully qualified metric names for a category."""

    def create_metric_name(self, name: str) -> MetricName: ...


class DefaultNameFactory:
    """Name factory that prefixes names with a group and a category type."""

    def __init__(self, type: str, scope: str | None = None, group: str | None = None):
        self.type = type
        self.scope = scope
        self.group = group if group is not None else get_config().metric_group

    def create_metric_name(self, name: str) -> MetricName:
        return MetricName(group=self.group, type=self.type, name=name, scope=self.scope)


# =============================================================================
# Metric Types
# =============================================================================


class Gauge(Generic[T]):
    """A metric whose value is recomputed by its supplier on every read."""

    def __init__(self, supplier: Callable[[], T]):
        self._supplier = supplier

    @property
    def value(self) -> T:
        return self._supplier()


class Meter:
    """
    Thread-safe event meter.

    Counts marked events and reports the mean rate since creation.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._start_time = time.monotonic()

    def mark(self, n: int = 1) -> None:
        """Record ``n`` occurrences of the event."""
        with self._lock:
            self._count += n

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    @property
    def mean_rate(self) -> float:
        """Events per second since the meter was created."""
        elapsed = time.monotonic() - self._start_time
        if elapsed <= 0:
            return 0.0
        return self.count / elapsed


class AtomicCounter:
    """Lock-protected signed integer counter."""

    def __init__(self, initial: int = 0) -> None:
        self._lock = threading.Lock()
        self._value = initial

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def decrement(self) -> int:
        with self._lock:
            self._value -= 1
            return self._value

    def get(self) -> int:
        with self._lock:
            return self._value


Metric = Gauge[Any] | Meter


# =============================================================================
# Registry
# =============================================================================


class MetricsRegistry:
    """
    Thread-safe registry of named metrics.

    Names are unique across metric kinds. Gauges are registered with a
    supplier and sampled on demand; meters are created on first request and
    shared by every caller asking for the same name.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, Metric] = {}

    def register(self, name: str, gauge: Gauge[T]) -> Gauge[T]:
        """
        Register a gauge under ``name``.

        Raises:
            DuplicateMetricError: If any metric already holds the name
        """
        with self._lock:
            if name in self._metrics:
                raise DuplicateMetricError(name)
            self._metrics[name] = gauge
        logger.debug(f"Registered gauge {name}")
        return gauge

    def gauge(self, name: str, supplier: Callable[[], T]) -> Gauge[T]:
        """Register a gauge backed by ``supplier``."""
        return self.register(name, Gauge(supplier))

    def meter(self, name: str) -> Meter:
        """
        Get or create the meter registered under ``name``.

        Raises:
            DuplicateMetricError: If the name is held by a non-meter metric
        """
        with self._lock:
            existing = self._metrics.get(name)
            if existing is None:
                existing = Meter()
                self._metrics[name] = existing
                logger.debug(f"Registered meter {name}")
            elif not isinstance(existing, Meter):
                raise DuplicateMetricError(name)
            return existing

    def get(self, name: str) -> Metric | None:
        with self._lock:
            return self._metrics.get(name)

    def remove(self, name: str) -> bool:
        """Remove a metric. Returns True if it was registered."""
        with self._lock:
            return self._metrics.pop(name, None) is not None

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._metrics)

    def sample(self) -> dict[str, Any]:
        """
        Read every registered metric once.

        Gauges report their current value, meters their count. A gauge that
        raises is logged and left out of the result.

        Returns:
            Mapping of metric name to sampled value
        """
        with self._lock:
            metrics = list(self._metrics.items())

        values: dict[str, Any] = {}
        for name, metric in metrics:
            if isinstance(metric, Meter):
                values[name] = metric.count
                continue
            try:
                values[name] = metric.value
            except Exception:
                log_with_context(
                    logger,
                    logging.WARNING,
                    f"Gauge {name} failed during sampling",
                    exc_info=True,
                    metric=name,
                )
        return values
