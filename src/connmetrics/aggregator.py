"""
Process-wide client metrics for network servers.

``ClientMetrics`` is bound once to the set of servers accepting client
connections and to a metrics registry. After that it serves two paths:

- Gauges, recomputed on every registry sample by fanning out across the
  servers (connection count, per-user counts, connection list, recent
  clients by protocol version)
- Event counters, mutated directly by the servers (auth success/failure,
  discarded requests, paused connections)

Example:
    metrics = get_client_metrics()
    metrics.init([native_server], registry)

    metrics.mark_auth_success()
    metrics.pause_connection()

    registry.sample()
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from .config import get_config
from .errors import NotInitializedError
from .logging import get_logger, log_with_context
from .registry import (
    AtomicCounter,
    DefaultNameFactory,
    Gauge,
    Meter,
    MetricNameFactory,
    MetricsRegistry,
)
from .server import ClientStat, ConnectedClient, Server

logger = get_logger("Metrics")

T = TypeVar("T")

# Gauge names
CONNECTED_NATIVE_CLIENTS = "connectedNativeClients"
CONNECTED_NATIVE_CLIENTS_BY_USER = "connectedNativeClientsByUser"
CONNECTIONS = "connections"
CLIENTS_BY_PROTOCOL_VERSION = "clientsByProtocolVersion"
PAUSED_CONNECTIONS = "PausedConnections"

# Meter names
AUTH_SUCCESS = "AuthSuccess"
AUTH_FAILURE = "AuthFailure"
REQUEST_DISCARDED = "RequestDiscarded"


class ClientMetrics:
    """
    Aggregates client connection metrics across all registered servers.

    ``init`` is the only operation that takes the lock. Once initialized the
    server set and registry are never rebound, so gauges read them without
    locking and may observe a slightly inconsistent cross-server snapshot.
    """

    def __init__(self, name_factory: MetricNameFactory | None = None) -> None:
        self._lock = threading.Lock()
        self._initialized = False
        self._name_factory = name_factory or DefaultNameFactory(get_config().metric_type)

        self._servers: tuple[Server, ...] = ()
        self._registry: MetricsRegistry | None = None
        self._registered: list[str] = []

        self._auth_success: Meter | None = None
        self._auth_failure: Meter | None = None
        self._request_discarded: Meter | None = None
        self._paused_connections: AtomicCounter | None = None

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def servers(self) -> tuple[Server, ...]:
        return self._servers

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def init(self, servers: Iterable[Server], registry: MetricsRegistry) -> None:
        """
        Bind the server set and registry, and register all client metrics.

        Only the first call has any effect; later calls are ignored even if
        they pass a different server set.

        Args:
            servers: Servers whose connections are aggregated
            registry: Registry that samples the gauges and holds the meters
        """
        with self._lock:
            if self._initialized:
                logger.debug("Client metrics already initialized, ignoring init")
                return

            self._servers = tuple(servers)
            self._registry = registry

            try:
                self._register_all(registry)
            except Exception:
                # Undo partial registration
                self._release()
                raise

            self._initialized = True

        log_with_context(
            logger,
            logging.INFO,
            "Client metrics initialized",
            servers=len(self._servers),
            metrics=list(self._registered),
        )

    def shutdown(self) -> None:
        """
        Unregister every client metric and return to the uninitialized state.

        A later ``init`` may bind a new server set.
        """
        with self._lock:
            if not self._initialized:
                return
            self._release()
            self._initialized = False

        logger.info("Client metrics shut down")

    def _register_all(self, registry: MetricsRegistry) -> None:
        self._register_gauge(registry, CONNECTED_NATIVE_CLIENTS, self.count_connected_clients)
        self._register_gauge(
            registry, CONNECTED_NATIVE_CLIENTS_BY_USER, self.count_connected_clients_by_user
        )
        self._register_gauge(registry, CONNECTIONS, self.connected_clients)
        self._register_gauge(registry, CLIENTS_BY_PROTOCOL_VERSION, self.recent_client_stats)

        self._auth_success = self._register_meter(registry, AUTH_SUCCESS)
        self._auth_failure = self._register_meter(registry, AUTH_FAILURE)

        self._paused_connections = AtomicCounter()
        self._register_gauge(registry, PAUSED_CONNECTIONS, self._paused_connections.get)
        self._request_discarded = self._register_meter(registry, REQUEST_DISCARDED)

    def _release(self) -> None:
        """Unregister our metrics and drop every binding. Caller holds the lock."""
        if self._registry is not None:
            for name in self._registered:
                self._registry.remove(name)

        self._registered = []
        self._servers = ()
        self._registry = None
        self._auth_success = None
        self._auth_failure = None
        self._request_discarded = None
        self._paused_connections = None

    # =========================================================================
    # Event Counters
    # =========================================================================

    def mark_auth_success(self) -> None:
        self._require(self._auth_success, "mark_auth_success").mark()

    def mark_auth_failure(self) -> None:
        self._require(self._auth_failure, "mark_auth_failure").mark()

    def mark_request_discarded(self) -> None:
        self._require(self._request_discarded, "mark_request_discarded").mark()

    def pause_connection(self) -> None:
        self._require(self._paused_connections, "pause_connection").increment()

    def unpause_connection(self) -> None:
        # Unbalanced unpauses are allowed to drive the count negative
        self._require(self._paused_connections, "unpause_connection").decrement()

    def paused_connection_count(self) -> int:
        return self._require(self._paused_connections, "paused_connection_count").get()

    # =========================================================================
    # Aggregated Views
    # =========================================================================

    def all_connected_clients(self) -> list[ConnectedClient]:
        """Every connected client across all servers, in server order."""
        clients: list[ConnectedClient] = []
        for server in self._servers:
            result = self._query(server, "get_connected_clients", list)
            if result is not None:
                clients.extend(result)
        return clients

    def count_connected_clients(self) -> int:
        count = 0
        for server in self._servers:
            result = self._query(server, "count_connected_clients", int)
            if result is not None:
                count += result
        return count

    def count_connected_clients_by_user(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for server in self._servers:
            result = self._query(server, "count_connected_clients_by_user", _user_counts)
            if result is None:
                continue
            for username, count in result:
                counts[username] = counts.get(username, 0) + count
        return counts

    def connected_clients(self) -> list[dict[str, str]]:
        rows: list[dict[str, str]] = []
        for server in self._servers:
            result = self._query(server, "get_connected_clients", _as_maps)
            if result is not None:
                rows.extend(result)
        return rows

    def recent_client_stats(self) -> list[dict[str, str]]:
        """
        Recent client stats from every server, sorted by protocol version.

        Versions compare as strings, whatever type the record carries. The
        sort is stable, and a record without a protocol version sorts first.
        """
        stats: list[dict[str, str]] = []
        for server in self._servers:
            result = self._query(server, "recent_client_stats", _as_maps)
            if result is not None:
                stats.extend(result)

        stats.sort(key=_protocol_version_key)
        return stats

    # =========================================================================
    # Internals
    # =========================================================================

    def _query(self, server: Server, accessor: str, shape: Callable[[Any], T]) -> T | None:
        """Call one server accessor and shape its reply, skipping the server on failure."""
        try:
            return shape(getattr(server, accessor)())
        except Exception:
            log_with_context(
                logger,
                logging.WARNING,
                f"Skipping server in {accessor}",
                exc_info=True,
                server=repr(server),
            )
            return None

    def _require(self, handle: T | None, operation: str) -> T:
        if handle is None:
            raise NotInitializedError(operation)
        return handle

    def _metric_name(self, name: str) -> str:
        return self._name_factory.create_metric_name(name).metric_name

    def _register_gauge(
        self, registry: MetricsRegistry, name: str, supplier: Callable[[], T]
    ) -> Gauge[T]:
        full_name = self._metric_name(name)
        gauge = registry.gauge(full_name, supplier)
        self._registered.append(full_name)
        return gauge

    def _register_meter(self, registry: MetricsRegistry, name: str) -> Meter:
        full_name = self._metric_name(name)
        meter = registry.meter(full_name)
        self._registered.append(full_name)
        return meter


def _user_counts(result: Any) -> list[tuple[str, int]]:
    return [(str(username), int(count)) for username, count in result.items()]


def _as_maps(result: Any) -> list[dict[str, str]]:
    return [record.as_map() for record in result]


def _protocol_version_key(stat: dict[str, Any]) -> str:
    version = stat.get(ClientStat.PROTOCOL_VERSION)
    return "" if version is None else str(version)


# =============================================================================
# Global Instance
# =============================================================================


_global_client_metrics: ClientMetrics | None = None
_global_lock = threading.Lock()


def get_client_metrics() -> ClientMetrics:
    """Get the process-wide client metrics instance."""
    global _global_client_metrics
    with _global_lock:
        if _global_client_metrics is None:
            _global_client_metrics = ClientMetrics()
        return _global_client_metrics


def set_client_metrics(metrics: ClientMetrics) -> None:
    """Set the process-wide client metrics instance."""
    global _global_client_metrics
    with _global_lock:
        _global_client_metrics = metrics


def reset_client_metrics() -> None:
    """Shut down and drop the process-wide instance (mainly for testing)."""
    global _global_client_metrics
    with _global_lock:
        metrics = _global_client_metrics
        _global_client_metrics = None
    if metrics is not None:
        metrics.shutdown()
