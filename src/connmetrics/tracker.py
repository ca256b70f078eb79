"""
In-memory connection tracker for network servers.

A server embeds a ``ConnectionTracker`` to hold its live connection state
and hands the tracker to ``ClientMetrics.init`` as its ``Server``
collaborator. The tracker also keeps a bounded history of which client
addresses recently connected with which protocol version.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from datetime import UTC, datetime

from .config import get_config
from .logging import get_logger, log_with_context
from .server import ClientStat, ConnectedClient

logger = get_logger("Tracker")


def _host_of(address: str) -> str:
    """Strip the port from ``host:port`` or ``[ipv6]:port``."""
    if address.startswith("["):
        end = address.find("]")
        return address[1:end] if end != -1 else address
    if address.count(":") == 1:
        return address.rpartition(":")[0]
    return address


class ConnectionTracker:
    """
    Tracks live connections for one server.

    Thread-safe: connection events arrive from the server's I/O threads while
    the metrics sampler reads the accessors.

    Provides:
    - Connect/disconnect/update lifecycle by connection ID
    - Connection counts, overall and per user
    - Bounded recent history of (address, protocol version) pairs
    """

    def __init__(self, name: str = "server", recent_stats_limit: int | None = None) -> None:
        if recent_stats_limit is None:
            recent_stats_limit = get_config().recent_stats_limit
        elif recent_stats_limit <= 0:
            raise ValueError(f"recent_stats_limit must be > 0, got {recent_stats_limit}")

        self.name = name
        self.recent_stats_limit = recent_stats_limit
        self._lock = threading.Lock()
        self._connections: dict[str, ConnectedClient] = {}
        self._recent: OrderedDict[tuple[str, str], ClientStat] = OrderedDict()

    def __repr__(self) -> str:
        return f"ConnectionTracker(name={self.name!r})"

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    def connect(self, connection_id: str, client: ConnectedClient) -> None:
        """
        Register a new connection.

        Args:
            connection_id: Server-assigned connection ID
            client: Descriptor for the connection
        """
        with self._lock:
            if connection_id in self._connections:
                log_with_context(
                    logger,
                    logging.WARNING,
                    "Replacing descriptor for already connected client",
                    server=self.name,
                    connection_id=connection_id,
                )
            self._connections[connection_id] = client
            self._record_stat(client)

        logger.debug(f"{self.name}: client {client.address} connected ({connection_id})")

    def update_client(self, connection_id: str, client: ConnectedClient) -> bool:
        """
        Replace the descriptor of a live connection, e.g. after login.

        Returns:
            False if the connection is unknown
        """
        with self._lock:
            if connection_id not in self._connections:
                return False
            self._connections[connection_id] = client
            self._record_stat(client)
            return True

    def disconnect(self, connection_id: str) -> bool:
        """
        Forget a connection.

        Returns:
            False if the connection was not registered
        """
        with self._lock:
            client = self._connections.pop(connection_id, None)

        if client is None:
            return False
        logger.debug(f"{self.name}: client {client.address} disconnected ({connection_id})")
        return True

    def _record_stat(self, client: ConnectedClient) -> None:
        """Refresh the history entry for this client. Caller holds the lock."""
        if not client.version:
            return

        key = (_host_of(client.address), client.version)
        self._recent.pop(key, None)
        self._recent[key] = ClientStat(
            address=key[0],
            protocol_version=key[1],
            last_seen=datetime.now(UTC),
        )
        while len(self._recent) > self.recent_stats_limit:
            self._recent.popitem(last=False)

    # =========================================================================
    # Server Accessors
    # =========================================================================

    def count_connected_clients(self) -> int:
        with self._lock:
            return len(self._connections)

    def count_connected_clients_by_user(self) -> dict[str, int]:
        """Connection counts keyed by user. Anonymous connections are left out."""
        counts: dict[str, int] = {}
        with self._lock:
            for client in self._connections.values():
                if client.user:
                    counts[client.user] = counts.get(client.user, 0) + 1
        return counts

    def get_connected_clients(self) -> list[ConnectedClient]:
        with self._lock:
            return list(self._connections.values())

    def recent_client_stats(self) -> list[ClientStat]:
        """Recent client stats, oldest first."""
        with self._lock:
            return list(self._recent.values())

    def clear_recent_stats(self) -> None:
        with self._lock:
            self._recent.clear()


def create_connection_tracker(
    name: str = "server",
    recent_stats_limit: int | None = None,
) -> ConnectionTracker:
    """
    Create a connection tracker.

    Args:
        name: Server name used in log messages
        recent_stats_limit: Max recent client stats kept (defaults to config)

    Returns:
        Configured ConnectionTracker
    """
    return ConnectionTracker(name=name, recent_stats_limit=recent_stats_limit)
