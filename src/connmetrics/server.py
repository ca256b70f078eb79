"""
Server collaborator boundary.

Defines what the client metrics aggregator consumes from each network server:
the ``Server`` accessor protocol plus the two per-connection record types,
``ConnectedClient`` (a live connection) and ``ClientStat`` (a recent
connection seen with a given protocol version).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import ClassVar, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Connected Clients
# =============================================================================


class ConnectedClient(BaseModel):
    """
    Snapshot of one live client connection.

    Example:
        ConnectedClient(address="10.0.0.5:51234", user="alice", version="v4")
    """

    model_config = ConfigDict(frozen=True)

    ADDRESS_KEY: ClassVar[str] = "address"
    USER_KEY: ClassVar[str] = "user"
    VERSION_KEY: ClassVar[str] = "version"
    DRIVER_NAME_KEY: ClassVar[str] = "driverName"
    DRIVER_VERSION_KEY: ClassVar[str] = "driverVersion"
    REQUESTS_KEY: ClassVar[str] = "requests"
    KEYSPACE_KEY: ClassVar[str] = "keyspace"
    SSL_KEY: ClassVar[str] = "ssl"
    CIPHER_KEY: ClassVar[str] = "cipher"
    PROTOCOL_KEY: ClassVar[str] = "protocol"

    address: str = Field(description="Remote address, host:port")
    user: str | None = Field(default=None, description="Authenticated user, if any")
    version: str | None = Field(default=None, description="Negotiated protocol version")
    driver_name: str | None = Field(default=None, description="Client driver name")
    driver_version: str | None = Field(default=None, description="Client driver version")
    requests: int = Field(default=0, ge=0, description="Requests served on this connection")
    keyspace: str | None = Field(default=None, description="Keyspace selected by the client")
    ssl: bool = Field(default=False, description="Is the connection encrypted?")
    cipher: str | None = Field(default=None, description="TLS cipher suite")
    protocol: str | None = Field(default=None, description="TLS protocol")

    def as_map(self) -> dict[str, str]:
        """Shape the connection as a string map for metrics display."""
        return {
            self.ADDRESS_KEY: self.address,
            self.USER_KEY: self.user or "",
            self.VERSION_KEY: self.version or "",
            self.DRIVER_NAME_KEY: self.driver_name or "",
            self.DRIVER_VERSION_KEY: self.driver_version or "",
            self.REQUESTS_KEY: str(self.requests),
            self.KEYSPACE_KEY: self.keyspace or "",
            self.SSL_KEY: "true" if self.ssl else "false",
            self.CIPHER_KEY: self.cipher or "",
            self.PROTOCOL_KEY: self.protocol or "",
        }


# =============================================================================
# Client Stats
# =============================================================================


class ClientStat(BaseModel):
    """A client address recently seen using a given protocol version."""

    model_config = ConfigDict(frozen=True)

    INET_ADDRESS: ClassVar[str] = "inetAddress"
    PROTOCOL_VERSION: ClassVar[str] = "protocolVersion"
    LAST_SEEN_TIME: ClassVar[str] = "lastSeenTime"

    address: str = Field(description="Client IP address")
    protocol_version: str = Field(description="Protocol version the client used")
    last_seen: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When the client was last seen"
    )

    def as_map(self) -> dict[str, str]:
        return {
            self.INET_ADDRESS: self.address,
            self.PROTOCOL_VERSION: self.protocol_version,
            self.LAST_SEEN_TIME: self.last_seen.isoformat(),
        }


# =============================================================================
# Server Protocol
# =============================================================================


@runtime_checkable
class Server(Protocol):
    """
    Accessors a network server exposes to the client metrics aggregator.

    Implementations must be safe to call from the metrics sampling thread
    while the server is accepting connections.
    """

    def count_connected_clients(self) -> int: ...

    def count_connected_clients_by_user(self) -> Mapping[str, int]: ...

    def get_connected_clients(self) -> Sequence[ConnectedClient]: ...

    def recent_client_stats(self) -> Sequence[ClientStat]: ...
