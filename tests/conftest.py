"""Shared pytest fixtures for connmetrics tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import MagicMock

import pytest

from connmetrics import (
    ClientMetrics,
    ClientStat,
    ConnectedClient,
    MetricsRegistry,
    get_config,
    reset_client_metrics,
)

_ENV_VARS = (
    "CONNMETRICS_METRIC_GROUP",
    "CONNMETRICS_METRIC_TYPE",
    "CONNMETRICS_RECENT_STATS_LIMIT",
    "CONNMETRICS_SAMPLE_INTERVAL",
    "CONNMETRICS_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear connmetrics env vars, the config cache and the global instance."""
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    get_config.cache_clear()
    reset_client_metrics()
    yield
    reset_client_metrics()
    get_config.cache_clear()


@pytest.fixture
def registry() -> MetricsRegistry:
    """Return an empty metrics registry."""
    return MetricsRegistry()


@pytest.fixture
def metrics() -> ClientMetrics:
    """Return an uninitialized client metrics aggregator."""
    return ClientMetrics()


@pytest.fixture
def make_server() -> Callable[..., Any]:
    """Build a mock server reporting the given connection state."""

    def _make(
        count: int = 0,
        by_user: dict[str, int] | None = None,
        clients: list[ConnectedClient] | None = None,
        stats: list[ClientStat] | None = None,
    ) -> Any:
        server = MagicMock()
        server.count_connected_clients.return_value = count
        server.count_connected_clients_by_user.return_value = by_user or {}
        server.get_connected_clients.return_value = clients or []
        server.recent_client_stats.return_value = stats or []
        return server

    return _make
