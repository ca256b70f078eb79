"""
Periodic registry sampler.

Samples every metric in a registry on a fixed interval from a background
daemon thread and hands each snapshot to a callback (a reporter or a log line).
Errors in the callback never stop the loop.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from .config import get_config
from .logging import get_logger, log_with_context
from .registry import MetricsRegistry

logger = get_logger("Sampler")

SampleCallback = Callable[[dict[str, Any]], None]


class PeriodicSampler:
    """
    Background sampler for a ``MetricsRegistry``.

    Example:
        sampler = PeriodicSampler(registry, reporter.report, interval=10.0)
        sampler.start()
        ...
        sampler.stop()
    """

    def __init__(
        self,
        registry: MetricsRegistry,
        callback: SampleCallback,
        interval: float | None = None,
    ):
        """
        Initialize the sampler.

        Args:
            registry: Registry to sample
            callback: Receives each snapshot
            interval: Seconds between samples (defaults to config)
        """
        self.registry = registry
        self.callback = callback
        self.interval = interval if interval is not None else get_config().sample_interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sample_loop, name="connmetrics-sampler", daemon=True
        )
        self._thread.start()
        logger.info(f"Metrics sampler started (interval={self.interval}s)")

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Signal the loop to exit and wait up to ``timeout`` seconds for it.

        If the thread is still inside a sample when the wait runs out, its
        handle is kept: ``running`` stays true, ``start`` will not launch a
        second loop, and a later ``stop`` can wait again.
        """
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning(f"Metrics sampler did not stop within {timeout}s")
            return
        self._thread = None
        logger.info("Metrics sampler stopped")

    def sample_once(self) -> dict[str, Any]:
        """Take one sample and deliver it to the callback."""
        snapshot = self.registry.sample()
        try:
            self.callback(snapshot)
        except Exception:
            log_with_context(
                logger,
                logging.WARNING,
                "Sample callback failed",
                exc_info=True,
                metrics=len(snapshot),
            )
        return snapshot

    def _sample_loop(self) -> None:
        while not self._stop_event.is_set():
            started = time.monotonic()
            self.sample_once()
            elapsed = time.monotonic() - started
            self._stop_event.wait(max(0.0, self.interval - elapsed))
