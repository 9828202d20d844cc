"""
Base connector abstraction for market-data sources.

Every connector (QOS WebSocket, replay file, etc.) inherits from
BaseConnector and implements the standard interface for:
1. Validating its configuration
2. Normalizing raw messages into Snapshot records
3. Streaming snapshots onto a bounded queue (drop-on-full)
4. Health checks for operational monitoring
5. Graceful shutdown
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from pricewatch.models import Snapshot

logger = logging.getLogger(__name__)


class BaseConnector(ABC):
    """
    Abstract base class for snapshot sources.

    The core only ever sees well-typed Snapshots: malformed messages are
    logged and dropped by enqueue_raw() before they reach the queue.
    """

    def __init__(self, symbols: list[str]) -> None:
        """
        Args:
            symbols: Instruments to subscribe to (e.g., ["GLDUSD"])
        """
        self.symbols = list(symbols)
        self.dropped = 0
        self.malformed = 0

    @abstractmethod
    def connect(self) -> None:
        """
        Validate configuration. No network I/O.

        Raises:
            ValueError: If the connector cannot run with its configuration
        """

    @abstractmethod
    def normalize(self, raw: dict[str, Any]) -> Snapshot:
        """
        Convert one vendor message into a Snapshot.

        Raises:
            ValueError: If raw data doesn't match the expected schema
        """

    @abstractmethod
    async def stream(self, queue: asyncio.Queue[Snapshot]) -> None:
        """Put snapshots onto `queue` until shutdown() is called."""

    @abstractmethod
    def health_check(self) -> bool:
        """True if the connector is receiving data."""

    @abstractmethod
    def shutdown(self) -> None:
        """Signal stream() to exit."""

    def enqueue_raw(
        self, raw: dict[str, Any], queue: asyncio.Queue[Snapshot]
    ) -> Optional[Snapshot]:
        """
        Normalize `raw` and put it on `queue` without blocking.

        Malformed messages and snapshots arriving while the queue is full are
        dropped with a log line.

        Returns:
            The enqueued Snapshot, or None if it was dropped.
        """
        try:
            snapshot = self.normalize(raw)
        except ValueError as exc:
            self.malformed += 1
            logger.error("Failed to normalize snapshot for %s: %s", raw.get("code"), exc)
            return None

        try:
            queue.put_nowait(snapshot)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning("Snapshot queue full, dropping snapshot for %s", snapshot.symbol)
            return None
        return snapshot
