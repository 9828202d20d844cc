"""
Monitor — wires ingestion → derivation → windows → detectors → dispatch.

One logical flow consumes snapshots in arrival order:
1. Rate gate: a snapshot is processed only if push_interval_seconds have
   elapsed since the last processed one; more frequent ticks are discarded
2. The snapshot is pushed to the snapshot window; from the second processed
   snapshot on, a DerivedTick (previous → current) is pushed to the
   price-change window
3. Once the price-change window holds min_changes_for_evaluation entries,
   every active detector is evaluated and each alert is routed

The event loop is owned by run(): the connector's stream() coroutine and the
consumer run concurrently via asyncio.gather().
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, Optional

from pricewatch.analytics import RollingWindow
from pricewatch.config_loader import AppConfig
from pricewatch.framework import (
    AlertRouter,
    BaseConnector,
    BaseDetector,
    DetectorRegistry,
    EvaluationContext,
)
from pricewatch.models import AlertEvent, AlertSeverity, AlertType, DerivedTick, Snapshot
from pricewatch.notifier import Notifier

logger = logging.getLogger(__name__)


class Monitor:
    """
    Single-stream price monitor.

    Usage (main.py):
        monitor = Monitor(config, connector=QOSConnector(config.source), notifier=notifier)
        await monitor.run()          # until shutdown()
        monitor.shutdown()           # from the signal handler
    """

    POLL_INTERVAL_SECONDS = 0.5

    def __init__(
        self,
        config: AppConfig,
        connector: Optional[BaseConnector] = None,
        notifier: Optional[Notifier] = None,
        detectors: Optional[list[BaseDetector]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._connector = connector
        self._notifier = notifier
        self._router = AlertRouter(notifier)
        self._detectors = (
            detectors
            if detectors is not None
            else DetectorRegistry(config.alerts).load_active_detectors()
        )
        self._clock = clock
        self._stop: asyncio.Event = asyncio.Event()

        window_size = config.monitor.window_size
        self.price_window: RollingWindow[Snapshot] = RollingWindow(window_size)
        self.change_window: RollingWindow[DerivedTick] = RollingWindow(window_size)

        self._last_push: Optional[float] = None
        self._last_snapshot: Optional[Snapshot] = None
        self._stats = {
            "received": 0,
            "processed": 0,
            "skipped": 0,
            "alerts": 0,
        }

    # ------------------------------------------------------------------
    # Per-tick pipeline
    # ------------------------------------------------------------------

    def handle_snapshot(self, snapshot: Snapshot) -> list[AlertEvent]:
        """
        Run one snapshot through the rate gate, windows and detectors.

        Returns:
            Alerts produced (already routed).
        """
        self._stats["received"] += 1
        now = self._clock()

        if (
            self._last_push is not None
            and now - self._last_push < self._config.monitor.push_interval_seconds
        ):
            self._stats["skipped"] += 1
            return []

        self.price_window.push(snapshot)
        self._last_push = now
        self._stats["processed"] += 1

        if self._last_snapshot is not None:
            self.change_window.push(DerivedTick.between(self._last_snapshot, snapshot))
        self._last_snapshot = snapshot

        logger.debug(
            "Snapshot processed | symbol=%s | lp=%.2f | window=%d",
            snapshot.symbol,
            snapshot.last_price,
            self.change_window.size(),
        )

        if self.change_window.size() < self._config.monitor.min_changes_for_evaluation:
            return []
        return self.evaluate(snapshot)

    def evaluate(self, snapshot: Snapshot) -> list[AlertEvent]:
        """Evaluate every active detector once and route the resulting alerts."""
        context = EvaluationContext(snapshot=snapshot, changes=self.change_window)
        alerts = []
        for detector in self._detectors:
            event = detector.evaluate(context)
            if event is None:
                continue
            self._router.route(event)
            alerts.append(event)
        self._stats["alerts"] += len(alerts)
        if not alerts:
            logger.debug("current price: %.2f CNY/g", snapshot.last_price_cny)
        return alerts

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        Main async entry point — starts the notifier, connector and consumer.

        Returns once shutdown() is called (or the connector stops) and the
        snapshot queue is drained; the notifier is closed on the way out.
        """
        if self._connector is None:
            raise RuntimeError("Monitor.run() requires a connector")

        self._connector.connect()
        queue: asyncio.Queue[Snapshot] = asyncio.Queue(maxsize=self._config.source.queue_size)

        if self._notifier is not None:
            self._notifier.start()

        logger.info(
            "Monitor starting | symbols=%s | detectors=%s | push_interval=%.0fs",
            self._connector.symbols,
            [d.detector_name for d in self._detectors],
            self._config.monitor.push_interval_seconds,
        )
        if self._config.monitor.startup_alert:
            self._router.route(
                AlertEvent(
                    type=AlertType.HEALTH,
                    severity=AlertSeverity.INFO,
                    symbol=",".join(self._connector.symbols),
                    message="monitor started",
                )
            )

        tasks = [
            asyncio.create_task(self._stream_then_stop(queue), name="connector-stream"),
            asyncio.create_task(self.consume(queue), name="snapshot-consumer"),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            # A failing consumer must not leave the connector streaming
            self.shutdown()
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            await self.close()

    async def consume(self, queue: asyncio.Queue[Snapshot]) -> None:
        """
        Drain snapshots from `queue` until shutdown() is called and the queue is empty.
        """
        while True:
            try:
                snapshot = await asyncio.wait_for(
                    queue.get(), timeout=self.POLL_INTERVAL_SECONDS
                )
            except asyncio.TimeoutError:
                if self._stop.is_set():
                    return
                continue
            self.handle_snapshot(snapshot)
            if self._stop.is_set() and queue.empty():
                return

    def shutdown(self) -> None:
        """Signal the connector and the consumer to stop."""
        logger.info("Monitor shutdown initiated")
        self._stop.set()
        if self._connector is not None:
            self._connector.shutdown()

    async def close(self) -> None:
        """Close the notifier: drain queued alerts, then cancel retries."""
        logger.info("Monitor shutting down | stats=%s", self.stats())
        if self._notifier is not None:
            await self._notifier.close()

    def stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "window_size": self.change_window.size(),
            "alerts_dropped": self._router.dropped,
        }

    async def _stream_then_stop(self, queue: asyncio.Queue[Snapshot]) -> None:
        try:
            await self._connector.stream(queue)
        finally:
            self._stop.set()
