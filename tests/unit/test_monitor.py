"""
Unit tests for Monitor.

Tests cover:
- rate gate: first snapshot always processed, faster ticks discarded
- derivation: one DerivedTick per processed snapshot after the first
- detectors only run once enough price changes are windowed
- alerts are routed to the notifier; rejected sends are counted
- quiet ticks log the current price in CNY per gram at DEBUG
- run(): startup alert, snapshots consumed from the connector, notifier closed
- shutdown(): stops the connector
- run(): a failing consumer still stops and awaits the connector stream
- end to end with registry detectors: a price spike dispatches one Jump alert,
  a "nan" price is dropped before it reaches windows or EMAs
"""

import asyncio
import json
import math
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from pricewatch.config_loader import AppConfig, MonitorConfig, SourceConfig
from pricewatch.connectors import QOSConnector
from pricewatch.framework import BaseConnector, BaseDetector, DetectorRegistry
from pricewatch.models import AlertEvent, AlertSeverity, AlertType, Snapshot
from pricewatch.monitor import Monitor
from pricewatch.notifier import QueueFullError

CONFIG = AppConfig(
    source=SourceConfig(api_key="test-key", symbols=("GLDUSD",)),
    monitor=MonitorConfig(window_size=100, push_interval_seconds=12.0),
)

SAMPLE_ALERT = AlertEvent(
    type=AlertType.JUMP,
    severity=AlertSeverity.CRITICAL,
    symbol="GLDUSD",
    message="price jump detected: Δp=5.00, z=5.00",
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class ListConnector(BaseConnector):
    """Puts a fixed list of snapshots on the queue and returns."""

    def __init__(self, snapshots: list[Snapshot]) -> None:
        super().__init__(symbols=["GLDUSD"])
        self.snapshots = snapshots
        self.connected = False

    def connect(self) -> None:
        self.connected = True

    def normalize(self, raw: dict[str, Any]) -> Snapshot:
        return Snapshot.from_raw(raw)

    async def stream(self, queue: asyncio.Queue) -> None:
        for snapshot in self.snapshots:
            queue.put_nowait(snapshot)

    def health_check(self) -> bool:
        return True

    def shutdown(self) -> None:
        pass


class EndlessConnector(ListConnector):
    """Puts its snapshots on the queue, then streams until shutdown()."""

    def __init__(self, snapshots: list[Snapshot]) -> None:
        super().__init__(snapshots)
        self._stop = asyncio.Event()
        self.shutdown_called = False
        self.stream_finished = False

    async def stream(self, queue: asyncio.Queue) -> None:
        try:
            await super().stream(queue)
            await self._stop.wait()
        finally:
            self.stream_finished = True

    def shutdown(self) -> None:
        self.shutdown_called = True
        self._stop.set()


def idle_detector() -> MagicMock:
    detector = MagicMock(spec=BaseDetector)
    detector.detector_name = "idle"
    detector.evaluate.return_value = None
    return detector


class TestRateGate:
    def setup_method(self) -> None:
        self.clock = FakeClock()
        self.monitor = Monitor(CONFIG, detectors=[], clock=self.clock)

    def test_discards_ticks_inside_interval(self, make_snapshot) -> None:
        for now in (0.0, 5.0, 11.9, 12.0, 13.0, 24.0):
            self.clock.now = now
            self.monitor.handle_snapshot(make_snapshot())

        stats = self.monitor.stats()
        assert stats["received"] == 6
        assert stats["processed"] == 3
        assert stats["skipped"] == 3
        assert self.monitor.price_window.size() == 3

    def test_interval_measured_from_last_processed(self, make_snapshot) -> None:
        for now in (0.0, 10.0, 20.0):
            self.clock.now = now
            self.monitor.handle_snapshot(make_snapshot())
        # 10 was skipped, so 20 is only 20s after the last processed tick
        assert self.monitor.stats()["processed"] == 2


class TestDerivation:
    def test_first_snapshot_has_no_change(self, make_snapshot) -> None:
        clock = FakeClock()
        monitor = Monitor(CONFIG, detectors=[], clock=clock)

        for i, price in enumerate((100.0, 101.0, 99.0)):
            clock.now = 12.0 * i
            monitor.handle_snapshot(make_snapshot(last_price=price))

        changes = [tick.price_change for tick in monitor.change_window.values()]
        assert changes == [1.0, -2.0]


class TestEvaluation:
    def setup_method(self) -> None:
        self.clock = FakeClock()
        self.detector = idle_detector()
        self.notifier = MagicMock()
        self.monitor = Monitor(
            CONFIG, notifier=self.notifier, detectors=[self.detector], clock=self.clock
        )

    def _process(self, make_snapshot, count: int) -> list:
        alerts = []
        for _ in range(count):
            alerts.extend(self.monitor.handle_snapshot(make_snapshot()))
            self.clock.now += 12.0
        return alerts

    def test_waits_for_three_changes(self, make_snapshot) -> None:
        self._process(make_snapshot, 3)
        self.detector.evaluate.assert_not_called()

        self._process(make_snapshot, 1)
        self.detector.evaluate.assert_called_once()
        context = self.detector.evaluate.call_args.args[0]
        assert context.changes.size() == 3

    def test_alert_routed_to_notifier(self, make_snapshot) -> None:
        self.detector.evaluate.return_value = SAMPLE_ALERT

        alerts = self._process(make_snapshot, 4)

        assert alerts == [SAMPLE_ALERT]
        self.notifier.send.assert_called_once_with(SAMPLE_ALERT)
        assert self.monitor.stats()["alerts"] == 1

    def test_rejected_alert_counted(self, make_snapshot) -> None:
        self.detector.evaluate.return_value = SAMPLE_ALERT
        self.notifier.send.side_effect = QueueFullError("alert queue full")

        self._process(make_snapshot, 4)
        assert self.monitor.stats()["alerts_dropped"] == 1

    def test_quiet_tick_logs_cny_price(self, make_snapshot, caplog) -> None:
        with caplog.at_level("DEBUG", logger="pricewatch.monitor"):
            for _ in range(4):
                self.monitor.handle_snapshot(make_snapshot(last_price=3110.35))
                self.clock.now += 12.0
        assert "current price: 692.00 CNY/g" in caplog.text

    def test_detectors_evaluated_in_order(self, make_snapshot) -> None:
        calls = []
        first, second = idle_detector(), idle_detector()
        first.evaluate.side_effect = lambda ctx: calls.append("first")
        second.evaluate.side_effect = lambda ctx: calls.append("second")
        monitor = Monitor(CONFIG, detectors=[first, second], clock=self.clock)

        for _ in range(4):
            monitor.handle_snapshot(make_snapshot())
            self.clock.now += 12.0
        assert calls == ["first", "second"]


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_run_consumes_stream_and_closes(self, make_snapshot) -> None:
        config = AppConfig(
            source=CONFIG.source,
            monitor=MonitorConfig(window_size=100, push_interval_seconds=0.0),
        )
        connector = ListConnector([make_snapshot(last_price=p) for p in (1.0, 2.0, 3.0, 4.0)])
        notifier = MagicMock()
        notifier.close = AsyncMock()
        detector = idle_detector()

        monitor = Monitor(config, connector=connector, notifier=notifier, detectors=[detector])
        await asyncio.wait_for(monitor.run(), timeout=5)

        assert connector.connected
        notifier.start.assert_called_once()
        notifier.close.assert_awaited_once()
        assert monitor.stats()["processed"] == 4
        detector.evaluate.assert_called_once()

        startup = notifier.send.call_args_list[0].args[0]
        assert startup.type == AlertType.HEALTH
        assert startup.severity == AlertSeverity.INFO
        assert startup.message == "monitor started"
        assert startup.symbol == "GLDUSD"

    @pytest.mark.asyncio
    async def test_run_requires_connector(self) -> None:
        with pytest.raises(RuntimeError):
            await Monitor(CONFIG, detectors=[]).run()

    def test_shutdown_stops_connector(self) -> None:
        connector = MagicMock()
        Monitor(CONFIG, connector=connector, detectors=[]).shutdown()
        connector.shutdown.assert_called_once()

    @pytest.mark.asyncio
    async def test_failing_consumer_stops_connector(self, make_snapshot) -> None:
        config = AppConfig(
            source=CONFIG.source,
            monitor=MonitorConfig(window_size=100, push_interval_seconds=0.0),
        )
        connector = EndlessConnector([make_snapshot(last_price=p) for p in (1.0, 2.0, 3.0, 4.0)])
        notifier = MagicMock()
        notifier.close = AsyncMock()
        detector = idle_detector()
        detector.evaluate.side_effect = RuntimeError("detector bug")

        monitor = Monitor(config, connector=connector, notifier=notifier, detectors=[detector])
        with pytest.raises(RuntimeError, match="detector bug"):
            await asyncio.wait_for(monitor.run(), timeout=5)

        assert connector.shutdown_called
        assert connector.stream_finished
        notifier.close.assert_awaited_once()


class TestEndToEnd:
    """Real detectors from the registry, fed through handle_snapshot()."""

    def setup_method(self) -> None:
        self.config = AppConfig(
            source=SourceConfig(api_key="test-key", symbols=("GLDUSD",)),
            monitor=MonitorConfig(push_interval_seconds=12.0),
        )
        self.clock = FakeClock()
        self.notifier = MagicMock()
        self.detectors = DetectorRegistry(self.config.alerts).load_active_detectors()
        self.monitor = Monitor(
            self.config, notifier=self.notifier, detectors=self.detectors, clock=self.clock
        )

    def _feed(self, snapshots) -> list[AlertEvent]:
        alerts = []
        for snapshot in snapshots:
            alerts.extend(self.monitor.handle_snapshot(snapshot))
            self.clock.now += 12.0
        return alerts

    def test_price_spike_dispatches_one_jump_alert(self, make_snapshot) -> None:
        # price changes: -5, then 48 flat ticks, then +5 (mean 0, std 1, z 5)
        prices = [2650.0, 2645.0] + [2645.0] * 48 + [2650.0]

        alerts = self._feed(make_snapshot(last_price=p) for p in prices)

        assert len(alerts) == 1
        assert alerts[0].type == AlertType.JUMP
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].message == "price jump detected: Δp=5.00, z=5.00"
        self.notifier.send.assert_called_once_with(alerts[0])

    def test_nan_price_never_reaches_detectors(self) -> None:
        connector = QOSConnector(self.config.source)
        queue: asyncio.Queue = asyncio.Queue(maxsize=100)
        for i, lp in enumerate(["2650", "2650.1", "2650.2", "2650.1", "nan"] + ["2650.0"] * 20):
            frame = {
                "type": "S",
                "data": [
                    {
                        "code": "GLDUSD",
                        "lp": lp,
                        "o": "2640",
                        "h": "2660",
                        "l": "2630",
                        "v": str(1000 + i),
                        "t": "2650000",
                        "ts": 1738751400 + 12 * i,
                        "sd": 0,
                    }
                ],
            }
            connector.handle_message(json.dumps(frame), queue)

        snapshots = []
        while not queue.empty():
            snapshots.append(queue.get_nowait())
        alerts = self._feed(snapshots)

        assert connector.malformed == 1
        assert len(snapshots) == 24
        assert alerts == []
        trend = next(d for d in self.detectors if d.detector_name == "trend")
        value, initialized = trend.ema_fast.value()
        assert initialized
        assert math.isfinite(value)
