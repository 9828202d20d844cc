"""
QOS WebSocket connector for real-time snapshot ingestion.

Connects to the QOS quote WebSocket (`<url>?key=<api_key>`), subscribes to
snapshot updates for the configured symbols, keeps the session alive with a
periodic heartbeat, normalizes each snapshot message into a Snapshot and
puts it on a bounded asyncio.Queue for the Monitor.

Message shapes:
- subscribe:  {"type": "S", "codes": ["GLDUSD"], "reqid": 1}
- heartbeat:  {"type": "H", "reqid": 2}
- snapshot:   {"type": "S", "data": [{"code": "GLDUSD", "lp": "2650.12",
               "o": "...", "h": "...", "l": "...", "v": "...", "t": "...",
               "ts": 1735689600, "sd": 0}, ...]}
Anything else (subscription ACKs, heartbeat replies) is skipped.
"""

import asyncio
import itertools
import json
import logging
import time
from typing import Any, Optional

from pricewatch.config_loader import SourceConfig
from pricewatch.framework.base_connector import BaseConnector
from pricewatch.models import Snapshot

logger = logging.getLogger(__name__)

_SNAPSHOT_TYPE = "S"
_HEARTBEAT_TYPE = "H"


class QOSConnector(BaseConnector):
    """
    Streams snapshots for all configured symbols over one WebSocket session.

    Reconnects automatically with exponential backoff on disconnect.

    Usage (Monitor):
        connector = QOSConnector(config.source)
        connector.connect()
        await asyncio.gather(connector.stream(queue), ...)
    """

    _HEALTH_WINDOW_SECONDS = 60.0
    _MAX_BACKOFF_SECONDS = 60

    def __init__(self, config: SourceConfig) -> None:
        super().__init__(symbols=list(config.symbols))
        self._config = config
        self._last_message_at: Optional[float] = None  # None until first snapshot received
        self._stop: asyncio.Event = asyncio.Event()
        self._reqids = itertools.count(1)

    # ------------------------------------------------------------------
    # BaseConnector abstract method implementations
    # ------------------------------------------------------------------

    def connect(self) -> None:
        """
        Setup-only — validates config and logs the subscription.

        The actual WebSocket connection is established inside stream().
        """
        if not self._config.api_key:
            raise ValueError("QOSConnector requires an API key")
        if not self.symbols:
            raise ValueError("QOSConnector requires at least one symbol")
        logger.info(
            "QOSConnector configured | symbols=%s | endpoint=%s",
            self.symbols,
            self._config.url,
        )

    def normalize(self, raw: dict[str, Any]) -> Snapshot:
        """
        Normalize one snapshot entry. Numeric fields arrive as strings.

        Raises:
            ValueError: If any field is missing or not numeric.
        """
        return Snapshot.from_raw(raw)

    def health_check(self) -> bool:
        """
        Return True if a snapshot was received within the health window.

        False until the first snapshot arrives.
        """
        if self._last_message_at is None:
            return False
        return time.monotonic() - self._last_message_at < self._HEALTH_WINDOW_SECONDS

    def shutdown(self) -> None:
        """Signal stream() to exit cleanly on the next loop iteration."""
        self._stop.set()
        logger.info("QOSConnector shutdown requested")

    # ------------------------------------------------------------------
    # Streaming coroutine (called by Monitor via asyncio.gather)
    # ------------------------------------------------------------------

    async def stream(self, queue: asyncio.Queue[Snapshot]) -> None:
        """
        Streaming coroutine — runs until shutdown() is called.

        Reconnects with exponential backoff (1s → 2s → … → 60s cap) on any
        WebSocket error or disconnect. Delay resets to 1s after a clean run.
        """
        delay = 1
        while not self._stop.is_set():
            try:
                await self._listen_once(queue)
                delay = 1
            except Exception as exc:
                if self._stop.is_set():
                    return
                logger.warning(
                    "QOSConnector WebSocket error, reconnecting in %ds | error=%s",
                    delay,
                    exc,
                )
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
                delay = min(delay * 2, self._MAX_BACKOFF_SECONDS)

    async def _listen_once(self, queue: asyncio.Queue[Snapshot]) -> None:
        import websockets

        async with websockets.connect(self._endpoint()) as ws:
            await ws.send(json.dumps(self._subscribe_message()))
            logger.info("QOSConnector connected and subscribed | symbols=%s", self.symbols)

            heartbeat = asyncio.create_task(self._heartbeat(ws))
            stop_wait = asyncio.create_task(self._stop.wait())
            try:
                while not self._stop.is_set():
                    recv = asyncio.create_task(ws.recv())
                    done, _ = await asyncio.wait(
                        {recv, stop_wait}, return_when=asyncio.FIRST_COMPLETED
                    )
                    if recv not in done:
                        recv.cancel()
                        return
                    self.handle_message(recv.result(), queue)
            finally:
                heartbeat.cancel()
                stop_wait.cancel()

    def handle_message(self, message: str | bytes, queue: asyncio.Queue[Snapshot]) -> int:
        """
        Parse one WebSocket frame and enqueue every snapshot it carries.

        Returns:
            Number of snapshots enqueued.
        """
        try:
            outer = json.loads(message)
        except json.JSONDecodeError as exc:
            logger.error("QOSConnector received invalid JSON: %s", exc)
            return 0

        if not isinstance(outer, dict) or outer.get("type") != _SNAPSHOT_TYPE:
            return 0
        entries = outer.get("data")
        if not isinstance(entries, list):
            return 0  # subscription ACK

        self._last_message_at = time.monotonic()
        enqueued = 0
        for raw in entries:
            if self.enqueue_raw(raw, queue) is not None:
                enqueued += 1
        return enqueued

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _heartbeat(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self._config.heartbeat_seconds)
            await ws.send(json.dumps({"type": _HEARTBEAT_TYPE, "reqid": next(self._reqids)}))

    def _endpoint(self) -> str:
        return f"{self._config.url}?key={self._config.api_key}"

    def _subscribe_message(self) -> dict[str, Any]:
        return {
            "type": _SNAPSHOT_TYPE,
            "codes": self.symbols,
            "reqid": next(self._reqids),
        }
