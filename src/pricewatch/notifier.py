"""
Notifier — bounded alert queue drained by a pool of webhook workers.

send() never blocks: a full queue rejects the alert immediately (drop-on-full).
Each worker delivers one alert completely (request + retries) before taking
the next one. Failed attempts (transport error or non-2xx) are retried with
jittered exponential backoff:

    wait = min(backoff_seconds * 2 ** (attempt - 1), max_backoff_seconds) ± 10%

close() stops accepting alerts, drains the backlog, then signals
cancellation: retry waits still in progress are aborted and remaining
alerts are abandoned.
"""

import asyncio
import logging
import random
from typing import Any, Optional

import httpx

from pricewatch.config_loader import ConfigError, NotifierConfig
from pricewatch.models import AlertEvent

logger = logging.getLogger(__name__)


class NotifierError(Exception):
    """Base class for alert dispatch failures."""


class NotifierClosedError(NotifierError):
    """send() called after close()."""


class QueueFullError(NotifierError):
    """The alert queue is at capacity; the alert was not retained."""


class DeliveryError(NotifierError):
    """Every delivery attempt failed."""


class DeliveryCancelledError(DeliveryError):
    """Delivery abandoned because the notifier is shutting down."""


class Notifier:
    """
    Async webhook dispatcher with a bounded queue, worker pool and retries.

    Usage (Monitor):
        notifier = Notifier(config.notifier)
        notifier.start()
        notifier.send(alert)        # non-blocking, may raise QueueFullError
        await notifier.close()      # drain, then cancel
    """

    JITTER_RATIO = 0.1

    def __init__(
        self,
        config: NotifierConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            config: Notifier settings; webhook_url must be non-empty.
            transport: Optional httpx transport (tests pass httpx.MockTransport).

        Raises:
            ConfigError: If webhook_url is empty.
        """
        if not config.webhook_url:
            raise ConfigError("webhook url required")

        self._config = config
        self._client = httpx.AsyncClient(timeout=config.timeout_seconds, transport=transport)
        self._queue: asyncio.Queue[AlertEvent] = asyncio.Queue(maxsize=max(config.queue_size, 1))
        self._cancel: asyncio.Event = asyncio.Event()
        self._workers: list[asyncio.Task[None]] = []
        self._closed = False
        self._stats = {
            "queued": 0,
            "delivered": 0,
            "failed": 0,
            "cancelled": 0,
            "dropped": 0,
        }

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Spawn the worker tasks. Must be called from a running event loop."""
        if self._workers or self._closed:
            return
        for worker_id in range(max(self._config.workers, 1)):
            self._workers.append(
                asyncio.create_task(self._worker(worker_id), name=f"notifier-worker-{worker_id}")
            )
        logger.info(
            "Notifier started | workers=%d | queue_size=%d | max_retries=%d",
            len(self._workers),
            self._queue.maxsize,
            self._config.max_retries,
        )

    def send(self, event: AlertEvent) -> None:
        """
        Enqueue an alert without blocking.

        Raises:
            NotifierClosedError: If close() has been called.
            QueueFullError: If the queue is at capacity; the alert is dropped.
        """
        if self._closed:
            raise NotifierClosedError("notifier is closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._stats["dropped"] += 1
            raise QueueFullError("alert queue full") from None
        self._stats["queued"] += 1

    async def close(self, drain_timeout: Optional[float] = None) -> None:
        """
        Graceful shutdown. Idempotent — only the first call has effect.

        1. Stop accepting new alerts
        2. Wait for workers to drain the backlog (bounded by drain_timeout,
           falling back to config.drain_timeout_seconds)
        3. Signal cancellation so retry waits abort and leftovers are abandoned
        4. Stop the workers and release the HTTP client
        """
        if self._closed:
            return
        self._closed = True

        if drain_timeout is None:
            drain_timeout = self._config.drain_timeout_seconds

        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Notifier drain timed out after %.1fs | pending=%d",
                    drain_timeout,
                    self._queue.qsize(),
                )
            self._cancel.set()
            # Workers now abandon whatever is left without further attempts
            await self._queue.join()
        else:
            self._cancel.set()
            abandoned = self._discard_backlog()
            if abandoned:
                logger.warning("Notifier closed before start | abandoned=%d", abandoned)

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

        await self._client.aclose()
        logger.info("Notifier closed | stats=%s", self._stats)

    def stats(self) -> dict[str, Any]:
        return {**self._stats, "queue_size": self._queue.qsize(), "closed": self._closed}

    def calc_backoff(self, attempt: int) -> float:
        """
        Jittered exponential backoff in seconds before retry number `attempt` (1-based).

        Growth is capped at max_backoff_seconds; setting it equal to
        backoff_seconds gives a flat schedule.
        """
        backoff = self._config.backoff_seconds * 2 ** (attempt - 1)
        backoff = min(backoff, self._config.max_backoff_seconds)
        jitter = random.uniform(-self.JITTER_RATIO, self.JITTER_RATIO) * backoff
        return backoff + jitter

    async def _worker(self, worker_id: int) -> None:
        logger.debug("notifier worker-%d started", worker_id)
        while True:
            event = await self._queue.get()
            try:
                await self._handle_alert(event)
                self._stats["delivered"] += 1
            except DeliveryCancelledError:
                self._stats["cancelled"] += 1
                logger.warning(
                    "notifier worker-%d abandoned %s: shutting down", worker_id, event.alert_id
                )
            except DeliveryError as exc:
                self._stats["failed"] += 1
                logger.error(
                    "notifier worker-%d failed to send %s: %s", worker_id, event.alert_id, exc
                )
            except Exception:
                self._stats["failed"] += 1
                logger.exception("notifier worker-%d crashed on %s", worker_id, event.alert_id)
            finally:
                self._queue.task_done()

    async def _handle_alert(self, event: AlertEvent) -> None:
        """
        Deliver one alert: 1 initial attempt + max_retries retries.

        Raises:
            DeliveryCancelledError: If cancellation is signalled before or between attempts.
            DeliveryError: If all attempts fail.
        """
        payload = event.to_card()
        max_retries = self._config.max_retries
        last_error: Optional[Exception] = None

        for attempt in range(max_retries + 1):
            if self._cancel.is_set():
                raise DeliveryCancelledError("notifier is shutting down")

            try:
                await self._do_request(payload)
                return
            except (httpx.HTTPError, DeliveryError) as exc:
                last_error = exc

            if attempt < max_retries:
                wait = self.calc_backoff(attempt + 1)
                logger.warning(
                    "notifier retry %d/%d in %.2fs (%s): %s",
                    attempt + 1,
                    max_retries,
                    wait,
                    event.symbol,
                    last_error,
                )
                if await self._wait_or_cancel(wait):
                    raise DeliveryCancelledError("notifier is shutting down")

        raise DeliveryError(f"{max_retries + 1} attempts failed, last error: {last_error}")

    async def _do_request(self, payload: dict[str, Any]) -> None:
        response = await self._client.post(
            self._config.webhook_url,
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        if not response.is_success:
            raise DeliveryError(f"HTTP {response.status_code}")

    async def _wait_or_cancel(self, seconds: float) -> bool:
        """Sleep for `seconds`; return True early if cancellation is signalled."""
        try:
            await asyncio.wait_for(self._cancel.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def _discard_backlog(self) -> int:
        count = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return count
            self._queue.task_done()
            self._stats["cancelled"] += 1
            count += 1
