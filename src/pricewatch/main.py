"""
pricewatch — real-time price alerting entry point.

Loads config/config.yaml, starts the QOS snapshot connector, evaluates the
detectors on every rate-gated tick and delivers alerts to the webhook.

Environment variables:
    PRICEWATCH_CONFIG       Config file path (default: config/config.yaml)
    QOS_API_KEY             Overrides source.api_key
    SYMBOLS                 Overrides source.symbols, e.g. "GLDUSD,SLVUSD"
    PRICEWATCH_WEBHOOK_URL  Overrides notifier.webhook_url

Shutdown:
    SIGTERM / SIGINT  → graceful shutdown: drains queued alerts, then cancels retries
"""

import asyncio
import logging
import os
import signal
import sys
from logging.handlers import RotatingFileHandler

from pricewatch.config_loader import ConfigError, ConfigLoader, LoggingConfig
from pricewatch.connectors import QOSConnector
from pricewatch.monitor import Monitor
from pricewatch.notifier import Notifier

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def setup_logging(config: LoggingConfig) -> None:
    """Configure the root logger: console and/or a size-rotated log file."""
    handlers: list[logging.Handler] = []
    if config.console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if config.filename:
        directory = os.path.dirname(config.filename)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                config.filename,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
                encoding="utf-8",
            )
        )
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def build_monitor() -> Monitor:
    """
    Load configuration and assemble the Monitor.

    Raises:
        ConfigError: If configuration is missing or invalid.
    """
    config = ConfigLoader().load()
    setup_logging(config.logging)

    notifier = Notifier(config.notifier) if config.notifier.enabled else None
    return Monitor(config, connector=QOSConnector(config.source), notifier=notifier)


def main() -> None:
    """Start the monitor and run until SIGTERM/SIGINT."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, stream=sys.stdout)

    try:
        monitor = build_monitor()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _handle_signal(sig: signal.Signals) -> None:
        logger.info("Received %s, initiating graceful shutdown", sig.name)
        monitor.shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, sig)

    try:
        logger.info("pricewatch starting")
        loop.run_until_complete(monitor.run())
    except Exception as exc:
        logger.exception("Monitor exited with error: %s", exc)
        sys.exit(1)
    finally:
        loop.close()
        logger.info("pricewatch stopped")


if __name__ == "__main__":
    main()
