"""
Configuration loading from a YAML file with environment overrides.

Reads config/config.yaml (or $PRICEWATCH_CONFIG) into frozen dataclasses that
are built once in main() and passed explicitly to each component.

Environment overrides (highest priority):
    QOS_API_KEY             Market-data API key
    SYMBOLS                 Comma-separated symbol list, e.g. "GLDUSD,SLVUSD"
    PRICEWATCH_WEBHOOK_URL  Webhook target for alert delivery
"""

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.yaml"


class ConfigError(ValueError):
    """Invalid or incomplete configuration — fatal at startup."""


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    filename: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    console: bool = True


@dataclass(frozen=True)
class SourceConfig:
    api_key: str = ""
    symbols: tuple[str, ...] = ()
    url: str = "wss://api.qos.hk/ws"
    heartbeat_seconds: float = 30.0
    queue_size: int = 100


@dataclass(frozen=True)
class MonitorConfig:
    window_size: int = 7200
    push_interval_seconds: float = 12.0
    min_changes_for_evaluation: int = 3
    startup_alert: bool = True


@dataclass(frozen=True)
class JumpConfig:
    enabled: bool = True
    noise_floor: float = 0.2
    z_threshold: float = 4.0


@dataclass(frozen=True)
class TrendConfig:
    enabled: bool = True
    fast_alpha: float = 0.2
    slow_alpha: float = 0.05
    slope_lookback: int = 12
    min_diff: float = 3.0
    min_slope: float = 0.0025
    consecutive: int = 5


@dataclass(frozen=True)
class VolatilityConfig:
    enabled: bool = True
    short_window: int = 50
    long_window: int = 300
    noise_floor: float = 0.2
    ratio_threshold: float = 2.5
    consecutive: int = 3


@dataclass(frozen=True)
class HealthConfig:
    enabled: bool = True
    max_unchanged_price: int = 0
    max_unchanged_volume: int = 0
    max_unchanged_turnover: int = 0
    timestamp_tolerance_seconds: float = 0.0
    check_suspended: bool = True


@dataclass(frozen=True)
class NotifierConfig:
    enabled: bool = True
    webhook_url: str = ""
    max_retries: int = 3
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    timeout_seconds: float = 5.0
    queue_size: int = 100
    workers: int = 2
    drain_timeout_seconds: Optional[float] = None


@dataclass(frozen=True)
class AlertsConfig:
    jump: JumpConfig = field(default_factory=JumpConfig)
    trend: TrendConfig = field(default_factory=TrendConfig)
    volatility: VolatilityConfig = field(default_factory=VolatilityConfig)
    health: HealthConfig = field(default_factory=HealthConfig)


@dataclass(frozen=True)
class AppConfig:
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    source: SourceConfig = field(default_factory=SourceConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    alerts: AlertsConfig = field(default_factory=AlertsConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)


class ConfigLoader:
    """
    Loads, merges and validates configuration.

    Configuration hierarchy (highest to lowest priority):
    1. Environment variables
    2. YAML file
    3. Dataclass defaults

    Usage:
        config = ConfigLoader("config/config.yaml").load()
    """

    def __init__(self, config_path: Optional[str] = None) -> None:
        self.config_path = config_path or os.getenv("PRICEWATCH_CONFIG", DEFAULT_CONFIG_PATH)

    def load(self) -> AppConfig:
        """
        Read the YAML file, apply environment overrides and validate.

        Raises:
            ConfigError: If the file cannot be read/parsed or validation fails.
        """
        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except OSError as exc:
            raise ConfigError(f"failed to read config file {self.config_path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"failed to parse config file {self.config_path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise ConfigError(f"config file {self.config_path} must contain a mapping")

        config = self.from_dict(_apply_env_overrides(raw))
        logger.info(
            "Configuration loaded | path=%s | symbols=%s | notifier_enabled=%s",
            self.config_path,
            ",".join(config.source.symbols),
            config.notifier.enabled,
        )
        return config

    @staticmethod
    def from_dict(raw: dict[str, Any]) -> AppConfig:
        """Build and validate an AppConfig from a parsed mapping."""
        alerts_raw = raw.get("alerts") or {}
        source_raw = dict(raw.get("source") or {})
        if "symbols" in source_raw:
            symbols = source_raw["symbols"] or ()
            if not isinstance(symbols, (list, tuple)):
                raise ConfigError(
                    f"source.symbols must be a list, got {type(symbols).__name__}"
                )
            source_raw["symbols"] = tuple(str(s) for s in symbols)

        config = AppConfig(
            logging=_build(LoggingConfig, raw.get("logging")),
            source=_build(SourceConfig, source_raw),
            monitor=_build(MonitorConfig, raw.get("monitor")),
            alerts=AlertsConfig(
                jump=_build(JumpConfig, alerts_raw.get("jump")),
                trend=_build(TrendConfig, alerts_raw.get("trend")),
                volatility=_build(VolatilityConfig, alerts_raw.get("volatility")),
                health=_build(HealthConfig, alerts_raw.get("health")),
            ),
            notifier=_build(NotifierConfig, raw.get("notifier")),
        )
        validate(config)
        return config


def validate(config: AppConfig) -> None:
    """
    Check the settings the process cannot run without.

    Raises:
        ConfigError: On the first invalid setting found.
    """
    if not config.source.api_key:
        raise ConfigError("source.api_key is required")
    if not config.source.symbols:
        raise ConfigError("at least one symbol is required")
    if config.source.queue_size <= 0:
        raise ConfigError("source.queue_size must be positive")

    if config.monitor.window_size <= 0:
        raise ConfigError("monitor.window_size must be positive")
    if config.monitor.push_interval_seconds < 0:
        raise ConfigError("monitor.push_interval_seconds must not be negative")

    trend = config.alerts.trend
    if trend.slope_lookback < 1:
        raise ConfigError("alerts.trend.slope_lookback must be >= 1")

    volatility = config.alerts.volatility
    if not 0 < volatility.short_window <= volatility.long_window:
        raise ConfigError("alerts.volatility requires 0 < short_window <= long_window")
    if volatility.long_window > config.monitor.window_size:
        raise ConfigError("alerts.volatility.long_window exceeds monitor.window_size")

    notifier = config.notifier
    if notifier.enabled:
        if not notifier.webhook_url:
            raise ConfigError("notifier.webhook_url is required when the notifier is enabled")
        if notifier.max_retries < 0:
            raise ConfigError("notifier.max_retries must not be negative")
        if notifier.queue_size <= 0 or notifier.workers <= 0:
            raise ConfigError("notifier.queue_size and notifier.workers must be positive")


def _build(cls: type, section: Optional[dict[str, Any]]) -> Any:
    """Instantiate a config dataclass, ignoring unknown keys with a warning."""
    section = section or {}
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        logger.warning("Ignoring unknown %s keys: %s", cls.__name__, sorted(unknown))
    return cls(**{k: v for k, v in section.items() if k in known})


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    merged = dict(raw)
    source = dict(merged.get("source") or {})
    notifier = dict(merged.get("notifier") or {})

    api_key = os.getenv("QOS_API_KEY")
    if api_key:
        source["api_key"] = api_key

    env_symbols = [s.strip() for s in os.getenv("SYMBOLS", "").split(",") if s.strip()]
    if env_symbols:
        source["symbols"] = env_symbols

    webhook_url = os.getenv("PRICEWATCH_WEBHOOK_URL")
    if webhook_url:
        notifier["webhook_url"] = webhook_url

    merged["source"] = source
    merged["notifier"] = notifier
    return merged
