"""
Domain types for the price alerting pipeline.

- Snapshot: one normalized market-data tick (immutable)
- DerivedTick: deltas between two consecutive processed snapshots
- AlertEvent: detector output, consumed exactly once by the Notifier

AlertEvent.to_card() renders the interactive card payload POSTed to the webhook.
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SnapshotStatus(int, Enum):
    NORMAL = 0
    SUSPENDED = 1


class AlertType(str, Enum):
    JUMP = "Jump"
    TREND = "Trend"
    VOLATILITY = "Volatility"
    HEALTH = "Health"


class AlertSeverity(str, Enum):
    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"


_SEVERITY_COLORS = {
    AlertSeverity.CRITICAL: "red",
    AlertSeverity.WARNING: "orange",
    AlertSeverity.INFO: "blue",
}

_TYPE_EMOJI = {
    AlertType.JUMP: "🚨",
    AlertType.TREND: "📈",
    AlertType.HEALTH: "⚠️",
    AlertType.VOLATILITY: "⚡",
}

USD_TO_CNY_RATE = 6.92
TROY_OUNCE_GRAMS = 31.1035

_DEFAULT_COLOR = "grey"
_DEFAULT_EMOJI = "📊"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Snapshot:
    """
    A normalized market-data snapshot.

    Produced once per external tick by a connector. The core only ever sees
    well-typed values — parsing happens in from_raw().
    """

    symbol: str
    last_price: float
    open: float
    high: float
    low: float
    volume: float
    turnover: float
    timestamp: datetime
    status: SnapshotStatus = SnapshotStatus.NORMAL

    @property
    def suspended(self) -> bool:
        return self.status == SnapshotStatus.SUSPENDED

    @property
    def last_price_cny(self) -> float:
        """Last price converted from USD per troy ounce to CNY per gram."""
        return self.last_price * USD_TO_CNY_RATE / TROY_OUNCE_GRAMS

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> "Snapshot":
        """
        Build a Snapshot from a raw snapshot message.

        Numeric fields may arrive as strings and are cast explicitly.
        Raw field names: code, lp, o, h, l, v, t, ts (epoch seconds), sd (0/1).

        Raises:
            ValueError: If a field is missing, empty or not numeric.
        """
        symbol = raw.get("code")
        if not symbol:
            raise ValueError("empty value for field code")

        try:
            ts = datetime.fromtimestamp(int(raw["ts"]), tz=timezone.utc)
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"failed to parse ts: {exc}") from exc

        try:
            status = SnapshotStatus(int(raw.get("sd", 0) or 0))
        except ValueError as exc:
            raise ValueError(f"failed to parse sd: {exc}") from exc

        return cls(
            symbol=str(symbol),
            last_price=_parse_float(raw, "lp"),
            open=_parse_float(raw, "o"),
            high=_parse_float(raw, "h"),
            low=_parse_float(raw, "l"),
            volume=_parse_float(raw, "v"),
            turnover=_parse_float(raw, "t"),
            timestamp=ts,
            status=status,
        )


def _parse_float(raw: dict[str, Any], name: str) -> float:
    value = raw.get(name)
    if value is None or value == "":
        raise ValueError(f"empty value for field {name}")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"failed to parse {name}: {exc}") from exc
    # float() accepts "nan" and "inf"
    if not math.isfinite(parsed):
        raise ValueError(f"failed to parse {name}: non-finite")
    return parsed


@dataclass(frozen=True)
class DerivedTick:
    """Per-tick deltas between two temporally adjacent snapshots."""

    price_change: float
    price_change_rate: float
    volume_delta: float

    @classmethod
    def between(cls, previous: Snapshot, current: Snapshot) -> "DerivedTick":
        """
        Compute deltas from `previous` to `current`.

        price_change_rate is 0.0 when the previous price is zero.
        """
        price_change = current.last_price - previous.last_price
        if previous.last_price == 0:
            rate = 0.0
        else:
            rate = price_change / previous.last_price
        return cls(
            price_change=price_change,
            price_change_rate=rate,
            volume_delta=current.volume - previous.volume,
        )


@dataclass(frozen=True)
class AlertEvent:
    """A triggered alert. Never persisted."""

    type: AlertType
    severity: AlertSeverity
    symbol: str
    message: str
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def alert_id(self) -> str:
        """Identifier shown in the card footer: "{symbol}-{unix seconds}"."""
        return f"{self.symbol}-{int(self.timestamp.timestamp())}"

    def __str__(self) -> str:
        return (
            f"[{self.timestamp:%Y-%m-%d %H:%M:%S}] [{self.severity.value}] "
            f"{self.type.value} Alert - {self.symbol}: {self.message}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["severity"] = self.severity.value
        data["timestamp"] = self.timestamp.isoformat()
        return data

    def to_card(self) -> dict[str, Any]:
        """
        Render the interactive card payload for the webhook.

        Header colour follows severity, the title carries an emoji keyed by
        alert type, then a two-column severity/time grid, the full-width
        message and a footer note with the alert ID.
        """
        color = _SEVERITY_COLORS.get(self.severity, _DEFAULT_COLOR)
        emoji = _TYPE_EMOJI.get(self.type, _DEFAULT_EMOJI)
        title = f"{emoji} {self.type.value} Alert - {self.symbol}"

        fields = [
            _card_field(f"**Severity**\n{self.severity.value}", short=True),
            _card_field(f"**Time**\n{self.timestamp:%H:%M:%S}", short=True),
            _card_field(f"**Message**\n{self.message}", short=False),
        ]

        return {
            "msg_type": "interactive",
            "card": {
                "config": {"wide_screen_mode": True},
                "header": {
                    "title": {"tag": "plain_text", "content": title},
                    "template": color,
                },
                "elements": [
                    {"tag": "div", "fields": fields},
                    {"tag": "hr"},
                    {
                        "tag": "note",
                        "elements": [
                            {
                                "tag": "plain_text",
                                "content": f"Alert ID: {self.alert_id}",
                            }
                        ],
                    },
                ],
            },
        }


def _card_field(content: str, short: bool) -> dict[str, Any]:
    return {
        "is_short": short,
        "text": {"tag": "lark_md", "content": content},
    }
