"""
Feed health detection.

Flags a feed that looks stuck or stale rather than a market move:
- instrument suspended (once per suspension)
- snapshot timestamp older than timestamp_tolerance_seconds (once per episode)
- last price / volume / turnover unchanged for N processed snapshots

A zero limit disables the corresponding check. At most one alert per
evaluation, in the precedence listed above.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from pricewatch.config_loader import HealthConfig
from pricewatch.framework.base_detector import BaseDetector, EvaluationContext
from pricewatch.models import AlertEvent, AlertSeverity, AlertType, Snapshot, utc_now

logger = logging.getLogger(__name__)

_TRACKED_FIELDS = (
    ("last_price", "price", "max_unchanged_price"),
    ("volume", "volume", "max_unchanged_volume"),
    ("turnover", "turnover", "max_unchanged_turnover"),
)


class HealthDetector(BaseDetector):
    detector_name = "health"

    def __init__(
        self,
        config: Optional[HealthConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(config or HealthConfig())
        self._clock = clock
        self._previous: Optional[Snapshot] = None
        self._unchanged = {label: 0 for _, label, _ in _TRACKED_FIELDS}
        self._suspension_reported = False
        self._stale_reported = False

    def alert_types(self) -> list[AlertType]:
        return [AlertType.HEALTH]

    def reset(self) -> None:
        self._previous = None
        self._unchanged = {label: 0 for _, label, _ in _TRACKED_FIELDS}
        self._suspension_reported = False
        self._stale_reported = False

    def _evaluate(self, context: EvaluationContext) -> Optional[AlertEvent]:
        snapshot = context.snapshot
        self._count_unchanged(snapshot)
        self._previous = snapshot

        message = (
            self._check_suspended(snapshot)
            or self._check_stale(snapshot)
            or self._check_unchanged()
        )
        if message is None:
            return None

        return AlertEvent(
            type=AlertType.HEALTH,
            severity=AlertSeverity.WARNING,
            symbol=snapshot.symbol,
            message=message,
        )

    def _count_unchanged(self, snapshot: Snapshot) -> None:
        for attr, label, _ in _TRACKED_FIELDS:
            if self._previous is not None and getattr(self._previous, attr) == getattr(snapshot, attr):
                self._unchanged[label] += 1
            else:
                self._unchanged[label] = 0

    def _check_suspended(self, snapshot: Snapshot) -> Optional[str]:
        if not snapshot.suspended:
            self._suspension_reported = False
            return None
        if not self.config.check_suspended or self._suspension_reported:
            return None
        self._suspension_reported = True
        return "instrument suspended"

    def _check_stale(self, snapshot: Snapshot) -> Optional[str]:
        tolerance = self.config.timestamp_tolerance_seconds
        if tolerance <= 0:
            return None
        lag = (self._clock() - snapshot.timestamp).total_seconds()
        logger.debug("health snapshot lag=%.1fs", lag)
        if lag <= tolerance:
            self._stale_reported = False
            return None
        if self._stale_reported:
            return None
        self._stale_reported = True
        return f"stale snapshot: timestamp lags by {lag:.0f}s (tolerance {tolerance:.0f}s)"

    def _check_unchanged(self) -> Optional[str]:
        for _, label, limit_name in _TRACKED_FIELDS:
            limit = getattr(self.config, limit_name)
            if limit > 0 and self._unchanged[label] >= limit:
                count = self._unchanged[label]
                self._unchanged[label] = 0
                return f"{label} unchanged for {count} consecutive snapshots"
        return None
