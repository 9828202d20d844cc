"""
Volatility spike detection: short-horizon vs long-horizon price-change spread.

ratio = stddev(last short_window changes) / stddev(last long_window changes)

Note that the short slice is part of the long one, so the ratio can never
exceed sqrt(long_window / short_window) — 2.449 for the 50/300 defaults.
"""

import logging
from typing import Optional

from pricewatch.analytics import stddev
from pricewatch.config_loader import VolatilityConfig
from pricewatch.framework.base_detector import BaseDetector, EvaluationContext
from pricewatch.models import AlertEvent, AlertSeverity, AlertType

logger = logging.getLogger(__name__)


class VolatilityDetector(BaseDetector):
    """Emits a Warning after `consecutive` evaluations with ratio >= ratio_threshold."""

    detector_name = "volatility"

    def __init__(self, config: Optional[VolatilityConfig] = None) -> None:
        super().__init__(config or VolatilityConfig())
        self.consecutive = 0

    def alert_types(self) -> list[AlertType]:
        return [AlertType.VOLATILITY]

    def reset(self) -> None:
        self.consecutive = 0

    def _evaluate(self, context: EvaluationContext) -> Optional[AlertEvent]:
        if context.changes.size() < self.config.long_window:
            return None

        values = context.price_changes()
        short_std = stddev(values[-self.config.short_window:])
        long_std = stddev(values[-self.config.long_window:])

        if long_std <= 0 or long_std < self.config.noise_floor:
            return None

        ratio = short_std / long_std
        if ratio >= self.config.ratio_threshold:
            self.consecutive += 1
        else:
            self.consecutive = 0

        logger.debug(
            "volatility short_std=%.2f long_std=%.2f ratio=%.2f consecutive=%d",
            short_std,
            long_std,
            ratio,
            self.consecutive,
        )

        if self.consecutive < self.config.consecutive:
            return None

        self.consecutive = 0
        return AlertEvent(
            type=AlertType.VOLATILITY,
            severity=AlertSeverity.WARNING,
            symbol=context.snapshot.symbol,
            message=f"volatility increased: ratio={ratio:.2f}",
        )
