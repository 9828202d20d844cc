"""
Sustained trend detection from a fast/slow EMA pair.

Both EMAs are updated with every evaluated price. A tick qualifies when

    |fast - slow| >= min_diff  and  |slope(fast)| >= min_slope

and the EMA gap and the fast slope point the same way. `consecutive`
qualifying ticks in a row (≈1 minute at the 12s cadence) fire one Info alert;
the counter then restarts from zero.
"""

import logging
from typing import Optional

from pricewatch.analytics import EMA
from pricewatch.config_loader import TrendConfig
from pricewatch.framework.base_detector import BaseDetector, EvaluationContext
from pricewatch.models import AlertEvent, AlertSeverity, AlertType

logger = logging.getLogger(__name__)


class TrendDetector(BaseDetector):
    detector_name = "trend"

    def __init__(self, config: Optional[TrendConfig] = None) -> None:
        super().__init__(config or TrendConfig())
        self.ema_fast = EMA(self.config.fast_alpha, history=self.config.slope_lookback)
        self.ema_slow = EMA(self.config.slow_alpha, history=self.config.slope_lookback)
        self.consecutive = 0

    def alert_types(self) -> list[AlertType]:
        return [AlertType.TREND]

    def reset(self) -> None:
        self.ema_fast.reset()
        self.ema_slow.reset()
        self.consecutive = 0

    def _evaluate(self, context: EvaluationContext) -> Optional[AlertEvent]:
        price = context.snapshot.last_price
        self.ema_fast.update(price)
        self.ema_slow.update(price)

        fast, _ = self.ema_fast.value()
        slow, _ = self.ema_slow.value()
        diff = fast - slow
        slope = self.ema_fast.slope(self.config.slope_lookback)

        same_direction = (diff > 0 and slope > 0) or (diff < 0 and slope < 0)
        if (
            abs(diff) >= self.config.min_diff
            and abs(slope) >= self.config.min_slope
            and same_direction
        ):
            self.consecutive += 1
        else:
            self.consecutive = 0

        logger.debug(
            "trend ema fast=%.2f slow=%.2f slope=%.4f consecutive=%d",
            fast,
            slow,
            slope,
            self.consecutive,
        )

        if self.consecutive < self.config.consecutive:
            return None

        self.consecutive = 0
        direction = "up" if slope > 0 else "down"
        return AlertEvent(
            type=AlertType.TREND,
            severity=AlertSeverity.INFO,
            symbol=context.snapshot.symbol,
            message=f"trend {direction} detected, slope={slope:.4f}/tick, ema_diff={diff:.2f}",
        )
