"""
Price jump (spike) detection.

z = |Δp_latest - mean(Δp)| / stddev(Δp) over the price-change window.
Below the noise floor the window is indistinguishable from noise and nothing
fires.
"""

import logging
from typing import Optional

from pricewatch.analytics import mean, stddev
from pricewatch.config_loader import JumpConfig
from pricewatch.framework.base_detector import BaseDetector, EvaluationContext
from pricewatch.models import AlertEvent, AlertSeverity, AlertType

logger = logging.getLogger(__name__)


class JumpDetector(BaseDetector):
    """Emits a Critical Jump alert when the latest price change is a z-score outlier."""

    detector_name = "jump"

    def __init__(self, config: Optional[JumpConfig] = None) -> None:
        super().__init__(config or JumpConfig())

    def alert_types(self) -> list[AlertType]:
        return [AlertType.JUMP]

    def _evaluate(self, context: EvaluationContext) -> Optional[AlertEvent]:
        values = context.price_changes()
        std = stddev(values)
        if std <= 0 or std < self.config.noise_floor:
            return None

        latest = values[-1]
        z = abs(latest - mean(values)) / std
        logger.debug("jump std=%.2f z=%.2f", std, z)

        if z >= self.config.z_threshold:
            return AlertEvent(
                type=AlertType.JUMP,
                severity=AlertSeverity.CRITICAL,
                symbol=context.snapshot.symbol,
                message=f"price jump detected: Δp={latest:.2f}, z={z:.2f}",
            )
        return None
