"""
Statistical detectors evaluated once per processed tick.
"""

from pricewatch.detectors.health import HealthDetector
from pricewatch.detectors.jump import JumpDetector
from pricewatch.detectors.trend import TrendDetector
from pricewatch.detectors.volatility import VolatilityDetector

__all__ = [
    "HealthDetector",
    "JumpDetector",
    "TrendDetector",
    "VolatilityDetector",
]
