"""
Streaming analytics primitives: rolling windows, EMAs and basic statistics.
"""

from pricewatch.analytics.ema import EMA
from pricewatch.analytics.rolling_window import RollingWindow
from pricewatch.analytics.stats import mean, stddev

__all__ = [
    "EMA",
    "RollingWindow",
    "mean",
    "stddev",
]
