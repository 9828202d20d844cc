"""
Pure statistics primitives shared by the detectors.
"""

import math
from collections.abc import Sequence


def mean(xs: Sequence[float]) -> float:
    """Arithmetic mean; 0.0 for an empty sequence."""
    if not xs:
        return 0.0
    return sum(xs) / len(xs)


def stddev(xs: Sequence[float]) -> float:
    """
    Population standard deviation (divides by N, not N-1).

    Returns 0.0 for sequences shorter than 2.
    """
    if len(xs) < 2:
        return 0.0
    m = mean(xs)
    variance = sum((x - m) ** 2 for x in xs) / len(xs)
    return math.sqrt(variance)
