"""
Exponential moving average with a momentum (slope) estimate.

The first update seeds the average directly; later updates blend:

    value = alpha * input + (1 - alpha) * value

slope(periods) is the change of the EMA over the last `periods` updates,
divided by `periods`:

    slope = (value[t] - value[t - periods]) / periods

It is 0.0 until more than `periods` updates have been seen.
"""

from collections import deque
from typing import Optional

DEFAULT_ALPHA = 0.2
DEFAULT_HISTORY = 64


class EMA:
    """
    Exponential moving average calculator.

    Alpha outside (0, 1] falls back to DEFAULT_ALPHA. `history` bounds how far
    back slope() can look.
    """

    def __init__(self, alpha: float, history: int = DEFAULT_HISTORY) -> None:
        if not 0 < alpha <= 1:
            alpha = DEFAULT_ALPHA
        self._alpha = alpha
        self._value = 0.0
        self._previous: Optional[float] = None
        self._initialized = False
        # history holds the last N EMA values, newest last
        self._history: deque[float] = deque(maxlen=max(int(history), 1) + 1)

    @classmethod
    def from_period(cls, period: int, history: int = DEFAULT_HISTORY) -> "EMA":
        """Build an EMA with alpha = 2 / (period + 1), e.g. period=10 → 0.1818."""
        if period <= 0:
            period = 10
        return cls(2.0 / (period + 1), history=history)

    @property
    def alpha(self) -> float:
        return self._alpha

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def previous(self) -> Optional[float]:
        """EMA value before the latest update, or None."""
        return self._previous

    def update(self, value: float) -> None:
        if not self._initialized:
            self._value = value
            self._initialized = True
        else:
            self._previous = self._value
            self._value = self._alpha * value + (1 - self._alpha) * self._value
        self._history.append(self._value)

    def value(self) -> tuple[float, bool]:
        """Return (value, initialized); an uninitialized EMA reports (0.0, False)."""
        return self._value, self._initialized

    def slope(self, periods: int) -> float:
        """
        Average change of the EMA per update over the last `periods` updates.

        Raises:
            ValueError: If periods < 1 or exceeds the configured history.
        """
        if periods < 1:
            raise ValueError("periods must be >= 1")
        if periods >= self._history.maxlen:
            raise ValueError(
                f"periods={periods} exceeds EMA history of {self._history.maxlen - 1}"
            )
        if len(self._history) <= periods:
            return 0.0
        return (self._history[-1] - self._history[-1 - periods]) / periods

    def reset(self) -> None:
        self._value = 0.0
        self._previous = None
        self._initialized = False
        self._history.clear()
