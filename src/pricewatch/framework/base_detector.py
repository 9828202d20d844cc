"""
Base detector abstraction for statistical alert rules.

Every detector (jump, trend, volatility, health) inherits from BaseDetector
and implements the standard interface for:
1. Evaluating one processed tick (EvaluationContext) into zero or one alert
2. Declaring the alert types it can produce
3. Owning its private state (counters, EMAs) — never shared across detectors

Evaluation is serialized per detector by an exclusive lock held around the
whole computation, so concurrent callers remain safe if ingestion ever
becomes multi-sourced.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from pricewatch.analytics import RollingWindow
from pricewatch.models import AlertEvent, AlertType, DerivedTick, Snapshot


@dataclass(frozen=True)
class EvaluationContext:
    """
    What a detector sees for one processed tick.

    snapshot: The snapshot that passed the rate gate
    changes:  Price-change window (DerivedTick), oldest → newest
    """

    snapshot: Snapshot
    changes: RollingWindow[DerivedTick]

    def price_changes(self) -> list[float]:
        return [tick.price_change for tick in self.changes.values()]


class BaseDetector(ABC):
    """
    Abstract base class for detection logic.

    Subclasses implement _evaluate(); callers use evaluate().
    """

    # Subclasses override these
    detector_name: str  # e.g., "jump"

    def __init__(self, config: Any) -> None:
        self.config = config
        self._lock = threading.Lock()

    def evaluate(self, context: EvaluationContext) -> Optional[AlertEvent]:
        """
        Run detection for one tick under the detector's lock.

        Returns:
            An AlertEvent, or None when nothing should fire.
        """
        with self._lock:
            return self._evaluate(context)

    @abstractmethod
    def _evaluate(self, context: EvaluationContext) -> Optional[AlertEvent]:
        """Detector-specific rule. Called with the lock held."""

    @abstractmethod
    def alert_types(self) -> list[AlertType]:
        """Alert types this detector can produce."""

    def reset(self) -> None:
        """Clear private state. Subclasses with state extend this."""
