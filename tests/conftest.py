"""Shared factories for building snapshots and evaluation contexts."""

from datetime import datetime, timezone

import pytest

from pricewatch.analytics import RollingWindow
from pricewatch.framework import EvaluationContext
from pricewatch.models import DerivedTick, Snapshot, SnapshotStatus

BASE_TS = datetime(2025, 2, 5, 10, 30, 0, tzinfo=timezone.utc)


def build_snapshot(
    last_price: float = 2650.0,
    volume: float = 1000.0,
    turnover: float = 2_650_000.0,
    symbol: str = "GLDUSD",
    timestamp: datetime = BASE_TS,
    status: SnapshotStatus = SnapshotStatus.NORMAL,
) -> Snapshot:
    return Snapshot(
        symbol=symbol,
        last_price=last_price,
        open=2640.0,
        high=2660.0,
        low=2630.0,
        volume=volume,
        turnover=turnover,
        timestamp=timestamp,
        status=status,
    )


def build_context(
    price_changes: list[float],
    snapshot: Snapshot | None = None,
    capacity: int = 7200,
) -> EvaluationContext:
    window: RollingWindow[DerivedTick] = RollingWindow(capacity)
    for change in price_changes:
        window.push(DerivedTick(price_change=change, price_change_rate=0.0, volume_delta=0.0))
    return EvaluationContext(snapshot=snapshot or build_snapshot(), changes=window)


@pytest.fixture
def make_snapshot():
    return build_snapshot


@pytest.fixture
def make_context():
    return build_context
