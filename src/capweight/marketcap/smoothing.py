"""Exponential moving average smoothing of market cap series."""

from collections.abc import Iterable, Sequence
from decimal import Decimal

from capweight.errors import InsufficientSeriesError
from capweight.models import MarketSnapshot, SmoothedMarketCap


def ema_alpha(periods: int) -> Decimal:
    """Smoothing factor ``2 / (periods + 1)``."""
    if periods < 1:
        raise ValueError(f"EMA periods must be at least 1, got {periods}")
    return Decimal(2) / Decimal(periods + 1)


def ema(values: Iterable[Decimal], periods: int, min_points: int = 1) -> Decimal:
    """EMA of ``values`` (oldest first), seeded with the oldest value.

    Raises:
        InsufficientSeriesError: fewer than ``min_points`` values (never fewer than one).
    """
    alpha = ema_alpha(periods)
    series = [Decimal(value) for value in values]
    required = max(1, min_points)
    if len(series) < required:
        raise InsufficientSeriesError(len(series), required)

    current = series[0]
    for value in series[1:]:
        current += alpha * (value - current)
    return current


def smooth_latest(
    snapshots: Sequence[MarketSnapshot],
    periods: int,
    min_points: int = 1,
) -> SmoothedMarketCap:
    """Smooth one asset's history into its most recent snapshot.

    ``snapshots`` may arrive in any order; they are folded oldest to newest.
    """
    ordered = sorted(snapshots, key=lambda snapshot: snapshot.updated)
    value = ema((snapshot.market_cap for snapshot in ordered), periods, min_points)
    latest = ordered[-1]
    return SmoothedMarketCap(
        market=latest.market,
        price=latest.price,
        market_cap=value,
        raw_market_cap=latest.market_cap,
        tags=latest.tags,
        updated=latest.updated,
        points=len(ordered),
    )
