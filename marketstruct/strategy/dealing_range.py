"""Dealing range, equilibrium and Fibonacci bands: pure functions."""

from typing import Optional

from marketstruct.strategy.models import (
    DealingRange,
    Direction,
    PriceZone,
    SwingKind,
    SwingPoint,
)


FIB_RATIOS = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
DEEP_RATIO = 0.618
DEFAULT_EQUILIBRIUM_TOLERANCE_PCT = 0.5


def find_dealing_range(swings: list[SwingPoint]) -> Optional[DealingRange]:
    """Build the range between the most recent swing high and swing low.

    Fibonacci levels are retracements measured down from the high, so
    ratio 0.0 maps to the high and 1.0 to the low.

    Returns ``None`` when either side is missing or the high is not above
    the low.
    """
    last_high: Optional[SwingPoint] = None
    last_low: Optional[SwingPoint] = None
    for swing in swings:
        if swing.kind is SwingKind.HIGH:
            if last_high is None or swing.index >= last_high.index:
                last_high = swing
        elif last_low is None or swing.index >= last_low.index:
            last_low = swing

    if last_high is None or last_low is None or last_high.price <= last_low.price:
        return None

    high, low = last_high.price, last_low.price
    size = high - low
    equilibrium = (high + low) / 2
    return DealingRange(
        high=high,
        low=low,
        high_index=last_high.index,
        low_index=last_low.index,
        equilibrium=equilibrium,
        premium_band=(equilibrium, high),
        discount_band=(low, equilibrium),
        fib_levels={ratio: high - size * ratio for ratio in FIB_RATIOS},
    )


def classify_price(
    price: float,
    dealing_range: DealingRange,
    tolerance_pct: float = DEFAULT_EQUILIBRIUM_TOLERANCE_PCT,
) -> PriceZone:
    """Place *price* in the premium, discount or equilibrium band.

    Equilibrium is the midpoint ± *tolerance_pct* percent of the range size.
    """
    tolerance = dealing_range.size * tolerance_pct / 100.0
    if abs(price - dealing_range.equilibrium) <= tolerance:
        return PriceZone.EQUILIBRIUM
    if price > dealing_range.equilibrium:
        return PriceZone.PREMIUM
    return PriceZone.DISCOUNT


def is_deep_zone(price: float, dealing_range: DealingRange, direction: Direction) -> bool:
    """``True`` when *price* is past the 61.8% retracement for *direction*.

    A bullish entry is deep in the lower 38.2% of the range, a bearish one in
    the upper 38.2%.
    """
    if direction is Direction.BULLISH:
        return price <= dealing_range.fib_levels[DEEP_RATIO]
    return price >= dealing_range.low + dealing_range.size * DEEP_RATIO
