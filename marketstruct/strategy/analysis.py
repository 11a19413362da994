"""Single-series market analysis: runs every detector over one candle window."""

from dataclasses import dataclass
from typing import Optional

from marketstruct.strategy.dealing_range import find_dealing_range
from marketstruct.strategy.liquidity import DEFAULT_TOLERANCE, find_liquidity_levels
from marketstruct.strategy.models import (
    Candle,
    DealingRange,
    LiquidityLevel,
    SwingPoint,
    Trend,
    Zone,
)
from marketstruct.strategy.structure import StructureAnalysis, classify_structure
from marketstruct.strategy.swings import find_swing_points
from marketstruct.strategy.zones import (
    DEFAULT_MITIGATION_BUFFER,
    DEFAULT_OB_LOOKBACK,
    find_fair_value_gaps,
    find_order_blocks,
    update_mitigation,
)


@dataclass(frozen=True)
class MarketAnalysis:
    """Everything the signal evaluator needs to know about one window."""

    swings: tuple[SwingPoint, ...]
    structure: StructureAnalysis
    order_blocks: tuple[Zone, ...]
    fair_value_gaps: tuple[Zone, ...]
    dealing_range: Optional[DealingRange]
    liquidity_levels: tuple[LiquidityLevel, ...]

    @property
    def trend(self) -> Trend:
        return self.structure.structure

    @property
    def zones(self) -> list[Zone]:
        return list(self.order_blocks) + list(self.fair_value_gaps)


def analyze_market(
    candles: list[Candle],
    left: int = 2,
    right: int = 2,
    ob_lookback: int = DEFAULT_OB_LOOKBACK,
    mitigation_buffer: int = DEFAULT_MITIGATION_BUFFER,
    min_displacement_pct: float = 0.0,
    liquidity_tolerance: float = DEFAULT_TOLERANCE,
) -> MarketAnalysis:
    """Run swing, structure, zone, range and liquidity detection.

    Every result only uses candles inside *candles*, so calling this on
    ``history[: i + 1]`` never looks past candle *i*.
    """
    swings = find_swing_points(candles, left, right)
    structure = classify_structure(candles, swings)

    order_blocks = find_order_blocks(
        candles, structure.breaks,
        lookback=ob_lookback,
        mitigation_buffer=mitigation_buffer,
        min_displacement_pct=min_displacement_pct,
    )
    gaps = find_fair_value_gaps(candles)
    update_mitigation(order_blocks, candles, mitigation_buffer=mitigation_buffer)
    update_mitigation(gaps, candles)

    return MarketAnalysis(
        swings=tuple(swings),
        structure=structure,
        order_blocks=tuple(order_blocks),
        fair_value_gaps=tuple(gaps),
        dealing_range=find_dealing_range(swings),
        liquidity_levels=tuple(find_liquidity_levels(swings, candles, liquidity_tolerance)),
    )
