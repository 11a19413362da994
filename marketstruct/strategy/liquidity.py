"""Liquidity levels (equal highs / equal lows) and sweep detection."""

from typing import Optional

from marketstruct.strategy.models import (
    Candle,
    LiquidityLevel,
    LiquiditySweep,
    SwingKind,
    SwingPoint,
)


DEFAULT_TOLERANCE = 0.002  # 0.2 % relative distance
MIN_TOUCHES = 2
SWEEP_CONFIRMATION_CANDLES = 3


def _cluster(swings: list[SwingPoint], kind: SwingKind, tolerance: float) -> list[LiquidityLevel]:
    levels: list[LiquidityLevel] = []
    for swing in swings:
        if swing.kind is not kind:
            continue
        match: Optional[LiquidityLevel] = None
        for level in levels:
            if level.price > 0 and abs(swing.price - level.price) / level.price <= tolerance:
                match = level
                break
        if match is None:
            levels.append(
                LiquidityLevel(
                    price=swing.price,
                    kind=kind,
                    touch_count=1,
                    touch_indices=[swing.index],
                )
            )
            continue
        # Running average of every touch
        match.price = (match.price * match.touch_count + swing.price) / (match.touch_count + 1)
        match.touch_count += 1
        match.touch_indices.append(swing.index)
    return levels


def _mark_swept(level: LiquidityLevel, candles: list[Candle]) -> None:
    for j in range(max(level.touch_indices) + 1, len(candles)):
        candle = candles[j]
        beyond = candle.high > level.price if level.kind is SwingKind.HIGH else candle.low < level.price
        if beyond:
            level.swept = True
            level.swept_index = j
            return


def find_liquidity_levels(
    swings: list[SwingPoint],
    candles: list[Candle],
    tolerance: float = DEFAULT_TOLERANCE,
) -> list[LiquidityLevel]:
    """Cluster swing points into liquidity levels.

    Swings of the same kind within *tolerance* (relative) of a level's
    running-average price merge into it.  A level is swept at the first
    candle after its last touch that trades beyond it.

    Returns HIGH levels then LOW levels, each sorted by price.
    """
    ordered = sorted(swings, key=lambda s: s.index)
    levels: list[LiquidityLevel] = []
    for kind in (SwingKind.HIGH, SwingKind.LOW):
        clustered = _cluster(ordered, kind, tolerance)
        for level in clustered:
            _mark_swept(level, candles)
        clustered.sort(key=lambda lv: lv.price)
        levels.extend(clustered)
    return levels


def nearest_liquidity(
    levels: list[LiquidityLevel],
    price: float,
    above: bool,
    active_only: bool = True,
    include_swept: bool = False,
) -> Optional[LiquidityLevel]:
    """Closest level strictly above (or below) *price*, or ``None``."""
    candidates = [
        lv for lv in levels
        if (lv.price > price if above else lv.price < price)
        and (lv.is_active or not active_only)
        and (include_swept or not lv.swept)
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda lv: abs(lv.price - price))


def _reversal_confirmed(followers: list[Candle], kind: SwingKind, confirmation: int) -> bool:
    if len(followers) < confirmation or not followers:
        return False
    first, last = followers[0].close, followers[-1].close
    # Highs swept → expect lower closes; lows swept → higher closes
    return last < first if kind is SwingKind.HIGH else last > first


def detect_liquidity_sweep(
    candles: list[Candle],
    level: float,
    kind: SwingKind,
    lookback: int = 10,
    confirmation: int = SWEEP_CONFIRMATION_CANDLES,
) -> Optional[LiquiditySweep]:
    """Find the most recent wick through *level* that closed back inside.

    Only the last *lookback* candles are searched.  The reversal counts as
    confirmed when *confirmation* later candles exist and the last of them
    closes further in the reversal direction than the first.
    """
    start = max(0, len(candles) - lookback)
    for i in range(len(candles) - 1, start - 1, -1):
        candle = candles[i]
        if kind is SwingKind.HIGH:
            swept = candle.high > level and candle.close < level
        else:
            swept = candle.low < level and candle.close > level
        if not swept:
            continue
        followers = candles[i + 1 : i + 1 + confirmation]
        return LiquiditySweep(
            level=level,
            kind=kind,
            sweep_index=i,
            reversal_confirmed=_reversal_confirmed(followers, kind, confirmation),
        )
    return None
