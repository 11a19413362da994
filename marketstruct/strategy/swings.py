"""Swing point detection: confirmed local extrema. Pure functions.

A candle at index *i* is a swing high when

* no candle in ``[i - left, i - 1]`` has a high **≥** its high, and
* no candle in ``[i + 1, i + right]`` has a high **>** its high.

The left side is strict-or-equal and the right side strict-greater, so of
two equal highs the earlier one is the swing.  Swing lows mirror this.
A swing is only known once ``right`` further candles exist; that index is
stored as ``confirmed_index``.
"""

from marketstruct.strategy.models import Candle, SwingKind, SwingPoint


def _check_windows(left: int, right: int) -> None:
    if left < 0 or right < 0:
        raise ValueError(
            f"Swing windows must be non-negative, got left={left}, right={right}"
        )


def find_swing_highs(
    candles: list[Candle], left: int = 2, right: int = 2,
) -> list[SwingPoint]:
    """Return confirmed swing highs, ascending by index."""
    _check_windows(left, right)
    swings: list[SwingPoint] = []
    for i in range(left, len(candles) - right):
        high = candles[i].high
        if any(candles[j].high >= high for j in range(i - left, i)):
            continue
        if any(candles[j].high > high for j in range(i + 1, i + right + 1)):
            continue
        swings.append(
            SwingPoint(
                kind=SwingKind.HIGH,
                price=high,
                index=i,
                timestamp=candles[i].timestamp,
                confirmed_index=i + right,
            )
        )
    return swings


def find_swing_lows(
    candles: list[Candle], left: int = 2, right: int = 2,
) -> list[SwingPoint]:
    """Return confirmed swing lows, ascending by index."""
    _check_windows(left, right)
    swings: list[SwingPoint] = []
    for i in range(left, len(candles) - right):
        low = candles[i].low
        if any(candles[j].low <= low for j in range(i - left, i)):
            continue
        if any(candles[j].low < low for j in range(i + 1, i + right + 1)):
            continue
        swings.append(
            SwingPoint(
                kind=SwingKind.LOW,
                price=low,
                index=i,
                timestamp=candles[i].timestamp,
                confirmed_index=i + right,
            )
        )
    return swings


def find_swing_points(
    candles: list[Candle], left: int = 2, right: int = 2,
) -> list[SwingPoint]:
    """Return all confirmed swings (highs and lows), ascending by index.

    Input shorter than ``left + right + 1`` yields an empty list.  A high
    and a low on the same candle are both reported, high first.
    """
    if len(candles) < left + right + 1:
        _check_windows(left, right)
        return []
    swings = find_swing_highs(candles, left, right) + find_swing_lows(candles, left, right)
    swings.sort(key=lambda s: (s.index, s.kind is SwingKind.LOW))
    return swings
