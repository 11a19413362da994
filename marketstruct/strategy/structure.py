"""Structure break classification: BOS / CHOCH / SWEEP. Pure functions.

Walks candles chronologically with two monotonic cursors, one over the swing
highs and one over the swing lows.  A swing becomes the *active* level only
after its ``confirmed_index`` is strictly earlier than the candle being
processed, so no break ever references a swing the scan could not yet know.

Rules, for the active high (the active low mirrors them):

* close above it → BOS when the trend is already bullish, otherwise CHOCH
  (trend flips to bullish); the active high is cleared until a new swing
  high confirms.
* wick above it without such a close → SWEEP; nothing else changes.

The trend is seeded BULLISH before any break has happened.  This biases the
classification of the very first break (a first bearish break is reported
as CHOCH rather than BOS) and is a known limitation.
"""

from dataclasses import dataclass
from typing import Optional

from marketstruct.strategy.models import (
    BreakKind,
    Candle,
    Direction,
    StructureBreak,
    SwingKind,
    SwingPoint,
    Trend,
)


@dataclass(frozen=True)
class StructureAnalysis:
    """Result of :func:`classify_structure`."""

    breaks: tuple[StructureBreak, ...]
    trend: Direction  # internal state after the last candle
    structure: Trend  # direction of the last confirmed break, or RANGING

    @property
    def confirmed_breaks(self) -> list[StructureBreak]:
        return [b for b in self.breaks if b.confirmed]

    @property
    def sweeps(self) -> list[StructureBreak]:
        return [b for b in self.breaks if b.kind is BreakKind.SWEEP]

    def last_break(self, direction: Optional[Direction] = None) -> Optional[StructureBreak]:
        """Most recent confirmed break, optionally filtered by *direction*."""
        for brk in reversed(self.breaks):
            if not brk.confirmed:
                continue
            if direction is None or brk.direction is direction:
                return brk
        return None


class _SwingCursor:
    """Index cursor over one ascending swing list.

    ``advance(i)`` consumes every swing confirmed strictly before *i* and
    makes the latest one active.
    """

    def __init__(self, swings: list[SwingPoint]) -> None:
        self._swings = swings
        self._next = 0
        self.active: Optional[SwingPoint] = None

    def advance(self, i: int) -> None:
        while self._next < len(self._swings) and self._swings[self._next].confirmed_index < i:
            self.active = self._swings[self._next]
            self._next += 1

    def clear(self) -> None:
        self.active = None


def _displacement(
    candles: list[Candle], swing: SwingPoint, index: int, direction: Direction,
) -> float:
    """Size of the impulse leg from the swing to the break close."""
    leg = candles[swing.index : index + 1]
    close = candles[index].close
    if direction is Direction.BULLISH:
        return max(0.0, close - min(c.low for c in leg))
    return max(0.0, max(c.high for c in leg) - close)


def _make_break(
    kind: BreakKind,
    direction: Direction,
    candles: list[Candle],
    index: int,
    swing: SwingPoint,
) -> StructureBreak:
    confirmed = kind is not BreakKind.SWEEP
    return StructureBreak(
        kind=kind,
        direction=direction,
        index=index,
        price=swing.price,
        timestamp=candles[index].timestamp,
        confirmed=confirmed,
        swing_index=swing.index,
        displacement=_displacement(candles, swing, index, direction) if confirmed else 0.0,
    )


def classify_structure(
    candles: list[Candle],
    swings: list[SwingPoint],
) -> StructureAnalysis:
    """Classify structure breaks across *candles*.

    Args:
        candles: Candle history, oldest first.
        swings: Swing points from :func:`find_swing_points` on the same
            candles.

    Returns:
        ``StructureAnalysis`` with the ordered break list, the internal trend
        state and the current structure.
    """
    highs = _SwingCursor([s for s in swings if s.kind is SwingKind.HIGH])
    lows = _SwingCursor([s for s in swings if s.kind is SwingKind.LOW])
    trend = Direction.BULLISH
    breaks: list[StructureBreak] = []

    for i, candle in enumerate(candles):
        highs.advance(i)
        lows.advance(i)

        # Upside: the active swing high
        if highs.active is not None:
            level = highs.active
            if candle.close > level.price:
                kind = BreakKind.BOS if trend is Direction.BULLISH else BreakKind.CHOCH
                breaks.append(_make_break(kind, Direction.BULLISH, candles, i, level))
                trend = Direction.BULLISH
                highs.clear()
            elif candle.high > level.price:
                breaks.append(_make_break(BreakKind.SWEEP, Direction.BULLISH, candles, i, level))

        # Downside: the active swing low
        if lows.active is not None:
            level = lows.active
            if candle.close < level.price:
                kind = BreakKind.BOS if trend is Direction.BEARISH else BreakKind.CHOCH
                breaks.append(_make_break(kind, Direction.BEARISH, candles, i, level))
                trend = Direction.BEARISH
                lows.clear()
            elif candle.low < level.price:
                breaks.append(_make_break(BreakKind.SWEEP, Direction.BEARISH, candles, i, level))

    structure = Trend.RANGING
    for brk in reversed(breaks):
        if brk.confirmed:
            structure = Trend(brk.direction.value)
            break

    return StructureAnalysis(breaks=tuple(breaks), trend=trend, structure=structure)
