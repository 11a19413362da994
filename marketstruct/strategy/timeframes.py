"""Multi-timeframe bias: per-timeframe structure combined into one alignment.

``analyze_timeframe`` and ``align_timeframes`` are pure.  The
``MultiTimeframeAligner`` wraps them with a small per-instrument TTL cache.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from marketstruct.strategy.analysis import analyze_market
from marketstruct.strategy.indicators import trend_strength
from marketstruct.strategy.liquidity import nearest_liquidity
from marketstruct.strategy.models import Candle, SwingKind, Trend

logger = logging.getLogger("marketstruct.timeframes")


MIN_TIMEFRAME_CANDLES = 20
STRENGTH_LOOKBACK = 20
DEFAULT_FALLBACK_THRESHOLD = 60.0
FALLBACK_DIVISOR = 150.0


@dataclass(frozen=True)
class TimeframeContext:
    """Structure summary for one timeframe."""

    name: str
    trend: Trend
    strength: float = 0.0  # 0–100
    liquidity_target: Optional[float] = None
    liquidity_kind: Optional[SwingKind] = None
    swing_high: Optional[float] = None
    swing_low: Optional[float] = None
    current_price: Optional[float] = None
    reasoning: tuple[str, ...] = ()


@dataclass(frozen=True)
class Alignment:
    """Combined bias of a higher and a lower timeframe."""

    trend: Trend
    aligned: bool
    confidence: float
    higher: Optional[TimeframeContext] = None
    lower: Optional[TimeframeContext] = None
    reasoning: tuple[str, ...] = field(default=())


def analyze_timeframe(
    candles: list[Candle],
    name: str = "",
    left: int = 2,
    right: int = 2,
) -> TimeframeContext:
    """Summarise the structure of one timeframe.

    Fewer than 20 candles yields a RANGING context with zero strength.
    """
    if len(candles) < MIN_TIMEFRAME_CANDLES:
        return TimeframeContext(
            name=name,
            trend=Trend.RANGING,
            current_price=candles[-1].close if candles else None,
            reasoning=(f"{name}: insufficient data ({len(candles)} candles)",),
        )

    analysis = analyze_market(candles, left, right)
    trend = analysis.trend
    price = candles[-1].close
    strength = trend_strength(candles, trend, STRENGTH_LOOKBACK)

    target = None
    if trend is Trend.BULLISH:
        target = nearest_liquidity(
            [lv for lv in analysis.liquidity_levels if lv.kind is SwingKind.HIGH], price, above=True,
        )
    elif trend is Trend.BEARISH:
        target = nearest_liquidity(
            [lv for lv in analysis.liquidity_levels if lv.kind is SwingKind.LOW], price, above=False,
        )

    dr = analysis.dealing_range
    reasoning = [f"{name}: {trend.value} structure, strength {strength:.0f}"]
    if target is not None:
        reasoning.append(f"{name}: liquidity target {target.price:.5g} ({target.touch_count} touches)")

    return TimeframeContext(
        name=name,
        trend=trend,
        strength=strength,
        liquidity_target=target.price if target else None,
        liquidity_kind=target.kind if target else None,
        swing_high=dr.high if dr else None,
        swing_low=dr.low if dr else None,
        current_price=price,
        reasoning=tuple(reasoning),
    )


def align_timeframes(
    higher: TimeframeContext,
    lower: TimeframeContext,
    fallback_threshold: float = DEFAULT_FALLBACK_THRESHOLD,
) -> Alignment:
    """Combine two timeframe contexts.

    * Same non-RANGING trend on both → aligned, confidence = mean strength / 100.
    * Exactly one non-RANGING with strength above *fallback_threshold* → that
      trend, unaligned, confidence = strength / 150.
    * Anything else → RANGING, confidence 0.
    """
    if higher.trend is not Trend.RANGING and higher.trend is lower.trend:
        confidence = (higher.strength + lower.strength) / 2 / 100.0
        return Alignment(
            trend=higher.trend,
            aligned=True,
            confidence=confidence,
            higher=higher,
            lower=lower,
            reasoning=(f"{higher.name} and {lower.name} agree: {higher.trend.value}",),
        )

    trending = [ctx for ctx in (higher, lower) if ctx.trend is not Trend.RANGING]
    if len(trending) == 1 and trending[0].strength > fallback_threshold:
        ctx = trending[0]
        return Alignment(
            trend=ctx.trend,
            aligned=False,
            confidence=ctx.strength / FALLBACK_DIVISOR,
            higher=higher,
            lower=lower,
            reasoning=(f"only {ctx.name} trending ({ctx.trend.value}, strength {ctx.strength:.0f})",),
        )

    return Alignment(
        trend=Trend.RANGING,
        aligned=False,
        confidence=0.0,
        higher=higher,
        lower=lower,
        reasoning=(f"no usable bias from {higher.name} / {lower.name}",),
    )


class MultiTimeframeAligner:
    """Per-instrument alignment with a time-to-live cache.

    Args:
        ttl_seconds: How long a cached alignment stays valid.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, Alignment]] = {}

    def analyze(
        self,
        instrument: str,
        daily: list[Candle],
        four_hour: list[Candle],
    ) -> Alignment:
        """Return the cached alignment for *instrument* or compute a fresh one."""
        now = self._clock()
        cached = self._cache.get(instrument)
        if cached is not None and now - cached[0] < self._ttl:
            return cached[1]

        alignment = align_timeframes(
            analyze_timeframe(daily, "1d"),
            analyze_timeframe(four_hour, "4h"),
        )
        self._cache[instrument] = (now, alignment)
        logger.debug(
            "%s alignment: %s aligned=%s confidence=%.2f",
            instrument, alignment.trend.value, alignment.aligned, alignment.confidence,
        )
        return alignment

    def clear(self) -> None:
        """Drop every cached alignment."""
        self._cache.clear()
