"""Technical indicators: Wilder ATR and trend strength. Pure functions, no I/O."""

from marketstruct.strategy.models import Candle, Trend


def _true_ranges(candles: list[Candle]) -> list[float]:
    """True range for each candle after the first.

    TR = max(high - low, |high - prev_close|, |low - prev_close|)
    """
    true_ranges: list[float] = []
    for i in range(1, len(candles)):
        high = candles[i].high
        low = candles[i].low
        prev_close = candles[i - 1].close
        tr = max(
            high - low,
            abs(high - prev_close),
            abs(low - prev_close),
        )
        true_ranges.append(tr)
    return true_ranges


def calculate_atr_series(candles: list[Candle], period: int = 14) -> list[float]:
    """Wilder-smoothed ATR for every candle.

    Returns a list the same length as *candles*.  Entries before the seed
    period are ``float('nan')``.  Shorter input yields all-NaN.
    """
    atr: list[float] = [float("nan")] * len(candles)
    if len(candles) < period + 1:
        return atr

    trs = _true_ranges(candles)
    value = sum(trs[:period]) / period
    atr[period] = value
    for i in range(period, len(trs)):
        value = (value * (period - 1) + trs[i]) / period
        atr[i + 1] = value
    return atr


def trend_strength(candles: list[Candle], trend: Trend, lookback: int = 20) -> float:
    """Share (0–100) of the recent close-to-close moves agreeing with *trend*.

    Returns 0.0 for a ranging trend or fewer than two candles.
    """
    if trend is Trend.RANGING or len(candles) < 2:
        return 0.0

    recent = candles[-lookback:]
    moves = len(recent) - 1
    with_trend = 0
    for prev, cur in zip(recent, recent[1:]):
        if trend is Trend.BULLISH and cur.close > prev.close:
            with_trend += 1
        elif trend is Trend.BEARISH and cur.close < prev.close:
            with_trend += 1
    return with_trend / moves * 100.0
