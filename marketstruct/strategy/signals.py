"""Entry signal evaluation: one rule engine for every preset. Pure, no I/O.

Given a candle window (oldest first, last candle = now) and a
``SignalConfig``, walks a fixed sequence of gates:

1. enough data and a trending structure,
2. higher-timeframe agreement,
3. price on the trend side of the dealing range,
4. an entry: liquidity sweep and reversal ("turtle soup") first, otherwise
   the freshest order block / fair value gap near price,
5. stop beyond the entry extreme, floored to a minimum distance,
6. target from the last break's displacement or a structural fallback,
7. reward:risk.

Every gate appends a ``SignalNote``; a failing gate also sets
``TradeSignal.rejection``.  Callers branch on the ``ReasonCode``, never on
the detail text.
"""

import logging
from typing import Optional

from marketstruct.strategy.analysis import MarketAnalysis, analyze_market
from marketstruct.strategy.dealing_range import classify_price, is_deep_zone
from marketstruct.strategy.liquidity import nearest_liquidity
from marketstruct.strategy.models import (
    Action,
    Candle,
    Direction,
    PriceZone,
    ReasonCode,
    SignalNote,
    SwingKind,
    Trend,
    TradeSignal,
    Zone,
    ZoneType,
)
from marketstruct.strategy.presets import OPTIMIZED, SignalConfig
from marketstruct.strategy.timeframes import Alignment
from marketstruct.strategy.zones import candle_touches_zone, fresh_zones

logger = logging.getLogger("marketstruct.signals")


# ── Confidence weights ───────────────────────────────────────────────────

BASE_CONFIDENCE = {
    ZoneType.ORDER_BLOCK.value: 0.8,
    "TURTLE_SOUP": 0.75,
    ZoneType.FAIR_VALUE_GAP.value: 0.7,
}
ALIGNMENT_MULTIPLIER = {"aligned": 1.15, "single": 1.0, "none": 0.9}
DEEP_ZONE_MULTIPLIER = 1.1
MIN_CONFIDENCE = 0.2
MAX_CONFIDENCE = 0.95

GRADE_THRESHOLDS = (
    (0.9, "A+"),
    (0.8, "A"),
    (0.7, "B+"),
    (0.6, "B"),
    (0.5, "C"),
)

STOP_EPSILON = 1e-9


def grade_for_confidence(confidence: float) -> str:
    """Map a confidence in [0, 1] to a letter grade."""
    for threshold, grade in GRADE_THRESHOLDS:
        if confidence >= threshold:
            return grade
    return "D"


# ── Entry search ─────────────────────────────────────────────────────────


def _wick_percent(candle: Candle, direction: Direction) -> float:
    """Rejection wick on the side a *direction* entry cares about, as % of close."""
    if candle.close <= 0:
        return 0.0
    if direction is Direction.BULLISH:
        wick = min(candle.open, candle.close) - candle.low
    else:
        wick = candle.high - max(candle.open, candle.close)
    return wick / candle.close * 100.0


def _sweep_levels(analysis: MarketAnalysis, kind: SwingKind, index: int) -> list[float]:
    """Liquidity prices of *kind* known strictly before candle *index*."""
    confirmed_at = {
        (s.kind, s.index): s.confirmed_index for s in analysis.swings
    }
    levels: list[float] = []

    latest = None
    for swing in analysis.swings:
        if swing.kind is kind and swing.confirmed_index < index:
            latest = swing
    if latest is not None:
        levels.append(latest.price)

    for level in analysis.liquidity_levels:
        if level.kind is not kind or not level.is_active:
            continue
        ready = max(confirmed_at.get((kind, t), index) for t in level.touch_indices)
        if ready < index:
            levels.append(level.price)
    return levels


def _find_turtle_soup(
    candles: list[Candle],
    analysis: MarketAnalysis,
    direction: Direction,
    config: SignalConfig,
) -> Optional[int]:
    """Index of the most recent qualifying sweep-and-reversal candle, or ``None``.

    A bullish setup needs a candle that wicks below sell-side liquidity and
    closes back above it; bearish mirrors on buy-side liquidity.  With
    ``require_ciod`` a later close must also clear the sweep candle's
    opposite extreme.
    """
    last = len(candles) - 1
    price = candles[last].close
    kind = SwingKind.LOW if direction is Direction.BULLISH else SwingKind.HIGH

    for j in range(last, max(0, last - config.ciod_lookback), -1):
        candle = candles[j]
        if direction is Direction.BULLISH and price <= candle.low:
            continue
        if direction is Direction.BEARISH and price >= candle.high:
            continue
        if _wick_percent(candle, direction) < config.cls_wick_min_percent:
            continue

        swept = False
        for level in _sweep_levels(analysis, kind, j):
            if direction is Direction.BULLISH:
                swept = candle.low < level < candle.close
            else:
                swept = candle.close < level < candle.high
            if swept:
                break
        if not swept:
            continue

        if config.require_ciod:
            later = candles[j + 1 :]
            if direction is Direction.BULLISH:
                shifted = any(c.close > candle.high for c in later)
            else:
                shifted = any(c.close < candle.low for c in later)
            if not shifted:
                continue
        return j
    return None


def _distance_percent(price: float, zone: Zone) -> float:
    if zone.bottom <= price <= zone.top:
        return 0.0
    return min(abs(price - zone.top), abs(price - zone.bottom)) / price * 100.0


def _find_entry_zone(
    candles: list[Candle],
    analysis: MarketAnalysis,
    direction: Direction,
    config: SignalConfig,
) -> Optional[Zone]:
    """Freshest trend-side zone within proximity of the current close."""
    last = len(candles) - 1
    current = candles[last]
    price = current.close
    for zone in fresh_zones(analysis.zones, last, direction):
        if direction is Direction.BULLISH and price < zone.bottom:
            continue
        if direction is Direction.BEARISH and price > zone.top:
            continue
        if _distance_percent(price, zone) > config.order_block_proximity_percent:
            continue
        if config.require_order_block_retest and not candle_touches_zone(zone, current):
            continue
        return zone
    return None


# ── Evaluator ────────────────────────────────────────────────────────────


def evaluate_signal(
    candles: list[Candle],
    config: SignalConfig = OPTIMIZED,
    analysis: Optional[MarketAnalysis] = None,
    alignment: Optional[Alignment] = None,
) -> TradeSignal:
    """Evaluate the last candle of *candles* for an entry.

    Args:
        candles: Candle window, oldest first.  Only these candles are read.
        config: Rule set (see ``presets``).
        analysis: Precomputed ``analyze_market(candles)``; computed when
            omitted.
        alignment: Higher-timeframe bias, if available.

    Returns:
        A fresh ``TradeSignal``.  NO_TRADE signals carry a ``rejection``.
    """
    notes: list[SignalNote] = []
    price = candles[-1].close if candles else 0.0
    timestamp = candles[-1].timestamp if candles else None

    def note(code: ReasonCode, detail: str) -> None:
        notes.append(SignalNote(code, detail))

    def reject(code: ReasonCode, detail: str) -> TradeSignal:
        note(code, detail)
        logger.debug("NO_TRADE %s: %s", code.value, detail)
        return TradeSignal(
            action=Action.NO_TRADE,
            price=price,
            reasoning=tuple(notes),
            rejection=code,
            timestamp=timestamp,
        )

    # 1. Data and structure
    if len(candles) < config.min_candles:
        return reject(
            ReasonCode.INSUFFICIENT_DATA,
            f"{len(candles)} candles, need {config.min_candles}",
        )

    if analysis is None:
        analysis = analyze_market(candles)
    trend = analysis.trend
    if trend is Trend.RANGING:
        return reject(ReasonCode.RANGING_STRUCTURE, "no confirmed structure break yet")
    direction = trend.direction
    note(ReasonCode.STRUCTURE, f"structure {trend.value}")

    # 2. Higher-timeframe gate
    mode = "none"
    if alignment is not None and alignment.trend is not Trend.RANGING and alignment.trend is not trend:
        return reject(
            ReasonCode.HTF_CONFLICT,
            f"higher timeframes {alignment.trend.value} against {trend.value} structure",
        )
    agrees = alignment is not None and alignment.trend is trend
    if agrees and alignment.aligned:
        mode = "aligned"
    elif agrees and config.allow_single_htf_trend:
        mode = "single"

    if config.require_htf_alignment and mode != "aligned":
        return reject(ReasonCode.HTF_MISALIGNED, "higher timeframes not aligned with structure")
    note(ReasonCode.HTF_OK, f"higher-timeframe bias: {mode}")

    # 3. Premium / discount
    dr = analysis.dealing_range
    if dr is None:
        return reject(ReasonCode.NO_DEALING_RANGE, "no swing high / swing low pair")
    price_zone = classify_price(price, dr)
    wanted = PriceZone.DISCOUNT if direction is Direction.BULLISH else PriceZone.PREMIUM
    if price_zone is not wanted and not (
        price_zone is PriceZone.EQUILIBRIUM and config.allow_equilibrium_zone
    ):
        return reject(
            ReasonCode.WRONG_PRICE_ZONE,
            f"price in {price_zone.value}, {trend.value} needs {wanted.value}",
        )
    note(ReasonCode.PRICE_ZONE_OK, f"price in {price_zone.value} (eq {dr.equilibrium:.5g})")

    # 4. Entry
    sweep_index = _find_turtle_soup(candles, analysis, direction, config)
    if sweep_index is not None:
        sweep = candles[sweep_index]
        entry_type = "TURTLE_SOUP"
        anchor = sweep.low if direction is Direction.BULLISH else sweep.high
        note(ReasonCode.ENTRY_TURTLE_SOUP, f"liquidity swept at candle {sweep_index}")
    else:
        if config.require_cls_candle:
            return reject(ReasonCode.NO_CLS_CANDLE, "no liquidity sweep candle in lookback")
        zone = _find_entry_zone(candles, analysis, direction, config)
        if zone is None:
            return reject(
                ReasonCode.NO_ENTRY_ZONE,
                f"no fresh {direction.value} zone within {config.order_block_proximity_percent}%",
            )
        entry_type = zone.zone_type.value
        anchor = zone.bottom if direction is Direction.BULLISH else zone.top
        note(
            ReasonCode.ENTRY_ZONE,
            f"{entry_type} {zone.bottom:.5g}-{zone.top:.5g} from candle {zone.origin_index}",
        )

    # 5. Stop
    buffer = config.stop_buffer_percent / 100.0
    min_distance = price * config.min_stop_percent / 100.0
    if direction is Direction.BULLISH:
        stop = min(anchor * (1 - buffer), price - min_distance)
    else:
        stop = max(anchor * (1 + buffer), price + min_distance)
    risk = abs(price - stop)
    if risk <= 0:
        risk = STOP_EPSILON
        stop = price - risk if direction is Direction.BULLISH else price + risk
    note(ReasonCode.STOP, f"stop {stop:.5g} ({risk / price * 100:.2f}%)")

    # 6. Targets
    sign = 1.0 if direction is Direction.BULLISH else -1.0
    targets: list[float] = []
    last_break = analysis.structure.last_break(direction)
    if last_break is not None and last_break.displacement > 0:
        targets.append(price + sign * config.target_projection * last_break.displacement)

    structural = _structural_target(analysis, price, direction)
    if structural is not None and all(abs(structural - t) > STOP_EPSILON for t in targets):
        targets.append(structural)
    if not targets:
        return reject(ReasonCode.NO_TARGET, "no projection or structural level beyond entry")
    note(ReasonCode.TARGET, "targets " + ", ".join(f"{t:.5g}" for t in targets))

    # 7. Reward : risk
    reward_risk = min(abs(targets[0] - price) / risk, config.max_reward_risk)
    if reward_risk < config.min_risk_reward:
        return reject(
            ReasonCode.RISK_REWARD_TOO_LOW,
            f"R:R {reward_risk:.2f} below {config.min_risk_reward}",
        )
    note(ReasonCode.RISK_REWARD_OK, f"R:R {reward_risk:.2f}")

    # 8. Confidence
    confidence = BASE_CONFIDENCE[entry_type] * ALIGNMENT_MULTIPLIER[mode]
    if is_deep_zone(price, dr, direction):
        confidence *= DEEP_ZONE_MULTIPLIER
    confidence = max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))
    grade = grade_for_confidence(confidence)

    action = Action.BUY if direction is Direction.BULLISH else Action.SELL
    note(ReasonCode.ACCEPTED, f"{action.value} {entry_type} confidence {confidence:.2f} ({grade})")
    logger.debug("%s at %.5g stop %.5g target %.5g", action.value, price, stop, targets[0])

    return TradeSignal(
        action=action,
        price=price,
        stop=stop,
        targets=tuple(targets),
        confidence=confidence,
        reasoning=tuple(notes),
        zone_type=entry_type,
        grade=grade,
        timestamp=timestamp,
    )


def _structural_target(
    analysis: MarketAnalysis, price: float, direction: Direction,
) -> Optional[float]:
    """Dealing-range extreme beyond entry, else the nearest liquidity level."""
    dr = analysis.dealing_range
    if direction is Direction.BULLISH:
        if dr is not None and dr.high > price:
            return dr.high
        level = nearest_liquidity(
            [lv for lv in analysis.liquidity_levels if lv.kind is SwingKind.HIGH], price, above=True,
        )
    else:
        if dr is not None and dr.low < price:
            return dr.low
        level = nearest_liquidity(
            [lv for lv in analysis.liquidity_levels if lv.kind is SwingKind.LOW], price, above=False,
        )
    return level.price if level is not None else None
