"""Order block and fair value gap extraction with mitigation tracking.

Zones are created by pure functions; :func:`update_mitigation` is the only
place a zone changes, and it only ever flips ``mitigated`` from ``False`` to
``True``.
"""

from marketstruct.strategy.models import (
    Candle,
    Direction,
    StructureBreak,
    Zone,
    ZoneType,
)


DEFAULT_OB_LOOKBACK = 50
DEFAULT_MITIGATION_BUFFER = 5

# A gap's right edge is origin + 1, so re-entry can start at origin + 2.
FVG_MITIGATION_OFFSET = 2


# ── Order blocks ─────────────────────────────────────────────────────────


def _order_block_strength(origin: Candle, brk: StructureBreak, close: float) -> float:
    """Percent move from the order block to the break close."""
    if brk.direction is Direction.BULLISH:
        if origin.high <= 0:
            return 0.0
        return max(0.0, (close - origin.high) / origin.high * 100.0)
    if origin.low <= 0:
        return 0.0
    return max(0.0, (origin.low - close) / origin.low * 100.0)


def find_order_blocks(
    candles: list[Candle],
    breaks: list[StructureBreak] | tuple[StructureBreak, ...],
    lookback: int = DEFAULT_OB_LOOKBACK,
    mitigation_buffer: int = DEFAULT_MITIGATION_BUFFER,
    min_displacement_pct: float = 0.0,
) -> list[Zone]:
    """Derive order blocks from confirmed structure breaks.

    For each BOS / CHOCH the scan walks backward from the candle before the
    break, at most *lookback* candles, to the nearest candle whose body is
    the opposite colour of the break.  That candle's high and low bound the
    zone.  The first break to claim an origin candle wins.

    *mitigation_buffer* is not used for detection; it is accepted so callers
    can pass one keyword set to both this and :func:`update_mitigation`.

    Returns zones ascending by ``origin_index``, all unmitigated.
    """
    if lookback < 0 or mitigation_buffer < 0:
        raise ValueError(
            f"lookback and mitigation_buffer must be non-negative, "
            f"got {lookback}, {mitigation_buffer}"
        )

    seen: set[int] = set()
    zones: list[Zone] = []
    for brk in breaks:
        if not brk.confirmed or brk.index >= len(candles):
            continue

        stop = max(-1, brk.index - 1 - lookback)
        for j in range(brk.index - 1, stop, -1):
            candle = candles[j]
            opposite = (
                candle.is_bearish if brk.direction is Direction.BULLISH else candle.is_bullish
            )
            if not opposite:
                continue

            strength = _order_block_strength(candle, brk, candles[brk.index].close)
            if j not in seen and strength >= min_displacement_pct:
                seen.add(j)
                zones.append(
                    Zone(
                        zone_type=ZoneType.ORDER_BLOCK,
                        direction=brk.direction,
                        top=candle.high,
                        bottom=candle.low,
                        origin_index=j,
                        timestamp=candle.timestamp,
                        strength=strength,
                    )
                )
            break

    zones.sort(key=lambda z: z.origin_index)
    return zones


# ── Fair value gaps ──────────────────────────────────────────────────────


def find_fair_value_gaps(candles: list[Candle]) -> list[Zone]:
    """Detect three-candle imbalances.

    For interior index *i*: a bullish gap when ``candles[i+1].low`` is above
    ``candles[i-1].high``; a bearish gap when ``candles[i+1].high`` is below
    ``candles[i-1].low``.  ``origin_index`` is the middle candle.
    """
    gaps: list[Zone] = []
    for i in range(1, len(candles) - 1):
        prev, mid, nxt = candles[i - 1], candles[i], candles[i + 1]

        if nxt.low > prev.high:
            direction, top, bottom = Direction.BULLISH, nxt.low, prev.high
        elif nxt.high < prev.low:
            direction, top, bottom = Direction.BEARISH, prev.low, nxt.high
        else:
            continue

        reference = mid.close if mid.close > 0 else 1.0
        gaps.append(
            Zone(
                zone_type=ZoneType.FAIR_VALUE_GAP,
                direction=direction,
                top=top,
                bottom=bottom,
                origin_index=i,
                timestamp=mid.timestamp,
                strength=(top - bottom) / reference * 100.0,
            )
        )
    return gaps


# ── Mitigation ───────────────────────────────────────────────────────────


def _touches(zone: Zone, candle: Candle) -> bool:
    if zone.direction is Direction.BULLISH:
        return candle.low <= zone.top
    return candle.high >= zone.bottom


def candle_touches_zone(zone: Zone, candle: Candle) -> bool:
    """``True`` when the candle's range overlaps the zone."""
    return candle.low <= zone.top and candle.high >= zone.bottom


def update_mitigation(
    zones: list[Zone],
    candles: list[Candle],
    start: int | None = None,
    mitigation_buffer: int = DEFAULT_MITIGATION_BUFFER,
) -> int:
    """Mark zones mitigated at the first candle whose wick re-enters them.

    Order blocks are eligible from ``origin_index + mitigation_buffer``,
    gaps from ``origin_index + 2``.  *start* skips candles already scanned
    by an earlier call.  Zones already mitigated are left untouched.

    Returns the number of zones newly mitigated.
    """
    flipped = 0
    for zone in zones:
        if zone.mitigated:
            continue
        offset = (
            mitigation_buffer if zone.zone_type is ZoneType.ORDER_BLOCK else FVG_MITIGATION_OFFSET
        )
        first = zone.origin_index + offset
        if start is not None:
            first = max(first, start)
        for j in range(first, len(candles)):
            if _touches(zone, candles[j]):
                zone.mitigate(j)
                flipped += 1
                break
    return flipped


def fresh_zones(zones: list[Zone], index: int, direction: Direction | None = None) -> list[Zone]:
    """Zones not mitigated before candle *index*, newest origin first."""
    result = [
        z for z in zones
        if z.origin_index < index
        and z.is_fresh_at(index)
        and (direction is None or z.direction is direction)
    ]
    result.sort(key=lambda z: z.origin_index, reverse=True)
    return result
