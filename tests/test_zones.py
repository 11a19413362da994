"""Tests for order blocks, fair value gaps and mitigation tracking."""

import pytest

from marketstruct.strategy.models import (
    BreakKind,
    Candle,
    Direction,
    StructureBreak,
    ZoneType,
)
from marketstruct.strategy.zones import (
    find_fair_value_gaps,
    find_order_blocks,
    fresh_zones,
    update_mitigation,
)


T0 = 1_704_067_200_000
HOUR = 3_600_000


def _make_candle(i: int, o: float, h: float, l: float, c: float, vol: float = 1000.0) -> Candle:
    return Candle(timestamp=T0 + i * HOUR, open=o, high=h, low=l, close=c, volume=vol)


def _order_block_candles() -> list[Candle]:
    """Red candle (open 100, close 95) at index 2, bullish break at index 5."""
    return [
        _make_candle(0, 99.0, 99.5, 98.5, 99.2),
        _make_candle(1, 99.2, 99.8, 99.0, 99.6),
        _make_candle(2, 100.0, 100.0, 95.0, 95.0),    # order block
        _make_candle(3, 95.0, 97.0, 94.8, 96.8),
        _make_candle(4, 96.8, 99.0, 96.5, 98.8),
        _make_candle(5, 98.8, 102.0, 98.6, 101.8),    # break, +1.8 %
        _make_candle(6, 101.8, 103.0, 101.5, 102.5),
        _make_candle(7, 102.5, 104.0, 102.0, 103.5),
    ]


def _bullish_break(index: int = 5) -> StructureBreak:
    return StructureBreak(
        kind=BreakKind.BOS,
        direction=Direction.BULLISH,
        index=index,
        price=100.5,
        timestamp=T0 + index * HOUR,
        confirmed=True,
        swing_index=1,
        displacement=3.0,
    )


# ── Order blocks ─────────────────────────────────────────────────────────


class TestOrderBlocks:
    def test_last_opposite_candle_becomes_zone(self):
        zones = find_order_blocks(_order_block_candles(), [_bullish_break()])
        assert len(zones) == 1
        zone = zones[0]
        assert zone.zone_type is ZoneType.ORDER_BLOCK
        assert zone.direction is Direction.BULLISH
        assert zone.top == 100.0
        assert zone.bottom == 95.0
        assert zone.origin_index == 2
        assert zone.mitigated is False
        assert zone.strength == pytest.approx(1.8)

    def test_min_displacement_filters_weak_moves(self):
        candles = _order_block_candles()
        assert len(find_order_blocks(candles, [_bullish_break()], min_displacement_pct=1.5)) == 1
        assert find_order_blocks(candles, [_bullish_break()], min_displacement_pct=2.0) == []

    def test_sweeps_do_not_create_zones(self):
        sweep = StructureBreak(
            kind=BreakKind.SWEEP, direction=Direction.BULLISH, index=5, price=100.5,
            timestamp=T0, confirmed=False, swing_index=1,
        )
        assert find_order_blocks(_order_block_candles(), [sweep]) == []

    def test_lookback_bounds_the_scan(self):
        # Red candle is 3 back from the break; a lookback of 2 cannot reach it
        assert find_order_blocks(_order_block_candles(), [_bullish_break()], lookback=2) == []

    def test_one_zone_per_origin_candle(self):
        candles = _order_block_candles()
        zones = find_order_blocks(candles, [_bullish_break(5), _bullish_break(6)])
        assert [z.origin_index for z in zones] == [2]


# ── Mitigation ───────────────────────────────────────────────────────────


class TestMitigation:
    def test_not_mitigated_while_price_stays_above(self):
        candles = _order_block_candles()
        zones = find_order_blocks(candles, [_bullish_break()])
        assert update_mitigation(zones, candles) == 0
        assert zones[0].mitigated is False

    def test_return_into_zone_mitigates_permanently(self):
        candles = _order_block_candles()
        candles.append(_make_candle(8, 103.5, 103.6, 99.8, 100.5))
        zones = find_order_blocks(candles, [_bullish_break()])
        assert update_mitigation(zones, candles) == 1
        assert zones[0].mitigated is True
        assert zones[0].mitigation_index == 8

        candles.append(_make_candle(9, 100.5, 106.0, 100.4, 105.5))
        assert update_mitigation(zones, candles) == 0
        assert zones[0].mitigated is True
        assert zones[0].mitigation_index == 8

    def test_mitigation_monotonic_across_growing_history(self):
        candles = _order_block_candles()
        candles.append(_make_candle(8, 103.5, 103.6, 99.8, 100.5))
        candles.append(_make_candle(9, 100.5, 106.0, 100.4, 105.5))
        candles.append(_make_candle(10, 105.5, 107.0, 105.0, 106.5))

        seen_mitigated = False
        for n in range(6, len(candles) + 1):
            window = candles[:n]
            zones = find_order_blocks(window, [_bullish_break()])
            update_mitigation(zones, window)
            if seen_mitigated:
                assert zones[0].mitigated is True
            seen_mitigated = seen_mitigated or zones[0].mitigated
        assert seen_mitigated

    def test_buffer_delays_mitigation(self):
        candles = _order_block_candles()
        zones = find_order_blocks(candles, [_bullish_break()])
        # Candle 3 (low 94.8) re-enters the zone, eligible with buffer 1
        update_mitigation(zones, candles, mitigation_buffer=1)
        assert zones[0].mitigation_index == 3

    def test_mitigate_only_flips_once(self):
        zones = find_order_blocks(_order_block_candles(), [_bullish_break()])
        zone = zones[0]
        assert zone.mitigate(7) is True
        assert zone.mitigate(9) is False
        assert zone.mitigation_index == 7

    def test_fresh_includes_zone_mitigated_on_current_candle(self):
        zones = find_order_blocks(_order_block_candles(), [_bullish_break()])
        zones[0].mitigate(8)
        assert fresh_zones(zones, 8) == zones
        assert fresh_zones(zones, 9) == []
        assert fresh_zones(zones, 8, Direction.BEARISH) == []


# ── Fair value gaps ──────────────────────────────────────────────────────


class TestFairValueGaps:
    def test_bullish_gap(self):
        candles = [
            _make_candle(0, 9.5, 10.0, 9.0, 9.8),
            _make_candle(1, 10.0, 12.0, 10.0, 11.8),
            _make_candle(2, 11.8, 12.5, 10.5, 12.2),
        ]
        gaps = find_fair_value_gaps(candles)
        assert len(gaps) == 1
        gap = gaps[0]
        assert gap.zone_type is ZoneType.FAIR_VALUE_GAP
        assert gap.direction is Direction.BULLISH
        assert gap.bottom == 10.0
        assert gap.top == 10.5
        assert gap.origin_index == 1

    def test_bearish_gap(self):
        candles = [
            _make_candle(0, 20.5, 21.0, 20.0, 20.2),
            _make_candle(1, 20.0, 20.0, 18.0, 18.2),
            _make_candle(2, 18.2, 19.5, 17.5, 17.8),
        ]
        gaps = find_fair_value_gaps(candles)
        assert len(gaps) == 1
        assert gaps[0].direction is Direction.BEARISH
        assert gaps[0].top == 20.0
        assert gaps[0].bottom == 19.5

    def test_overlapping_candles_have_no_gap(self):
        candles = [
            _make_candle(0, 10.0, 11.0, 9.0, 10.5),
            _make_candle(1, 10.5, 11.5, 10.0, 11.0),
            _make_candle(2, 11.0, 11.8, 10.8, 11.5),
        ]
        assert find_fair_value_gaps(candles) == []

    def test_gap_mitigation_starts_two_after_origin(self):
        candles = [
            _make_candle(0, 9.5, 10.0, 9.0, 9.8),
            _make_candle(1, 10.0, 12.0, 10.0, 11.8),
            _make_candle(2, 11.8, 12.5, 10.5, 12.2),   # touches top, but is the gap's own edge
            _make_candle(3, 12.2, 12.6, 11.0, 12.4),
        ]
        gaps = find_fair_value_gaps(candles)
        update_mitigation(gaps, candles)
        assert gaps[0].mitigated is False

        candles.append(_make_candle(4, 12.4, 12.5, 10.4, 10.9))
        update_mitigation(gaps, candles)
        assert gaps[0].mitigated is True
        assert gaps[0].mitigation_index == 4
