"""Trailing stop: progressive stop management for one open position.

Rules:
  - At ``breakeven_r`` × R profit → move the stop to the entry price.
  - Once profit exceeds ``trail_trigger_pct`` % → trail the stop
    ``trail_distance_pct`` % behind the best price seen.

The stop only ever tightens.
"""

from marketstruct.strategy.models import Direction


class TrailingStop:
    """Tracks and updates the stop for a single position.

    Args:
        entry_price: Fill price.
        initial_stop: Stop at entry; defines R.
        direction: ``Direction.BULLISH`` for longs, ``BEARISH`` for shorts.
        breakeven_r: R-multiple at which the stop moves to entry.
        trail_trigger_pct: Profit percent that activates trailing.
        trail_distance_pct: Trailing distance behind the high-water mark.
    """

    def __init__(
        self,
        entry_price: float,
        initial_stop: float,
        direction: Direction,
        breakeven_r: float = 0.5,
        trail_trigger_pct: float = 3.0,
        trail_distance_pct: float = 1.0,
    ) -> None:
        self.entry_price = entry_price
        self.initial_stop = initial_stop
        self.direction = direction
        self.current_stop = initial_stop
        self.high_water_mark = entry_price
        self.breakeven_applied = False
        self._breakeven_r = breakeven_r
        self._trigger = trail_trigger_pct / 100.0
        self._distance = trail_distance_pct / 100.0
        self._risk = abs(entry_price - initial_stop)

    @property
    def is_long(self) -> bool:
        return self.direction is Direction.BULLISH

    def _tighter(self, candidate: float) -> bool:
        if self.is_long:
            return candidate > self.current_stop
        return candidate < self.current_stop

    def update(self, price: float) -> float | None:
        """Evaluate *price* and return the new stop if it moved, else ``None``."""
        if self.is_long:
            self.high_water_mark = max(self.high_water_mark, price)
            profit = price - self.entry_price
        else:
            self.high_water_mark = min(self.high_water_mark, price)
            profit = self.entry_price - price

        new_stop = self.current_stop

        if (
            not self.breakeven_applied
            and self._risk > 0
            and profit / self._risk >= self._breakeven_r
        ):
            self.breakeven_applied = True
            if self._tighter(self.entry_price):
                new_stop = self.entry_price

        best_profit = 0.0
        if self.entry_price > 0:
            best_profit = abs(self.high_water_mark - self.entry_price) / self.entry_price
        if best_profit > self._trigger:
            if self.is_long:
                trail = self.high_water_mark * (1 - self._distance)
                new_stop = max(new_stop, trail)
            else:
                trail = self.high_water_mark * (1 + self._distance)
                new_stop = min(new_stop, trail)

        if new_stop != self.current_stop and self._tighter(new_stop):
            self.current_stop = new_stop
            return new_stop
        return None
