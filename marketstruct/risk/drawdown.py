"""Drawdown tracking and circuit breaker: pure math, no I/O.

Tracks peak equity, the current and worst drawdown seen, and whether new
entries should be halted.  A threshold of ``None`` disables the breaker.
"""


class DrawdownTracker:
    """Peak-to-trough bookkeeping over a stream of equity values.

    Args:
        initial_equity: Starting account equity.
        max_drawdown_pct: Drawdown (percent of peak) at which the circuit
                          breaker trips, or ``None`` for no breaker.
    """

    def __init__(
        self,
        initial_equity: float,
        max_drawdown_pct: float | None = None,
    ) -> None:
        if initial_equity <= 0:
            raise ValueError(
                f"initial_equity must be positive, got {initial_equity}"
            )
        self._peak: float = initial_equity
        self._current: float = initial_equity
        self._threshold = max_drawdown_pct
        self._worst_amount: float = 0.0
        self._worst_pct: float = 0.0

    def update(self, equity: float) -> None:
        """Record the latest equity value."""
        self._current = equity
        if equity > self._peak:
            self._peak = equity
        amount = self._peak - equity
        if amount > self._worst_amount:
            self._worst_amount = amount
        if self.drawdown_pct > self._worst_pct:
            self._worst_pct = self.drawdown_pct

    @property
    def peak_equity(self) -> float:
        return self._peak

    @property
    def current_equity(self) -> float:
        return self._current

    @property
    def drawdown_pct(self) -> float:
        """Current drawdown as a percentage of peak equity."""
        if self._peak <= 0:
            return 0.0
        return (self._peak - self._current) / self._peak * 100.0

    @property
    def max_drawdown(self) -> float:
        """Largest peak-to-trough drop seen, in currency."""
        return self._worst_amount

    @property
    def max_drawdown_pct(self) -> float:
        """Largest drawdown seen, as a percentage of its peak."""
        return self._worst_pct

    @property
    def circuit_breaker_active(self) -> bool:
        """``True`` once the current drawdown reaches the threshold."""
        if self._threshold is None:
            return False
        return self.drawdown_pct >= self._threshold
