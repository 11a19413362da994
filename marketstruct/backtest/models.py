"""Backtest records: configuration, positions, trades, equity and results."""

from dataclasses import asdict, dataclass, field
from typing import Optional

from marketstruct.risk.drawdown import DrawdownTracker
from marketstruct.risk.limits import AccountState, SizingConfig
from marketstruct.risk.trailing_stop import TrailingStop
from marketstruct.strategy.models import Action, Direction


SIZING_METHODS = ("fixed", "intelligent")


@dataclass(frozen=True)
class BacktestConfig:
    """Simulator settings.

    ``commission`` and ``slippage`` are fractions (0.001 = 0.1 %);
    ``*_pct`` fields are percentages.  ``periods_per_year`` of ``None``
    infers the Sharpe annualisation from candle spacing.
    """

    initial_capital: float = 10_000.0
    commission: float = 0.001
    slippage: float = 0.0005
    risk_per_trade_pct: float = 2.0
    max_leverage: float = 10.0
    breakeven_r: float = 0.5
    trail_trigger_pct: float = 3.0
    trail_distance_pct: float = 1.0
    sizing_method: str = "fixed"
    periods_per_year: Optional[float] = None
    max_drawdown_pct: Optional[float] = None
    warmup: int = 100
    window: int = 300

    def __post_init__(self) -> None:
        if self.initial_capital <= 0:
            raise ValueError(f"initial_capital must be positive, got {self.initial_capital}")
        if self.risk_per_trade_pct <= 0:
            raise ValueError(f"risk_per_trade_pct must be positive, got {self.risk_per_trade_pct}")
        if self.max_leverage <= 0:
            raise ValueError(f"max_leverage must be positive, got {self.max_leverage}")
        if self.commission < 0 or self.slippage < 0:
            raise ValueError("commission and slippage must be non-negative")
        if self.sizing_method not in SIZING_METHODS:
            raise ValueError(
                f"Unknown sizing_method '{self.sizing_method}'. "
                f"Available: {', '.join(SIZING_METHODS)}"
            )
        if self.periods_per_year is not None and self.periods_per_year <= 0:
            raise ValueError(f"periods_per_year must be positive, got {self.periods_per_year}")
        if self.window < 1 or self.warmup < 0:
            raise ValueError("window must be positive and warmup non-negative")

    def sizing_config(self) -> SizingConfig:
        """Risk limits matching this backtest's per-trade risk and leverage."""
        return SizingConfig(
            risk_percentage=self.risk_per_trade_pct,
            max_risk_percentage=max(3.0, self.risk_per_trade_pct),
            max_leverage=self.max_leverage,
            hard_risk_ceiling=max(5.0, self.risk_per_trade_pct),
        )


@dataclass
class Position:
    """An open position.  Stop state lives in ``stop_manager``."""

    instrument: str
    side: Action
    entry_price: float
    entry_time: int
    entry_index: int
    quantity: float
    initial_stop: float
    targets: tuple[float, ...]
    risk_amount: float
    entry_fee: float
    stop_manager: TrailingStop

    @property
    def direction(self) -> Direction:
        return Direction.BULLISH if self.side is Action.BUY else Direction.BEARISH

    @property
    def is_long(self) -> bool:
        return self.side is Action.BUY

    @property
    def stop(self) -> float:
        return self.stop_manager.current_stop

    @property
    def target(self) -> Optional[float]:
        return self.targets[0] if self.targets else None

    @property
    def high_water_mark(self) -> float:
        return self.stop_manager.high_water_mark

    @property
    def breakeven_applied(self) -> bool:
        return self.stop_manager.breakeven_applied

    def gross_pnl(self, price: float) -> float:
        """P&L before fees if closed at *price*."""
        if self.is_long:
            return (price - self.entry_price) * self.quantity
        return (self.entry_price - price) * self.quantity


@dataclass(frozen=True)
class CompletedTrade:
    instrument: str
    side: Action
    entry_price: float
    exit_price: float
    entry_time: int
    exit_time: int
    quantity: float
    gross_pnl: float
    net_pnl: float
    fee: float
    exit_reason: str
    r_multiple: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["side"] = self.side.value
        return data


@dataclass(frozen=True)
class EquityPoint:
    timestamp: int
    equity: float


@dataclass(frozen=True)
class BacktestMetrics:
    """Aggregate performance figures.  Currency values are in account units."""

    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    gross_profit: float = 0.0
    gross_loss: float = 0.0
    profit_factor: float = 0.0
    net_pnl: float = 0.0
    total_fees: float = 0.0
    return_pct: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0
    sharpe_ratio: float = 0.0
    expectancy: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    average_r: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BacktestResult:
    instrument: str
    trades: tuple[CompletedTrade, ...]
    equity_curve: tuple[EquityPoint, ...]
    metrics: BacktestMetrics
    final_balance: float
    signals_evaluated: int


@dataclass
class SimulatorState:
    """Everything that changes while the simulator walks the candles."""

    account: AccountState
    drawdown: DrawdownTracker
    position: Optional[Position] = None
    trades: list[CompletedTrade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    signals_evaluated: int = 0
    current_day: Optional[tuple[int, int, int]] = None
    current_month: Optional[tuple[int, int]] = None

    @classmethod
    def start(cls, config: BacktestConfig) -> "SimulatorState":
        return cls(
            account=AccountState(initial_balance=config.initial_capital),
            drawdown=DrawdownTracker(config.initial_capital, config.max_drawdown_pct),
        )

    def equity(self, price: float) -> float:
        """Balance plus the open position's mark-to-market P&L at *price*."""
        if self.position is None:
            return self.account.balance
        return self.account.balance + self.position.gross_pnl(price)
