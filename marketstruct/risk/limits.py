"""Account state and the pre-trade risk gate: pure math, no I/O.

The gate never decides silently: every failing rule is returned by name so
callers can log or display exactly why an entry was blocked.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SizingConfig:
    """Risk limits.  All values are percentages except the counts."""

    risk_percentage: float = 1.0
    max_risk_percentage: float = 3.0
    min_risk_percentage: float = 0.25
    max_leverage: float = 10.0
    max_daily_loss: float = 5.0
    max_monthly_loss: float = 15.0
    max_consecutive_losses: int = 3
    max_open_positions: int = 3
    hard_risk_ceiling: float = 5.0

    def __post_init__(self) -> None:
        if self.risk_percentage <= 0:
            raise ValueError(f"risk_percentage must be positive, got {self.risk_percentage}")
        if self.max_leverage <= 0:
            raise ValueError(f"max_leverage must be positive, got {self.max_leverage}")
        if self.min_risk_percentage > self.max_risk_percentage:
            raise ValueError(
                f"min_risk_percentage ({self.min_risk_percentage}) exceeds "
                f"max_risk_percentage ({self.max_risk_percentage})"
            )


@dataclass
class AccountState:
    """Running account figures the gate checks against.

    Args:
        initial_balance: Balance the loss caps are measured against.
        balance: Current balance.  Defaults to *initial_balance*.
    """

    initial_balance: float
    balance: Optional[float] = None
    daily_loss: float = 0.0
    monthly_loss: float = 0.0
    consecutive_losses: int = 0
    open_positions: int = 0

    def __post_init__(self) -> None:
        if self.initial_balance <= 0:
            raise ValueError(
                f"initial_balance must be positive, got {self.initial_balance}"
            )
        if self.balance is None:
            self.balance = self.initial_balance

    # ── Mutation ─────────────────────────────────────────────────────────

    def open_position(self) -> None:
        self.open_positions += 1

    def record_trade(self, pnl: float, cash: float | None = None) -> None:
        """Book a closed trade's net P&L and release its position slot.

        *cash* is the balance change still owed at exit when part of the P&L
        (an entry fee) was already booked through :meth:`adjust_balance`.
        """
        self.balance += pnl if cash is None else cash
        if pnl < 0:
            self.daily_loss += abs(pnl)
            self.monthly_loss += abs(pnl)
            self.consecutive_losses += 1
        else:
            self.consecutive_losses = 0
        self.open_positions = max(0, self.open_positions - 1)

    def adjust_balance(self, amount: float) -> None:
        """Apply a cash movement that is not a trade result (e.g. an entry fee)."""
        self.balance += amount

    def reset_daily(self) -> None:
        self.daily_loss = 0.0

    def reset_monthly(self) -> None:
        self.monthly_loss = 0.0

    def reset_streak(self) -> None:
        self.consecutive_losses = 0


@dataclass(frozen=True)
class RiskCheck:
    """Outcome of :func:`check_risk_gate`."""

    can_open: bool
    failures: tuple[str, ...] = ()


def check_risk_gate(
    account: AccountState,
    risk_amount: float,
    config: SizingConfig = SizingConfig(),
) -> RiskCheck:
    """Check whether a new position risking *risk_amount* may be opened.

    Rules (each reported by name when it fails):

    * ``max_daily_loss`` / ``max_monthly_loss``: booked losses plus this
      risk must stay within the cap, measured on the initial balance.
    * ``max_open_positions``: open count must be below the maximum.
    * ``max_consecutive_losses``: loss streak must be below the maximum.
    * ``hard_risk_ceiling``: risk must not exceed the ceiling percent of the
      current balance.
    """
    failures: list[str] = []
    base = account.initial_balance

    if account.daily_loss + risk_amount > base * config.max_daily_loss / 100.0:
        failures.append("max_daily_loss")
    if account.monthly_loss + risk_amount > base * config.max_monthly_loss / 100.0:
        failures.append("max_monthly_loss")
    if account.open_positions >= config.max_open_positions:
        failures.append("max_open_positions")
    if account.consecutive_losses >= config.max_consecutive_losses:
        failures.append("max_consecutive_losses")
    if risk_amount > account.balance * config.hard_risk_ceiling / 100.0:
        failures.append("hard_risk_ceiling")

    return RiskCheck(can_open=not failures, failures=tuple(failures))
