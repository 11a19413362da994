"""Backtest statistics: pure functions over trades and the equity curve."""

from typing import Optional

import numpy as np

from marketstruct.backtest.models import BacktestMetrics, CompletedTrade, EquityPoint


MS_PER_YEAR = 365 * 24 * 60 * 60 * 1000


def periods_per_year_for_interval(interval_ms: float) -> float:
    """Number of candles per year on a 24 × 365 calendar.

    Raises ``ValueError`` for a non-positive interval.
    """
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")
    return MS_PER_YEAR / interval_ms


def infer_interval_ms(timestamps: list[int]) -> Optional[float]:
    """Median spacing of *timestamps*, or ``None`` with fewer than two."""
    if len(timestamps) < 2:
        return None
    diffs = np.diff(np.asarray(timestamps, dtype=float))
    diffs = diffs[diffs > 0]
    if diffs.size == 0:
        return None
    return float(np.median(diffs))


def calculate_metrics(
    trades: list[CompletedTrade],
    equity_curve: list[EquityPoint],
    initial_capital: float,
    periods_per_year: Optional[float] = None,
) -> BacktestMetrics:
    """Compute summary statistics for one backtest run.

    Trades with a net P&L of zero count as losers.  ``profit_factor`` is
    gross profit when there are no losses.  The Sharpe ratio uses per-candle
    equity returns; without *periods_per_year* it is not annualised.
    """
    equities = [p.equity for p in equity_curve]
    max_dd, max_dd_pct = _max_drawdown(equities)
    sharpe = _sharpe(equities, periods_per_year)
    final = equities[-1] if equities else initial_capital
    return_pct = (final - initial_capital) / initial_capital * 100.0

    if not trades:
        return BacktestMetrics(
            return_pct=return_pct,
            max_drawdown=max_dd,
            max_drawdown_pct=max_dd_pct,
            sharpe_ratio=sharpe,
        )

    pnls = np.array([t.net_pnl for t in trades], dtype=float)
    winners = pnls[pnls > 0]
    losers = pnls[pnls <= 0]

    gross_profit = float(winners.sum())
    gross_loss = float(abs(losers.sum()))
    profit_factor = gross_profit / gross_loss if gross_loss > 0 else gross_profit

    return BacktestMetrics(
        total_trades=len(trades),
        winning_trades=int(winners.size),
        losing_trades=int(losers.size),
        win_rate=winners.size / len(trades),
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        profit_factor=profit_factor,
        net_pnl=float(pnls.sum()),
        total_fees=float(sum(t.fee for t in trades)),
        return_pct=return_pct,
        max_drawdown=max_dd,
        max_drawdown_pct=max_dd_pct,
        sharpe_ratio=sharpe,
        expectancy=float(pnls.mean()),
        average_win=float(winners.mean()) if winners.size else 0.0,
        average_loss=float(losers.mean()) if losers.size else 0.0,
        average_r=float(np.mean([t.r_multiple for t in trades])),
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _sharpe(equities: list[float], periods_per_year: Optional[float]) -> float:
    """Mean / sample std of periodic returns, scaled by √periods_per_year.

    Returns 0.0 with fewer than two returns or zero variance.
    """
    values = np.asarray(equities, dtype=float)
    if values.size < 3 or np.any(values[:-1] <= 0):
        return 0.0
    returns = np.diff(values) / values[:-1]
    std = returns.std(ddof=1)
    if std == 0 or not np.isfinite(std):
        return 0.0
    ratio = float(returns.mean() / std)
    if periods_per_year:
        ratio *= float(np.sqrt(periods_per_year))
    return ratio


def _max_drawdown(equities: list[float]) -> tuple[float, float]:
    """Largest peak-to-trough drop, as (amount, percent of peak)."""
    if not equities:
        return 0.0, 0.0
    values = np.asarray(equities, dtype=float)
    peaks = np.maximum.accumulate(values)
    drops = peaks - values
    amount = float(drops.max())
    with np.errstate(divide="ignore", invalid="ignore"):
        pct = np.where(peaks > 0, drops / peaks * 100.0, 0.0)
    return amount, float(pct.max())
