"""Backtest engine: replays historical candles through signals and risk.

Iterates candles chronologically.  At each candle an open position is
checked for exits and its stop managed; otherwise the signal evaluator sees
the window ending at that candle (never later) and a position may open at
the close.  No real orders are placed.
"""

import bisect
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import numpy as np

from marketstruct.backtest.models import (
    BacktestConfig,
    BacktestResult,
    CompletedTrade,
    EquityPoint,
    Position,
    SimulatorState,
)
from marketstruct.backtest.stats import (
    calculate_metrics,
    infer_interval_ms,
    periods_per_year_for_interval,
)
from marketstruct.risk.limits import check_risk_gate
from marketstruct.risk.position_sizer import (
    SizingError,
    SizingRequest,
    calculate_quantity,
    intelligent_sizing,
)
from marketstruct.risk.trailing_stop import TrailingStop
from marketstruct.strategy.indicators import calculate_atr_series, trend_strength
from marketstruct.strategy.models import Action, Candle, Direction, TradeSignal, Trend
from marketstruct.strategy.presets import OPTIMIZED, SignalConfig
from marketstruct.strategy.signals import evaluate_signal
from marketstruct.strategy.timeframes import Alignment, align_timeframes, analyze_timeframe

logger = logging.getLogger("marketstruct.backtest")

Evaluator = Callable[[list[Candle], Optional[Alignment]], TradeSignal]


def _utc(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


class BacktestSimulator:
    """Simulates one instrument over historical candles.

    Args:
        config: Capital, costs, risk and stop-management settings.
        signals: A ``SignalConfig`` for the built-in evaluator, or any
            callable ``(window, alignment) -> TradeSignal``.
    """

    def __init__(
        self,
        config: BacktestConfig = BacktestConfig(),
        signals: SignalConfig | Evaluator = OPTIMIZED,
    ) -> None:
        self._config = config
        if isinstance(signals, SignalConfig):
            signal_config = signals
            self._evaluate: Evaluator = lambda window, alignment: evaluate_signal(
                window, signal_config, alignment=alignment,
            )
        else:
            self._evaluate = signals

    # ── Public API ───────────────────────────────────────────────────────

    def run(
        self,
        instrument: str,
        candles: list[Candle],
        higher_timeframes: Optional[tuple[list[Candle], list[Candle]]] = None,
    ) -> BacktestResult:
        """Execute a full backtest.

        Args:
            instrument: Symbol recorded on every trade.
            candles: Execution-timeframe candles, oldest first.
            higher_timeframes: Optional ``(daily, four_hour)`` candles.  At
                each step only the higher-timeframe candles already closed
                are used.

        Returns:
            ``BacktestResult`` with trades, equity curve and metrics.
        """
        cfg = self._config
        state = SimulatorState.start(cfg)
        htf = _HigherTimeframes(higher_timeframes) if higher_timeframes else None

        for i, candle in enumerate(candles):
            self._roll_calendar(state, candle)

            # 1. Manage the open position
            if state.position is not None:
                self._manage_position(state, candle)

            # 2. Look for an entry
            if (
                state.position is None
                and i + 1 >= cfg.warmup
                and not state.drawdown.circuit_breaker_active
            ):
                window = candles[max(0, i + 1 - cfg.window) : i + 1]
                alignment = htf.alignment_at(candle.timestamp) if htf else None
                signal = self._evaluate(window, alignment)
                state.signals_evaluated += 1
                if signal.is_trade:
                    self._open_position(state, instrument, signal, window, candle, i)

            # 3. Mark to market
            self._record_equity(state, candle.timestamp, state.equity(candle.close))

        # Close any remaining position at the last candle close
        if state.position is not None and candles:
            last = candles[-1]
            fill = self._slip(last.close, state.position.is_long, exiting=True)
            self._close_position(state, last, fill, "end_of_data")
            self._record_equity(state, last.timestamp, state.account.balance)

        periods = cfg.periods_per_year
        if periods is None:
            interval = infer_interval_ms([c.timestamp for c in candles])
            periods = periods_per_year_for_interval(interval) if interval else None

        metrics = calculate_metrics(
            state.trades, state.equity_curve, cfg.initial_capital, periods,
        )
        logger.info(
            "%s backtest: %d trades, net %.2f, win rate %.1f%%, max DD %.2f%%",
            instrument, metrics.total_trades, metrics.net_pnl,
            metrics.win_rate * 100, metrics.max_drawdown_pct,
        )
        return BacktestResult(
            instrument=instrument,
            trades=tuple(state.trades),
            equity_curve=tuple(state.equity_curve),
            metrics=metrics,
            final_balance=state.account.balance,
            signals_evaluated=state.signals_evaluated,
        )

    # ── Position lifecycle ───────────────────────────────────────────────

    def _manage_position(self, state: SimulatorState, candle: Candle) -> None:
        """Exit on stop or target, otherwise update the stop from the close.

        When one candle spans both stop and target the stop is assumed to
        fill first.  A gap through the stop fills at the open.
        """
        pos = state.position
        stop, target = pos.stop, pos.target

        if pos.is_long:
            stop_hit = candle.low <= stop
            target_hit = target is not None and candle.high >= target
        else:
            stop_hit = candle.high >= stop
            target_hit = target is not None and candle.low <= target

        if stop_hit:
            fill = min(candle.open, stop) if pos.is_long else max(candle.open, stop)
            reason = "stop_loss" if stop == pos.initial_stop else "trailing_stop"
            self._close_position(state, candle, self._slip(fill, pos.is_long, exiting=True), reason)
            return
        if target_hit:
            fill = max(candle.open, target) if pos.is_long else min(candle.open, target)
            self._close_position(state, candle, fill, "take_profit")
            return

        moved = pos.stop_manager.update(candle.close)
        if moved is not None:
            logger.debug("%s stop moved to %.5g", pos.instrument, moved)

    def _open_position(
        self,
        state: SimulatorState,
        instrument: str,
        signal: TradeSignal,
        window: list[Candle],
        candle: Candle,
        index: int,
    ) -> None:
        cfg = self._config
        is_long = signal.action is Action.BUY
        if signal.stop is None:
            return
        entry = self._slip(signal.price, is_long, exiting=False)
        if (is_long and signal.stop >= entry) or (not is_long and signal.stop <= entry):
            logger.debug("Skipping %s: stop %.5g on the wrong side of %.5g",
                         signal.action.value, signal.stop, entry)
            return

        account = state.account
        sizing = cfg.sizing_config()
        if cfg.sizing_method == "intelligent":
            rec = intelligent_sizing(self._sizing_request(signal, entry, window), account, sizing)
            if isinstance(rec, SizingError):
                logger.warning("Sizing failed for %s: %s", instrument, rec.message)
                return
            quantity = rec.quantity
            check = rec.risk_check
        else:
            quantity = calculate_quantity(
                account.balance, cfg.risk_per_trade_pct, entry, signal.stop, cfg.max_leverage,
            )
            check = check_risk_gate(account, quantity * abs(entry - signal.stop), sizing)

        if quantity <= 0 or not check.can_open:
            logger.debug("Entry blocked at candle %d: %s", index, ", ".join(check.failures))
            return

        entry_fee = entry * quantity * cfg.commission
        account.open_position()
        account.adjust_balance(-entry_fee)
        side = signal.action
        direction = Direction.BULLISH if is_long else Direction.BEARISH
        state.position = Position(
            instrument=instrument,
            side=side,
            entry_price=entry,
            entry_time=candle.timestamp,
            entry_index=index,
            quantity=quantity,
            initial_stop=signal.stop,
            targets=signal.targets,
            risk_amount=quantity * abs(entry - signal.stop),
            entry_fee=entry_fee,
            stop_manager=TrailingStop(
                entry,
                signal.stop,
                direction,
                breakeven_r=cfg.breakeven_r,
                trail_trigger_pct=cfg.trail_trigger_pct,
                trail_distance_pct=cfg.trail_distance_pct,
            ),
        )
        logger.debug(
            "Opened %s %s qty %.6g at %.5g stop %.5g",
            side.value, instrument, quantity, entry, signal.stop,
        )

    def _close_position(
        self, state: SimulatorState, candle: Candle, fill: float, reason: str,
    ) -> None:
        pos = state.position
        gross = pos.gross_pnl(fill)
        exit_fee = fill * pos.quantity * self._config.commission
        net = gross - pos.entry_fee - exit_fee

        initial_risk = abs(pos.entry_price - pos.initial_stop) * pos.quantity
        r_multiple = gross / initial_risk if initial_risk > 0 else 0.0

        state.account.record_trade(net, cash=gross - exit_fee)
        state.trades.append(
            CompletedTrade(
                instrument=pos.instrument,
                side=pos.side,
                entry_price=pos.entry_price,
                exit_price=fill,
                entry_time=pos.entry_time,
                exit_time=candle.timestamp,
                quantity=pos.quantity,
                gross_pnl=gross,
                net_pnl=net,
                fee=pos.entry_fee + exit_fee,
                exit_reason=reason,
                r_multiple=r_multiple,
            )
        )
        state.position = None
        logger.debug("Closed %s (%s) net %.2f", pos.instrument, reason, net)

    # ── Helpers ──────────────────────────────────────────────────────────

    def _slip(self, price: float, is_long: bool, exiting: bool) -> float:
        """Move *price* against the trader by the configured slippage."""
        adverse_up = is_long != exiting
        factor = 1 + self._config.slippage if adverse_up else 1 - self._config.slippage
        return price * factor

    @staticmethod
    def _sizing_request(signal: TradeSignal, entry: float, window: list[Candle]) -> SizingRequest:
        atr_series = np.array(calculate_atr_series(window), dtype=float)
        valid = atr_series[~np.isnan(atr_series)]
        trend = Trend.BULLISH if signal.action is Action.BUY else Trend.BEARISH
        return SizingRequest(
            entry=entry,
            stop=signal.stop,
            target=signal.target,
            atr=float(valid[-1]) if valid.size else None,
            average_atr=float(valid[-50:].mean()) if valid.size else None,
            grade=signal.grade or "B",
            confidence=signal.confidence,
            momentum=trend_strength(window, trend) / 100.0,
        )

    @staticmethod
    def _roll_calendar(state: SimulatorState, candle: Candle) -> None:
        """Reset daily and monthly loss tracking on a UTC rollover.

        The loss streak resets with the day so a streak pauses trading for
        the rest of that day only.
        """
        when = _utc(candle.timestamp)
        day = (when.year, when.month, when.day)
        month = (when.year, when.month)
        if state.current_day is not None and day != state.current_day:
            state.account.reset_daily()
            state.account.reset_streak()
        if state.current_month is not None and month != state.current_month:
            state.account.reset_monthly()
        state.current_day = day
        state.current_month = month

    @staticmethod
    def _record_equity(state: SimulatorState, timestamp: int, equity: float) -> None:
        state.equity_curve.append(EquityPoint(timestamp=timestamp, equity=equity))
        state.drawdown.update(equity)


class _HigherTimeframes:
    """Higher-timeframe alignment restricted to candles closed by a timestamp."""

    def __init__(self, series: tuple[list[Candle], list[Candle]]) -> None:
        self._series = series
        self._opens = [[c.timestamp for c in s] for s in series]
        self._intervals = [infer_interval_ms(o) for o in self._opens]
        self._cached_counts: Optional[tuple[int, int]] = None
        self._cached: Optional[Alignment] = None

    def _closed_count(self, k: int, timestamp: int) -> int:
        # A candle opened at t is closed once t + interval <= timestamp
        if self._intervals[k] is None:
            return 0
        return bisect.bisect_right(self._opens[k], timestamp - self._intervals[k])

    def alignment_at(self, timestamp: int) -> Alignment:
        counts = (self._closed_count(0, timestamp), self._closed_count(1, timestamp))
        if counts != self._cached_counts:
            daily, four_hour = self._series
            self._cached = align_timeframes(
                analyze_timeframe(daily[: counts[0]], "1d"),
                analyze_timeframe(four_hour[: counts[1]], "4h"),
            )
            self._cached_counts = counts
        return self._cached
