"""MarketStruct: application configuration.

Loads .env variables into a typed config object and validates them on
startup.  Every variable is optional; invalid values raise ``ValueError``
naming the variable.
"""

import os
from dataclasses import dataclass
from typing import Callable, TypeVar

from dotenv import load_dotenv

from marketstruct.backtest.models import BacktestConfig
from marketstruct.strategy.presets import SignalConfig, get_preset


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

T = TypeVar("T")


@dataclass(frozen=True)
class AppConfig:
    """Typed configuration loaded from environment variables."""

    log_level: str
    preset: str
    initial_capital: float
    commission: float
    slippage: float
    risk_per_trade_pct: float
    max_leverage: float
    periods_per_year: float | None
    max_drawdown_pct: float | None

    def signal_config(self) -> SignalConfig:
        return get_preset(self.preset)

    def backtest_config(self, **overrides) -> BacktestConfig:
        """Build the simulator config; keyword *overrides* win."""
        values = dict(
            initial_capital=self.initial_capital,
            commission=self.commission,
            slippage=self.slippage,
            risk_per_trade_pct=self.risk_per_trade_pct,
            max_leverage=self.max_leverage,
            periods_per_year=self.periods_per_year,
            max_drawdown_pct=self.max_drawdown_pct,
        )
        values.update(overrides)
        return BacktestConfig(**values)


def _read(name: str, default: str | None, parse: Callable[[str], T]) -> T | None:
    raw = os.environ.get(name, default)
    if raw is None or raw == "":
        return None
    try:
        return parse(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from exc


def _positive(name: str, value: float | None) -> None:
    if value is not None and value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")


def load_config(env_path: str | None = None) -> AppConfig:
    """Load configuration from environment variables (and *env_path*).

    Raises ``ValueError`` naming the variable when a value cannot be parsed,
    is out of range, or names an unknown preset.
    """
    load_dotenv(dotenv_path=env_path)

    log_level = os.environ.get("MS_LOG_LEVEL", "INFO").upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(
            f"Invalid value for MS_LOG_LEVEL: {log_level!r}. "
            f"Expected one of {', '.join(_LOG_LEVELS)}"
        )

    preset = os.environ.get("MS_PRESET", "optimized").lower()
    try:
        get_preset(preset)
    except KeyError as exc:
        raise ValueError(f"Invalid value for MS_PRESET: {exc.args[0]}") from exc

    cfg = AppConfig(
        log_level=log_level,
        preset=preset,
        initial_capital=_read("MS_INITIAL_CAPITAL", "10000", float),
        commission=_read("MS_COMMISSION", "0.001", float),
        slippage=_read("MS_SLIPPAGE", "0.0005", float),
        risk_per_trade_pct=_read("MS_RISK_PER_TRADE_PCT", "2.0", float),
        max_leverage=_read("MS_MAX_LEVERAGE", "10", float),
        periods_per_year=_read("MS_PERIODS_PER_YEAR", None, float),
        max_drawdown_pct=_read("MS_MAX_DRAWDOWN_PCT", None, float),
    )

    _positive("MS_INITIAL_CAPITAL", cfg.initial_capital)
    _positive("MS_RISK_PER_TRADE_PCT", cfg.risk_per_trade_pct)
    _positive("MS_MAX_LEVERAGE", cfg.max_leverage)
    _positive("MS_PERIODS_PER_YEAR", cfg.periods_per_year)
    _positive("MS_MAX_DRAWDOWN_PCT", cfg.max_drawdown_pct)
    for name, value in (("MS_COMMISSION", cfg.commission), ("MS_SLIPPAGE", cfg.slippage)):
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")

    return cfg
