"""Tests for marketstruct.config: environment variable loading and validation."""

import pytest

from marketstruct.config import load_config
from marketstruct.strategy.presets import OPTIMIZED, STRICT


_VARS = [
    "MS_LOG_LEVEL",
    "MS_PRESET",
    "MS_INITIAL_CAPITAL",
    "MS_COMMISSION",
    "MS_SLIPPAGE",
    "MS_RISK_PER_TRADE_PCT",
    "MS_MAX_LEVERAGE",
    "MS_PERIODS_PER_YEAR",
    "MS_MAX_DRAWDOWN_PCT",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Ensure MS_* env vars are cleared between tests."""
    for var in _VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def no_env_file(tmp_path):
    # Non-existent path so load_dotenv never picks up a real .env
    return str(tmp_path / "missing.env")


class TestLoadConfig:
    def test_defaults(self, no_env_file):
        cfg = load_config(no_env_file)
        assert cfg.log_level == "INFO"
        assert cfg.preset == "optimized"
        assert cfg.initial_capital == 10_000.0
        assert cfg.commission == 0.001
        assert cfg.slippage == 0.0005
        assert cfg.risk_per_trade_pct == 2.0
        assert cfg.max_leverage == 10.0
        assert cfg.periods_per_year is None
        assert cfg.max_drawdown_pct is None
        assert cfg.signal_config() is OPTIMIZED

    def test_overrides_from_environment(self, monkeypatch, no_env_file):
        monkeypatch.setenv("MS_PRESET", "Strict")
        monkeypatch.setenv("MS_LOG_LEVEL", "debug")
        monkeypatch.setenv("MS_MAX_DRAWDOWN_PCT", "12.5")
        cfg = load_config(no_env_file)
        assert cfg.preset == "strict"
        assert cfg.signal_config() is STRICT
        assert cfg.log_level == "DEBUG"
        assert cfg.max_drawdown_pct == 12.5

    def test_reads_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("MS_INITIAL_CAPITAL=2500\nMS_PRESET=balanced\n")
        cfg = load_config(str(env_file))
        assert cfg.initial_capital == 2500.0
        assert cfg.preset == "balanced"

    def test_environment_wins_over_env_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("MS_INITIAL_CAPITAL=2500\n")
        monkeypatch.setenv("MS_INITIAL_CAPITAL", "7000")
        assert load_config(str(env_file)).initial_capital == 7000.0


class TestValidation:
    def test_unknown_preset(self, monkeypatch, no_env_file):
        monkeypatch.setenv("MS_PRESET", "yolo")
        with pytest.raises(ValueError, match="MS_PRESET"):
            load_config(no_env_file)

    def test_unparseable_number(self, monkeypatch, no_env_file):
        monkeypatch.setenv("MS_COMMISSION", "ten bps")
        with pytest.raises(ValueError, match="Invalid value for MS_COMMISSION"):
            load_config(no_env_file)

    def test_bad_log_level(self, monkeypatch, no_env_file):
        monkeypatch.setenv("MS_LOG_LEVEL", "LOUD")
        with pytest.raises(ValueError, match="MS_LOG_LEVEL"):
            load_config(no_env_file)

    @pytest.mark.parametrize("var", [
        "MS_INITIAL_CAPITAL", "MS_RISK_PER_TRADE_PCT", "MS_MAX_LEVERAGE", "MS_PERIODS_PER_YEAR",
    ])
    def test_non_positive_rejected(self, monkeypatch, no_env_file, var):
        monkeypatch.setenv(var, "0")
        with pytest.raises(ValueError, match=f"{var} must be positive"):
            load_config(no_env_file)

    def test_negative_slippage_rejected(self, monkeypatch, no_env_file):
        monkeypatch.setenv("MS_SLIPPAGE", "-0.01")
        with pytest.raises(ValueError, match="MS_SLIPPAGE"):
            load_config(no_env_file)


class TestBacktestConfig:
    def test_carries_loaded_values(self, monkeypatch, no_env_file):
        monkeypatch.setenv("MS_RISK_PER_TRADE_PCT", "1.5")
        monkeypatch.setenv("MS_PERIODS_PER_YEAR", "8760")
        bt = load_config(no_env_file).backtest_config()
        assert bt.risk_per_trade_pct == 1.5
        assert bt.periods_per_year == 8760.0
        assert bt.sizing_method == "fixed"

    def test_keyword_overrides_win(self, no_env_file):
        bt = load_config(no_env_file).backtest_config(sizing_method="intelligent", warmup=50)
        assert bt.sizing_method == "intelligent"
        assert bt.warmup == 50
