"""Run a market-structure backtest over a candle file.

Usage (from the project root):
    python -m scripts.run_backtest data/BTCUSDT_1h.parquet --instrument BTCUSDT
    python -m scripts.run_backtest candles.csv --preset strict --htf
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from marketstruct.backtest.engine import BacktestSimulator
from marketstruct.config import load_config
from marketstruct.data.candles import load_candles_csv, load_candles_parquet, resample_candles
from marketstruct.strategy.presets import get_preset

logger = logging.getLogger("marketstruct.scripts.run_backtest")


def _load(path: Path):
    if path.suffix == ".parquet":
        return load_candles_parquet(path)
    return load_candles_csv(path)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Backtest the market-structure strategy")
    parser.add_argument("candles", type=Path, help="CSV or Parquet candle file")
    parser.add_argument("--instrument", default="UNKNOWN")
    parser.add_argument("--preset", default=None, help="optimized | balanced | strict (default: MS_PRESET)")
    parser.add_argument("--sizing", choices=["fixed", "intelligent"], default="fixed")
    parser.add_argument("--htf", action="store_true", help="Resample to 1D / 4h for higher-timeframe bias")
    parser.add_argument("--env", default=None, help="Path to a .env file")
    parser.add_argument("--trades", type=Path, default=None, help="Write closed trades as JSON here")
    args = parser.parse_args(argv)

    config = load_config(args.env)
    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    signal_config = get_preset(args.preset) if args.preset else config.signal_config()
    candles = _load(args.candles)
    higher = None
    if args.htf:
        higher = (resample_candles(candles, "1D"), resample_candles(candles, "4h"))

    simulator = BacktestSimulator(
        config.backtest_config(sizing_method=args.sizing), signal_config,
    )
    result = simulator.run(args.instrument, candles, higher)

    logger.info("Final balance: %.2f", result.final_balance)
    logger.info("Metrics: %s", result.metrics.to_dict())

    if args.trades is not None:
        args.trades.parent.mkdir(parents=True, exist_ok=True)
        args.trades.write_text(json.dumps([t.to_dict() for t in result.trades], indent=2))
        logger.info("Wrote %d trades → %s", len(result.trades), args.trades)
    return 0


if __name__ == "__main__":
    sys.exit(main())
