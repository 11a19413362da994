"""Candle ingestion: DataFrame / CSV / Parquet to ``Candle`` lists, and resampling.

Frames use a ``time`` column (UTC datetimes or epoch milliseconds) plus
``open``, ``high``, ``low``, ``close`` and optionally ``volume``.
"""

import logging
from pathlib import Path

import pandas as pd

from marketstruct.strategy.models import Candle

logger = logging.getLogger("marketstruct.data")

PRICE_COLUMNS = ["open", "high", "low", "close"]
_EPOCH = pd.Timestamp("1970-01-01", tz="UTC")


def _to_utc(series: pd.Series) -> pd.Series:
    if pd.api.types.is_datetime64_any_dtype(series):
        if series.dt.tz is None:
            return series.dt.tz_localize("UTC")
        return series.dt.tz_convert("UTC")
    if pd.api.types.is_numeric_dtype(series):
        return pd.to_datetime(series, unit="ms", utc=True)
    return pd.to_datetime(series, utc=True)


def candles_from_frame(df: pd.DataFrame, time_column: str = "time") -> list[Candle]:
    """Convert a DataFrame into candles, oldest first.

    Rows with missing prices are dropped with a warning.

    Raises:
        ValueError: If a required column is missing or timestamps are not
            strictly increasing.
    """
    missing = [c for c in [time_column, *PRICE_COLUMNS] if c not in df.columns]
    if missing:
        raise ValueError(f"Missing candle column(s): {', '.join(missing)}")
    if df.empty:
        return []

    df = df.copy()
    before = len(df)
    df = df.dropna(subset=PRICE_COLUMNS).reset_index(drop=True)
    if len(df) < before:
        logger.warning("Dropped %d candle row(s) with missing prices", before - len(df))

    times = _to_utc(df[time_column])
    millis = ((times - _EPOCH) // pd.Timedelta(milliseconds=1)).astype("int64")
    if not millis.is_monotonic_increasing or millis.duplicated().any():
        raise ValueError("Candle timestamps must be strictly increasing")

    volume = df["volume"].fillna(0.0) if "volume" in df.columns else pd.Series(0.0, index=df.index)
    return [
        Candle(
            timestamp=int(ts),
            open=float(o),
            high=float(h),
            low=float(lo),
            close=float(c),
            volume=float(v),
        )
        for ts, o, h, lo, c, v in zip(
            millis, df["open"], df["high"], df["low"], df["close"], volume,
        )
    ]


def candles_to_frame(candles: list[Candle]) -> pd.DataFrame:
    """Inverse of :func:`candles_from_frame`; ``time`` is a UTC datetime column."""
    df = pd.DataFrame(
        {
            "time": [c.timestamp for c in candles],
            "open": [c.open for c in candles],
            "high": [c.high for c in candles],
            "low": [c.low for c in candles],
            "close": [c.close for c in candles],
            "volume": [c.volume for c in candles],
        }
    )
    df["time"] = pd.to_datetime(df["time"], unit="ms", utc=True)
    return df


# ── File I/O ─────────────────────────────────────────────────────────────


def load_candles_csv(path: str | Path, time_column: str = "time") -> list[Candle]:
    """Load candles from a CSV file."""
    df = pd.read_csv(path)
    candles = candles_from_frame(df, time_column)
    logger.info("Loaded %d candles from %s", len(candles), path)
    return candles


def load_candles_parquet(path: str | Path, time_column: str = "time") -> list[Candle]:
    """Load candles from a Parquet file."""
    df = pd.read_parquet(path, engine="pyarrow")
    candles = candles_from_frame(df, time_column)
    logger.info("Loaded %d candles from %s", len(candles), path)
    return candles


def save_candles_parquet(candles: list[Candle], path: str | Path) -> None:
    """Save candles to a Parquet file, creating directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    candles_to_frame(candles).to_parquet(path, engine="pyarrow", index=False)
    logger.info("Saved %d candles → %s", len(candles), path)


# ── Resampling ───────────────────────────────────────────────────────────


def resample_candles(candles: list[Candle], rule: str) -> list[Candle]:
    """Aggregate candles to a higher timeframe (e.g. ``"4h"``, ``"1D"``).

    Buckets are left-labelled and left-closed; empty buckets are dropped.
    The last bucket may be incomplete.
    """
    if not candles:
        return []
    df = candles_to_frame(candles).set_index("time")
    agg = df.resample(rule, label="left", closed="left").agg(
        {
            "open": "first",
            "high": "max",
            "low": "min",
            "close": "last",
            "volume": "sum",
        }
    )
    agg = agg.dropna(subset=PRICE_COLUMNS).reset_index()
    return candles_from_frame(agg)
