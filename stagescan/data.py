"""Candle loading — CSV / Parquet files and DataFrames into ``CandleData`` lists.

The core never fetches data; this module only turns already-downloaded
files into the candle windows the strategies consume.

Expected columns: ``time, open, high, low, close, volume`` and, for
multi-symbol files, a ``symbol`` column.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from stagescan.errors import InvalidArgumentError
from stagescan.strategy.models import CandleData

logger = logging.getLogger("stagescan.data")

CANDLE_COLUMNS = ["time", "open", "high", "low", "close", "volume"]
PRICE_COLUMNS = ["open", "high", "low", "close"]


def clean_candles(df: pd.DataFrame) -> pd.DataFrame:
    """Normalise a raw candle frame.

    1. Lower-case column names.
    2. Drop rows missing any price.
    3. Zero-fill missing volume.
    4. Sort by time and drop duplicate timestamps (keep the last).
    """
    if df.empty:
        return df

    df = df.copy()
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in CANDLE_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidArgumentError(f"Candle data missing columns: {', '.join(missing)}")

    before = len(df)
    df = df.dropna(subset=PRICE_COLUMNS)
    df["volume"] = df["volume"].fillna(0)
    df = df.sort_values("time", kind="stable")
    df = df.drop_duplicates(subset=["time"], keep="last").reset_index(drop=True)
    if len(df) != before:
        logger.info("Dropped %d malformed or duplicate candle rows", before - len(df))
    return df


def _format_time(value) -> str:
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    return str(value)


def candles_from_frame(df: pd.DataFrame) -> list[CandleData]:
    """Convert a candle DataFrame into chronologically ordered ``CandleData``."""
    df = clean_candles(df)
    if df.empty:
        return []
    return [
        CandleData(
            time=_format_time(row.time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]


def read_frame(path: Path) -> pd.DataFrame:
    """Read a ``.csv`` or ``.parquet`` candle file."""
    path = Path(path)
    if path.suffix == ".parquet":
        return pd.read_parquet(path, engine="pyarrow")
    if path.suffix == ".csv":
        return pd.read_csv(path)
    raise InvalidArgumentError(f"Unsupported candle file type: {path.suffix or path.name}")


def load_candles(path: Path) -> list[CandleData]:
    """Load a single-symbol candle file."""
    candles = candles_from_frame(read_frame(path))
    logger.info("Loaded %d candles from %s", len(candles), path)
    return candles


def load_universe(
    path: Path,
    symbol: Optional[str] = None,
) -> dict[str, list[CandleData]]:
    """Load a candle file into ``{symbol: candles}``.

    Files with a ``symbol`` column are grouped by it; files without one are
    keyed by *symbol*, or by the file stem when *symbol* is not given.
    """
    path = Path(path)
    df = read_frame(path)
    df.columns = [str(c).strip().lower() for c in df.columns]

    if "symbol" not in df.columns:
        return {symbol or path.stem.upper(): candles_from_frame(df)}

    universe: dict[str, list[CandleData]] = {}
    for sym, group in df.groupby("symbol", sort=True):
        universe[str(sym)] = candles_from_frame(group.drop(columns=["symbol"]))
    logger.info("Loaded %d symbols from %s", len(universe), path)
    return universe
