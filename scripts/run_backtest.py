"""Backtest one strategy over a candle file and print the result as JSON.

Usage:
    python -m scripts.run_backtest --csv data/AAPL.csv --ticker AAPL --strategy VCP
    python -m scripts.run_backtest --csv data/AAPL.parquet --ticker AAPL --strategy ORB5 --trades

Exit settings (stop, target, hold limit, warm-up) come from the environment
or ``.env``; see ``stagescan.config``.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from stagescan.backtest.engine import BacktestEngine
from stagescan.backtest.entries import ENTRY_PREDICATES
from stagescan.config import load_config
from stagescan.data import load_candles

logger = logging.getLogger("stagescan.scripts.backtest")


def main():
    parser = argparse.ArgumentParser(description="Backtest a strategy over historical candles")
    parser.add_argument("--csv", required=True, type=Path, help="Candle file (.csv or .parquet)")
    parser.add_argument("--ticker", required=True)
    parser.add_argument("--strategy", default="VCP", choices=sorted(ENTRY_PREDICATES))
    parser.add_argument("--env", default=None, help="Path to a .env file")
    parser.add_argument("--trades", action="store_true", help="Include the trade list")
    args = parser.parse_args()

    config = load_config(args.env)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    candles = load_candles(args.csv)
    if not candles:
        logger.warning("No candles in %s", args.csv)

    result = BacktestEngine(config).run(args.ticker, candles, args.strategy)
    output = result.to_dict()
    if not args.trades:
        output.pop("trades")
    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
