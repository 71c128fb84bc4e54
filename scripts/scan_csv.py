"""Scan a candle file with one or more strategies and print confluence as JSON.

Usage:
    python -m scripts.scan_csv --csv data/universe.csv
    python -m scripts.scan_csv --csv data/universe.csv --strategy VCP --strategy HIGH_RVOL
    python -m scripts.scan_csv --csv data/universe.csv --benchmark data/SPY.csv

Files with a ``symbol`` column are scanned per symbol; a file without one is
treated as a single symbol named after the file.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from stagescan.config import load_config
from stagescan.data import load_candles, load_universe
from stagescan.market.regime import classify_market_regime
from stagescan.scanner import scan_universe
from stagescan.strategy.registry import STRATEGY_IDS

logger = logging.getLogger("stagescan.scripts.scan")


def main():
    parser = argparse.ArgumentParser(description="Scan candles for pattern setups")
    parser.add_argument("--csv", required=True, type=Path, help="Candle file (.csv or .parquet)")
    parser.add_argument(
        "--strategy", action="append", choices=STRATEGY_IDS, dest="strategies",
        help="Strategy to run (repeatable; default: all)",
    )
    parser.add_argument("--timeframe", default="1d")
    parser.add_argument("--benchmark", type=Path, default=None, help="Benchmark file for the market regime")
    parser.add_argument("--env", default=None, help="Path to a .env file")
    args = parser.parse_args()

    config = load_config(args.env)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    regime = None
    if args.benchmark is not None:
        analysis = classify_market_regime(load_candles(args.benchmark))
        regime = analysis.regime
        logger.info("Market regime: %s (strength %d)", regime, analysis.strength)

    universe = load_universe(args.csv)
    verdicts = scan_universe(
        universe,
        strategy_ids=args.strategies,
        timeframe=args.timeframe,
        regime=regime,
        config=config,
    )
    print(json.dumps([v.to_dict() for v in verdicts], indent=2))


if __name__ == "__main__":
    main()
