"""Scanner — runs strategies over many symbols and aggregates confluence.

Every per-symbol call is independent and allocates its own output, so the
universe scan fans symbols out over a thread pool without any locking.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from stagescan.config import Config, default_config
from stagescan.market.confluence import (
    ConfluenceResult,
    aggregate_confluence,
    filter_by_min_matches,
    rank_by_confluence,
)
from stagescan.strategy import registry
from stagescan.strategy.models import CandleData, Quote, ScanResult, StrategyConfig
from stagescan.strategy.quote_classifier import (
    classify_quote,
    min_history_bars,
    supports_quote,
)

logger = logging.getLogger("stagescan.scanner")


@dataclass(frozen=True)
class SymbolScan:
    """All strategy results for one symbol plus their confluence verdict."""

    symbol: str
    results: tuple[ScanResult, ...]
    confluence: Optional[ConfluenceResult]


def scan_symbol(
    symbol: str,
    candles: Sequence[CandleData],
    strategy_ids: Optional[Sequence[str]] = None,
    timeframe: str = "1d",
    configs: Optional[Mapping[str, StrategyConfig | dict]] = None,
    quote: Optional[Quote] = None,
    regime: Optional[str] = None,
    bonus_per_match: int = 10,
) -> SymbolScan:
    """Run each strategy on *symbol* and aggregate the active results.

    When there are too few candles for a strategy's candle path and it has
    a quote path, the quote is classified instead.  Unknown strategy IDs
    raise ``KeyError``.
    """
    ids = list(strategy_ids) if strategy_ids else list(registry.STRATEGY_IDS)
    configs = configs or {}
    results: list[ScanResult] = []

    for strategy_id in ids:
        config = configs.get(strategy_id)
        if _use_quote(strategy_id, candles, config, quote):
            result = classify_quote(strategy_id, quote, config)
        else:
            result = registry.scan(strategy_id, symbol, candles, timeframe, config, quote)
        if result is not None:
            results.append(result)

    confluence = aggregate_confluence(
        symbol, results, regime=regime, bonus_per_match=bonus_per_match
    )
    return SymbolScan(symbol=symbol, results=tuple(results), confluence=confluence)


def _use_quote(
    strategy_id: str,
    candles: Sequence[CandleData],
    config: StrategyConfig | dict | None,
    quote: Optional[Quote],
) -> bool:
    if quote is None or not supports_quote(strategy_id):
        return False
    return len(candles) < min_history_bars(strategy_id, config)


def scan_universe(
    candles_by_symbol: Mapping[str, Sequence[CandleData]],
    strategy_ids: Optional[Sequence[str]] = None,
    timeframe: str = "1d",
    configs: Optional[Mapping[str, StrategyConfig | dict]] = None,
    quotes: Optional[Mapping[str, Quote]] = None,
    regime: Optional[str] = None,
    config: Optional[Config] = None,
) -> list[ConfluenceResult]:
    """Scan every symbol and return confluence verdicts, best first.

    Verdicts with fewer than ``config.confluence_min_matches`` strategies
    are dropped; the rest are ranked by match count then score.
    """
    config = config or default_config()
    quotes = quotes or {}
    symbols = list(candles_by_symbol)

    def _one(symbol: str) -> SymbolScan:
        return scan_symbol(
            symbol,
            candles_by_symbol[symbol],
            strategy_ids=strategy_ids,
            timeframe=timeframe,
            configs=configs,
            quote=quotes.get(symbol),
            regime=regime,
            bonus_per_match=config.confluence_bonus_per_match,
        )

    with ThreadPoolExecutor(max_workers=config.scan_max_workers) as pool:
        scans = list(pool.map(_one, symbols))

    verdicts = [s.confluence for s in scans if s.confluence is not None]
    ranked = rank_by_confluence(
        filter_by_min_matches(verdicts, config.confluence_min_matches)
    )
    logger.info(
        "Scanned %d symbols: %d with active setups, %d after min-match filter",
        len(symbols), len(verdicts), len(ranked),
    )
    return ranked
