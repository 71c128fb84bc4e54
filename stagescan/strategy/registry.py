"""Strategy registry — maps strategy IDs to strategy factories.

Used by the scanner and the CLI scripts to dispatch a strategy ID to its
plugin.
"""

import logging
from functools import partial
from typing import Callable, Optional, Sequence

from stagescan.strategy.base import StrategyProtocol, stage_label, strategy_info
from stagescan.strategy.classic_pullback import ClassicPullbackStrategy
from stagescan.strategy.gap_and_go import GapAndGoStrategy
from stagescan.strategy.high_rvol import HighRVOLStrategy
from stagescan.strategy.models import (
    CandleData,
    Quote,
    ScanResult,
    StageLabel,
    StrategyConfig,
    StrategyInfo,
)
from stagescan.strategy.orb import ORBStrategy
from stagescan.strategy.trend_continuation import TrendContinuationStrategy
from stagescan.strategy.vcp import VCPStrategy
from stagescan.strategy.vcp_multiday import VCPMultidayStrategy
from stagescan.strategy.volatility_squeeze import VolatilitySqueezeStrategy
from stagescan.strategy.vwap_reclaim import VWAPReclaimStrategy

logger = logging.getLogger("stagescan.strategy")


STRATEGY_REGISTRY: dict[str, Callable[[], StrategyProtocol]] = {
    "VCP": VCPStrategy,
    "VCP_MULTIDAY": VCPMultidayStrategy,
    "CLASSIC_PULLBACK": ClassicPullbackStrategy,
    "VWAP_RECLAIM": VWAPReclaimStrategy,
    "ORB5": partial(ORBStrategy, 5),
    "ORB15": partial(ORBStrategy, 15),
    "HIGH_RVOL": HighRVOLStrategy,
    "GAP_AND_GO": GapAndGoStrategy,
    "TREND_CONTINUATION": TrendContinuationStrategy,
    "VOLATILITY_SQUEEZE": VolatilitySqueezeStrategy,
}

STRATEGY_IDS: tuple[str, ...] = tuple(STRATEGY_REGISTRY)


def get_strategy(strategy_id: str) -> StrategyProtocol:
    """Look up and instantiate a strategy by ID.

    Raises ``KeyError`` if the strategy ID is not registered.
    """
    if strategy_id not in STRATEGY_REGISTRY:
        raise KeyError(
            f"Unknown strategy '{strategy_id}'. "
            f"Available: {', '.join(STRATEGY_REGISTRY.keys())}"
        )
    return STRATEGY_REGISTRY[strategy_id]()


def scan(
    strategy_id: str,
    symbol: str,
    candles: Sequence[CandleData],
    timeframe: str,
    config: StrategyConfig | dict | None = None,
    quote: Optional[Quote] = None,
) -> Optional[ScanResult]:
    """Run one strategy over one symbol's window."""
    strategy = get_strategy(strategy_id)
    result = strategy.scan(symbol, candles, timeframe, config, quote)
    if result is None:
        logger.debug("%s %s: no setup (%d bars)", strategy_id, symbol, len(candles))
    else:
        logger.debug(
            "%s %s: %s score=%d", strategy_id, symbol, result.stage, result.score
        )
    return result


def list_strategies() -> list[StrategyInfo]:
    """Catalog entries for every registered strategy, in registry order."""
    return [strategy_info(get_strategy(sid)) for sid in STRATEGY_IDS]


def describe_stage(strategy_id: str, stage: str) -> StageLabel:
    """Display label and description of *stage* for *strategy_id*."""
    return stage_label(get_strategy(strategy_id), stage)
