"""Quote-only classification for symbols without candle history.

Only the contraction and pullback strategies have a quote path; the rest
need bars to say anything.  Quote results carry no indicator values since
none can be computed from a single snapshot.
"""

import logging
import math
from typing import Callable, Optional

from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.models import (
    BREAKOUT,
    FORMING,
    READY,
    TRIGGERED,
    Levels,
    Quote,
    ScanResult,
    StrategyConfig,
)
from stagescan.strategy.registry import get_strategy

logger = logging.getLogger("stagescan.strategy.quote")


def quote_rvol(quote: Quote) -> float:
    """Volume over average volume; ``1.0`` without a usable average."""
    if not quote.avg_volume or quote.avg_volume <= 0:
        return 1.0
    return quote.volume / quote.avg_volume


def _price_from_high(quote: Quote) -> float:
    if quote.high <= 0:
        return 0.0
    return (quote.high - quote.last) / quote.high * 100


def _result(
    strategy_id: str,
    quote: Quote,
    stage: str,
    raw: float,
    levels: Levels,
    rvol: float,
    text: str,
) -> ScanResult:
    return ScanResult(
        symbol=quote.symbol,
        name=quote.symbol,
        price=quote.last,
        strategy_id=strategy_id,
        stage=stage,
        score=clamp_score(raw),
        levels=levels,
        rvol=rvol,
        explanation=with_disclaimer(text),
    )


def classify_vcp_quote(quote: Quote, config: StrategyConfig) -> ScanResult:
    rvol = quote_rvol(quote)
    pfh = _price_from_high(quote)

    if quote.change > 0 and quote.change_percent > 2 and rvol > 1.5:
        stage = BREAKOUT
        raw = 80 + math.floor(rvol * 5)
        text = (
            f"VCP breakout detected with {rvol:.1f}x relative volume. "
            "Pattern has contracted and is now expanding."
        )
    elif pfh < 5 and quote.change > 0:
        stage = READY
        raw = min(95, 65 + math.floor((5 - pfh) * 6))
        text = (
            "VCP pattern is tightening near resistance. Watch for volume "
            "confirmation on breakout."
        )
    else:
        stage = FORMING
        raw = max(30, 60 - math.floor(pfh * 2))
        text = (
            "VCP pattern is forming. Waiting for volatility contraction and "
            "base tightening."
        )

    resistance = quote.high * 1.02
    levels = Levels(
        resistance=resistance,
        entry_trigger=resistance,
        stop_level=quote.last * 0.93,
        exit_rule="Close below 21 EMA or stop hit",
    )
    return _result("VCP", quote, stage, raw, levels, rvol, text)


def classify_vcp_multiday_quote(quote: Quote, config: StrategyConfig) -> ScanResult:
    resistance = quote.high * 1.02
    levels = Levels(
        resistance=resistance,
        entry_trigger=resistance * 1.001,
        stop_level=quote.last * 0.93,
        exit_rule="Close below last contraction low or 21 EMA",
    )
    return _result(
        "VCP_MULTIDAY", quote, FORMING, 30, levels, quote_rvol(quote),
        "Insufficient historical data for multi-day VCP analysis.",
    )


def classify_pullback_quote(quote: Quote, config: StrategyConfig) -> ScanResult:
    rvol = quote_rvol(quote)
    multiplier = config.volume_multiplier if config.volume_multiplier is not None else 1.5

    if quote.change_percent > 1 and rvol >= multiplier:
        stage = TRIGGERED
        raw = 80 + math.floor(rvol * 5)
        text = f"Potential breakout with {rvol:.1f}x relative volume."
    elif quote.change_percent > -1:
        stage = READY
        raw = 65
        text = "Holding the session, watching for volume confirmation."
    else:
        stage = FORMING
        raw = 40
        text = "Pattern forming. Need strength in an uptrend."

    high = quote.high if quote.high > 0 else quote.last
    low = quote.low if quote.low > 0 else quote.last
    levels = Levels(
        resistance=high,
        entry_trigger=high,
        stop_level=low * 0.995,
        exit_rule="Close below EMA 21",
    )
    return _result("CLASSIC_PULLBACK", quote, stage, raw, levels, rvol, text)


QUOTE_CLASSIFIERS: dict[str, Callable[[Quote, StrategyConfig], ScanResult]] = {
    "VCP": classify_vcp_quote,
    "VCP_MULTIDAY": classify_vcp_multiday_quote,
    "CLASSIC_PULLBACK": classify_pullback_quote,
}


def classify_quote(
    strategy_id: str,
    quote: Quote,
    config: StrategyConfig | dict | None = None,
) -> ScanResult:
    """Classify *quote* with the quote path of *strategy_id*.

    Raises:
        KeyError: If the strategy has no quote path.
    """
    if strategy_id not in QUOTE_CLASSIFIERS:
        available = ", ".join(sorted(QUOTE_CLASSIFIERS))
        raise KeyError(
            f"No quote classifier for '{strategy_id}'. Available: {available}"
        )
    cfg = get_strategy(strategy_id).default_config.merge(config)
    result = QUOTE_CLASSIFIERS[strategy_id](quote, cfg)
    logger.debug(
        "Quote classification %s %s: %s (%d)",
        strategy_id, quote.symbol, result.stage, result.score,
    )
    return result


def supports_quote(strategy_id: str) -> bool:
    return strategy_id in QUOTE_CLASSIFIERS


def min_history_bars(
    strategy_id: str,
    config: StrategyConfig | dict | None = None,
) -> int:
    """Fewest candles the candle path of *strategy_id* needs under *config*."""
    strategy = get_strategy(strategy_id)
    if strategy_id == "CLASSIC_PULLBACK":
        cfg = strategy.default_config.merge(config)
        return cfg.trend_bars + cfg.pullback_bars_max
    return strategy.MIN_BARS
