"""High relative-volume breakout from a tight consolidation."""

from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.indicators import calculate_rvol, find_consolidation_range
from stagescan.strategy.models import (
    BREAKOUT,
    CONTRACTION_STAGES,
    FORMING,
    READY,
    CandleData,
    Levels,
    Quote,
    ScanResult,
    StageLabel,
    StrategyConfig,
)


class HighRVOLStrategy:
    """Tight range of ``consolidation_bars`` bars broken on heavy volume.

    The consolidation is measured over the bars before the current one so
    the breakout bar itself never widens the range it is breaking.
    """

    id = "HIGH_RVOL"
    name = "High RVOL Breakout"
    description = (
        "Breakouts from tight consolidation with high relative volume."
    )
    category = "breakout"
    timeframes_supported = ("5m", "15m", "1d")
    stages = CONTRACTION_STAGES
    default_config = StrategyConfig(
        rvol_threshold=2.0,
        consolidation_bars=10,
    )
    stage_labels = {
        FORMING: StageLabel("Forming", "Tight consolidation detected with building volume"),
        READY: StageLabel("Ready", "High RVOL detected, near or at breakout level"),
        BREAKOUT: StageLabel("Breakout", "Breakout confirmed on high relative volume"),
    }

    MIN_BARS = 20
    MIN_RVOL = 1.5
    MAX_RANGE_PCT = 5.0

    def scan(
        self,
        symbol: str,
        candles: Sequence[CandleData],
        timeframe: str,
        config: StrategyConfig | dict | None = None,
        quote: Optional[Quote] = None,
    ) -> Optional[ScanResult]:
        cfg = self.default_config.merge(config)
        if len(candles) < self.MIN_BARS:
            return None

        rvol = calculate_rvol(candles)
        has_high_volume = rvol >= cfg.rvol_threshold
        if rvol < self.MIN_RVOL:
            return None

        consolidation = find_consolidation_range(candles[:-1], cfg.consolidation_bars)
        if consolidation is None or consolidation.range_percent >= self.MAX_RANGE_PCT:
            return None

        current = candles[-1]
        price = current.close
        above = price > consolidation.high
        near = price > consolidation.high * 0.99

        if above and has_high_volume:
            stage = BREAKOUT
            raw = 75 + min(25.0, (rvol - 2) * 10)
        elif above:
            stage = READY
            raw = 55 + min(15.0, rvol * 5)
        elif near and has_high_volume:
            stage = READY
            raw = 50 + min(20.0, rvol * 5)
        else:
            stage = FORMING
            raw = 35 + min(15.0, (3 - consolidation.range_percent) * 5)

        stop = min(consolidation.low, current.low)
        return ScanResult(
            symbol=symbol,
            name=quote.symbol if quote else symbol,
            price=price,
            strategy_id=self.id,
            stage=stage,
            score=clamp_score(raw),
            levels=Levels(
                resistance=consolidation.high,
                support=consolidation.low,
                entry_trigger=consolidation.high,
                stop_level=stop,
                exit_rule="Close below consolidation low",
            ),
            rvol=rvol,
            explanation=with_disclaimer(
                f"High RVOL {stage}: Price {price:.2f} with RVOL {rvol:.1f}x. "
                f"Entry: {consolidation.high:.2f}, Stop: {stop:.2f}."
            ),
        )
