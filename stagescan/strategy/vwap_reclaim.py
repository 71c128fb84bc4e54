"""VWAP reclaim — price recovers VWAP after trading below it."""

from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, fmt, with_disclaimer
from stagescan.strategy.indicators import calculate_ema, calculate_rvol, calculate_vwap
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


def find_vwap_reclaim(
    candles: Sequence[CandleData],
    vwap: Sequence[float],
    lookback: int = 10,
) -> int:
    """Index of the first reclaim bar in the trailing *lookback* bars, or -1.

    A reclaim bar closes above VWAP after at least two closes below it in
    the window, with the previous close at or below its VWAP.
    """
    bars_below = 0
    for i in range(max(0, len(candles) - lookback), len(candles)):
        if candles[i].close < vwap[i]:
            bars_below += 1
        elif (
            bars_below >= 2
            and candles[i].close > vwap[i]
            and (i == 0 or candles[i - 1].close <= vwap[i - 1])
        ):
            return i
    return -1


class VWAPReclaimStrategy:
    id = "VWAP_RECLAIM"
    name = "VWAP Reclaim"
    description = (
        "Stocks reclaiming VWAP after trading below it, with volume confirmation."
    )
    category = "intraday"
    timeframes_supported = ("1m", "5m", "15m")
    stages = CONTRACTION_STAGES
    default_config = StrategyConfig(
        rvol_threshold=1.5,
        trend_bars=10,
        ema_trend_required=True,
    )
    stage_labels = {
        FORMING: StageLabel("Forming", "Price below VWAP, watching for reclaim"),
        READY: StageLabel("Ready", "Price reclaimed VWAP, waiting for volume confirmation"),
        BREAKOUT: StageLabel("Breakout", "VWAP reclaim confirmed with volume expansion"),
    }

    MIN_BARS = 20
    RECLAIM_LOOKBACK = 10

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

        closes = [c.close for c in candles]
        vwap = calculate_vwap(candles)
        ema21 = calculate_ema(closes, 21)[-1]
        rvol = calculate_rvol(candles)

        price = candles[-1].close
        current_vwap = vwap[-1]

        if cfg.ema_trend_required and price < ema21:
            return None

        reclaim_idx = find_vwap_reclaim(candles, vwap, self.RECLAIM_LOOKBACK)

        if reclaim_idx > 0 and price > current_vwap:
            if rvol >= cfg.rvol_threshold:
                stage = BREAKOUT
                raw = 75 + min(25.0, (rvol - 1.5) * 10)
            else:
                stage = READY
                raw = 55 + min(20.0, rvol * 10)
        elif current_vwap * 0.99 < price < current_vwap:
            stage = FORMING
            raw = 35
        else:
            return None

        reclaim_low = (
            candles[reclaim_idx].low if reclaim_idx >= 0 else current_vwap * 0.99
        )
        stop = min(current_vwap * 0.995, reclaim_low)
        action = "is testing" if stage == FORMING else "has reclaimed"

        return ScanResult(
            symbol=symbol,
            name=quote.symbol if quote else symbol,
            price=price,
            strategy_id=self.id,
            stage=stage,
            score=clamp_score(raw),
            levels=Levels(
                support=current_vwap,
                entry_trigger=current_vwap * 1.001,
                stop_level=stop,
                exit_rule="Close below VWAP or EMA21",
                vwap=current_vwap,
            ),
            ema21=ema21,
            vwap=current_vwap,
            rvol=rvol,
            explanation=with_disclaimer(
                f"VWAP Reclaim {stage}: Price {price:.2f} {action} VWAP {current_vwap:.2f}. "
                f"RVOL: {fmt(rvol, 1)}x. Stop: {stop:.2f}."
            ),
        )
