"""Gap & Go — gap ups that hold VWAP and break the opening range."""

from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.indicators import (
    calculate_gap_percent,
    calculate_rvol,
    calculate_vwap,
    detect_opening_range,
)
from stagescan.strategy.models import (
    FORMING,
    PULLBACK_STAGES,
    READY,
    TRIGGERED,
    CandleData,
    Levels,
    Quote,
    ScanResult,
    StageLabel,
    StrategyConfig,
)


class GapAndGoStrategy:
    """Gap continuation for the session in ``candles``.

    The gap is the first bar's open against ``quote.prev_close``.  Without
    a quote or a previous close it is measured against 98% of the current
    VWAP instead.
    """

    id = "GAP_AND_GO"
    name = "Gap & Go"
    description = (
        "Gap ups that hold above VWAP and break the opening range."
    )
    category = "intraday"
    timeframes_supported = ("1m", "5m")
    stages = PULLBACK_STAGES
    default_config = StrategyConfig(
        gap_min_percent=2.0,
        rvol_threshold=1.5,
        opening_range_minutes=15,
    )
    stage_labels = {
        FORMING: StageLabel("Forming", "Gap up detected, holding above VWAP"),
        READY: StageLabel("Ready", "Holding above VWAP, near opening range breakout"),
        TRIGGERED: StageLabel("Triggered", "Gap & Go confirmed: OR breakout with volume"),
    }

    MIN_BARS = 10
    # Fraction of VWAP that stands in for the previous close.
    VWAP_GAP_BASIS = 0.98

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

        opening = detect_opening_range(candles, cfg.opening_range_minutes)
        if opening is None:
            return None

        vwap = calculate_vwap(candles)[-1]
        if quote is not None and quote.prev_close:
            gap_pct = calculate_gap_percent(candles[0].open, quote.prev_close)
        else:
            gap_pct = calculate_gap_percent(candles[0].open, vwap * self.VWAP_GAP_BASIS)
        if gap_pct < cfg.gap_min_percent:
            return None

        rvol = calculate_rvol(candles)
        price = candles[-1].close

        holds_vwap = price > vwap
        has_volume = rvol >= cfg.rvol_threshold
        above_range = price > opening.high

        if above_range and holds_vwap and has_volume:
            stage = TRIGGERED
            raw = 70 + min(30.0, gap_pct * 3 + (rvol - 1.5) * 10)
        elif above_range and holds_vwap:
            stage = READY
            raw = 55 + min(15.0, gap_pct * 2)
        elif holds_vwap and has_volume:
            stage = READY
            raw = 50 + min(20.0, gap_pct * 2 + rvol * 3)
        elif holds_vwap:
            stage = FORMING
            raw = 35 + min(15.0, gap_pct * 2)
        else:
            return None

        return ScanResult(
            symbol=symbol,
            name=quote.symbol if quote else symbol,
            price=price,
            strategy_id=self.id,
            stage=stage,
            score=clamp_score(raw),
            levels=Levels(
                resistance=opening.high,
                support=vwap,
                entry_trigger=opening.high,
                stop_level=min(vwap * 0.995, opening.low),
                exit_rule="Close below VWAP",
                vwap=vwap,
                opening_range_high=opening.high,
                opening_range_low=opening.low,
            ),
            vwap=vwap,
            rvol=rvol,
            explanation=with_disclaimer(
                f"Gap & Go {stage}: Price {price:.2f} gapped up {gap_pct:.1f}%. "
                f"VWAP: {vwap:.2f}, RVOL: {rvol:.1f}x."
            ),
        )
