"""Multi-day VCP — contracting bases (T1 > T2 > T3) over days or weeks."""

import math
from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.contractions import find_contractions, is_volatility_contracting
from stagescan.strategy.indicators import calculate_atr, calculate_ema, calculate_rvol
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


def compute_multiday_levels(candles: Sequence[CandleData]) -> Levels:
    """Resistance at the 20-bar high, stop 2% under the 10-bar low."""
    resistance = max(c.high for c in candles[-20:])
    stop = min(c.low for c in candles[-10:]) * 0.98
    return Levels(
        resistance=resistance,
        entry_trigger=resistance * 1.001,
        stop_level=stop,
        exit_rule="Close below last contraction low or 21 EMA",
    )


def explain_multiday(
    stage: str,
    count: int,
    contracting: bool,
    rvol: float,
    pivot: float,
) -> str:
    if stage == BREAKOUT:
        return (
            f"VCP breakout! {count} contractions detected with {rvol:.1f}x volume. "
            f"Pivot: ${pivot:.2f}."
        )
    if stage == READY:
        tiers = "T1>T2>T3" if count >= 3 else "T1>T2"
        return (
            f"VCP ready with {count} contracting bases ({tiers}). "
            f"Watching pivot at ${pivot:.2f}."
        )
    if contracting:
        return (
            f"VCP forming with {count} bases detected. "
            "Volatility is contracting."
        )
    return "Early stage consolidation. Monitoring for VCP base development."


class VCPMultidayStrategy:
    """Swing-timeframe VCP using the full candle history.

    The base is every bar before the current one; contractions may span up
    to 30 bars and 15% of price.  Every contraction found counts, and the
    base only counts as contracting when each one is tighter than the last.
    """

    id = "VCP_MULTIDAY"
    name = "Power Breakout"
    description = (
        "Multi-timeframe contraction breakouts for swing and position traders."
    )
    category = "swing"
    timeframes_supported = ("1d", "1w")
    stages = CONTRACTION_STAGES
    default_config = StrategyConfig(
        contraction_min_bars=5,
        rvol_threshold=1.5,
    )
    stage_labels = {
        FORMING: StageLabel("Forming", "Multi-day bases developing"),
        READY: StageLabel("Ready", "Contracting bases near the pivot"),
        BREAKOUT: StageLabel("Breakout", "Pivot cleared on a volume surge"),
    }

    MIN_BARS = 30
    MAX_CONTRACTION_BARS = 30
    MAX_RANGE_PERCENT = 15.0
    MIN_CHANGE_PCT = 1.0

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
        ema9 = calculate_ema(closes, 9)[-1]
        ema21 = calculate_ema(closes, 21)[-1]
        ema50 = calculate_ema(closes, 50)[-1] if len(closes) >= 50 else None
        rvol = calculate_rvol(candles)

        contractions = find_contractions(
            candles[:-1],
            min_bars=cfg.contraction_min_bars,
            max_bars=max(self.MAX_CONTRACTION_BARS, cfg.contraction_min_bars + 1),
            max_range_percent=self.MAX_RANGE_PERCENT,
        )
        count = len(contractions)
        contracting = is_volatility_contracting(contractions)

        price = candles[-1].close
        prev_close = candles[-2].close
        change_pct = (price - prev_close) / prev_close * 100 if prev_close else 0.0

        recent_high = max(c.high for c in candles[-20:])
        price_from_high = (
            (recent_high - price) / recent_high * 100 if recent_high > 0 else 0.0
        )
        pivot = contractions[-1].high if contractions else recent_high
        in_uptrend = ema9 > ema21 and price > ema21

        breaking_out = (
            price > pivot
            and rvol > cfg.rvol_threshold
            and change_pct > self.MIN_CHANGE_PCT
        )

        if breaking_out and contracting:
            stage = BREAKOUT
            raw = 85 + count * 3 + math.floor(rvol * 2)
        elif contracting and price_from_high < 5 and in_uptrend:
            stage = READY
            raw = min(95, 70 + count * 5 + math.floor((5 - price_from_high) * 3))
        elif count >= 1 and in_uptrend:
            stage = FORMING
            raw = max(40, 55 + count * 5 - math.floor(price_from_high))
        else:
            stage = FORMING
            raw = max(20, 40 - math.floor(price_from_high * 2))

        return ScanResult(
            symbol=symbol,
            name=quote.symbol if quote else symbol,
            price=price,
            strategy_id=self.id,
            stage=stage,
            score=clamp_score(raw),
            levels=compute_multiday_levels(candles),
            ema9=ema9,
            ema21=ema21,
            ema50=ema50,
            rvol=rvol,
            atr=calculate_atr(candles)[-1],
            explanation=with_disclaimer(
                explain_multiday(stage, count, contracting, rvol, pivot)
            ),
        )
