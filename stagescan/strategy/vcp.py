"""Contraction breakout (VCP) strategy.

Looks for a base of successively tighter contractions inside an uptrend and
classifies the current bar as forming, ready near the pivot, or breaking
out above it on expanding volume.
"""

import math
from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.contractions import contraction_run, find_contractions
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


class VCPStrategy:
    """Volatility contraction breakout on any bar size.

    Flow:
        1. Require ``MIN_BARS`` candles.
        2. Find contractions in the ``base_lookback`` bars before the
           current bar; no contraction → None.
        3. Trend filter: EMA9 > EMA21 and price > EMA21.
        4. BREAKOUT on a volume-confirmed close above the pivot, READY
           within 5% of the pivot, FORMING otherwise.
    """

    id = "VCP"
    name = "Momentum Breakout"
    description = (
        "Contraction breakouts with trend and volume confirmation."
    )
    category = "breakout"
    timeframes_supported = ("5m", "15m", "1h", "1d")
    stages = CONTRACTION_STAGES
    default_config = StrategyConfig(
        contraction_min_bars=5,
        base_lookback=30,
        rvol_threshold=1.5,
    )
    stage_labels = {
        FORMING: StageLabel("Forming", "Base developing, waiting for contractions to tighten"),
        READY: StageLabel("Ready", "Tight base near the pivot, watching for volume"),
        BREAKOUT: StageLabel("Breakout", "Close above the pivot on expanding volume"),
    }

    MIN_BARS = 30
    MAX_CONTRACTION_BARS = 20
    MAX_RANGE_PERCENT = 12.0
    PIVOT_PROXIMITY_PCT = 5.0

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

        base = candles[-(cfg.base_lookback + 1):-1]
        contractions = find_contractions(
            base,
            min_bars=cfg.contraction_min_bars,
            max_bars=max(self.MAX_CONTRACTION_BARS, cfg.contraction_min_bars + 1),
            max_range_percent=self.MAX_RANGE_PERCENT,
        )
        if not contractions:
            return None

        closes = [c.close for c in candles]
        ema9 = calculate_ema(closes, 9)[-1]
        ema21 = calculate_ema(closes, 21)[-1]
        ema50 = calculate_ema(closes, 50)[-1] if len(closes) >= 50 else None
        atr = calculate_atr(candles)[-1]
        rvol = calculate_rvol(candles)

        price = candles[-1].close
        count = contraction_run(contractions)
        last = contractions[-1]
        pivot = last.high
        price_from_high = (pivot - price) / pivot * 100 if pivot > 0 else 0.0

        in_uptrend = ema9 > ema21 and price > ema21
        contracting = count >= 2

        if contracting and in_uptrend and price > pivot and rvol >= cfg.rvol_threshold:
            stage = BREAKOUT
            raw = 80 + math.floor(rvol * 5)
            text = (
                f"Contraction breakout above {pivot:.2f} after {count} tightening "
                f"contractions with {rvol:.1f}x relative volume."
            )
        elif contracting and in_uptrend and price_from_high < self.PIVOT_PROXIMITY_PCT:
            stage = READY
            raw = min(95, 65 + math.floor((5 - max(price_from_high, 0.0)) * 6))
            text = (
                f"{count} contractions tightening {price_from_high:.1f}% below the "
                f"{pivot:.2f} pivot. Watch for volume confirmation on breakout."
            )
        else:
            stage = FORMING
            raw = max(30, 60 - math.floor(max(price_from_high, 0.0) * 2))
            text = (
                f"Base forming with {count} contraction{'s' if count != 1 else ''}. "
                f"Waiting for volatility contraction and trend alignment."
            )

        stop = last.low * 0.99
        return ScanResult(
            symbol=symbol,
            name=quote.symbol if quote else symbol,
            price=price,
            strategy_id=self.id,
            stage=stage,
            score=clamp_score(raw),
            levels=Levels(
                resistance=pivot,
                support=last.low,
                entry_trigger=pivot,
                stop_level=stop,
                exit_rule="Close below 21 EMA or stop hit",
            ),
            ema9=ema9,
            ema21=ema21,
            ema50=ema50,
            rvol=rvol,
            atr=atr,
            explanation=with_disclaimer(text),
        )
