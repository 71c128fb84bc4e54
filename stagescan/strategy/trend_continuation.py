"""Trend continuation — pullback into the EMA9/EMA21 zone of an established uptrend."""

from dataclasses import dataclass
from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, fmt, with_disclaimer
from stagescan.strategy.indicators import calculate_atr, calculate_ema, calculate_rvol
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


@dataclass(frozen=True)
class EMAPullback:
    """Bars that dipped into the EMA zone and held above EMA21."""

    low: float
    high: float
    bars: int


def find_pullback_to_ema(
    candles: Sequence[CandleData],
    ema9: Sequence[float],
    ema21: Sequence[float],
    lookback: int = 10,
) -> Optional[EMAPullback]:
    """Collect the pullback bars among the trailing *lookback* bars.

    A pullback bar's low sits between ``EMA21 × 0.99`` and ``EMA9 × 1.01``
    and it closes above EMA21.  Returns ``None`` if no bar qualifies or
    the window is shorter than *lookback*.
    """
    if len(candles) < lookback:
        return None
    low = float("inf")
    high = 0.0
    bars = 0
    for i in range(len(candles) - lookback, len(candles)):
        c = candles[i]
        touched = ema21[i] * 0.99 <= c.low <= ema9[i] * 1.01
        if touched and c.close > ema21[i]:
            bars += 1
            low = min(low, c.low)
            high = max(high, c.high)
    if bars == 0:
        return None
    return EMAPullback(low=low, high=high, bars=bars)


class TrendContinuationStrategy:
    """Pullback continuation in an uptrend (price > EMA21 > EMA50).

    The pullback is searched in the ``pullback_bars_max`` bars before the
    current one, so a breakout bar is measured against the pullback it
    leaves behind.
    """

    id = "TREND_CONTINUATION"
    name = "Trend Continuation"
    description = (
        "Pullbacks to the EMA9/EMA21 zone in an established uptrend."
    )
    category = "swing"
    timeframes_supported = ("15m", "1h", "1d")
    stages = PULLBACK_STAGES
    default_config = StrategyConfig(
        rvol_threshold=1.3,
        trend_bars=10,
        pullback_bars_min=3,
        pullback_bars_max=10,
    )
    stage_labels = {
        FORMING: StageLabel("Forming", "In uptrend, pulling back to EMA zone"),
        READY: StageLabel("Ready", "Pullback complete, near breakout level"),
        TRIGGERED: StageLabel("Triggered", "Trend continuation confirmed with volume"),
    }

    MIN_BARS = 30

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
        ema9 = calculate_ema(closes, 9)
        ema21 = calculate_ema(closes, 21)
        ema50 = calculate_ema(closes, 50)
        rvol = calculate_rvol(candles)

        price = closes[-1]
        # EMA50 is all zeros below 50 bars, so the trend check degrades to
        # price > EMA21 > 0 on shorter windows.
        if not (price > ema21[-1] > ema50[-1]):
            return None

        pullback = find_pullback_to_ema(
            candles[:-1], ema9, ema21, cfg.pullback_bars_max
        )
        if pullback is None or pullback.bars < cfg.pullback_bars_min:
            return None

        has_volume = rvol >= cfg.rvol_threshold
        if price > pullback.high and has_volume:
            stage = TRIGGERED
            raw = 70 + min(30.0, (rvol - 1.3) * 15 + pullback.bars * 2)
        elif price > pullback.high:
            stage = READY
            raw = 55 + min(15.0, rvol * 5)
        elif price >= pullback.high * 0.99:
            stage = READY
            raw = 50 + min(20.0, pullback.bars * 2)
        else:
            stage = FORMING
            raw = 35 + min(15.0, pullback.bars * 2)

        return ScanResult(
            symbol=symbol,
            name=quote.symbol if quote else symbol,
            price=price,
            strategy_id=self.id,
            stage=stage,
            score=clamp_score(raw),
            levels=Levels(
                resistance=pullback.high,
                support=pullback.low,
                entry_trigger=pullback.high,
                stop_level=max(pullback.low, ema21[-1] * 0.99),
                exit_rule="Close below EMA21",
            ),
            ema9=ema9[-1],
            ema21=ema21[-1],
            ema50=ema50[-1] if len(closes) >= 50 else None,
            rvol=rvol,
            atr=calculate_atr(candles)[-1],
            explanation=with_disclaimer(
                f"Trend Continuation {stage}: Price {price:.2f} in uptrend. "
                f"EMA9: {fmt(ema9[-1])}, EMA21: {fmt(ema21[-1])}. "
                f"RVOL: {rvol:.1f}x."
            ),
        )
