"""Classic pullback — trend, impulse leg, shallow pullback, breakout of the pullback high.

Gates are evaluated in order and the first failure demotes the symbol to a
FORMING result with a fixed score, so a partial setup is still reported.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.indicators import calculate_atr, calculate_ema
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

EXIT_RULE = "Close below EMA 21"


@dataclass(frozen=True)
class SwingPoint:
    """Price and bar index of a swing high or low."""

    price: float
    index: int


def find_swing_high(
    candles: Sequence[CandleData],
    lookback: int,
    end: Optional[int] = None,
) -> Optional[SwingPoint]:
    """Highest high in the *lookback* bars ending before index *end*.

    *end* defaults to ``len(candles)``.  The earliest bar wins ties.
    """
    end = len(candles) if end is None else end
    if end < 3:
        return None
    best: Optional[SwingPoint] = None
    for i in range(max(0, end - lookback), end):
        if best is None or candles[i].high > best.price:
            best = SwingPoint(price=candles[i].high, index=i)
    return best


def find_swing_low(
    candles: Sequence[CandleData],
    start: int,
    end: int,
) -> Optional[SwingPoint]:
    """Lowest low in ``candles[start..end]`` (inclusive)."""
    best: Optional[SwingPoint] = None
    for i in range(start, min(end, len(candles) - 1) + 1):
        if best is None or candles[i].low < best.price:
            best = SwingPoint(price=candles[i].low, index=i)
    return best


def _pullback_rvol(candles: Sequence[CandleData]) -> float:
    # Average over the trailing 20 bars including the current one.
    window = candles[-20:]
    average = sum(c.volume for c in window) / len(window)
    if average <= 0:
        return 1.0
    return candles[-1].volume / average


class ClassicPullbackStrategy:
    """Pullback-to-trend continuation.

    Flow:
        1. Trend filter: every close of the last ``trend_bars + 1`` bars at
           or above EMA9 and EMA21, and EMA9 > EMA21.
        2. Swing high in the ``impulse_lookback`` bars before the current bar.
        3. Swing low in the lookback before the swing high.
        4. Impulse leg of at least ``impulse_min_move_percent``.
        5. Pullback no deeper than ``pullback_depth_percent`` and lasting
           ``pullback_bars_min``..``pullback_bars_max`` bars.
        6. TRIGGERED when the current bar clears the pullback high on
           ``volume_multiplier`` × volume, READY otherwise.
    """

    id = "CLASSIC_PULLBACK"
    name = "Classic Pullback"
    description = (
        "Stocks in uptrends that pull back to support and set up for continuation."
    )
    category = "swing"
    timeframes_supported = ("15m", "1h", "1d")
    stages = PULLBACK_STAGES
    default_config = StrategyConfig(
        trend_bars=20,
        pullback_bars_min=8,
        pullback_bars_max=20,
        pullback_depth_percent=2.5,
        impulse_min_move_percent=3.0,
        impulse_lookback=60,
        volume_multiplier=1.5,
    )
    stage_labels = {
        FORMING: StageLabel("Forming", "Trend or pullback conditions not yet met"),
        READY: StageLabel("Ready", "Shallow pullback in an uptrend, waiting for volume"),
        TRIGGERED: StageLabel("Triggered", "Pullback high cleared on volume"),
    }

    def scan(
        self,
        symbol: str,
        candles: Sequence[CandleData],
        timeframe: str,
        config: StrategyConfig | dict | None = None,
        quote: Optional[Quote] = None,
    ) -> Optional[ScanResult]:
        cfg = self.default_config.merge(config)
        if len(candles) < cfg.trend_bars + cfg.pullback_bars_max:
            return None

        closes = [c.close for c in candles]
        ema9 = calculate_ema(closes, 9)
        ema21 = calculate_ema(closes, 21)
        last_idx = len(candles) - 1
        current = candles[-1]
        rvol = _pullback_rvol(candles)

        def result(stage: str, raw: float, levels: Levels, text: str) -> ScanResult:
            return ScanResult(
                symbol=symbol,
                name=quote.symbol if quote else symbol,
                price=current.close,
                strategy_id=self.id,
                stage=stage,
                score=clamp_score(raw),
                levels=levels,
                ema9=ema9[-1],
                ema21=ema21[-1],
                rvol=rvol,
                atr=calculate_atr(candles)[-1],
                explanation=with_disclaimer(text),
            )

        fallback = self._fallback_levels(current, quote)

        trend_start = max(0, last_idx - cfg.trend_bars)
        trend_valid = all(
            candles[i].close >= ema9[i] and candles[i].close >= ema21[i]
            for i in range(trend_start, last_idx + 1)
        )
        if not trend_valid or ema9[-1] <= ema21[-1]:
            return result(
                FORMING, 30, fallback,
                "Trend filter not met. Price needs to be above both EMAs with "
                "EMA9 > EMA21.",
            )

        swing_high = find_swing_high(candles, cfg.impulse_lookback, end=last_idx)
        if swing_high is None:
            return result(
                FORMING, 35, fallback, "No clear swing high found in lookback period."
            )

        swing_low = find_swing_low(
            candles, max(0, swing_high.index - cfg.impulse_lookback), swing_high.index
        )
        if swing_low is None or swing_low.price <= 0:
            return result(
                FORMING, 35, fallback, "No swing low found before swing high."
            )

        impulse = (swing_high.price - swing_low.price) / swing_low.price * 100
        if impulse < cfg.impulse_min_move_percent:
            return result(
                FORMING, 40, fallback,
                f"Impulse move of {impulse:.1f}% is below minimum "
                f"{cfg.impulse_min_move_percent}%.",
            )

        depth = (swing_high.price - current.close) / swing_high.price * 100
        if depth > cfg.pullback_depth_percent:
            return result(
                FORMING, 45, fallback,
                f"Pullback depth of {depth:.1f}% exceeds maximum "
                f"{cfg.pullback_depth_percent}%.",
            )

        pullback_bars = last_idx - swing_high.index
        if not cfg.pullback_bars_min <= pullback_bars <= cfg.pullback_bars_max:
            return result(
                FORMING, 50, fallback,
                f"Pullback duration of {pullback_bars} bars outside range "
                f"{cfg.pullback_bars_min}-{cfg.pullback_bars_max}.",
            )

        resistance = max(c.high for c in candles[swing_high.index:last_idx])
        stop = current.low * 0.995
        levels = Levels(
            resistance=resistance,
            entry_trigger=resistance,
            stop_level=stop,
            exit_rule=EXIT_RULE,
        )

        cleared = current.close > resistance or current.high > resistance
        if cleared and rvol >= cfg.volume_multiplier:
            return result(
                TRIGGERED, 85 + math.floor(rvol * 3), levels,
                f"Breakout triggered! Price crossed {resistance:.2f} with "
                f"{rvol:.1f}x volume. Stop at {stop:.2f}.",
            )

        return result(
            READY,
            min(90, 70 + math.floor((cfg.pullback_depth_percent - depth) * 5)),
            levels,
            f"Pullback setup ready. Resistance at {resistance:.2f}. Waiting for "
            f"volume breakout ({cfg.volume_multiplier}x avg).",
        )

    @staticmethod
    def _fallback_levels(current: CandleData, quote: Optional[Quote]) -> Levels:
        high = quote.high if quote and quote.high > 0 else current.high
        low = quote.low if quote and quote.low > 0 else current.low
        return Levels(
            resistance=high,
            entry_trigger=high,
            stop_level=low * 0.995,
            exit_rule=EXIT_RULE,
        )
