"""Opening range breakout — 5 and 15 minute variants."""

from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.indicators import calculate_rvol, detect_opening_range
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


class ORBStrategy:
    """Breakout above the high of the first *minutes* of trading.

    Flow:
        1. Opening range over ``opening_range_minutes`` (5-minute bars).
        2. Skip degenerate ranges, ranges wider than 5%, and windows with
           no bar after the range.
        3. TRIGGERED above the range high on volume, READY above it without
           volume, FORMING within 0.5% below it; anything else is None.
    """

    category = "intraday"
    timeframes_supported = ("1m", "5m")
    stages = PULLBACK_STAGES
    stage_labels = {
        FORMING: StageLabel("Forming", "Price within opening range, watching for breakout"),
        READY: StageLabel("Ready", "Price broke opening range, awaiting volume confirmation"),
        TRIGGERED: StageLabel("Triggered", "Opening range breakout confirmed with volume"),
    }

    MIN_BARS = 3
    MAX_RANGE_PCT = 5.0
    NEAR_BREAKOUT_FACTOR = 0.995

    def __init__(self, minutes: int) -> None:
        self.minutes = minutes
        self.id = f"ORB{minutes}"
        self.name = f"ORB {minutes}m"
        self.description = (
            f"Opening range breakout using the first {minutes} minutes of trading."
        )
        self.default_config = StrategyConfig(
            opening_range_minutes=minutes,
            rvol_threshold=1.5,
        )

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
        or_high, or_low = opening.high, opening.low
        if or_high <= or_low or or_low <= 0:
            return None
        if (or_high - or_low) / or_low * 100 > self.MAX_RANGE_PCT:
            return None
        if len(candles) - 1 <= opening.range_index:
            return None

        current = candles[-1]
        price = current.close
        rvol = calculate_rvol(candles)
        has_volume = rvol >= cfg.rvol_threshold

        if price > or_high and has_volume:
            stage = TRIGGERED
            raw = 70 + min(30.0, (rvol - 1.5) * 15)
        elif price > or_high:
            stage = READY
            raw = 55 + min(15.0, rvol * 5)
        elif price > or_high * self.NEAR_BREAKOUT_FACTOR:
            stage = FORMING
            position = (price - or_low) / (or_high - or_low)
            raw = 40 + min(15.0, position * 15)
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
                resistance=or_high,
                support=or_low,
                entry_trigger=or_high,
                stop_level=min(or_low, current.low),
                exit_rule=f"Close below OR low ({or_low:.2f})",
                opening_range_high=or_high,
                opening_range_low=or_low,
            ),
            rvol=rvol,
            explanation=with_disclaimer(
                f"ORB{self.minutes} {stage}: OR High: {or_high:.2f}, "
                f"OR Low: {or_low:.2f}. RVOL: {rvol:.1f}x."
            ),
        )
