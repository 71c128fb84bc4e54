"""Volatility squeeze — Bollinger Bands inside Keltner Channels, then expansion."""

from typing import Optional, Sequence

from stagescan.strategy.base import clamp_score, with_disclaimer
from stagescan.strategy.indicators import (
    Bands,
    SqueezeState,
    calculate_bollinger,
    calculate_ema,
    calculate_keltner,
    calculate_rvol,
    detect_squeeze,
    find_consolidation_range,
)
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


def _drop_last(bands: Bands) -> Bands:
    return Bands(upper=bands.upper[:-1], middle=bands.middle[:-1], lower=bands.lower[:-1])


def squeeze_state(bb: Bands, kc: Bands, min_bars: int) -> SqueezeState:
    """Squeeze on the current bar, or the one that just fired on it.

    When the current bar has already broken containment its count is 0;
    the squeeze that ended on the previous bar is reported instead.
    """
    state = detect_squeeze(bb, kc, min_bars)
    if state.count == 0 and len(bb.upper) > 1:
        state = detect_squeeze(_drop_last(bb), _drop_last(kc), min_bars)
    return state


class VolatilitySqueezeStrategy:
    """TTM-style squeeze breakout.

    Flow:
        1. BB(20, 2) and KC(20, 1.5); need the squeeze on or at least
           three contained bars.
        2. Range = 10-bar consolidation before the current bar.
        3. BREAKOUT above the range or upper band on volume, READY above
           without volume or squeezed near the range high, FORMING while
           the squeeze is on.
    """

    id = "VOLATILITY_SQUEEZE"
    name = "Volatility Squeeze"
    description = (
        "Squeeze setups where Bollinger Bands sit inside Keltner Channels."
    )
    category = "breakout"
    timeframes_supported = ("5m", "15m", "1h", "1d")
    stages = CONTRACTION_STAGES
    default_config = StrategyConfig(
        squeeze_bars=5,
        rvol_threshold=1.3,
    )
    stage_labels = {
        FORMING: StageLabel("Squeeze On", "Bollinger Bands inside Keltner Channels, volatility contracting"),
        READY: StageLabel("Squeeze Firing", "Near breakout level, squeeze about to fire"),
        BREAKOUT: StageLabel("Breakout", "Breakout from squeeze with volume expansion"),
    }

    MIN_BARS = 30
    MIN_SQUEEZE_COUNT = 3
    RANGE_LOOKBACK = 10

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
        ema21 = calculate_ema(closes, 21)[-1]
        bb = calculate_bollinger(closes, 20, 2.0)
        kc = calculate_keltner(candles, 20, 1.5)
        rvol = calculate_rvol(candles)

        squeeze = squeeze_state(bb, kc, cfg.squeeze_bars)
        if not squeeze.squeeze_on and squeeze.count < self.MIN_SQUEEZE_COUNT:
            return None

        consolidation = find_consolidation_range(candles[:-1], self.RANGE_LOOKBACK)
        range_high = consolidation.high if consolidation else bb.upper[-1]
        range_low = consolidation.low if consolidation else bb.lower[-1]

        price = closes[-1]
        broke_out = price > bb.upper[-1] or price > range_high
        near = price > range_high * 0.99
        has_volume = rvol >= cfg.rvol_threshold
        count = squeeze.count

        if broke_out and has_volume:
            stage = BREAKOUT
            raw = 70 + min(30.0, count * 3 + (rvol - 1.3) * 10)
        elif broke_out:
            stage = READY
            raw = 55 + min(15.0, count * 2)
        elif squeeze.squeeze_on and near:
            stage = READY
            raw = 50 + min(20.0, count * 2 + rvol * 3)
        elif squeeze.squeeze_on:
            stage = FORMING
            raw = 35 + min(15.0, count * 2)
        else:
            return None

        stop = min(range_low, ema21 * 0.99)
        return ScanResult(
            symbol=symbol,
            name=quote.symbol if quote else symbol,
            price=price,
            strategy_id=self.id,
            stage=stage,
            score=clamp_score(raw),
            levels=Levels(
                resistance=range_high,
                support=range_low,
                entry_trigger=range_high,
                stop_level=stop,
                exit_rule="Close back inside range or below EMA21",
            ),
            ema21=ema21,
            rvol=rvol,
            explanation=with_disclaimer(
                f"Volatility Squeeze {stage}: Price {price:.2f} after {count} "
                f"squeezed bars. Entry: {range_high:.2f}, Stop: {stop:.2f}. "
                f"RVOL: {rvol:.1f}x."
            ),
        )
