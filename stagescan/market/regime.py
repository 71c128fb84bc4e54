"""Market regime classifier — trend / chop / risk-off from a benchmark series.

Pure functions.  The regime feeds the confluence aggregator as a per-strategy
score adjustment.
"""

import math
from dataclasses import dataclass
from typing import Literal, Sequence

from stagescan.strategy.indicators import calculate_ema, calculate_ema_slope
from stagescan.strategy.models import CandleData

TRENDING = "TRENDING"
CHOPPY = "CHOPPY"
RISK_OFF = "RISK_OFF"

Regime = Literal["TRENDING", "CHOPPY", "RISK_OFF"]
REGIMES: tuple[str, ...] = (TRENDING, CHOPPY, RISK_OFF)

MIN_BARS = 30
CROSS_LOOKBACK = 20
MAX_TREND_CROSSES = 3

TREND_FOLLOWING = frozenset({"VCP", "VCP_MULTIDAY", "TREND_CONTINUATION", "GAP_AND_GO"})
CHOP_SENSITIVE = frozenset({"VCP", "VCP_MULTIDAY", "ORB5", "ORB15", "HIGH_RVOL"})


@dataclass(frozen=True)
class RegimeAnalysis:
    """Regime label with the measurements behind it."""

    regime: str
    strength: int
    ema21_slope: float
    price_vs_ema21: float
    description: str

    def to_dict(self) -> dict:
        return {
            "regime": self.regime,
            "strength": self.strength,
            "ema21Slope": self.ema21_slope,
            "priceVsEma21": self.price_vs_ema21,
            "description": self.description,
        }


def count_ema_crosses(
    closes: Sequence[float],
    ema: Sequence[float],
    lookback: int = CROSS_LOOKBACK,
) -> int:
    """Number of times the close flips sides of the EMA in the trailing window.

    A window of ``lookback`` bars has ``lookback - 1`` adjacent pairs.
    """
    n = len(closes)
    crosses = 0
    for i in range(n - min(lookback, n), n - 1):
        if (closes[i] > ema[i]) != (closes[i + 1] > ema[i + 1]):
            crosses += 1
    return crosses


def classify_market_regime(candles: Sequence[CandleData]) -> RegimeAnalysis:
    """Classify the regime of a benchmark series.

    TRENDING:  price > 0.5% above EMA21, EMA21 5-bar slope > 0.1%, <= 3 crosses.
    RISK_OFF:  price > 0.5% below EMA21, slope < -0.1%, <= 3 crosses.
    CHOPPY:    everything else, including fewer than 30 bars.

    Strength is ``min(100, |slope|×20 + |priceVsEma21|×10)`` for the
    directional regimes and ``min(100, crosses×15)`` for chop.
    """
    if len(candles) < MIN_BARS:
        return RegimeAnalysis(
            regime=CHOPPY,
            strength=0,
            ema21_slope=0.0,
            price_vs_ema21=0.0,
            description="Insufficient data for regime classification",
        )

    closes = [c.close for c in candles]
    ema21 = calculate_ema(closes, 21)
    price = closes[-1]
    current_ema = ema21[-1]
    slope = calculate_ema_slope(ema21, 5)
    price_vs_ema = (price - current_ema) / current_ema * 100 if current_ema else 0.0
    crosses = count_ema_crosses(closes, ema21)

    if price_vs_ema > 0.5 and slope > 0.1 and crosses <= MAX_TREND_CROSSES:
        regime = TRENDING
        strength = min(100.0, abs(slope) * 20 + abs(price_vs_ema) * 10)
        description = "Bullish trend: Price above EMA21 with upward slope"
    elif price_vs_ema < -0.5 and slope < -0.1 and crosses <= MAX_TREND_CROSSES:
        regime = RISK_OFF
        strength = min(100.0, abs(slope) * 20 + abs(price_vs_ema) * 10)
        description = "Risk-off: Price below EMA21 with downward slope"
    else:
        regime = CHOPPY
        strength = min(100.0, crosses * 15.0)
        description = "Choppy: Frequent crosses around EMA21, low directional conviction"

    return RegimeAnalysis(
        regime=regime,
        strength=int(math.floor(strength + 0.5)),
        ema21_slope=round(slope, 2),
        price_vs_ema21=round(price_vs_ema, 2),
        description=description,
    )


def get_regime_adjustment(regime: str, strategy_id: str) -> int:
    """Fixed score adjustment for *strategy_id* under *regime*.

    Unknown regimes adjust by 0.
    """
    if regime == TRENDING:
        return 10 if strategy_id in TREND_FOLLOWING else 0
    if regime == CHOPPY:
        return -15 if strategy_id in CHOP_SENSITIVE else -5
    if regime == RISK_OFF:
        return -20
    return 0
