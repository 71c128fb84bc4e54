"""Backtest entry predicates — one simplified entry rule per strategy.

Each predicate answers "would this strategy enter long at the close of bar
``i``?" using only bars ``0..i``.  Indicator series are computed once per
run in ``EntrySeries``; per-bar windows (RVOL, rolling VWAP, prior highs)
are sliced from the candles.
"""

from dataclasses import dataclass
from typing import Callable, Sequence

from stagescan.strategy.indicators import (
    Bands,
    calculate_bollinger,
    calculate_ema,
    calculate_gap_percent,
    calculate_keltner,
    calculate_rvol,
    calculate_vwap,
    find_consolidation_range,
)
from stagescan.strategy.models import CandleData

RVOL_PERIOD = 20
BREAKOUT_LOOKBACK = 20
VWAP_WINDOW = 20


@dataclass(frozen=True)
class EntrySeries:
    """Full-length indicator series for one backtest run."""

    candles: Sequence[CandleData]
    closes: list[float]
    ema9: list[float]
    ema21: list[float]
    ema50: list[float]
    bollinger: Bands
    squeeze_counts: list[int]


def squeeze_counts(bb: Bands, kc: Bands) -> list[int]:
    """Per-bar length of the run of consecutive BB-inside-KC bars ending there."""
    counts: list[int] = []
    run = 0
    for i in range(len(bb.upper)):
        if bb.upper[i] <= kc.upper[i] and bb.lower[i] >= kc.lower[i]:
            run += 1
        else:
            run = 0
        counts.append(run)
    return counts


def build_series(candles: Sequence[CandleData]) -> EntrySeries:
    closes = [c.close for c in candles]
    bb = calculate_bollinger(closes, 20, 2.0)
    kc = calculate_keltner(candles, 20, 1.5)
    return EntrySeries(
        candles=candles,
        closes=closes,
        ema9=calculate_ema(closes, 9),
        ema21=calculate_ema(closes, 21),
        ema50=calculate_ema(closes, 50),
        bollinger=bb,
        squeeze_counts=squeeze_counts(bb, kc),
    )


def rvol_at(candles: Sequence[CandleData], i: int) -> float:
    """RVOL of bar *i* against the 20 bars before it."""
    return calculate_rvol(candles[max(0, i - RVOL_PERIOD) : i + 1], RVOL_PERIOD)


def _prior_high(candles: Sequence[CandleData], i: int, bars: int) -> float:
    return max(c.high for c in candles[max(0, i - bars) : i])


# ── Predicates ───────────────────────────────────────────────────────────


def vcp_entry(s: EntrySeries, i: int) -> bool:
    close = s.closes[i]
    return (
        close > _prior_high(s.candles, i, BREAKOUT_LOOKBACK)
        and rvol_at(s.candles, i) >= 1.5
        and s.ema9[i] > s.ema21[i]
        and close > s.ema21[i]
    )


def pullback_entry(s: EntrySeries, i: int) -> bool:
    prev = s.candles[i - 1]
    return (
        s.ema9[i] > s.ema21[i] > s.ema50[i]
        and prev.low <= s.ema21[i - 1] * 1.01
        and s.closes[i] > prev.high
    )


def trend_continuation_entry(s: EntrySeries, i: int) -> bool:
    touched = any(
        s.candles[k].low <= s.ema9[k] * 1.01 for k in range(max(0, i - 2), i + 1)
    )
    return (
        s.closes[i] > s.ema21[i] > s.ema50[i]
        and touched
        and s.closes[i] > s.candles[i - 1].high
        and rvol_at(s.candles, i) >= 1.3
    )


def vwap_reclaim_entry(s: EntrySeries, i: int) -> bool:
    window = s.candles[max(0, i - VWAP_WINDOW + 1) : i + 1]
    vwap = calculate_vwap(window)[-1]
    return (
        s.closes[i - 1] < vwap < s.closes[i]
        and s.closes[i] > s.ema21[i]
        and rvol_at(s.candles, i) >= 1.5
    )


def _orb_entry(range_bars: int) -> Callable[[EntrySeries, int], bool]:
    def predicate(s: EntrySeries, i: int) -> bool:
        return (
            s.closes[i] > _prior_high(s.candles, i, range_bars)
            and rvol_at(s.candles, i) >= 1.5
            and s.closes[i] > s.ema21[i]
        )

    return predicate


def high_rvol_entry(s: EntrySeries, i: int) -> bool:
    consolidation = find_consolidation_range(s.candles[max(0, i - 10) : i], 10)
    if consolidation is None:
        return False
    return (
        consolidation.range_percent < 5
        and s.closes[i] > consolidation.high
        and rvol_at(s.candles, i) >= 2.0
    )


def gap_and_go_entry(s: EntrySeries, i: int) -> bool:
    bar = s.candles[i]
    return (
        calculate_gap_percent(bar.open, s.closes[i - 1]) >= 2.0
        and bar.close > bar.open
        and rvol_at(s.candles, i) >= 1.5
    )


def squeeze_entry(s: EntrySeries, i: int) -> bool:
    return (
        s.squeeze_counts[i - 1] >= 5
        and s.closes[i] > s.bollinger.upper[i]
        and rvol_at(s.candles, i) >= 1.3
    )


ENTRY_PREDICATES: dict[str, Callable[[EntrySeries, int], bool]] = {
    "VCP": vcp_entry,
    "VCP_MULTIDAY": vcp_entry,
    "CLASSIC_PULLBACK": pullback_entry,
    "TREND_CONTINUATION": trend_continuation_entry,
    "VWAP_RECLAIM": vwap_reclaim_entry,
    "ORB5": _orb_entry(1),
    "ORB15": _orb_entry(3),
    "HIGH_RVOL": high_rvol_entry,
    "GAP_AND_GO": gap_and_go_entry,
    "VOLATILITY_SQUEEZE": squeeze_entry,
}


def get_entry_predicate(strategy_id: str) -> Callable[[EntrySeries, int], bool]:
    """Raises ``KeyError`` if the strategy has no entry rule."""
    if strategy_id not in ENTRY_PREDICATES:
        raise KeyError(
            f"Unknown strategy '{strategy_id}'. "
            f"Available: {', '.join(ENTRY_PREDICATES.keys())}"
        )
    return ENTRY_PREDICATES[strategy_id]
