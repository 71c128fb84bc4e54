"""Volatility contraction detection — pure functions over candle windows.

A contraction is a run of bars whose combined high-low range, relative to
the run's high, stays under a ceiling.  A base is "contracting" when each
successive contraction is at least 5% tighter than the one before it.
"""

from dataclasses import dataclass
from typing import Sequence

from stagescan.errors import InvalidArgumentError
from stagescan.strategy.models import CandleData

# Each contraction must be tighter than this fraction of the previous one.
TIGHTENING_FACTOR = 0.95


@dataclass(frozen=True)
class Contraction:
    """One contraction window ``[start_index, end_index]`` (inclusive)."""

    start_index: int
    end_index: int
    high: float
    low: float
    range_percent: float


def find_contractions(
    candles: Sequence[CandleData],
    min_bars: int = 5,
    max_bars: int = 30,
    max_range_percent: float = 15.0,
) -> list[Contraction]:
    """Detect non-overlapping contraction windows, left to right.

    Flow:
        1. From a start bar ``i`` the window grows one bar at a time while
           it spans fewer than *max_bars* bars.  The first end bar ``j``
           with ``j - i >= min_bars`` and a range under *max_range_percent*
           closes a window, and scanning resumes at ``j + 1``.  If no end
           bar qualifies, scanning resumes at ``i + 1``.
        2. Back-to-back windows of the same width are joined, so a
           consolidation longer than ``min_bars + 1`` bars is reported
           once at its full length (see ``_join_consolidation``).

    Returns an empty list when there are fewer than ``2 × min_bars`` bars.
    """
    if min_bars < 1 or max_bars <= min_bars:
        raise InvalidArgumentError(
            f"Need 1 <= min_bars < max_bars, got min_bars={min_bars}, "
            f"max_bars={max_bars}"
        )
    n = len(candles)
    if n < min_bars * 2:
        return []

    windows: list[Contraction] = []
    i = 0
    while i < n - min_bars:
        high = candles[i].high
        low = candles[i].low
        found = False
        j = i + 1
        while j < n and j - i < max_bars:
            high = max(high, candles[j].high)
            low = min(low, candles[j].low)
            if high > 0 and j - i >= min_bars:
                range_percent = (high - low) / high * 100
                if range_percent < max_range_percent:
                    windows.append(Contraction(
                        start_index=i,
                        end_index=j,
                        high=high,
                        low=low,
                        range_percent=range_percent,
                    ))
                    found = True
                    break
            j += 1
        i = j + 1 if found else i + 1

    contractions: list[Contraction] = []
    for window in windows:
        joined = None
        if contractions:
            joined = _join_consolidation(contractions[-1], window, max_range_percent)
        if joined is not None:
            contractions[-1] = joined
        else:
            contractions.append(window)
    return contractions


def _join_consolidation(
    previous: Contraction,
    current: Contraction,
    max_range_percent: float,
) -> Contraction | None:
    """Join two adjacent windows that belong to the same consolidation.

    They are joined when *current* starts right after *previous*, is not
    tighter than it by the tightening factor, and the combined range stays
    within ``1 / TIGHTENING_FACTOR`` of *previous* and under the ceiling.
    Returns ``None`` when the windows stay separate.
    """
    if current.start_index != previous.end_index + 1:
        return None
    if current.range_percent < previous.range_percent * TIGHTENING_FACTOR:
        return None

    high = max(previous.high, current.high)
    low = min(previous.low, current.low)
    range_percent = (high - low) / high * 100
    if range_percent >= max_range_percent:
        return None
    if range_percent * TIGHTENING_FACTOR > previous.range_percent:
        return None

    return Contraction(
        start_index=previous.start_index,
        end_index=current.end_index,
        high=high,
        low=low,
        range_percent=range_percent,
    )


def contraction_run(contractions: Sequence[Contraction]) -> int:
    """Length of the trailing run of successively tighter contractions.

    Walks backward from the most recent contraction while each one is
    tighter than ``TIGHTENING_FACTOR`` × the previous.  A single
    contraction is a run of 1; no contractions is 0.
    """
    if not contractions:
        return 0
    run = 1
    for k in range(len(contractions) - 1, 0, -1):
        if contractions[k].range_percent < contractions[k - 1].range_percent * TIGHTENING_FACTOR:
            run += 1
        else:
            break
    return run


def is_volatility_contracting(contractions: Sequence[Contraction]) -> bool:
    """``True`` when there are at least two contractions and every one is
    tighter than ``TIGHTENING_FACTOR`` × the one before it."""
    if len(contractions) < 2:
        return False
    return contraction_run(contractions) == len(contractions)
