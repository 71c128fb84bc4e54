"""Technical indicators — EMA, SMA, VWAP, ATR, RVOL, Bollinger, Keltner, squeeze.

Pure functions, no I/O.  Every function is total over short input: series
shorter than the requested period produce zero-filled (or neutral) output
instead of raising.  Only malformed arguments raise ``InvalidArgumentError``.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from stagescan.errors import InvalidArgumentError
from stagescan.strategy.models import CandleData


def _require_positive(name: str, value: float) -> None:
    if value < 1:
        raise InvalidArgumentError(f"{name} must be >= 1, got {value}")


# ── Moving averages ──────────────────────────────────────────────────────


def calculate_ema(values: Sequence[float], period: int) -> list[float]:
    """Calculate an Exponential Moving Average series.

    Uses the standard EMA formula:
        ``EMA_today = value × k + EMA_yesterday × (1 - k)``
    where ``k = 2 / (period + 1)``.

    Indices before ``period - 1`` hold the running simple average of the
    values seen so far; index ``period - 1`` is the SMA seed.  When fewer
    than *period* values are supplied the whole series is ``0.0``.
    """
    _require_positive("period", period)
    n = len(values)
    ema: list[float] = [0.0] * n
    if n < period:
        return ema

    k = 2.0 / (period + 1)
    total = 0.0
    for i in range(period):
        total += values[i]
        ema[i] = total / (i + 1)

    for i in range(period, n):
        ema[i] = values[i] * k + ema[i - 1] * (1 - k)

    return ema


def calculate_sma(values: Sequence[float], period: int) -> list[float]:
    """Trailing simple mean; ``0.0`` for indices before ``period - 1``."""
    _require_positive("period", period)
    n = len(values)
    sma: list[float] = [0.0] * n
    for i in range(period - 1, n):
        window = values[i - period + 1 : i + 1]
        sma[i] = sum(window) / period
    return sma


def calculate_vwap(candles: Sequence[CandleData]) -> list[float]:
    """Cumulative volume-weighted average price over the supplied window.

    Typical price is ``(high + low + close) / 3``.  The accumulation starts
    at the first candle; session resets are the caller's concern.  While
    cumulative volume is zero the bar's close is reported.
    """
    vwap: list[float] = []
    cumulative_tpv = 0.0
    cumulative_volume = 0.0
    for c in candles:
        typical = (c.high + c.low + c.close) / 3
        cumulative_tpv += typical * c.volume
        cumulative_volume += c.volume
        vwap.append(
            cumulative_tpv / cumulative_volume if cumulative_volume > 0 else c.close
        )
    return vwap


# ── Volatility / volume ──────────────────────────────────────────────────


def calculate_atr(candles: Sequence[CandleData], period: int = 14) -> list[float]:
    """Calculate Wilder's Average True Range series.

    True Range:
        TR = max(high - low, |high - prev_close|, |low - prev_close|)
    The first bar has no previous close, so its TR is ``high - low``.

    The seed at index ``period - 1`` is the simple average of the first
    *period* true ranges; afterwards
    ``atr[i] = (atr[i-1] × (period - 1) + tr[i]) / period``.
    Entries before the seed are ``0.0``.
    """
    _require_positive("period", period)
    n = len(candles)
    atr: list[float] = [0.0] * n
    true_ranges: list[float] = []

    for i in range(n):
        c = candles[i]
        if i == 0:
            tr = c.high - c.low
        else:
            prev_close = candles[i - 1].close
            tr = max(
                c.high - c.low,
                abs(c.high - prev_close),
                abs(c.low - prev_close),
            )
        true_ranges.append(tr)

        if i == period - 1:
            atr[i] = sum(true_ranges) / period
        elif i >= period:
            atr[i] = (atr[i - 1] * (period - 1) + tr) / period

    return atr


def calculate_rvol(candles: Sequence[CandleData], period: int = 20) -> float:
    """Relative volume of the last bar versus the *period* bars before it.

    Returns ``1.0`` when there are fewer than ``period + 1`` bars or the
    trailing average is zero, so the result is never NaN or infinite.
    """
    _require_positive("period", period)
    if len(candles) < period + 1:
        return 1.0

    current = candles[-1].volume
    trailing = candles[-period - 1 : -1]
    average = sum(c.volume for c in trailing) / period
    if average <= 0:
        return 1.0
    return current / average


# ── Bands ────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Bands:
    """Upper / middle / lower series of a channel indicator."""

    upper: list[float]
    middle: list[float]
    lower: list[float]


def calculate_bollinger(
    closes: Sequence[float],
    period: int = 20,
    std_mult: float = 2.0,
) -> Bands:
    """Calculate Bollinger Bands.

    Middle = SMA(close, *period*)
    Upper  = middle + *std_mult* × σ
    Lower  = middle − *std_mult* × σ

    σ is the population standard deviation of the window.  Entries before
    ``period - 1`` are ``0.0``.
    """
    middle = calculate_sma(closes, period)
    n = len(closes)
    upper: list[float] = [0.0] * n
    lower: list[float] = [0.0] * n

    for i in range(period - 1, n):
        window = closes[i - period + 1 : i + 1]
        variance = sum((x - middle[i]) ** 2 for x in window) / period
        sigma = math.sqrt(variance)
        upper[i] = middle[i] + std_mult * sigma
        lower[i] = middle[i] - std_mult * sigma

    return Bands(upper=upper, middle=middle, lower=lower)


def calculate_keltner(
    candles: Sequence[CandleData],
    period: int = 20,
    atr_mult: float = 1.5,
) -> Bands:
    """Keltner Channels: EMA(close, *period*) ± *atr_mult* × ATR(*period*)."""
    closes = [c.close for c in candles]
    middle = calculate_ema(closes, period)
    atr = calculate_atr(candles, period)
    upper = [m + atr_mult * a for m, a in zip(middle, atr)]
    lower = [m - atr_mult * a for m, a in zip(middle, atr)]
    return Bands(upper=upper, middle=middle, lower=lower)


@dataclass(frozen=True)
class SqueezeState:
    """Result of a Bollinger-inside-Keltner scan."""

    squeeze_on: bool
    count: int
    start_index: int  # -1 when count is 0


def detect_squeeze(bb: Bands, kc: Bands, min_bars: int = 5) -> SqueezeState:
    """Count trailing consecutive bars with the Bollinger Bands inside Keltner.

    Scans backward from the most recent bar and stops at the first bar
    where ``bb.upper > kc.upper`` or ``bb.lower < kc.lower``.  The squeeze
    is on once the count reaches *min_bars*.
    """
    _require_positive("min_bars", min_bars)
    count = 0
    start_index = -1
    for i in range(len(bb.upper) - 1, -1, -1):
        if bb.upper[i] <= kc.upper[i] and bb.lower[i] >= kc.lower[i]:
            count += 1
            start_index = i
        else:
            break
    return SqueezeState(
        squeeze_on=count >= min_bars,
        count=count,
        start_index=start_index,
    )


# ── Ranges ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class OpeningRange:
    """High / low of the opening bars and the index of the last range bar."""

    high: float
    low: float
    range_index: int


def detect_opening_range(
    candles: Sequence[CandleData],
    minutes_after_open: int = 5,
) -> Optional[OpeningRange]:
    """High / low over the first ``ceil(minutes_after_open / 5)`` bars.

    Bars are assumed to be 5-minute bars.  If fewer bars exist than
    required, every available bar is used.  Returns ``None`` for an empty
    window.
    """
    _require_positive("minutes_after_open", minutes_after_open)
    if not candles:
        return None

    bars_needed = math.ceil(minutes_after_open / 5)
    if len(candles) < bars_needed:
        return OpeningRange(
            high=max(c.high for c in candles),
            low=min(c.low for c in candles),
            range_index=len(candles) - 1,
        )

    window = candles[:bars_needed]
    return OpeningRange(
        high=max(c.high for c in window),
        low=min(c.low for c in window),
        range_index=bars_needed - 1,
    )


def calculate_gap_percent(current_open: float, previous_close: float) -> float:
    """Percentage gap from *previous_close* to *current_open* (0 if no close)."""
    if previous_close == 0:
        return 0.0
    return (current_open - previous_close) / previous_close * 100


@dataclass(frozen=True)
class ConsolidationRange:
    """High / low of a trailing window and its width relative to the midpoint."""

    high: float
    low: float
    range_percent: float


def find_consolidation_range(
    candles: Sequence[CandleData],
    lookback: int = 10,
) -> Optional[ConsolidationRange]:
    """High, low and percent width of the trailing *lookback* bars.

    Returns ``None`` if there are fewer than *lookback* candles.
    """
    _require_positive("lookback", lookback)
    if len(candles) < lookback:
        return None

    recent = candles[-lookback:]
    high = max(c.high for c in recent)
    low = min(c.low for c in recent)
    mid = (high + low) / 2
    range_percent = (high - low) / mid * 100 if mid != 0 else 0.0
    return ConsolidationRange(high=high, low=low, range_percent=range_percent)


# ── Trend helpers ────────────────────────────────────────────────────────


def calculate_ema_slope(ema: Sequence[float], bars: int = 5) -> float:
    """Percent change of the EMA over the last *bars* bars.

    Returns ``0.0`` with insufficient history or a zero reference value.
    """
    _require_positive("bars", bars)
    if len(ema) < bars + 1:
        return 0.0
    current = ema[-1]
    previous = ema[-bars - 1]
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def is_trending(
    closes: Sequence[float],
    ema: Sequence[float],
    min_bars_above: int = 5,
) -> bool:
    """``True`` only if each of the last *min_bars_above* closes is above the EMA.

    A close equal to the EMA does not count as above.
    """
    _require_positive("min_bars_above", min_bars_above)
    if len(closes) < min_bars_above or len(ema) < min_bars_above:
        return False
    for close, value in zip(closes[-min_bars_above:], ema[-min_bars_above:]):
        if close <= value:
            return False
    return True
