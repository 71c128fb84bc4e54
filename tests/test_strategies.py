"""Deterministic tests for the strategy plugins.

All tests use fixed candle fixtures. Same input = same output, always.
"""

from datetime import date, timedelta

import pytest

from stagescan.market.confluence import aggregate_confluence
from stagescan.strategy import vcp_multiday
from stagescan.strategy.classic_pullback import ClassicPullbackStrategy, find_swing_high
from stagescan.strategy.contractions import Contraction
from stagescan.strategy.gap_and_go import GapAndGoStrategy
from stagescan.strategy.high_rvol import HighRVOLStrategy
from stagescan.strategy.indicators import Bands, calculate_rvol
from stagescan.strategy.models import (
    BREAKOUT,
    CONTRACTION_STAGES,
    DISCLAIMER,
    FORMING,
    READY,
    TRIGGERED,
    CandleData,
    Quote,
)
from stagescan.strategy.orb import ORBStrategy
from stagescan.strategy.registry import STRATEGY_IDS, get_strategy
from stagescan.strategy.trend_continuation import TrendContinuationStrategy
from stagescan.strategy.vcp import VCPStrategy
from stagescan.strategy.vcp_multiday import VCPMultidayStrategy
from stagescan.strategy.volatility_squeeze import VolatilitySqueezeStrategy, squeeze_state
from stagescan.strategy.vwap_reclaim import VWAPReclaimStrategy


# ── Candle fixtures ──────────────────────────────────────────────────────


def _make_candle(time: str, o: float, h: float, l: float, c: float, vol: float = 1000) -> CandleData:
    return CandleData(time=time, open=o, high=h, low=l, close=c, volume=vol)


def _day(i: int) -> str:
    return (date(2024, 1, 1) + timedelta(days=i)).isoformat()


def _bar(i: int) -> str:
    return f"2025-03-03T{9 + (30 + 5 * i) // 60:02d}:{(30 + 5 * i) % 60:02d}:00Z"


def _make_quote(symbol="TEST", last=100.0, prev_close=100.0, **overrides) -> Quote:
    data = dict(
        symbol=symbol, last=last, change=0.0, change_percent=0.0, volume=1000,
        high=last, low=last, open=last, prev_close=prev_close,
    )
    data.update(overrides)
    return Quote(**data)


def _vcp_fixture(last_close=None, last_volume=3000) -> list[CandleData]:
    """90 daily bars: a 59-bar advance, a 30-bar base of five tightening
    6-bar contractions, then one bar at the end.

    Contraction half-widths 4.0 / 3.0 / 2.2 / 1.5 / 0.9 give ranges of about
    8.4% / 6.5% / 4.9% / 3.5% / 2.3%.  The last contraction's high (the
    pivot) is 100.3.  By default the final bar closes 2% above it on 3×
    volume.
    """
    candles = []
    for i in range(59):
        c = 50 + 0.8 * i
        candles.append(_make_candle(_day(i), c, c + 1, c - 1, c))
    widths = [4.0, 3.0, 2.2, 1.5, 0.9]
    for i in range(59, 89):
        c = 96.4 + 0.1 * (i - 58)
        w = widths[(i - 59) // 6]
        candles.append(_make_candle(_day(i), c, c + w, c - w, c))
    close = 100.3 * 1.02 if last_close is None else last_close
    candles.append(_make_candle(_day(89), close - 0.5, close + 0.3, close - 0.6, close, last_volume))
    return candles


def _two_stage_base(first_bars: int, second_bars: int) -> list[CandleData]:
    """90 daily bars: an advance, a 6.4%-wide consolidation of *first_bars*
    bars, a 3.3%-wide one of *second_bars* bars, then a close at 103 on 3×
    volume.  Both consolidations top out at 101."""
    advance = 89 - first_bars - second_bars
    candles = []
    for i in range(advance):
        c = 40 + 0.9 * i
        candles.append(_make_candle(_day(i), c, c + 0.5, c - 0.5, c))
    for i in range(advance, advance + first_bars):
        candles.append(_make_candle(_day(i), 98, 101, 94.5, 98))
    for i in range(advance + first_bars, 89):
        candles.append(_make_candle(_day(i), 99.5, 101, 97.7, 99.5))
    candles.append(_make_candle(_day(89), 101.5, 103.5, 101.5, 103, 3000))
    return candles


def _flat_zero_volume() -> list[CandleData]:
    return [_make_candle(_day(i), 100, 100, 100, 100, 0) for i in range(5)]


# ── Contract properties ──────────────────────────────────────────────────


class TestStrategyContract:
    def test_flat_zero_volume_series_yields_no_setups(self):
        candles = _flat_zero_volume()
        assert calculate_rvol(candles) == 1
        quote = _make_quote()
        for strategy_id in STRATEGY_IDS:
            assert get_strategy(strategy_id).scan("FLAT", candles, "1d", quote=quote) is None

    @pytest.mark.parametrize("strategy_id", STRATEGY_IDS)
    def test_results_respect_score_and_stage_contract(self, strategy_id):
        strategy = get_strategy(strategy_id)
        quote = _make_quote(last=102.3, prev_close=48.0)
        result = strategy.scan("TEST", _vcp_fixture(), "1d", quote=quote)
        if result is None:
            return
        assert isinstance(result.score, int)
        assert 0 <= result.score <= 100
        assert result.stage in strategy.stages
        assert result.strategy_id == strategy_id
        assert result.explanation.endswith(DISCLAIMER)
        assert result.levels.exit_rule

    @pytest.mark.parametrize("strategy_id", STRATEGY_IDS)
    def test_two_bar_window_yields_none(self, strategy_id):
        candles = _vcp_fixture()[-2:]
        quote = _make_quote(last=102.3, prev_close=90.0)
        assert get_strategy(strategy_id).scan("TEST", candles, "1d", quote=quote) is None

    def test_config_overrides_do_not_mutate_defaults(self):
        strategy = VCPStrategy()
        before = strategy.default_config
        strategy.scan("TEST", _vcp_fixture(), "1d", config={"rvolThreshold": 5.0})
        assert strategy.default_config == before
        assert VCPStrategy.default_config.rvol_threshold == 1.5


# ── VCP ──────────────────────────────────────────────────────────────────


class TestVCP:
    def test_volume_confirmed_breakout(self):
        result = VCPStrategy().scan("TEST", _vcp_fixture(), "1d")
        assert result.stage == BREAKOUT
        assert result.score == 95
        assert result.score >= 85
        assert result.levels.resistance == pytest.approx(100.3)
        assert result.levels.entry_trigger == pytest.approx(100.3)
        assert result.levels.stop_level == pytest.approx(98.0 * 0.99)
        assert result.rvol == pytest.approx(3.0)

    def test_single_result_confluence_equals_score(self):
        result = VCPStrategy().scan("TEST", _vcp_fixture(), "1d")
        verdict = aggregate_confluence("TEST", [result])
        assert verdict.confluence_score == result.score
        assert verdict.adjusted_score == result.score

    def test_breakout_needs_volume(self):
        result = VCPStrategy().scan("TEST", _vcp_fixture(), "1d", config={"rvolThreshold": 4.0})
        assert result.stage != BREAKOUT

    def test_ready_just_under_pivot(self):
        result = VCPStrategy().scan("TEST", _vcp_fixture(last_close=99.5, last_volume=1000), "1d")
        assert result.stage == READY
        # 0.8% below the pivot: 65 + floor(4.2 × 6)
        assert result.score == 90

    @pytest.mark.parametrize("first_bars, second_bars", [(12, 12), (15, 10)])
    def test_breakout_from_long_consolidations(self, first_bars, second_bars):
        result = VCPStrategy().scan("TEST", _two_stage_base(first_bars, second_bars), "1d")
        assert result.stage == BREAKOUT
        # 80 + floor(3.0 × 5)
        assert result.score == 95
        assert result.levels.resistance == pytest.approx(101)
        assert result.levels.stop_level == pytest.approx(97.7 * 0.99)

    def test_no_contractions_returns_none(self):
        candles = []
        price = 100.0
        for i in range(40):
            candles.append(_make_candle(_day(i), price, price, price, price))
            price *= 1.03
        assert VCPStrategy().scan("TEST", candles, "1d") is None

    def test_insufficient_history(self):
        assert VCPStrategy().scan("TEST", _vcp_fixture()[:29], "1d") is None

    def test_name_comes_from_quote(self):
        quote = _make_quote(symbol="ACME")
        result = VCPStrategy().scan("TEST", _vcp_fixture(), "1d", quote=quote)
        assert result.name == "ACME"


def _multiday_contraction(range_percent: float) -> Contraction:
    return Contraction(start_index=0, end_index=5, high=101, low=97.7, range_percent=range_percent)


class TestVCPMultiday:
    def test_levels_from_recent_bars(self):
        candles = _vcp_fixture()
        result = VCPMultidayStrategy().scan("TEST", candles, "1d")
        resistance = max(c.high for c in candles[-20:])
        assert result.stage in CONTRACTION_STAGES
        assert result.levels.resistance == pytest.approx(resistance)
        assert result.levels.entry_trigger == pytest.approx(resistance * 1.001)
        assert result.levels.stop_level == pytest.approx(min(c.low for c in candles[-10:]) * 0.98)

    def test_insufficient_history(self):
        assert VCPMultidayStrategy().scan("TEST", _vcp_fixture()[:29], "1d") is None

    def test_breakout_counts_every_contraction(self, monkeypatch):
        found = [_multiday_contraction(10), _multiday_contraction(8), _multiday_contraction(6)]
        monkeypatch.setattr(vcp_multiday, "find_contractions", lambda *a, **kw: found)
        result = VCPMultidayStrategy().scan("TEST", _two_stage_base(12, 12), "1d")
        assert result.stage == BREAKOUT
        # 85 + 3 × 3 + floor(3.0 × 2), clamped
        assert result.score == 100
        assert result.explanation.startswith("VCP breakout! 3 contractions")

    def test_one_widening_step_is_not_contracting(self, monkeypatch):
        found = [
            _multiday_contraction(5),
            _multiday_contraction(10),
            _multiday_contraction(9),
            _multiday_contraction(8),
        ]
        monkeypatch.setattr(vcp_multiday, "find_contractions", lambda *a, **kw: found)
        result = VCPMultidayStrategy().scan("TEST", _two_stage_base(12, 12), "1d")
        assert result.stage == FORMING
        # 0.48% under the 20-bar high: 55 + 4 × 5 - 0
        assert result.score == 75
        assert result.explanation.startswith("Early stage consolidation.")


# ── Classic pullback ─────────────────────────────────────────────────────


def _pullback_fixture(last_high=None, last_volume=1000) -> list[CandleData]:
    """60 bars: steep advance to bar 44, slow drift after, with a wick to
    124.2 on bar 48 that becomes the swing high 11 bars before the end."""
    candles = []
    for i in range(60):
        c = 100 + 0.5 * i if i <= 44 else 122 + 0.05 * (i - 44)
        h = c + 0.1
        if i == 48:
            h = c + 2.0
        vol = 1000
        if i == 59:
            h = last_high if last_high is not None else h
            vol = last_volume
        candles.append(_make_candle(_day(i), c, h, c - 0.1, c, vol))
    return candles


class TestClassicPullback:
    def test_ready_below_pullback_high(self):
        result = ClassicPullbackStrategy().scan("TEST", _pullback_fixture(), "1d")
        assert result.stage == READY
        # depth 1.17% → 70 + floor((2.5 - 1.17) × 5)
        assert result.score == 76
        assert result.levels.resistance == pytest.approx(124.2)

    def test_triggered_on_high_break_with_volume(self):
        candles = _pullback_fixture(last_high=124.5, last_volume=3000)
        result = ClassicPullbackStrategy().scan("TEST", candles, "1d")
        assert result.stage == TRIGGERED
        # rvol = 3000 / 1100 → 85 + floor(8.18)
        assert result.score == 93
        assert result.levels.stop_level == pytest.approx(candles[-1].low * 0.995)

    def test_trend_filter_failure_is_forming(self):
        candles = [_make_candle(_day(i), 200 - i, 200.1 - i, 199.9 - i, 200 - i) for i in range(60)]
        result = ClassicPullbackStrategy().scan("TEST", candles, "1d")
        assert result.stage == FORMING
        assert result.score == 30

    def test_pullback_too_short_is_forming(self):
        candles = [_make_candle(_day(i), 100 + 0.5 * i, 100.3 + 0.5 * i, 99.9 + 0.5 * i, 100 + 0.5 * i) for i in range(60)]
        result = ClassicPullbackStrategy().scan("TEST", candles, "1d")
        assert result.stage == FORMING
        assert result.score == 50

    def test_swing_high_excludes_current_bar(self):
        candles = _pullback_fixture(last_high=200.0)
        swing = find_swing_high(candles, 60, end=len(candles) - 1)
        assert swing.index == 48

    def test_insufficient_history(self):
        assert ClassicPullbackStrategy().scan("TEST", _pullback_fixture()[:39], "1d") is None


# ── VWAP reclaim ─────────────────────────────────────────────────────────


def _vwap_fixture(last_close=101.0, last_volume=1000) -> list[CandleData]:
    """12 bars at 100, 4 bars at 98, then back above VWAP at 101."""
    closes = [100.0] * 12 + [98.0] * 4 + [101.0] * 5 + [last_close]
    candles = []
    for i, c in enumerate(closes):
        vol = last_volume if i == len(closes) - 1 else 1000
        candles.append(_make_candle(_bar(i), c, c + 0.5, c - 0.5, c, vol))
    return candles


class TestVWAPReclaim:
    def test_reclaim_without_volume_is_ready(self):
        result = VWAPReclaimStrategy().scan("TEST", _vwap_fixture(), "5m")
        assert result.stage == READY
        assert result.score == 65
        assert result.levels.vwap == pytest.approx(2198000 / 22000)

    def test_reclaim_with_volume_is_breakout(self):
        result = VWAPReclaimStrategy().scan("TEST", _vwap_fixture(last_volume=3000), "5m")
        assert result.stage == BREAKOUT
        assert result.score == 90

    def test_below_ema21_is_skipped(self):
        assert VWAPReclaimStrategy().scan("TEST", _vwap_fixture(last_close=95.0), "5m") is None

    def test_insufficient_history(self):
        assert VWAPReclaimStrategy().scan("TEST", _vwap_fixture()[:19], "5m") is None


# ── Opening range breakout ───────────────────────────────────────────────


def _orb_fixture(last_close: float, bars: int = 22, last_volume: float = 1000) -> list[CandleData]:
    candles = [_make_candle(_bar(0), 100, 101, 100, 100.5)]
    for i in range(1, bars - 1):
        candles.append(_make_candle(_bar(i), 100.5, 100.9, 100.1, 100.5))
    candles.append(_make_candle(_bar(bars - 1), 100.5, last_close + 0.1, 100.2, last_close, last_volume))
    return candles


class TestORB:
    def test_ids_and_defaults(self):
        assert ORBStrategy(5).id == "ORB5"
        assert ORBStrategy(15).id == "ORB15"
        assert ORBStrategy(15).default_config.opening_range_minutes == 15

    def test_breakout_with_volume_is_triggered(self):
        result = ORBStrategy(5).scan("TEST", _orb_fixture(101.5, last_volume=3000), "5m")
        assert result.stage == TRIGGERED
        # 70 + min(30, 1.5 × 15)
        assert result.score == 93
        assert result.levels.opening_range_high == 101
        assert result.levels.opening_range_low == 100
        assert result.levels.stop_level == 100

    def test_breakout_without_volume_is_ready(self):
        result = ORBStrategy(5).scan("TEST", _orb_fixture(101.5, bars=3), "5m")
        assert result.stage == READY
        assert result.score == 60

    def test_just_under_range_high_is_forming(self):
        result = ORBStrategy(5).scan("TEST", _orb_fixture(100.8), "5m")
        assert result.stage == FORMING
        assert result.score == 52

    def test_inside_range_is_skipped(self):
        assert ORBStrategy(5).scan("TEST", _orb_fixture(100.2), "5m") is None

    def test_wide_range_is_skipped(self):
        candles = _orb_fixture(120.0)
        candles[0] = _make_candle(_bar(0), 100, 110, 100, 105)
        assert ORBStrategy(5).scan("TEST", candles, "5m") is None

    def test_no_bar_after_range_is_skipped(self):
        assert ORBStrategy(15).scan("TEST", _orb_fixture(101.5, bars=3), "5m") is None


# ── High RVOL ────────────────────────────────────────────────────────────


def _high_rvol_fixture(last_volume: float) -> list[CandleData]:
    candles = [_make_candle(_bar(i), 100, 100.5, 99.5, 100) for i in range(20)]
    candles.append(_make_candle(_bar(20), 100.4, 101.2, 100.4, 101, last_volume))
    return candles


class TestHighRVOL:
    def test_breakout_on_heavy_volume(self):
        result = HighRVOLStrategy().scan("TEST", _high_rvol_fixture(2500), "5m")
        assert result.stage == BREAKOUT
        assert result.score == 80
        assert result.levels.resistance == 100.5
        assert result.levels.support == 99.5

    def test_breakout_below_threshold_is_ready(self):
        result = HighRVOLStrategy().scan("TEST", _high_rvol_fixture(1800), "5m")
        assert result.stage == READY
        assert result.score == 64

    def test_ordinary_volume_is_skipped(self):
        assert HighRVOLStrategy().scan("TEST", _high_rvol_fixture(1000), "5m") is None


# ── Gap & Go ─────────────────────────────────────────────────────────────


def _gap_fixture(first_open=103, first_high=104) -> list[CandleData]:
    candles = [
        _make_candle(_bar(0), first_open, first_high, 102.5, 103.5),
        _make_candle(_bar(1), 103.5, 104.2, 103, 104),
        _make_candle(_bar(2), 104, 104.5, 103.5, 104.2),
    ]
    for i in range(3, 9):
        candles.append(_make_candle(_bar(i), 104.2, 104.4, 104.1, 104.3))
    candles.append(_make_candle(_bar(9), 104.7, 105.2, 104.6, 105))
    return candles


class TestGapAndGo:
    def test_gap_holding_vwap_above_range_is_ready(self):
        quote = _make_quote(last=105, prev_close=100)
        result = GapAndGoStrategy().scan("TEST", _gap_fixture(), "5m", quote=quote)
        assert result.stage == READY
        # gap 3% → 55 + min(15, 6)
        assert result.score == 61
        assert result.levels.opening_range_high == 104.5

    def test_gap_measured_against_vwap_without_quote(self):
        result = GapAndGoStrategy().scan("TEST", _gap_fixture(first_open=106, first_high=106), "5m")
        # VWAP 104.23, basis 102.15: a 3.77% gap, range high 106 not cleared
        assert result.stage == FORMING
        assert result.score == 43
        assert result.name == "TEST"
        assert result.vwap == pytest.approx(3127 / 30)

    def test_small_gap_against_vwap_is_skipped(self):
        # open 103 is only 0.9% above 98% of the 104.17 VWAP
        assert GapAndGoStrategy().scan("TEST", _gap_fixture(), "5m") is None
        quote = _make_quote(prev_close=0)
        assert GapAndGoStrategy().scan("TEST", _gap_fixture(), "5m", quote=quote) is None

    def test_small_gap_is_skipped(self):
        quote = _make_quote(prev_close=102)
        assert GapAndGoStrategy().scan("TEST", _gap_fixture(), "5m", quote=quote) is None


# ── Trend continuation ───────────────────────────────────────────────────


def _uptrend_fixture(last_volume: float = 1000) -> list[CandleData]:
    """60 bars rising 0.5 a bar with lows dipping 2.5 below the close, so
    every bar tags the EMA9 zone while closing above EMA21."""
    candles = []
    for i in range(60):
        c = 100 + 0.5 * i
        vol = last_volume if i == 59 else 1000
        candles.append(_make_candle(_day(i), c, c + 0.3, c - 2.5, c, vol))
    return candles


class TestTrendContinuation:
    def test_break_of_pullback_high_without_volume_is_ready(self):
        result = TrendContinuationStrategy().scan("TEST", _uptrend_fixture(), "1d")
        assert result.stage == READY
        assert result.score == 60
        assert result.levels.resistance == pytest.approx(129.3)

    def test_break_with_volume_is_triggered(self):
        result = TrendContinuationStrategy().scan("TEST", _uptrend_fixture(2000), "1d")
        assert result.stage == TRIGGERED
        assert result.score == 100

    def test_downtrend_is_skipped(self):
        candles = [_make_candle(_day(i), 200 - i, 200.3 - i, 199 - i, 200 - i) for i in range(60)]
        assert TrendContinuationStrategy().scan("TEST", candles, "1d") is None


# ── Volatility squeeze ───────────────────────────────────────────────────


def _squeeze_fixture(breakout: bool = False) -> list[CandleData]:
    candles = [_make_candle(_day(i), 100, 101, 99, 100) for i in range(34)]
    if breakout:
        candles.append(_make_candle(_day(34), 100, 102.5, 101.5, 102, 2000))
    else:
        candles.append(_make_candle(_day(34), 100, 101, 99, 100))
    return candles


class TestVolatilitySqueeze:
    def test_squeezed_near_range_high_is_ready(self):
        result = VolatilitySqueezeStrategy().scan("TEST", _squeeze_fixture(), "1d")
        assert result.stage == READY
        assert result.score == 70
        assert result.levels.resistance == 101

    def test_breakout_on_volume(self):
        result = VolatilitySqueezeStrategy().scan("TEST", _squeeze_fixture(breakout=True), "1d")
        assert result.stage == BREAKOUT
        assert result.score == 100

    def test_trending_series_has_no_squeeze(self):
        candles = [_make_candle(_day(i), 100 + 2 * i, 100.1 + 2 * i, 99.9 + 2 * i, 100 + 2 * i) for i in range(40)]
        assert VolatilitySqueezeStrategy().scan("TEST", candles, "1d") is None

    def test_squeeze_that_just_fired_is_reported(self):
        contained = [True] * 6 + [False]
        bb = Bands(
            upper=[1.0 if c else 5.0 for c in contained],
            middle=[0.0] * 7,
            lower=[-1.0] * 7,
        )
        kc = Bands(upper=[2.0] * 7, middle=[0.0] * 7, lower=[-2.0] * 7)
        state = squeeze_state(bb, kc, 5)
        assert state.count == 6
        assert state.squeeze_on is True
