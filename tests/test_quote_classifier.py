"""Tests for quote-only classification."""

import pytest

from stagescan.strategy.models import BREAKOUT, FORMING, READY, TRIGGERED, Quote
from stagescan.strategy.quote_classifier import (
    classify_quote,
    min_history_bars,
    quote_rvol,
    supports_quote,
)


def _make_quote(**overrides):
    data = dict(
        symbol="TEST", last=100.0, change=0.0, change_percent=0.0, volume=1000,
        high=100.0, low=98.0, open=99.0, prev_close=100.0, avg_volume=1000,
    )
    data.update(overrides)
    return Quote(**data)


class TestQuoteRVOL:
    def test_ratio(self):
        assert quote_rvol(_make_quote(volume=2500)) == pytest.approx(2.5)

    def test_missing_average_is_one(self):
        assert quote_rvol(_make_quote(avg_volume=None)) == 1.0
        assert quote_rvol(_make_quote(avg_volume=0)) == 1.0


class TestVCPQuote:
    def test_breakout_on_volume(self):
        quote = _make_quote(last=103, high=103, change=3, change_percent=3, volume=2000)
        result = classify_quote("VCP", quote)
        assert result.stage == BREAKOUT
        assert result.score == 90

    def test_ready_near_high(self):
        quote = _make_quote(last=98, high=100, change=0.5, change_percent=0.5)
        result = classify_quote("VCP", quote)
        assert result.stage == READY
        assert result.score == 83

    def test_forming_far_from_high(self):
        quote = _make_quote(last=90, high=100, change=-1, change_percent=-1.1)
        result = classify_quote("VCP", quote)
        assert result.stage == FORMING
        assert result.score == 40

    def test_levels_and_no_indicators(self):
        quote = _make_quote(last=98, high=100, change=0.5, change_percent=0.5)
        result = classify_quote("VCP", quote)
        assert result.levels.resistance == pytest.approx(102.0)
        assert result.levels.stop_level == pytest.approx(98 * 0.93)
        assert result.ema9 is None
        assert result.ema21 is None


class TestMultidayQuote:
    def test_always_forming(self):
        result = classify_quote("VCP_MULTIDAY", _make_quote(change=5, change_percent=5, volume=5000))
        assert result.stage == FORMING
        assert result.score == 30


class TestPullbackQuote:
    def test_triggered_on_strength_and_volume(self):
        result = classify_quote("CLASSIC_PULLBACK", _make_quote(change_percent=2, volume=2000))
        assert result.stage == TRIGGERED
        assert result.score == 90

    def test_ready_when_holding(self):
        result = classify_quote("CLASSIC_PULLBACK", _make_quote(change_percent=-0.5))
        assert result.stage == READY
        assert result.score == 65

    def test_forming_on_weakness(self):
        result = classify_quote("CLASSIC_PULLBACK", _make_quote(change_percent=-3))
        assert result.stage == FORMING
        assert result.score == 40

    def test_volume_multiplier_override(self):
        quote = _make_quote(change_percent=2, volume=2000)
        result = classify_quote("CLASSIC_PULLBACK", quote, {"volumeMultiplier": 3.0})
        assert result.stage == READY


class TestDispatch:
    def test_strategies_without_quote_path_raise(self):
        with pytest.raises(KeyError, match="No quote classifier"):
            classify_quote("ORB5", _make_quote())

    def test_supports_quote(self):
        assert supports_quote("VCP")
        assert supports_quote("CLASSIC_PULLBACK")
        assert not supports_quote("HIGH_RVOL")

    def test_min_history_bars(self):
        assert min_history_bars("VCP") == 30
        assert min_history_bars("VCP_MULTIDAY") == 30
        assert min_history_bars("CLASSIC_PULLBACK") == 40
        assert min_history_bars("CLASSIC_PULLBACK", {"trendBars": 10}) == 30
