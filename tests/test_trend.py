"""Tests for the five-criterion trend validator."""

import pytest

from tradeguard.strategy.models import Candle
from tradeguard.strategy.trend import CRITERIA, combine_criteria, validate_trend


def _make_candle(i: int, o: float, h: float, l: float, c: float, vol: float = 1000) -> Candle:
    return Candle(timestamp=1_736_928_000_000 + i * 60_000, open=o, high=h, low=l, close=c, volume=vol)


def _uptrend(n: int = 15, rising_volume: bool = True) -> list[Candle]:
    candles = []
    for i in range(n):
        o = 100.0 + i
        c = o + 0.8
        vol = 1000 + 100 * i if rising_volume else 1000
        candles.append(_make_candle(i, o, c + 0.1, o - 0.1, c, vol))
    return candles


def _downtrend(n: int = 15) -> list[Candle]:
    candles = []
    for i in range(n):
        o = 200.0 - i
        c = o - 0.8
        candles.append(_make_candle(i, o, o + 0.1, c - 0.1, c))
    return candles


# ── Verdict combination ──────────────────────────────────────────────────


class TestCombineCriteria:
    def test_all_criteria_trending(self):
        verdict = combine_criteria("buy", {name: True for name in CRITERIA})
        assert verdict.is_trending is True
        assert verdict.direction == "buy"
        assert verdict.strength_pct == 100

    @pytest.mark.parametrize("failed", CRITERIA)
    def test_any_single_failure_flips_verdict(self, failed):
        flags = {name: name != failed for name in CRITERIA}
        verdict = combine_criteria("sell", flags)
        assert verdict.is_trending is False
        assert verdict.direction is None
        assert verdict.strength_pct == 80
        assert verdict.sub_signals[failed] is False

    def test_missing_flags_count_as_failed(self):
        verdict = combine_criteria("buy", {"candle_majority": True})
        assert verdict.is_trending is False
        assert verdict.strength_pct == 20


# ── Candle-driven validation ─────────────────────────────────────────────


class TestValidateTrend:
    def test_insufficient_data(self):
        result = validate_trend(_uptrend(10), "buy")
        assert result.is_trending is False
        assert result.strength_pct == 0
        assert "insufficient data" in result.notes

    def test_clean_uptrend(self):
        result = validate_trend(_uptrend(), "buy")
        assert result.is_trending is True
        assert result.direction == "buy"
        assert result.strength_pct == 100
        assert result.volume_trend == "increasing"
        assert result.price_vs_ma == "above"
        assert result.current_price == pytest.approx(114.8)

    def test_buy_requires_increasing_volume(self):
        result = validate_trend(_uptrend(rising_volume=False), "buy")
        assert result.is_trending is False
        assert result.sub_signals["volume"] is False
        assert result.strength_pct == 80

    def test_uptrend_is_not_a_sell_trend(self):
        result = validate_trend(_uptrend(), "sell")
        assert result.is_trending is False
        # Only the volume criterion holds: sell tolerates rising volume.
        assert result.sub_signals["volume"] is True
        assert result.strength_pct == 20

    def test_sell_tolerates_flat_volume(self):
        result = validate_trend(_downtrend(), "sell")
        assert result.is_trending is True
        assert result.volume_trend == "flat"
        assert result.price_vs_ma == "below"

    def test_sell_rejects_decreasing_volume(self):
        candles = [
            _make_candle(i, c.open, c.high, c.low, c.close, vol=3000 - 150 * i)
            for i, c in enumerate(_downtrend())
        ]
        result = validate_trend(candles, "sell")
        assert result.volume_trend == "decreasing"
        assert result.sub_signals["volume"] is False
        assert result.is_trending is False

    def test_invalid_direction(self):
        with pytest.raises(ValueError, match="direction"):
            validate_trend(_uptrend(), "long")
