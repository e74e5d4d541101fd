"""Tests for liquidity sweep detection."""

from datetime import date

from tradeguard.strategy.models import Candle, Foundation
from tradeguard.strategy.sweep import detect_sweep

_T0 = 1_736_928_000_000  # 2025-01-15T08:00:00Z


def _make_candle(i: int, o: float, h: float, l: float, c: float) -> Candle:
    return Candle(timestamp=_T0 + i * 60_000, open=o, high=h, low=l, close=c, volume=1000)


def _foundation() -> Foundation:
    return Foundation(
        asset="BTCUSDT", session="LONDON", date=date(2025, 1, 15),
        high=101.0, low=99.0, anchor_timestamp=_T0,
    )


def test_close_above_high_is_sweep():
    candles = [
        _make_candle(1, 100.0, 100.5, 99.5, 100.2),
        _make_candle(2, 100.2, 101.8, 100.1, 101.5),
    ]
    sweep = detect_sweep(candles, _foundation())
    assert sweep is not None
    assert sweep.direction == "above"
    assert sweep.level == 101.0
    assert sweep.candle == candles[1]


def test_close_below_low_is_sweep():
    candles = [_make_candle(1, 99.8, 99.9, 98.2, 98.5)]
    sweep = detect_sweep(candles, _foundation())
    assert sweep.direction == "below"
    assert sweep.level == 99.0


def test_wick_through_level_is_not_sweep():
    candles = [_make_candle(1, 100.0, 101.9, 98.1, 100.4)]
    assert detect_sweep(candles, _foundation()) is None


def test_candles_at_or_before_anchor_ignored():
    candles = [
        _make_candle(-1, 100.0, 102.0, 99.5, 101.5),
        _make_candle(0, 100.0, 102.0, 99.5, 101.5),
        _make_candle(1, 100.0, 100.5, 99.5, 100.2),
    ]
    assert detect_sweep(candles, _foundation()) is None


def test_more_recent_side_wins():
    candles = [
        _make_candle(1, 100.2, 101.8, 100.1, 101.5),  # above
        _make_candle(2, 101.5, 101.6, 98.4, 98.6),    # below, later
        _make_candle(3, 98.6, 99.5, 98.5, 99.2),
    ]
    sweep = detect_sweep(candles, _foundation())
    assert sweep.direction == "below"
    assert sweep.candle == candles[1]


def test_most_recent_same_side_sweep_reported():
    candles = [
        _make_candle(1, 100.2, 101.8, 100.1, 101.5),
        _make_candle(2, 101.5, 101.6, 100.4, 100.6),
        _make_candle(3, 100.6, 102.0, 100.5, 101.9),
    ]
    sweep = detect_sweep(candles, _foundation())
    assert sweep.direction == "above"
    assert sweep.candle == candles[2]
