"""Candle statistics — SMA, averages, volume trend. Pure functions, no I/O."""

from typing import Literal

from tradeguard.strategy.models import Candle


def calculate_sma(candles: list[Candle], period: int) -> float:
    """Simple moving average of the last *period* closes.

    With fewer than *period* candles the last close is returned, so a
    short window never reports a price as being away from its own average.

    Raises ``ValueError`` if *candles* is empty.
    """
    if not candles:
        raise ValueError("Need at least 1 candle for SMA")
    if len(candles) < period:
        return candles[-1].close
    window = candles[-period:]
    return sum(c.close for c in window) / period


def average_volume(candles: list[Candle]) -> float:
    """Mean volume of *candles* (0.0 for an empty list)."""
    if not candles:
        return 0.0
    return sum(c.volume for c in candles) / len(candles)


def average_range(candles: list[Candle]) -> float:
    """Mean high-low range of *candles* (0.0 for an empty list)."""
    if not candles:
        return 0.0
    return sum(c.range for c in candles) / len(candles)


def volume_trend(
    candles: list[Candle],
    lookback: int = 10,
    threshold: float = 0.15,
) -> Literal["increasing", "decreasing", "flat"]:
    """Compare the average volume of the two halves of the last *lookback* bars.

    A change beyond ±*threshold* (fractional) is a trend; anything inside
    is ``"flat"``.  Fewer than 5 candles, or a silent first half, is flat.
    """
    if len(candles) < 5:
        return "flat"

    recent = candles[-lookback:]
    half = len(recent) // 2
    first = average_volume(recent[:half])
    second = average_volume(recent[half:])
    if first <= 0:
        return "flat"

    change = (second - first) / first
    if change > threshold:
        return "increasing"
    if change < -threshold:
        return "decreasing"
    return "flat"


def pair_ratio(values: list[float], rising: bool) -> float:
    """Fraction of consecutive pairs that are non-decreasing (or non-increasing).

    Returns 0.0 for fewer than two values.
    """
    if len(values) < 2:
        return 0.0
    pairs = len(values) - 1
    if rising:
        hits = sum(1 for i in range(1, len(values)) if values[i] >= values[i - 1])
    else:
        hits = sum(1 for i in range(1, len(values)) if values[i] <= values[i - 1])
    return hits / pairs
