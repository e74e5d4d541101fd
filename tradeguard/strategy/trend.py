"""Trend validation — strict five-criterion momentum check.

Criteria for a ``"buy"`` trend (mirrored for ``"sell"``):
    1. candle_majority  — at least 3 of the last 5 candles closed bullish.
    2. structure_lows   — higher lows on ≥ 60% of pairs over the last 10.
    3. structure_highs  — higher highs on ≥ 60% of pairs over the last 10.
    4. volume           — buy needs increasing volume; sell rejects decreasing.
    5. moving_average   — last close above SMA(10).

The verdict is all-or-nothing; ``strength_pct`` is 20 per satisfied criterion.
"""

from tradeguard.strategy.indicators import calculate_sma, pair_ratio, volume_trend
from tradeguard.strategy.models import Candle, TrendValidation

MIN_CANDLES = 15
CRITERIA = (
    "candle_majority",
    "structure_lows",
    "structure_highs",
    "volume",
    "moving_average",
)


def combine_criteria(direction: str, flags: dict[str, bool]) -> TrendValidation:
    """Turn five criterion flags into a verdict.

    Missing flags count as not satisfied.
    """
    sub_signals = {name: bool(flags.get(name, False)) for name in CRITERIA}
    met = sum(sub_signals.values())
    trending = met == len(CRITERIA)
    return TrendValidation(
        is_trending=trending,
        direction=direction if trending else None,
        strength_pct=20 * met,
        sub_signals=sub_signals,
    )


def _criteria(
    window: list[Candle],
    direction: str,
    structure_threshold: float,
    volume_threshold: float,
) -> tuple[dict[str, bool], str, float]:
    buy = direction == "buy"
    last5 = window[-5:]
    last10 = window[-10:]

    aligned = sum(1 for c in last5 if (c.is_bullish if buy else c.is_bearish))

    lows = [c.low for c in last10]
    highs = [c.high for c in last10]
    vol = volume_trend(last10, lookback=10, threshold=volume_threshold)
    ma10 = calculate_sma(window, 10)
    price = window[-1].close

    flags = {
        "candle_majority": aligned >= 3,
        "structure_lows": pair_ratio(lows, rising=buy) >= structure_threshold,
        "structure_highs": pair_ratio(highs, rising=buy) >= structure_threshold,
        "volume": vol == "increasing" if buy else vol != "decreasing",
        "moving_average": price > ma10 if buy else price < ma10,
    }
    return flags, vol, ma10


def validate_trend(
    candles: list[Candle],
    direction: str,
    window: int = MIN_CANDLES,
    structure_threshold: float = 0.6,
    volume_threshold: float = 0.15,
) -> TrendValidation:
    """Check whether *candles* show a sustained trend in *direction*.

    Args:
        candles: Candle history, oldest-first.
        direction: ``"buy"`` or ``"sell"``.
        window: Candles analysed (and the minimum required).
        structure_threshold: Pair fraction needed for the structure criteria.
        volume_threshold: Fractional volume change that counts as a trend.

    Returns:
        ``TrendValidation``; with too few candles it is not trending, with
        strength 0 and an ``insufficient data`` note.

    Raises:
        ValueError: If *direction* is not ``"buy"`` or ``"sell"``.
    """
    if direction not in ("buy", "sell"):
        raise ValueError(f"direction must be 'buy' or 'sell', got '{direction}'")

    if len(candles) < window:
        return TrendValidation(
            is_trending=False,
            direction=None,
            strength_pct=0,
            current_price=candles[-1].close if candles else 0.0,
            notes=f"insufficient data: {len(candles)}/{window} candles",
        )

    recent = candles[-window:]
    flags, vol, ma10 = _criteria(recent, direction, structure_threshold, volume_threshold)
    verdict = combine_criteria(direction, flags)
    price = recent[-1].close

    if price > ma10:
        price_vs_ma = "above"
    elif price < ma10:
        price_vs_ma = "below"
    else:
        price_vs_ma = "neutral"

    failed = [name for name, ok in verdict.sub_signals.items() if not ok]
    return TrendValidation(
        is_trending=verdict.is_trending,
        direction=verdict.direction,
        strength_pct=verdict.strength_pct,
        sub_signals=verdict.sub_signals,
        volume_trend=vol,
        price_vs_ma=price_vs_ma,
        ma10=ma10,
        current_price=price,
        notes="all criteria met" if not failed else "failed: " + ", ".join(failed),
    )
