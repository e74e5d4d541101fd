"""Liquidity sweep detection against a session foundation."""

from typing import Optional

from tradeguard.strategy.models import Candle, Foundation, Sweep


def detect_sweep(candles: list[Candle], foundation: Foundation) -> Optional[Sweep]:
    """Return the most recent candle that *closed* beyond a foundation level.

    Only candles opening strictly after the foundation anchor count.  A wick
    through the level is not a sweep.  When both sides were swept, the more
    recent sweep wins.
    """
    after = [c for c in candles if c.timestamp > foundation.anchor_timestamp]

    above: Optional[Candle] = None
    below: Optional[Candle] = None
    for c in reversed(after):
        if above is None and c.close > foundation.high:
            above = c
        if below is None and c.close < foundation.low:
            below = c
        if above is not None and below is not None:
            break

    if above is None and below is None:
        return None
    if below is None or (above is not None and above.timestamp >= below.timestamp):
        return Sweep(direction="above", level=foundation.high, candle=above)
    return Sweep(direction="below", level=foundation.low, candle=below)
