"""Fair value gap detection and selection — pure functions, no I/O."""

from typing import Optional

from tradeguard.strategy.indicators import average_volume
from tradeguard.strategy.models import Candle, Gap

# c2 must range at least this multiple of c1 to count as an aggressive move.
AGGRESSIVE_RANGE_FACTOR = 0.5


def quality_score(
    volume_confirmed: bool,
    unmitigated: bool,
    significant: bool,
    expressive: bool,
) -> int:
    """One point per satisfied criterion (0-4)."""
    return sum((volume_confirmed, unmitigated, significant, expressive))


def is_mitigated(gap_type: str, top: float, bottom: float, later: list[Candle]) -> bool:
    """True if any candle in *later* traded back into the gap."""
    if gap_type == "bullish":
        return any(c.low < top for c in later)
    return any(c.high > bottom for c in later)


def _is_aggressive(c1: Candle, c2: Candle) -> bool:
    return c2.range > AGGRESSIVE_RANGE_FACTOR * c1.range


def detect_gaps(
    candles: list[Candle],
    window: int = 20,
    min_gap_pct: float = 0.005,
    min_body_ratio: float = 0.6,
    volume_factor: float = 1.2,
    volume_lookback: int = 10,
) -> list[Gap]:
    """Find every three-candle imbalance in the last *window* candles.

    Bullish when ``c3.low > c1.high`` with a bullish, aggressive ``c2``;
    bearish when ``c3.high < c1.low`` with a bearish, aggressive ``c2``.

    Args:
        candles: Candle history, oldest-first.
        window: Number of most-recent candles to scan.
        min_gap_pct: Gap size as a fraction of ``c2.close`` to score as significant.
        min_body_ratio: ``c2`` body/range ratio to score as expressive.
        volume_factor: ``c2`` volume multiple of the preceding average.
        volume_lookback: Candles before ``c2`` used for the volume average.

    Returns:
        All gaps, oldest first.  ``Gap.index`` is the position of ``c3``
        in *candles*.
    """
    offset = max(0, len(candles) - window)
    gaps: list[Gap] = []

    for i in range(offset + 2, len(candles)):
        c1, c2, c3 = candles[i - 2], candles[i - 1], candles[i]
        if not _is_aggressive(c1, c2):
            continue

        if c3.low > c1.high and c2.is_bullish:
            gap_type, top, bottom = "bullish", c3.low, c1.high
        elif c3.high < c1.low and c2.is_bearish:
            gap_type, top, bottom = "bearish", c1.low, c3.high
        else:
            continue

        preceding = candles[max(0, i - 1 - volume_lookback):i - 1]
        avg_vol = average_volume(preceding)
        volume_confirmed = avg_vol > 0 and c2.volume > volume_factor * avg_vol
        unmitigated = not is_mitigated(gap_type, top, bottom, candles[i + 1:])
        significant = c2.close > 0 and (top - bottom) / c2.close > min_gap_pct
        expressive = c2.body_ratio > min_body_ratio

        gaps.append(Gap(
            gap_type=gap_type,
            top=top,
            bottom=bottom,
            midpoint=(top + bottom) / 2,
            quality_score=quality_score(
                volume_confirmed, unmitigated, significant, expressive,
            ),
            index=i,
            timestamp=c3.timestamp,
            volume_confirmed=volume_confirmed,
            unmitigated=unmitigated,
            significant=significant,
            expressive=expressive,
        ))

    return gaps


def select_gap(
    gaps: list[Gap],
    current_price: float,
    max_distance_pct: float = 0.02,
    min_quality: int = 2,
    gap_type: Optional[str] = None,
) -> Optional[Gap]:
    """Nearest qualifying gap to *current_price*, measured to its midpoint.

    A gap qualifies when its midpoint lies within *max_distance_pct* of the
    price, it scores at least *min_quality*, and (if given) matches *gap_type*.
    """
    if current_price <= 0:
        return None

    candidates = [
        g for g in gaps
        if g.quality_score >= min_quality
        and (gap_type is None or g.gap_type == gap_type)
        and abs(current_price - g.midpoint) / current_price <= max_distance_pct
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda g: abs(current_price - g.midpoint))
