"""Position protection — early-exit decisions for open positions.

Zones by current risk:reward (RR):

- ``RR < 1.0``   → hold, no candle analysis.
- ``RR >= 1.5``  → let run to target, no candle analysis.
- otherwise      → protection zone: score the last 1m candles.

In the protection zone two independent scores are computed.  Confirmed
weakness closes the position; otherwise confirmed continuity holds it;
otherwise it is closed by default.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

import httpx

from tradeguard.risk.sl_tp import calculate_current_rr
from tradeguard.strategy.indicators import average_range, average_volume
from tradeguard.strategy.models import Candle, Position

logger = logging.getLogger("tradeguard.protection")

HOLD_BELOW_RR = 1.0
LET_RUN_RR = 1.5
CONTINUITY_THRESHOLD = 6
WEAKNESS_THRESHOLD = 4
ANALYSIS_CANDLES = 10
MIN_ANALYSIS_CANDLES = 5

STRONG_BODY_RATIO = 0.6
OPPOSING_WICK_RATIO = 0.5
LATERAL_RANGE_RATIO = 0.5
VOLUME_STABLE_RATIO = 0.9


# ── Scores ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ContinuityScore:
    strong_bodies: int = 0
    no_opposing_wicks: bool = False
    confirming_closes: bool = False
    displacement: bool = False
    volume_stable: bool = False

    @property
    def total(self) -> int:
        return (
            self.strong_bodies
            + self.no_opposing_wicks
            + self.confirming_closes
            + self.displacement
            + self.volume_stable
        )

    @property
    def confirmed(self) -> bool:
        return self.total >= CONTINUITY_THRESHOLD


@dataclass(frozen=True)
class WeaknessScore:
    counter_candle: bool = False
    inside_bar: bool = False
    opposing_wick: bool = False
    lateral: bool = False
    failed_breakout: bool = False
    no_progress: bool = False

    @property
    def total(self) -> int:
        return (
            2 * self.counter_candle
            + self.inside_bar
            + self.opposing_wick
            + self.lateral
            + self.failed_breakout
            + self.no_progress
        )

    @property
    def confirmed(self) -> bool:
        return self.total >= WEAKNESS_THRESHOLD


# ── Decisions ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class HoldPosition:
    """Keep the position open."""

    reason: str
    current_rr: float
    confidence: int
    zone: str
    continuity: Optional[ContinuityScore] = None
    weakness: Optional[WeaknessScore] = None

    @property
    def should_close(self) -> bool:
        return False


@dataclass(frozen=True)
class ClosePosition:
    """Close the position now to protect open profit."""

    reason: str
    current_rr: float
    confidence: int
    zone: str
    continuity: Optional[ContinuityScore] = None
    weakness: Optional[WeaknessScore] = None

    @property
    def should_close(self) -> bool:
        return True


ClosureDecision = Union[HoldPosition, ClosePosition]


def closure_to_dict(decision: ClosureDecision) -> dict:
    """Flatten a closure decision for the position-closing side."""
    if not isinstance(decision, (HoldPosition, ClosePosition)):
        raise TypeError(f"Unknown closure variant: {type(decision).__name__}")
    return {
        "should_close": decision.should_close,
        "reason": decision.reason,
        "current_rr": round(decision.current_rr, 4),
        "confidence": decision.confidence,
        "zone": decision.zone,
        "continuity_score": decision.continuity.total if decision.continuity else None,
        "weakness_score": decision.weakness.total if decision.weakness else None,
    }


# ── Scoring (pure) ───────────────────────────────────────────────────────


def _aligned(c: Candle, buy: bool) -> bool:
    return c.is_bullish if buy else c.is_bearish


def _opposing_wick_large(c: Candle, buy: bool) -> bool:
    if c.range <= 0:
        return False
    wick = c.upper_wick if buy else c.lower_wick
    return wick / c.range >= OPPOSING_WICK_RATIO


def score_continuity(candles: list[Candle], direction: str) -> ContinuityScore:
    """Momentum evidence that the move in *direction* is still intact."""
    buy = direction == "buy"
    last5 = candles[-5:]

    strong = sum(
        1 for c in candles if _aligned(c, buy) and c.body_ratio >= STRONG_BODY_RATIO
    )
    confirming = sum(1 for c in last5 if _aligned(c, buy))
    net = candles[-1].close - candles[0].open

    half = len(candles) // 2
    first_vol = average_volume(candles[:half])
    second_vol = average_volume(candles[half:])
    volume_stable = first_vol <= 0 or second_vol >= VOLUME_STABLE_RATIO * first_vol

    return ContinuityScore(
        strong_bodies=min(strong, 3),
        no_opposing_wicks=not any(_opposing_wick_large(c, buy) for c in last5),
        confirming_closes=confirming >= 2,
        displacement=net > 0 if buy else net < 0,
        volume_stable=volume_stable,
    )


def _failed_breakout(candles: list[Candle], buy: bool) -> bool:
    # A recent candle pierces the extreme of everything before it, then
    # closes back inside that extreme.
    for i in range(max(1, len(candles) - 3), len(candles)):
        prior = candles[:i]
        c = candles[i]
        if buy:
            pivot = max(p.high for p in prior)
            if c.high > pivot and c.close <= pivot:
                return True
        else:
            pivot = min(p.low for p in prior)
            if c.low < pivot and c.close >= pivot:
                return True
    return False


def score_weakness(candles: list[Candle], direction: str) -> WeaknessScore:
    """Evidence that the move in *direction* is stalling or reversing."""
    buy = direction == "buy"
    last3 = candles[-3:]
    last = candles[-1]
    prev = candles[-2] if len(candles) >= 2 else None
    avg_rng = average_range(candles)

    counter = any(
        _aligned(c, not buy) and c.body_ratio >= STRONG_BODY_RATIO for c in last3
    )
    inside = prev is not None and last.high <= prev.high and last.low >= prev.low
    lateral = avg_rng > 0 and sum(
        1 for c in last3 if c.range < LATERAL_RANGE_RATIO * avg_rng
    ) >= 2
    net = last.close - candles[0].open

    return WeaknessScore(
        counter_candle=counter,
        inside_bar=inside,
        opposing_wick=_opposing_wick_large(last, buy),
        lateral=lateral,
        failed_breakout=_failed_breakout(candles, buy),
        no_progress=net <= 0 if buy else net >= 0,
    )


def classify_zone(rr: float) -> str:
    """``"hold"`` below 1R, ``"let_run"`` from 1.5R, else ``"protection"``."""
    if rr < HOLD_BELOW_RR:
        return "hold"
    if rr >= LET_RUN_RR:
        return "let_run"
    return "protection"


def assess(position: Position, candles: Optional[list[Candle]] = None) -> ClosureDecision:
    """Decide hold/close for *position* given recent 1m *candles*.

    *candles* are only looked at in the protection zone.
    """
    rr = calculate_current_rr(position)
    zone = classify_zone(rr)

    if zone == "hold":
        return HoldPosition(
            reason=f"RR {rr:.2f} below {HOLD_BELOW_RR}; no protection yet",
            current_rr=rr, confidence=100, zone=zone,
        )
    if zone == "let_run":
        return HoldPosition(
            reason=f"RR {rr:.2f} at or above {LET_RUN_RR}; letting it run to target",
            current_rr=rr, confidence=100, zone=zone,
        )

    window = (candles or [])[-ANALYSIS_CANDLES:]
    if len(window) < MIN_ANALYSIS_CANDLES:
        return HoldPosition(
            reason=(
                f"Insufficient data: {len(window)}/{MIN_ANALYSIS_CANDLES} candles; "
                "holding"
            ),
            current_rr=rr, confidence=0, zone=zone,
        )

    continuity = score_continuity(window, position.direction)
    weakness = score_weakness(window, position.direction)
    scores = f"continuity {continuity.total}/{CONTINUITY_THRESHOLD}, " \
             f"weakness {weakness.total}/{WEAKNESS_THRESHOLD}"

    if weakness.confirmed:
        return ClosePosition(
            reason=f"Weakness confirmed at RR {rr:.2f} ({scores})",
            current_rr=rr, confidence=min(95, 60 + 5 * weakness.total),
            zone=zone, continuity=continuity, weakness=weakness,
        )
    if continuity.confirmed:
        return HoldPosition(
            reason=f"Continuity confirmed at RR {rr:.2f} ({scores})",
            current_rr=rr, confidence=min(95, 60 + 5 * continuity.total),
            zone=zone, continuity=continuity, weakness=weakness,
        )
    return ClosePosition(
        reason=f"Indeterminate momentum at RR {rr:.2f}; protecting profit ({scores})",
        current_rr=rr, confidence=50,
        zone=zone, continuity=continuity, weakness=weakness,
    )


# ── Monitor ──────────────────────────────────────────────────────────────


class CandleFeed(Protocol):
    async def fetch_candles(
        self, symbol: str, interval: str, limit: int,
    ) -> list[Candle]:
        ...


class PositionProtectionMonitor:
    """Re-invocable protection check with a bounded candle fetch.

    Args:
        timeout_seconds: Upper bound on the 1m candle fetch.
        interval: Candle interval requested from the feed.
    """

    def __init__(self, timeout_seconds: float = 5.0, interval: str = "1m") -> None:
        self.timeout_seconds = timeout_seconds
        self.interval = interval

    async def evaluate(
        self,
        position: Position,
        feed: CandleFeed,
        log: Optional[logging.Logger] = None,
    ) -> ClosureDecision:
        """Evaluate *position*; any fetch failure yields ``HoldPosition``."""
        log = log or logger
        rr = calculate_current_rr(position)
        if classify_zone(rr) != "protection":
            return assess(position)

        try:
            candles = await asyncio.wait_for(
                feed.fetch_candles(position.asset, self.interval, ANALYSIS_CANDLES),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.warning(
                "Protection fetch timed out for %s after %.1fs; holding",
                position.asset, self.timeout_seconds,
            )
            return HoldPosition(
                reason="Candle fetch timed out; holding",
                current_rr=rr, confidence=0, zone="protection",
            )
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("Protection fetch failed for %s: %s; holding", position.asset, exc)
            return HoldPosition(
                reason=f"Candle fetch failed ({type(exc).__name__}); holding",
                current_rr=rr, confidence=0, zone="protection",
            )

        decision = assess(position, candles)
        log.info(
            "Protection %s %s: %s",
            position.asset, "CLOSE" if decision.should_close else "HOLD", decision.reason,
        )
        return decision
