"""Two-candle reversal (2CR) detection and the sweep-to-entry resolver.

After a liquidity sweep the resolver looks for a 2CR confirming the
sweep's intention.  If an opposing 2CR follows, the setup is ambiguous
and only a close through the opposing level resolves it.

Phases::

    SEEKING_CONFIRMATION -> CONFIRMED -> DIRECT_ENTRY
                                      -> AMBIGUOUS -> WAITING_INVALIDATION -> RESOLVED

``REJECTED`` marks a malformed setup (zero or negative risk).  A setup
whose invalidation window expires stays ``AMBIGUOUS``.

Intention convention: a sweep *above* the foundation high took buy-side
liquidity and sets a bearish intention; a sweep *below* sets a bullish one.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tradeguard.risk.sl_tp import calculate_fixed_rr_levels
from tradeguard.strategy.base import Decision, StayOut, TradeSignal, Wait
from tradeguard.strategy.models import Candle, Sweep, TwoCandleReversal

logger = logging.getLogger("tradeguard.reversal")

DIRECT_ENTRY_CONFIDENCE = 80
RESOLVED_CONFIDENCE = 90


class ResolverPhase(str, Enum):
    SEEKING_CONFIRMATION = "SEEKING_CONFIRMATION"
    CONFIRMED = "CONFIRMED"
    DIRECT_ENTRY = "DIRECT_ENTRY"
    AMBIGUOUS = "AMBIGUOUS"
    WAITING_INVALIDATION = "WAITING_INVALIDATION"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class ReversalResolution:
    """Terminal state of one resolver run plus the patterns it found."""

    phase: ResolverPhase
    decision: Decision
    intention: str
    confirmation: Optional[TwoCandleReversal] = None
    opposite: Optional[TwoCandleReversal] = None
    trigger_candle: Optional[Candle] = None


def intention_for(sweep: Sweep) -> str:
    """Bias implied by a sweep: above → ``"bearish"``, below → ``"bullish"``."""
    return "bearish" if sweep.direction == "above" else "bullish"


def _direction_for(bias: str) -> str:
    return "buy" if bias == "bullish" else "sell"


def _other_bias(bias: str) -> str:
    return "bearish" if bias == "bullish" else "bullish"


def is_bearish_2cr(c1: Candle, c2: Candle) -> bool:
    """Candle1 rejects upward, candle2 breaks its low or prints a lower high."""
    rejects = c1.close < c1.open or (c1.high - c1.close) > (c1.close - c1.low)
    confirms = c2.close < c1.low or c2.high < c1.high
    return rejects and confirms


def is_bullish_2cr(c1: Candle, c2: Candle) -> bool:
    """Candle1 rejects downward, candle2 breaks its high or prints a higher low."""
    rejects = c1.close > c1.open or (c1.close - c1.low) > (c1.high - c1.close)
    confirms = c2.close > c1.high or c2.low > c1.low
    return rejects and confirms


def find_two_candle_reversal(
    candles: list[Candle],
    bias: str,
    start: int,
    lookahead: int = 20,
) -> Optional[tuple[int, TwoCandleReversal]]:
    """First 2CR of *bias* whose candle1 lies in ``[start, start + lookahead)``.

    Returns:
        ``(index_of_candle2, pattern)`` or ``None``.
    """
    check = is_bullish_2cr if bias == "bullish" else is_bearish_2cr
    stop = min(start + lookahead, len(candles) - 1)
    for i in range(max(start, 0), stop):
        c1, c2 = candles[i], candles[i + 1]
        if check(c1, c2):
            if bias == "bullish":
                level = min(c1.low, c2.low)
            else:
                level = max(c1.high, c2.high)
            return i + 1, TwoCandleReversal(bias=bias, candle1=c1, candle2=c2, level=level)
    return None


def _index_of(candles: list[Candle], candle: Candle) -> Optional[int]:
    for i, c in enumerate(candles):
        if c.timestamp == candle.timestamp:
            return i
    return None


def resolve_reversal(
    candles: list[Candle],
    sweep: Sweep,
    rr_ratio: float = 3.0,
    lookahead: int = 20,
    invalidation_lookahead: int = 15,
    buffer_pct: float = 0.001,
    log: Optional[logging.Logger] = None,
) -> ReversalResolution:
    """Run the 2CR state machine over *candles* following *sweep*.

    Args:
        candles: Fast-timeframe candles, oldest-first, containing the sweep candle.
        sweep: The sweep that sets the intention.
        rr_ratio: Fixed reward multiple for the take-profit.
        lookahead: Candles searched for the confirming and opposing 2CR.
        invalidation_lookahead: Candles searched for a close past the opposing level.
        buffer_pct: Fraction added beyond the opposing level for a resolved stop.
        log: Logger (normally a context adapter).

    Returns:
        ``ReversalResolution`` with a ``TradeSignal`` only for
        ``DIRECT_ENTRY`` and ``RESOLVED``.
    """
    log = log or logger
    intention = intention_for(sweep)
    direction = _direction_for(intention)

    sweep_idx = _index_of(candles, sweep.candle)
    if sweep_idx is None:
        return ReversalResolution(
            phase=ResolverPhase.SEEKING_CONFIRMATION,
            decision=Wait("Sweep candle not in window", phase="SEEKING_CONFIRMATION"),
            intention=intention,
        )

    found = find_two_candle_reversal(candles, intention, sweep_idx + 1, lookahead)
    if found is None:
        return ReversalResolution(
            phase=ResolverPhase.SEEKING_CONFIRMATION,
            decision=Wait(
                f"Sweep {sweep.direction} {sweep.level:.5f}; awaiting {intention} 2CR",
                phase="SEEKING_CONFIRMATION",
            ),
            intention=intention,
        )
    confirm_idx, confirmation = found
    log.info(
        "CONFIRMED %s 2CR at %s (level %.5f)",
        intention, confirmation.candle2.dt.isoformat(), confirmation.level,
    )

    opposing = find_two_candle_reversal(
        candles, _other_bias(intention), confirm_idx + 1, lookahead,
    )

    if opposing is None:
        entry = confirmation.candle2.close
        levels = calculate_fixed_rr_levels(entry, confirmation.level, direction, rr_ratio)
        if levels is None:
            log.warning(
                "REJECTED direct entry: entry %.5f vs stop %.5f gives no risk",
                entry, confirmation.level,
            )
            return ReversalResolution(
                phase=ResolverPhase.REJECTED,
                decision=StayOut("Malformed 2CR: zero or negative risk", phase="REJECTED"),
                intention=intention,
                confirmation=confirmation,
            )
        return ReversalResolution(
            phase=ResolverPhase.DIRECT_ENTRY,
            decision=TradeSignal(
                direction=direction,
                entry_price=levels.entry,
                stop_loss=levels.sl,
                take_profit=levels.tp,
                risk_reward=rr_ratio,
                confidence=DIRECT_ENTRY_CONFIDENCE,
                reason=f"Sweep {sweep.direction} + {intention} 2CR, no opposing pattern",
                phase="DIRECT_ENTRY",
            ),
            intention=intention,
            confirmation=confirmation,
            trigger_candle=confirmation.candle2,
        )

    opp_idx, opposite = opposing
    log.info(
        "AMBIGUOUS: opposing %s 2CR at %s (level %.5f)",
        opposite.bias, opposite.candle2.dt.isoformat(), opposite.level,
    )

    window = candles[opp_idx + 1:opp_idx + 1 + invalidation_lookahead]
    trigger: Optional[Candle] = None
    for c in window:
        broke = c.close < opposite.level if direction == "sell" else c.close > opposite.level
        if broke:
            trigger = c
            break

    if trigger is None:
        if len(window) >= invalidation_lookahead:
            return ReversalResolution(
                phase=ResolverPhase.AMBIGUOUS,
                decision=StayOut(
                    "Both sides respected; invalidation window expired",
                    phase="AMBIGUOUS",
                ),
                intention=intention,
                confirmation=confirmation,
                opposite=opposite,
            )
        return ReversalResolution(
            phase=ResolverPhase.WAITING_INVALIDATION,
            decision=Wait(
                f"Both sides respected; awaiting close past {opposite.level:.5f}",
                phase="WAITING_INVALIDATION",
            ),
            intention=intention,
            confirmation=confirmation,
            opposite=opposite,
        )

    if direction == "sell":
        stop = opposite.level * (1 + buffer_pct)
    else:
        stop = opposite.level * (1 - buffer_pct)
    levels = calculate_fixed_rr_levels(trigger.close, stop, direction, rr_ratio)
    if levels is None:
        log.warning(
            "REJECTED resolved entry: entry %.5f vs stop %.5f gives no risk",
            trigger.close, stop,
        )
        return ReversalResolution(
            phase=ResolverPhase.REJECTED,
            decision=StayOut("Malformed 2CR: zero or negative risk", phase="REJECTED"),
            intention=intention,
            confirmation=confirmation,
            opposite=opposite,
            trigger_candle=trigger,
        )

    log.info(
        "RESOLVED: close %.5f broke opposing level %.5f",
        trigger.close, opposite.level,
    )
    return ReversalResolution(
        phase=ResolverPhase.RESOLVED,
        decision=TradeSignal(
            direction=direction,
            entry_price=levels.entry,
            stop_loss=levels.sl,
            take_profit=levels.tp,
            risk_reward=rr_ratio,
            confidence=RESOLVED_CONFIDENCE,
            reason=f"Opposing {opposite.bias} 2CR invalidated by close",
            phase="RESOLVED",
        ),
        intention=intention,
        confirmation=confirmation,
        opposite=opposite,
        trigger_candle=trigger,
    )
