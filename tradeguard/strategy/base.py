"""Decision variants produced by the entry pipeline.

A decision is exactly one of ``TradeSignal``, ``StayOut`` or ``Wait``.
Consumers dispatch on the type rather than on a string field, so a new
variant shows up as an unhandled case instead of a silently ignored one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union


@dataclass(frozen=True)
class TradeSignal:
    """A fully specified entry: direction, entry, stop and target."""

    direction: Literal["buy", "sell"]
    entry_price: float
    stop_loss: float
    take_profit: float
    risk_reward: float
    confidence: int
    reason: str
    phase: str = ""

    @property
    def signal(self) -> str:
        return self.direction.upper()

    @property
    def risk(self) -> float:
        return abs(self.entry_price - self.stop_loss)


@dataclass(frozen=True)
class StayOut:
    """No trade this tick: the setup is absent, filtered or gated."""

    reason: str
    phase: str = ""
    confidence: int = 0

    @property
    def signal(self) -> str:
        return "STAY_OUT"


@dataclass(frozen=True)
class Wait:
    """A setup is forming but is not actionable yet (or data is missing)."""

    reason: str
    phase: str = ""
    confidence: int = 0

    @property
    def signal(self) -> str:
        return "WAIT"


Decision = Union[TradeSignal, StayOut, Wait]


def decision_to_dict(decision: Decision) -> dict:
    """Flatten a decision into the record shape consumed by order placement."""
    if isinstance(decision, TradeSignal):
        return {
            "signal": decision.signal,
            "entry_price": decision.entry_price,
            "stop_loss": decision.stop_loss,
            "take_profit": decision.take_profit,
            "risk_reward_ratio": decision.risk_reward,
            "confidence": decision.confidence,
            "reason": decision.reason,
            "phase": decision.phase,
        }
    if isinstance(decision, (StayOut, Wait)):
        return {
            "signal": decision.signal,
            "entry_price": None,
            "stop_loss": None,
            "take_profit": None,
            "risk_reward_ratio": None,
            "confidence": decision.confidence,
            "reason": decision.reason,
            "phase": decision.phase,
        }
    raise TypeError(f"Unknown decision variant: {type(decision).__name__}")
