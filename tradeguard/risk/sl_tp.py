"""Stop-loss / take-profit and risk:reward math — pure, no I/O.

Every entry in this system uses a fixed risk:reward target:
    TP = entry ± rr_ratio × |entry − SL|
"""

from dataclasses import dataclass
from typing import Optional

from tradeguard.strategy.models import Position


@dataclass(frozen=True)
class RiskLevels:
    """Computed stop-loss and take-profit for a trade."""

    entry: float
    sl: float
    tp: float
    risk: float
    rr_ratio: float


def calculate_fixed_rr_levels(
    entry_price: float,
    stop_loss: float,
    direction: str,
    rr_ratio: float = 3.0,
) -> Optional[RiskLevels]:
    """Derive the take-profit for a fixed risk:reward ratio.

    Args:
        entry_price: Trade entry price.
        stop_loss: Stop-loss price.  Must lie on the losing side of entry.
        direction: ``"buy"`` or ``"sell"``.
        rr_ratio: Reward multiple of the risk distance (default 3.0).

    Returns:
        ``RiskLevels``, or ``None`` when the stop is on the wrong side of
        entry (zero or negative risk).

    Raises:
        ValueError: If *direction* is not ``"buy"`` or ``"sell"``.
    """
    if direction == "buy":
        risk = entry_price - stop_loss
        tp = entry_price + rr_ratio * risk
    elif direction == "sell":
        risk = stop_loss - entry_price
        tp = entry_price - rr_ratio * risk
    else:
        raise ValueError(f"direction must be 'buy' or 'sell', got '{direction}'")

    if risk <= 0:
        return None

    return RiskLevels(
        entry=entry_price,
        sl=stop_loss,
        tp=tp,
        risk=risk,
        rr_ratio=rr_ratio,
    )


def calculate_current_rr(position: Position) -> float:
    """Current favourable move of *position* in multiples of its risk.

    ``(current − entry) / |entry − SL|`` for a buy, mirrored for a sell.
    Returns 0.0 when there is no current price or the risk is zero.
    """
    return position.risk_reward
