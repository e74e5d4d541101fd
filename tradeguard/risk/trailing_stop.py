"""Trailing stop — progressive SL management for open positions.

Rules:
  - At 1×R profit → move SL to breakeven (entry price).
  - At 2×R profit → lock in 1×R (SL one risk unit past entry).

The stop only ever tightens.
"""

from tradeguard.strategy.models import Position


class TrailingStop:
    """Tracks and updates SL for a single position.

    Args:
        entry_price: Original entry price.
        initial_sl: Original stop-loss price.
        direction: ``"buy"`` or ``"sell"``.
    """

    def __init__(
        self,
        entry_price: float,
        initial_sl: float,
        direction: str,
    ) -> None:
        if direction not in ("buy", "sell"):
            raise ValueError(f"direction must be 'buy' or 'sell', got '{direction}'")
        self.entry_price = entry_price
        self.initial_sl = initial_sl
        self.direction = direction
        self.current_sl = initial_sl
        self._risk = abs(entry_price - initial_sl)

    def _target_sl(self, r_multiple: float) -> float | None:
        sign = 1 if self.direction == "buy" else -1
        if r_multiple >= 2.0:
            return self.entry_price + sign * self._risk
        if r_multiple >= 1.0:
            return self.entry_price
        return None

    def update(self, current_price: float) -> float | None:
        """Evaluate the current price and return a new SL if it should move.

        Returns:
            New SL price if the stop should be adjusted, ``None`` if no change.
        """
        if self._risk == 0:
            return None

        if self.direction == "buy":
            r_multiple = (current_price - self.entry_price) / self._risk
        else:
            r_multiple = (self.entry_price - current_price) / self._risk

        new_sl = self._target_sl(r_multiple)
        if new_sl is None:
            return None

        tighter = new_sl > self.current_sl if self.direction == "buy" else new_sl < self.current_sl
        if not tighter:
            return None
        self.current_sl = new_sl
        return new_sl


def trailed_stop(position: Position) -> float | None:
    """Stop level *position* should trail to at its current price.

    Measured from the position's recorded stop.  ``None`` when there is no
    current price or the stop should stay where it is.
    """
    if position.current_price is None or position.direction not in ("buy", "sell"):
        return None
    trail = TrailingStop(position.entry_price, position.stop_loss, position.direction)
    return trail.update(position.current_price)
