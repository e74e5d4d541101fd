"""Trade gate — caps executed trades per (asset, session, date)."""

import logging
from datetime import date

from tradeguard.repos.state_store import StateStore
from tradeguard.strategy.base import Decision, StayOut, TradeSignal

logger = logging.getLogger("tradeguard.gate")


class TradeGate:
    """Blocks entries once the session's executed-trade count hits the cap.

    ``check`` only reads the counter.  The count moves in
    ``record_execution``, which the order-placement side calls after a
    confirmed fill.

    Args:
        store: State store with an atomic ``increment_trade_count``.
        max_per_session: Executed trades allowed per key (default 1).
    """

    def __init__(self, store: StateStore, max_per_session: int = 1) -> None:
        if max_per_session < 0:
            raise ValueError(
                f"max_per_session must be >= 0, got {max_per_session}"
            )
        self._store = store
        self.max_per_session = max_per_session

    def check(
        self, asset: str, session: str, day: date, decision: Decision,
    ) -> Decision:
        """Pass *decision* through, or replace a trade signal with ``StayOut``."""
        if not isinstance(decision, TradeSignal):
            return decision

        count = self._store.get_trade_count(asset, session, day)
        if count >= self.max_per_session:
            logger.info(
                "Gate closed for %s %s %s: %d/%d trades executed",
                asset, session, day, count, self.max_per_session,
            )
            return StayOut(
                reason=(
                    f"Session limit reached ({count}/{self.max_per_session}) "
                    f"for {session} {day}"
                ),
                phase="GATED",
                confidence=decision.confidence,
            )
        return decision

    def record_execution(self, asset: str, session: str, day: date) -> int:
        """Count a confirmed execution; returns the new count."""
        count = self._store.increment_trade_count(asset, session, day)
        logger.info("Recorded execution for %s %s %s (count=%d)", asset, session, day, count)
        return count
