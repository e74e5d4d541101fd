"""TradeGuard — signal engine (per-asset polling loop).

One engine per asset.  Each tick resolves the active session, fetches
candles under a timeout, runs the decision aggregator and publishes the
result.  Open positions are checked by the protection monitor.
"""

import asyncio
import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Optional

import httpx

from tradeguard.api.routers import record_decision, update_bot_status
from tradeguard.context import EvaluationContext
from tradeguard.risk.protection import (
    ClosureDecision,
    HoldPosition,
    PositionProtectionMonitor,
    classify_zone,
    closure_to_dict,
)
from tradeguard.risk.sl_tp import calculate_current_rr
from tradeguard.risk.trailing_stop import trailed_stop
from tradeguard.strategy.aggregator import DecisionAggregator
from tradeguard.strategy.base import StayOut, TradeSignal, Wait, decision_to_dict
from tradeguard.strategy.models import Candle, Position
from tradeguard.strategy.sessions import canonical_session, resolve_session

logger = logging.getLogger("tradeguard")

_FEED_ERRORS = (httpx.HTTPError, asyncio.TimeoutError, ValueError)


class SignalEngine:
    """Orchestrates one evaluation cycle per call for a single asset.

    Args:
        asset: Symbol traded, e.g. ``"BTCUSDT"``.
        feed: A ``BinanceFeedClient`` (or compatible duck-type / mock).
        aggregator: Decision aggregator holding profile, foundations and gate.
        monitor: Protection monitor for open positions.
        fetch_timeout: Upper bound in seconds on each candle fetch.
        poll_interval: Seconds between cycles in ``run``.
    """

    def __init__(
        self,
        asset: str,
        feed,
        aggregator: DecisionAggregator,
        monitor: Optional[PositionProtectionMonitor] = None,
        fetch_timeout: float = 10.0,
        poll_interval: int = 60,
    ) -> None:
        self.asset = asset
        self._feed = feed
        self._aggregator = aggregator
        self._monitor = monitor or PositionProtectionMonitor(timeout_seconds=fetch_timeout)
        self._fetch_timeout = fetch_timeout
        self._poll_interval = poll_interval
        self._running: bool = False
        self._cycle_count: int = 0

    @property
    def profile_name(self) -> str:
        return self._aggregator.profile.name

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    # ── Lifecycle ────────────────────────────────────────────────────────

    def stop(self) -> None:
        """Signal the engine to stop after the current cycle."""
        self._running = False

    async def run(self, max_cycles: int = 0) -> list[dict]:
        """Run the polling loop until stopped.

        Args:
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        self._running = True
        update_bot_status(
            self.asset,
            running=True,
            profile=self.profile_name,
            started_at=datetime.now(timezone.utc).isoformat(),
        )
        results: list[dict] = []
        cycle = 0

        while self._running:
            cycle += 1
            try:
                result = await self.run_once()
                results.append(result)
                logger.info("%s cycle %d: %s", self.asset, cycle, result["action"])
            except Exception as exc:
                logger.error("%s cycle %d error: %s", self.asset, cycle, exc)
                results.append({"action": "error", "reason": str(exc)})

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Interruptible sleep: checks _running every second
            for _ in range(self._poll_interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        update_bot_status(self.asset, running=False)
        return results

    # ── Entry path ───────────────────────────────────────────────────────

    async def _fetch(self, interval: str, limit: int) -> list[Candle]:
        return await asyncio.wait_for(
            self._feed.fetch_candles(self.asset, interval, limit),
            timeout=self._fetch_timeout,
        )

    async def run_once(self, utc_now: Optional[datetime] = None) -> dict:
        """Execute one evaluation cycle.

        Returns a dict describing the outcome:

        - ``{"action": "signal", "signal": "BUY"|"SELL", ...}``
        - ``{"action": "skipped", "signal": "STAY_OUT", "reason": "..."}``
        - ``{"action": "waiting", "signal": "WAIT", "reason": "..."}``

        Args:
            utc_now: Current UTC datetime.  Defaults to ``datetime.now(UTC)``.
        """
        if utc_now is None:
            utc_now = datetime.now(timezone.utc)
        self._cycle_count += 1

        session = resolve_session(utc_now)
        trading_date = utc_now.date()
        ctx = EvaluationContext.new(self.asset, session)
        profile = self._aggregator.profile

        try:
            candles_fast, candles_anchor = await asyncio.gather(
                self._fetch(profile.fast_interval, profile.fast_limit),
                self._fetch(profile.anchor_interval, profile.anchor_limit),
            )
        except _FEED_ERRORS as exc:
            ctx.logger.warning("Candle fetch failed: %s", str(exc) or type(exc).__name__)
            decision = Wait(
                f"Feed unavailable ({type(exc).__name__}); treating as insufficient data",
                phase="FEED_ERROR",
            )
        else:
            decision = self._aggregator.decide(
                ctx, self.asset, session, trading_date, candles_fast, candles_anchor,
                utc_now=utc_now,
            )
        foundation = self._aggregator.foundation(self.asset, session, trading_date)

        if isinstance(decision, TradeSignal):
            action = "signal"
        elif isinstance(decision, StayOut):
            action = "skipped"
        else:
            action = "waiting"

        record = {
            "kind": "entry",
            "asset": self.asset,
            "session": session,
            "date": trading_date.isoformat(),
            "correlation_id": ctx.correlation_id,
            "evaluated_at": utc_now.isoformat(),
            **decision_to_dict(decision),
        }
        record_decision(record)
        update_bot_status(
            self.asset,
            session=session,
            cycle_count=self._cycle_count,
            last_cycle_at=utc_now.isoformat(),
            last_signal=decision.signal,
            last_reason=decision.reason,
            foundation=None if foundation is None else {
                "high": foundation.high,
                "low": foundation.low,
                "anchor_timestamp": foundation.anchor_timestamp,
                "degraded": foundation.degraded,
            },
        )
        return {"action": action, **record}

    def record_execution(self, session: str, trading_date: date) -> int:
        """Count a confirmed fill against the session's trade cap."""
        name = canonical_session(session) or session
        return self._aggregator.gate.record_execution(self.asset, name, trading_date)

    # ── Protection path ──────────────────────────────────────────────────

    async def protect_once(self, positions: list[Position]) -> list[ClosureDecision]:
        """Evaluate every open position on this engine's asset.

        Positions on other assets are ignored.  Returns one decision per
        evaluated position, in input order.  Each published record for a
        held position carries the trailed stop, if it should move.
        """
        mine = [p for p in positions if p.asset == self.asset]
        ctx = EvaluationContext.new(self.asset)
        evaluated = await asyncio.gather(*(self._protect(p, ctx) for p in mine))

        now = datetime.now(timezone.utc).isoformat()
        decisions = []
        for position, decision in evaluated:
            decisions.append(decision)
            record_decision({
                "kind": "closure",
                "asset": self.asset,
                "position_id": position.position_id,
                "correlation_id": ctx.correlation_id,
                "evaluated_at": now,
                "trail_stop_loss": None if decision.should_close else trailed_stop(position),
                **closure_to_dict(decision),
            })
        update_bot_status(self.asset, open_positions=len(mine))
        return decisions

    async def _protect(
        self, position: Position, ctx: EvaluationContext,
    ) -> tuple[Position, ClosureDecision]:
        """Price and evaluate one position; a failure here only holds that position."""
        if position.current_price is None:
            try:
                price = await asyncio.wait_for(
                    self._feed.fetch_mark_price(position.asset), timeout=self._fetch_timeout,
                )
            except _FEED_ERRORS as exc:
                ctx.logger.warning(
                    "Mark price fetch failed for %s: %s", position.position_id or position.asset,
                    str(exc) or type(exc).__name__,
                )
            else:
                position = replace(position, current_price=price)

        try:
            decision = await self._monitor.evaluate(position, self._feed, log=ctx.logger)
        except Exception as exc:
            ctx.logger.error(
                "Protection error for %s: %s; holding", position.position_id or position.asset, exc,
            )
            rr = calculate_current_rr(position)
            decision = HoldPosition(
                reason=f"Protection check failed ({type(exc).__name__}); holding",
                current_rr=rr, confidence=0, zone=classify_zone(rr),
            )
        return position, decision
