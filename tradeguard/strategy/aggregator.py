"""Decision aggregator — foundation, pattern pipeline, trend filter, gate.

One parameterized pipeline; the ``StrategyProfile`` picks the pattern
stage and supplies every threshold.
"""

from datetime import date, datetime
from typing import Optional

from tradeguard.context import EvaluationContext
from tradeguard.risk.gate import TradeGate
from tradeguard.risk.sl_tp import calculate_fixed_rr_levels
from tradeguard.strategy.base import Decision, StayOut, TradeSignal, Wait
from tradeguard.strategy.foundation import FoundationManager
from tradeguard.strategy.gaps import detect_gaps, select_gap
from tradeguard.strategy.models import Candle, Foundation, interval_ms
from tradeguard.strategy.profiles import StrategyProfile
from tradeguard.strategy.reversal import resolve_reversal
from tradeguard.strategy.sweep import detect_sweep
from tradeguard.strategy.trend import validate_trend

GAP_ENTRY_CONFIDENCE = 75


class DecisionAggregator:
    """Combines the detectors into one entry decision per tick.

    Args:
        profile: Strategy profile with thresholds and the pipeline name.
        foundation_manager: Write-once foundation cache.
        gate: Per-session trade cap.
    """

    def __init__(
        self,
        profile: StrategyProfile,
        foundation_manager: FoundationManager,
        gate: TradeGate,
    ) -> None:
        self.profile = profile
        self._foundations = foundation_manager
        self.gate = gate

    def foundation(self, asset: str, session: str, trading_date: date) -> Optional[Foundation]:
        """The stored foundation for the key, without creating one."""
        return self._foundations.get(asset, session, trading_date)

    def decide(
        self,
        ctx: EvaluationContext,
        asset: str,
        session: str,
        trading_date: date,
        candles_fast: list[Candle],
        candles_anchor: list[Candle],
        utc_now: Optional[datetime] = None,
    ) -> Decision:
        """Evaluate one ``(asset, session)`` tick and return a decision.

        *utc_now* is the tick time; anchor bars still forming at that time
        are not used for the foundation.
        """
        log = ctx.logger
        if len(candles_fast) < self.profile.min_candles:
            return Wait(
                f"Insufficient data: {len(candles_fast)}/{self.profile.min_candles} candles",
                phase="INSUFFICIENT_DATA",
            )

        foundation = self._foundations.get_or_create(
            asset, session, candles_anchor, trading_date, log=log,
            now=utc_now, bar_ms=interval_ms(self.profile.anchor_interval),
        )
        if foundation is None:
            return StayOut(
                f"Foundation for {session} {trading_date} not yet available",
                phase="NO_FOUNDATION",
            )

        if self.profile.pipeline == "foundation_gap":
            decision = self._foundation_gap(ctx, foundation, candles_fast)
        else:
            decision = self._sweep_2cr(ctx, foundation, candles_fast)

        gated = self.gate.check(asset, foundation.session, trading_date, decision)
        log.info("Decision %s: %s", gated.signal, gated.reason)
        return gated

    # ── Pipelines ────────────────────────────────────────────────────────

    def _sweep_2cr(
        self,
        ctx: EvaluationContext,
        foundation: Foundation,
        candles: list[Candle],
    ) -> Decision:
        p = self.profile
        sweep = detect_sweep(candles, foundation)
        if sweep is None:
            return StayOut(
                f"No sweep of foundation {foundation.low:.5f}-{foundation.high:.5f}",
                phase="NO_SWEEP",
            )
        ctx.logger.info(
            "Sweep %s %.5f at %s", sweep.direction, sweep.level, sweep.candle.dt.isoformat(),
        )

        resolution = resolve_reversal(
            candles,
            sweep,
            rr_ratio=p.rr_ratio,
            lookahead=p.reversal_lookahead,
            invalidation_lookahead=p.invalidation_lookahead,
            buffer_pct=p.stop_buffer_pct,
            log=ctx.logger,
        )
        decision = resolution.decision
        if not isinstance(decision, TradeSignal) or not p.require_trend:
            return decision

        trend = validate_trend(
            candles,
            decision.direction,
            window=p.trend_window,
            structure_threshold=p.structure_threshold,
            volume_threshold=p.volume_threshold,
        )
        if not trend.is_trending:
            return StayOut(
                f"Trend filter rejected {decision.signal} "
                f"({trend.strength_pct}%: {trend.notes})",
                phase=decision.phase,
                confidence=decision.confidence,
            )
        return decision

    def _foundation_gap(
        self,
        ctx: EvaluationContext,
        foundation: Foundation,
        candles: list[Candle],
    ) -> Decision:
        p = self.profile
        gaps = detect_gaps(
            candles,
            window=p.gap_window,
            min_gap_pct=p.gap_min_pct,
            min_body_ratio=p.gap_min_body_ratio,
            volume_factor=p.gap_volume_factor,
        )
        breaking = [
            g for g in gaps
            if (g.gap_type == "bullish" and candles[g.index].close > foundation.high)
            or (g.gap_type == "bearish" and candles[g.index].close < foundation.low)
        ]
        price = candles[-1].close
        gap = select_gap(
            breaking,
            price,
            max_distance_pct=p.gap_max_distance_pct,
            min_quality=p.gap_min_quality,
        )
        if gap is None:
            return StayOut(
                f"No qualifying gap beyond foundation ({len(gaps)} found, "
                f"{len(breaking)} breaking)",
                phase="NO_GAP",
            )

        direction = "buy" if gap.gap_type == "bullish" else "sell"
        trend = validate_trend(
            candles,
            direction,
            window=p.trend_window,
            structure_threshold=p.structure_threshold,
            volume_threshold=p.volume_threshold,
        )
        if not trend.is_trending:
            return StayOut(
                f"{gap.gap_type} gap without trend ({trend.strength_pct}%: {trend.notes})",
                phase="NO_TREND",
            )

        stop = gap.bottom if direction == "buy" else gap.top
        levels = calculate_fixed_rr_levels(price, stop, direction, p.rr_ratio)
        if levels is None:
            ctx.logger.warning(
                "REJECTED gap entry: price %.5f already past gap edge %.5f", price, stop,
            )
            return StayOut("Price already through the gap", phase="REJECTED")

        return TradeSignal(
            direction=direction,
            entry_price=levels.entry,
            stop_loss=levels.sl,
            take_profit=levels.tp,
            risk_reward=p.rr_ratio,
            confidence=GAP_ENTRY_CONFIDENCE,
            reason=(
                f"{gap.gap_type} gap q{gap.quality_score} beyond foundation, "
                f"trend {trend.strength_pct}%"
            ),
            phase="GAP_ENTRY",
        )
