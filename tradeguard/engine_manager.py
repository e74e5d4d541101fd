"""EngineManager — runs one SignalEngine per asset concurrently.

Every engine shares the state store, so foundations and trade counts
stay consistent across overlapping loops.  Engines run as concurrent
``asyncio`` tasks and can be stopped individually or en masse.
"""

import asyncio
import logging
from typing import Optional

from tradeguard.config import Config
from tradeguard.engine import SignalEngine
from tradeguard.repos.state_store import StateStore
from tradeguard.risk.gate import TradeGate
from tradeguard.risk.protection import PositionProtectionMonitor
from tradeguard.strategy.aggregator import DecisionAggregator
from tradeguard.strategy.foundation import FoundationManager
from tradeguard.strategy.profiles import get_profile

logger = logging.getLogger("tradeguard.engine_manager")


class EngineManager:
    """Lifecycle manager for the per-asset engines.

    Args:
        config: Global ``Config`` loaded from ``.env``.
        feed:   Shared market-data client.
        store:  Shared state store for foundations and trade counts.
    """

    def __init__(self, config: Config, feed, store: StateStore) -> None:
        self._config = config
        self._feed = feed
        self._store = store
        self._engines: dict[str, SignalEngine] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def engines(self) -> dict[str, SignalEngine]:
        """Map of asset → ``SignalEngine``."""
        return dict(self._engines)

    @property
    def assets(self) -> list[str]:
        return list(self._engines.keys())

    def build_engines(self) -> None:
        """Instantiate a ``SignalEngine`` per configured asset.

        Raises ``KeyError`` if the configured strategy profile is unknown.
        """
        profile = get_profile(self._config.strategy_profile)
        foundations = FoundationManager(self._store)
        gate = TradeGate(self._store, self._config.max_trades_per_session)
        monitor = PositionProtectionMonitor(
            timeout_seconds=self._config.feed_timeout_seconds,
        )

        for asset in self._config.trade_assets:
            self._engines[asset] = SignalEngine(
                asset=asset,
                feed=self._feed,
                aggregator=DecisionAggregator(profile, foundations, gate),
                monitor=monitor,
                fetch_timeout=self._config.feed_timeout_seconds,
                poll_interval=self._config.poll_interval_seconds,
            )
            logger.info("Registered engine %s → %s", asset, profile.name)

    async def run_all(self, max_cycles: int = 0) -> dict[str, list[dict]]:
        """Launch all engines concurrently and wait for them to finish.

        Returns:
            ``{asset: [cycle_results]}`` for every engine.
        """
        if not self._engines:
            self.build_engines()

        self._tasks = {
            asset: asyncio.create_task(engine.run(max_cycles=max_cycles))
            for asset, engine in self._engines.items()
        }

        results: dict[str, list[dict]] = {}
        for asset, task in self._tasks.items():
            try:
                results[asset] = await task
            except Exception as exc:  # pragma: no cover
                logger.error("Engine %s crashed: %s", asset, exc)
                results[asset] = [{"action": "error", "reason": str(exc)}]
        return results

    def stop_all(self) -> None:
        """Signal every engine to stop gracefully."""
        for asset, engine in self._engines.items():
            engine.stop()
            logger.info("Stop signal sent to %s.", asset)

    def stop_engine(self, asset: str) -> None:
        engine = self._engines.get(asset)
        if engine:
            engine.stop()
            logger.info("Stop signal sent to %s.", asset)

    def get_status(self, asset: Optional[str] = None) -> dict:
        """Return per-engine metadata, for one asset or all of them."""
        if asset is not None:
            engine = self._engines.get(asset)
            if engine is None:
                return {"error": f"Unknown asset: {asset}"}
            return {
                "asset": asset,
                "profile": engine.profile_name,
                "running": engine.running,
                "cycle_count": engine.cycle_count,
            }

        return {
            "engines": {
                a: {
                    "profile": eng.profile_name,
                    "running": eng.running,
                    "cycle_count": eng.cycle_count,
                }
                for a, eng in self._engines.items()
            }
        }
