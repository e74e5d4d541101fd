"""Tests for the multi-asset EngineManager.

Verifies:
  - One engine per configured asset, all sharing one state store
  - Unknown strategy profile is rejected at build time
  - run_all runs every engine and collects per-asset results
  - Per-engine status and stop handling
"""

import pytest

from tradeguard.api import routers
from tradeguard.config import Config
from tradeguard.engine_manager import EngineManager
from tradeguard.repos.state_store import InMemoryStateStore


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config(**overrides) -> Config:
    defaults = dict(
        trade_assets=("BTCUSDT", "ETHUSDT"),
        strategy_profile="sweep_2cr",
        max_trades_per_session=1,
        feed_base_url="https://fapi.binance.com",
        feed_timeout_seconds=2.0,
        poll_interval_seconds=1,
        db_path=":memory:",
        log_level="WARNING",
        health_port=8080,
    )
    defaults.update(overrides)
    return Config(**defaults)


class EmptyFeed:
    """Feed that never has enough candles, so every tick waits."""

    def __init__(self):
        self.symbols: list[str] = []

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 100):
        self.symbols.append(symbol)
        return []


@pytest.fixture(autouse=True)
def _reset_routers():
    routers.reset_state()
    yield
    routers.reset_state()


# ── Build ────────────────────────────────────────────────────────────────


class TestBuild:
    def test_one_engine_per_asset(self):
        mgr = EngineManager(_make_config(), EmptyFeed(), InMemoryStateStore())
        mgr.build_engines()
        assert mgr.assets == ["BTCUSDT", "ETHUSDT"]
        assert all(e.profile_name == "sweep_2cr" for e in mgr.engines.values())

    def test_engines_share_gate(self):
        store = InMemoryStateStore()
        mgr = EngineManager(_make_config(), EmptyFeed(), store)
        mgr.build_engines()
        btc, eth = mgr.engines["BTCUSDT"], mgr.engines["ETHUSDT"]
        assert btc._aggregator.gate is eth._aggregator.gate

    def test_unknown_profile_rejected(self):
        mgr = EngineManager(
            _make_config(strategy_profile="martingale"), EmptyFeed(), InMemoryStateStore(),
        )
        with pytest.raises(KeyError):
            mgr.build_engines()

    def test_engines_property_is_a_copy(self):
        mgr = EngineManager(_make_config(), EmptyFeed(), InMemoryStateStore())
        mgr.build_engines()
        mgr.engines.pop("BTCUSDT")
        assert "BTCUSDT" in mgr.assets


# ── Run / stop ───────────────────────────────────────────────────────────


class TestRun:
    @pytest.mark.asyncio
    async def test_run_all_collects_results(self):
        feed = EmptyFeed()
        mgr = EngineManager(_make_config(), feed, InMemoryStateStore())

        results = await mgr.run_all(max_cycles=1)

        assert set(results) == {"BTCUSDT", "ETHUSDT"}
        for asset_results in results.values():
            assert len(asset_results) == 1
            assert asset_results[0]["action"] == "waiting"
        assert set(feed.symbols) == {"BTCUSDT", "ETHUSDT"}

    @pytest.mark.asyncio
    async def test_status_after_run(self):
        mgr = EngineManager(_make_config(), EmptyFeed(), InMemoryStateStore())
        await mgr.run_all(max_cycles=1)

        status = mgr.get_status()["engines"]
        assert status["BTCUSDT"]["cycle_count"] == 1
        assert status["ETHUSDT"]["running"] is False
        assert routers._engine_statuses["BTCUSDT"]["running"] is False

    def test_single_asset_status(self):
        mgr = EngineManager(_make_config(), EmptyFeed(), InMemoryStateStore())
        mgr.build_engines()
        assert mgr.get_status("BTCUSDT")["profile"] == "sweep_2cr"
        assert "error" in mgr.get_status("XRPUSDT")

    def test_stop_engine(self):
        mgr = EngineManager(_make_config(), EmptyFeed(), InMemoryStateStore())
        mgr.build_engines()
        mgr.engines["BTCUSDT"]._running = True
        mgr.engines["ETHUSDT"]._running = True

        mgr.stop_engine("BTCUSDT")
        mgr.stop_engine("XRPUSDT")  # unknown asset is a no-op
        assert mgr.engines["BTCUSDT"].running is False
        assert mgr.engines["ETHUSDT"].running is True

        mgr.stop_all()
        assert mgr.engines["ETHUSDT"].running is False
