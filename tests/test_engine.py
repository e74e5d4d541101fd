"""Tests for the signal engine orchestration.

Verifies end-to-end flow: fetch candles → aggregate → publish.
Uses a mock feed to avoid real Binance calls.
"""

import asyncio
from datetime import date, datetime, timezone

import httpx
import pytest

from tradeguard.api import routers
from tradeguard.engine import SignalEngine
from tradeguard.repos.state_store import InMemoryStateStore
from tradeguard.risk.gate import TradeGate
from tradeguard.risk.protection import ClosePosition, HoldPosition, PositionProtectionMonitor
from tradeguard.strategy.aggregator import DecisionAggregator
from tradeguard.strategy.foundation import FoundationManager
from tradeguard.strategy.models import Candle, Position
from tradeguard.strategy.profiles import get_profile

D = date(2025, 1, 15)
_T0 = 1_736_928_000_000  # 2025-01-15T08:00:00Z
NOW = datetime(2025, 1, 15, 8, 30, tzinfo=timezone.utc)


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_candle(minute: int, o: float, h: float, l: float, c: float) -> Candle:
    return Candle(timestamp=_T0 + minute * 60_000, open=o, high=h, low=l, close=c, volume=1000)


def _fast_candles() -> list[Candle]:
    fillers = [_make_candle(5 + i, 100.0, 100.5, 99.5, 100.0) for i in range(12)]
    return fillers + [
        _make_candle(17, 100.2, 101.8, 100.1, 101.5),
        _make_candle(18, 101.5, 102.0, 100.8, 100.9),
        _make_candle(19, 100.9, 101.0, 100.2, 100.3),
    ]


def _anchor_candles() -> list[Candle]:
    return [_make_candle(0, 100.0, 101.0, 99.0, 100.0)]


def _weak_1m() -> list[Candle]:
    candles = [_make_candle(i, 102.0 + 0.1 * i, 102.1 + 0.1 * i, 101.95 + 0.1 * i, 102.05 + 0.1 * i)
               for i in range(7)]
    return candles + [
        _make_candle(7, 102.7, 102.75, 101.9, 101.95),
        _make_candle(8, 101.95, 102.3, 101.9, 102.0),
        _make_candle(9, 102.0, 102.2, 101.95, 101.98),
    ]


class MockFeed:
    """Duck-typed BinanceFeedClient replacement for engine tests."""

    def __init__(self, fast=None, anchor=None, protection=None, error=None, delay=0.0,
                 mark=None):
        self._fast = fast if fast is not None else _fast_candles()
        self._anchor = anchor if anchor is not None else _anchor_candles()
        self._protection = protection if protection is not None else _weak_1m()
        self._error = error
        self._delay = delay
        self._mark = mark
        self.requests: list[tuple[str, str, int]] = []

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 100):
        self.requests.append((symbol, interval, limit))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise self._error
        if interval == "5m":
            return self._anchor
        if limit <= 10:
            return self._protection
        return self._fast

    async def fetch_mark_price(self, symbol: str) -> float:
        if self._mark is None:
            raise httpx.ReadTimeout("no mark price")
        return self._mark


def _engine(feed, store=None, fetch_timeout: float = 5.0) -> SignalEngine:
    store = store or InMemoryStateStore()
    aggregator = DecisionAggregator(
        get_profile("sweep_2cr"), FoundationManager(store), TradeGate(store),
    )
    return SignalEngine("BTCUSDT", feed, aggregator, fetch_timeout=fetch_timeout, poll_interval=1)


@pytest.fixture(autouse=True)
def _reset_routers():
    routers.reset_state()
    yield
    routers.reset_state()


# ── Entry path ───────────────────────────────────────────────────────────


class TestRunOnce:
    @pytest.mark.asyncio
    async def test_signal_end_to_end(self):
        feed = MockFeed()
        result = await _engine(feed).run_once(utc_now=NOW)

        assert result["action"] == "signal"
        assert result["signal"] == "SELL"
        assert result["session"] == "LONDON"
        assert result["stop_loss"] == pytest.approx(102.0)
        assert ("BTCUSDT", "1m", 120) in feed.requests
        assert ("BTCUSDT", "5m", 288) in feed.requests

    @pytest.mark.asyncio
    async def test_publishes_status_and_decision(self):
        await _engine(MockFeed()).run_once(utc_now=NOW)
        status = routers._engine_statuses["BTCUSDT"]
        assert status["last_signal"] == "SELL"
        assert status["cycle_count"] == 1
        assert routers._decision_log[-1]["kind"] == "entry"

    @pytest.mark.asyncio
    async def test_skipped_after_recorded_execution(self):
        engine = _engine(MockFeed())
        await engine.run_once(utc_now=NOW)
        assert engine.record_execution("london", D) == 1

        result = await engine.run_once(utc_now=NOW)
        assert result["action"] == "skipped"
        assert result["signal"] == "STAY_OUT"

    @pytest.mark.asyncio
    async def test_feed_error_waits(self):
        feed = MockFeed(error=httpx.ConnectError("unreachable"))
        result = await _engine(feed).run_once(utc_now=NOW)
        assert result["action"] == "waiting"
        assert result["phase"] == "FEED_ERROR"

    @pytest.mark.asyncio
    async def test_feed_timeout_waits(self):
        feed = MockFeed(delay=1.0)
        result = await _engine(feed, fetch_timeout=0.01).run_once(utc_now=NOW)
        assert result["action"] == "waiting"
        assert result["signal"] == "WAIT"

    @pytest.mark.asyncio
    async def test_each_tick_gets_own_correlation_id(self):
        engine = _engine(MockFeed())
        first = await engine.run_once(utc_now=NOW)
        second = await engine.run_once(utc_now=NOW)
        assert first["correlation_id"] != second["correlation_id"]

    @pytest.mark.asyncio
    async def test_run_stops_after_max_cycles(self):
        engine = _engine(MockFeed())
        results = await engine.run(max_cycles=1)
        assert len(results) == 1
        assert engine.running is False


# ── Protection path ──────────────────────────────────────────────────────


class TestProtectOnce:
    @pytest.mark.asyncio
    async def test_evaluates_only_own_asset(self):
        engine = _engine(MockFeed())
        positions = [
            Position("BTCUSDT", "buy", 100.0, 98.0, 106.0, current_price=102.4, position_id="a"),
            Position("BTCUSDT", "buy", 100.0, 98.0, 106.0, current_price=100.5, position_id="b"),
            Position("ETHUSDT", "buy", 100.0, 98.0, 106.0, current_price=102.4, position_id="c"),
        ]
        decisions = await engine.protect_once(positions)

        assert len(decisions) == 2
        assert isinstance(decisions[0], ClosePosition)
        assert isinstance(decisions[1], HoldPosition)
        closures = [d for d in routers._decision_log if d["kind"] == "closure"]
        assert [d["position_id"] for d in closures] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_feed_failure_never_closes(self):
        engine = _engine(MockFeed(error=httpx.ReadTimeout("slow")))
        pos = Position("BTCUSDT", "buy", 100.0, 98.0, 106.0, current_price=102.4)
        decisions = await engine.protect_once([pos])
        assert decisions[0].should_close is False

    @pytest.mark.asyncio
    async def test_held_runner_reports_trailed_stop(self):
        engine = _engine(MockFeed())
        pos = Position("BTCUSDT", "buy", 100.0, 98.0, 106.0, current_price=104.0, position_id="r")
        decisions = await engine.protect_once([pos])

        assert decisions[0].should_close is False
        record = routers._decision_log[-1]
        assert record["trail_stop_loss"] == pytest.approx(102.0)

    @pytest.mark.asyncio
    async def test_missing_price_filled_from_mark(self):
        engine = _engine(MockFeed(mark=104.0))
        pos = Position("BTCUSDT", "buy", 100.0, 98.0, 106.0, position_id="m")
        decisions = await engine.protect_once([pos])

        assert decisions[0].zone == "let_run"
        assert decisions[0].current_rr == pytest.approx(2.0)
        assert routers._decision_log[-1]["trail_stop_loss"] == pytest.approx(102.0)

    @pytest.mark.asyncio
    async def test_mark_price_failure_holds(self):
        engine = _engine(MockFeed())
        pos = Position("BTCUSDT", "buy", 100.0, 98.0, 106.0, position_id="m")
        decisions = await engine.protect_once([pos])
        assert isinstance(decisions[0], HoldPosition)
        assert decisions[0].current_rr == 0.0

    @pytest.mark.asyncio
    async def test_one_failing_position_does_not_abort_others(self):
        class _FlakyMonitor(PositionProtectionMonitor):
            async def evaluate(self, position, feed, log=None):
                if position.position_id == "bad":
                    raise IndexError("list index out of range")
                return await super().evaluate(position, feed, log=log)

        store = InMemoryStateStore()
        aggregator = DecisionAggregator(
            get_profile("sweep_2cr"), FoundationManager(store), TradeGate(store),
        )
        engine = SignalEngine("BTCUSDT", MockFeed(), aggregator, monitor=_FlakyMonitor())
        positions = [
            Position("BTCUSDT", "buy", 100.0, 98.0, 106.0, current_price=102.4, position_id="bad"),
            Position("BTCUSDT", "buy", 100.0, 98.0, 106.0, current_price=102.4, position_id="ok"),
        ]
        decisions = await engine.protect_once(positions)

        assert isinstance(decisions[0], HoldPosition)
        assert "IndexError" in decisions[0].reason
        assert decisions[0].zone == "protection"
        assert isinstance(decisions[1], ClosePosition)


class TestFoundationGuard:
    @pytest.mark.asyncio
    async def test_status_publishes_foundation(self):
        await _engine(MockFeed()).run_once(utc_now=NOW)
        foundation = routers._engine_statuses["BTCUSDT"]["foundation"]
        assert foundation["high"] == 101.0
        assert foundation["low"] == 99.0
        assert foundation["degraded"] is False

    @pytest.mark.asyncio
    async def test_forming_anchor_bar_not_frozen(self):
        store = InMemoryStateStore()
        forming = [_make_candle(0, 100.0, 100.2, 99.9, 100.1)]
        engine = _engine(MockFeed(anchor=forming), store=store)

        early = await engine.run_once(utc_now=datetime(2025, 1, 15, 8, 1, tzinfo=timezone.utc))
        assert early["phase"] == "NO_FOUNDATION"
        assert routers._engine_statuses["BTCUSDT"]["foundation"] is None

        engine._feed = MockFeed(anchor=[_make_candle(0, 100.0, 103.0, 98.0, 101.0)])
        await engine.run_once(utc_now=datetime(2025, 1, 15, 8, 10, tzinfo=timezone.utc))
        stored = store.get_foundation("BTCUSDT", "LONDON", D)
        assert (stored.high, stored.low) == (103.0, 98.0)
