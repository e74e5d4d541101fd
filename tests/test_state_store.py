"""Tests for the keyed state stores (in-memory and SQLite)."""

from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from tradeguard.repos.db import get_connection, init_db
from tradeguard.repos.state_store import InMemoryStateStore, SqliteStateStore, StateStore
from tradeguard.strategy.models import Foundation

D = date(2025, 1, 15)


def _foundation(high: float = 101.0, low: float = 99.0, degraded: bool = False) -> Foundation:
    return Foundation(
        asset="BTCUSDT", session="LONDON", date=D, high=high, low=low,
        anchor_timestamp=1_736_928_000_000, degraded=degraded,
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStateStore()
    db_path = str(tmp_path / "state.db")
    init_db(db_path)
    return SqliteStateStore(db_path)


def test_stores_satisfy_protocol(store):
    assert isinstance(store, StateStore)


def test_missing_foundation(store):
    assert store.get_foundation("BTCUSDT", "LONDON", D) is None


def test_first_foundation_wins(store):
    first = store.insert_foundation_if_absent(_foundation(high=101.0))
    second = store.insert_foundation_if_absent(_foundation(high=105.0))
    assert first.high == 101.0
    assert second.high == 101.0
    assert store.get_foundation("BTCUSDT", "LONDON", D) == first


def test_degraded_flag_round_trips(store):
    stored = store.insert_foundation_if_absent(_foundation(degraded=True))
    assert stored.degraded is True


def test_foundations_keyed_by_date(store):
    store.insert_foundation_if_absent(_foundation())
    assert store.get_foundation("BTCUSDT", "LONDON", date(2025, 1, 16)) is None


def test_trade_count_increments(store):
    assert store.get_trade_count("BTCUSDT", "LONDON", D) == 0
    assert store.increment_trade_count("BTCUSDT", "LONDON", D) == 1
    assert store.increment_trade_count("BTCUSDT", "LONDON", D) == 2
    assert store.get_trade_count("BTCUSDT", "LONDON", D) == 2
    assert store.get_trade_count("BTCUSDT", "NY", D) == 0


def test_concurrent_increments_are_not_lost(store):
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(
            lambda _: store.increment_trade_count("BTCUSDT", "LONDON", D), range(20),
        ))
    assert store.get_trade_count("BTCUSDT", "LONDON", D) == 20


def test_concurrent_foundation_inserts_agree(store):
    candidates = [_foundation(high=100.0 + i) for i in range(1, 11)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(store.insert_foundation_if_absent, candidates))
    assert len({r.high for r in results}) == 1


def test_init_db_is_idempotent(tmp_path):
    db_path = str(tmp_path / "nested" / "state.db")
    init_db(db_path)
    init_db(db_path)
    conn = get_connection(db_path)
    try:
        tables = {
            row["name"] for row in conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table'"
            )
        }
    finally:
        conn.close()
    assert {"session_foundation", "session_trade_count"} <= tables
