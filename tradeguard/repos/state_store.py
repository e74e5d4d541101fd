"""Keyed per-day state — session foundations and executed-trade counters.

Both records are keyed by ``(asset, session, date)``.  Stores guarantee
two atomic operations:

- ``insert_foundation_if_absent`` — the first writer wins; every caller
  gets back the stored record, so a race never yields two foundations.
- ``increment_trade_count`` — read-modify-write in one step, so a race
  never loses or doubles a count.
"""

import threading
from datetime import date, datetime, timezone
from typing import Optional, Protocol, runtime_checkable

from tradeguard.repos.db import get_connection
from tradeguard.strategy.models import Foundation


@runtime_checkable
class StateStore(Protocol):
    """Interface injected into the foundation manager and trade gate."""

    def get_foundation(
        self, asset: str, session: str, day: date,
    ) -> Optional[Foundation]:
        ...

    def insert_foundation_if_absent(self, foundation: Foundation) -> Foundation:
        ...

    def get_trade_count(self, asset: str, session: str, day: date) -> int:
        ...

    def increment_trade_count(self, asset: str, session: str, day: date) -> int:
        ...


class InMemoryStateStore:
    """Process-local store guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._foundations: dict[tuple[str, str, date], Foundation] = {}
        self._trade_counts: dict[tuple[str, str, date], int] = {}

    def get_foundation(
        self, asset: str, session: str, day: date,
    ) -> Optional[Foundation]:
        with self._lock:
            return self._foundations.get((asset, session, day))

    def insert_foundation_if_absent(self, foundation: Foundation) -> Foundation:
        key = (foundation.asset, foundation.session, foundation.date)
        with self._lock:
            return self._foundations.setdefault(key, foundation)

    def get_trade_count(self, asset: str, session: str, day: date) -> int:
        with self._lock:
            return self._trade_counts.get((asset, session, day), 0)

    def increment_trade_count(self, asset: str, session: str, day: date) -> int:
        key = (asset, session, day)
        with self._lock:
            self._trade_counts[key] = self._trade_counts.get(key, 0) + 1
            return self._trade_counts[key]


class SqliteStateStore:
    """SQLite-backed store.

    Args:
        db_path: Path to a database initialised with ``init_db``.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    # ── Foundation ───────────────────────────────────────────────────────

    def get_foundation(
        self, asset: str, session: str, day: date,
    ) -> Optional[Foundation]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT * FROM session_foundation
                WHERE asset = ? AND session = ? AND date = ?
                """,
                (asset, session, day.isoformat()),
            ).fetchone()
            return _row_to_foundation(row) if row else None
        finally:
            conn.close()

    def insert_foundation_if_absent(self, foundation: Foundation) -> Foundation:
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT OR IGNORE INTO session_foundation
                    (asset, session, date, high, low, anchor_timestamp,
                     degraded, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    foundation.asset, foundation.session,
                    foundation.date.isoformat(), foundation.high,
                    foundation.low, foundation.anchor_timestamp,
                    int(foundation.degraded),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
            row = conn.execute(
                """
                SELECT * FROM session_foundation
                WHERE asset = ? AND session = ? AND date = ?
                """,
                (foundation.asset, foundation.session, foundation.date.isoformat()),
            ).fetchone()
            conn.commit()
            return _row_to_foundation(row)
        finally:
            conn.close()

    # ── Trade count ──────────────────────────────────────────────────────

    def get_trade_count(self, asset: str, session: str, day: date) -> int:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                """
                SELECT trade_count FROM session_trade_count
                WHERE asset = ? AND session = ? AND date = ?
                """,
                (asset, session, day.isoformat()),
            ).fetchone()
            return row["trade_count"] if row else 0
        finally:
            conn.close()

    def increment_trade_count(self, asset: str, session: str, day: date) -> int:
        conn = get_connection(self._db_path)
        try:
            conn.execute(
                """
                INSERT INTO session_trade_count
                    (asset, session, date, trade_count, updated_at)
                VALUES (?, ?, ?, 1, ?)
                ON CONFLICT (asset, session, date) DO UPDATE
                SET trade_count = trade_count + 1,
                    updated_at = excluded.updated_at
                """,
                (asset, session, day.isoformat(),
                 datetime.now(timezone.utc).isoformat()),
            )
            row = conn.execute(
                """
                SELECT trade_count FROM session_trade_count
                WHERE asset = ? AND session = ? AND date = ?
                """,
                (asset, session, day.isoformat()),
            ).fetchone()
            conn.commit()
            return row["trade_count"]
        finally:
            conn.close()


def _row_to_foundation(row) -> Foundation:
    return Foundation(
        asset=row["asset"],
        session=row["session"],
        date=date.fromisoformat(row["date"]),
        high=row["high"],
        low=row["low"],
        anchor_timestamp=row["anchor_timestamp"],
        degraded=bool(row["degraded"]),
    )
