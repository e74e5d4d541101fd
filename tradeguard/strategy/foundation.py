"""Session foundation — the anchor high/low of a session's first candle.

``detect_session_foundation`` is pure.  ``FoundationManager`` adds the
write-once cache on top of an injected ``StateStore``.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from tradeguard.repos.state_store import StateStore
from tradeguard.strategy.models import Candle, Foundation
from tradeguard.strategy.sessions import canonical_session, session_start

logger = logging.getLogger("tradeguard.foundation")

FOUNDATION_WINDOW = timedelta(minutes=30)


def _session_open(session: str, trading_date: date) -> Optional[datetime]:
    start = session_start(session, trading_date.month)
    if start is None:
        return None
    return datetime.combine(trading_date, start, tzinfo=timezone.utc)


def detect_session_foundation(
    candles: list[Candle],
    session: str,
    trading_date: date,
    asset: str = "",
    log: Optional[logging.Logger] = None,
    now: Optional[datetime] = None,
    bar_ms: int = 300_000,
) -> Optional[Foundation]:
    """Build the foundation for *session* on *trading_date* from anchor candles.

    Lookup order:
        1. First candle opening within ``[start, start + 30min]``.
        2. First candle opening after ``start + 30min`` (nearest-following).
        3. The most recent candle, flagged ``degraded=True``.

    When *now* is given, only bars that have closed by then
    (``timestamp + bar_ms <= now``) are considered, and nothing is built
    until the session's first bar has closed.

    Args:
        candles: Anchor-timeframe candles (normally 5m), any order.
        session: Session name or alias (``"LONDON"``, ``"ASIA"``...).
        trading_date: UTC calendar date the session opens on.
        asset: Asset symbol stored on the foundation.
        log: Logger to report the degraded fallback on.
        now: Evaluation time; ``None`` treats every candle as closed.
        bar_ms: Anchor interval length in milliseconds.

    Returns:
        ``Foundation`` or ``None`` for an unknown session, no candles, or
        a first bar that is still forming.
    """
    log = log or logger
    name = canonical_session(session)
    if name is None or not candles:
        return None

    opened = _session_open(name, trading_date)
    start_ms = int(opened.timestamp() * 1000)
    end_ms = int((opened + FOUNDATION_WINDOW).timestamp() * 1000)

    if now is not None:
        now_ms = int(now.timestamp() * 1000)
        if now_ms < start_ms + bar_ms:
            return None
        candles = [c for c in candles if c.timestamp + bar_ms <= now_ms]
        if not candles:
            return None

    ordered = sorted(candles, key=lambda c: c.timestamp)

    anchor = next(
        (c for c in ordered if start_ms <= c.timestamp <= end_ms), None,
    )
    if anchor is None:
        anchor = next((c for c in ordered if c.timestamp > end_ms), None)
        if anchor is not None:
            log.info(
                "Foundation for %s %s taken from nearest-following candle %s",
                name, trading_date, anchor.dt.isoformat(),
            )

    degraded = False
    if anchor is None:
        anchor = ordered[-1]
        degraded = True
        log.warning(
            "No candle at or after %s open on %s; using most recent candle %s",
            name, trading_date, anchor.dt.isoformat(),
        )

    return Foundation(
        asset=asset,
        session=name,
        date=trading_date,
        high=anchor.high,
        low=anchor.low,
        anchor_timestamp=anchor.timestamp,
        degraded=degraded,
    )


class FoundationManager:
    """Write-once foundation cache keyed by ``(asset, session, date)``.

    Args:
        store: State store providing atomic ``insert_foundation_if_absent``.
    """

    def __init__(self, store: StateStore) -> None:
        self._store = store

    def get(self, asset: str, session: str, trading_date: date) -> Optional[Foundation]:
        name = canonical_session(session)
        if name is None:
            return None
        return self._store.get_foundation(asset, name, trading_date)

    def get_or_create(
        self,
        asset: str,
        session: str,
        candles: list[Candle],
        trading_date: date,
        log: Optional[logging.Logger] = None,
        now: Optional[datetime] = None,
        bar_ms: int = 300_000,
    ) -> Optional[Foundation]:
        """Return the stored foundation, creating it from *candles* if absent.

        Concurrent callers always get the record the store holds, so the
        first writer's foundation wins for the rest of the day.  *now* and
        *bar_ms* keep a still-forming bar out of the stored record.
        """
        log = log or logger
        name = canonical_session(session)
        if name is None:
            log.warning("Unknown session '%s'; no foundation", session)
            return None

        existing = self._store.get_foundation(asset, name, trading_date)
        if existing is not None:
            return existing

        detected = detect_session_foundation(
            candles, name, trading_date, asset=asset, log=log, now=now, bar_ms=bar_ms,
        )
        if detected is None:
            return None

        stored = self._store.insert_foundation_if_absent(detected)
        log.info(
            "Foundation %s %s %s: high=%.5f low=%.5f%s",
            asset, name, trading_date, stored.high, stored.low,
            " (degraded)" if stored.degraded else "",
        )
        return stored
