"""Trading sessions — start times and wall-clock session resolution. Pure functions."""

from datetime import datetime, time
from typing import Optional


# Session opening times in UTC. NY moves an hour earlier while US daylight
# saving is in effect; see ``session_start``.
SESSION_START_TIMES: dict[str, time] = {
    "WELLINGTON": time(21, 0),
    "SYDNEY": time(23, 0),
    "TOKYO": time(0, 0),
    "SINGAPORE": time(1, 0),
    "HONG_KONG": time(1, 30),
    "LONDON": time(8, 0),
    "NY": time(14, 30),
}

# Generic region names accepted from callers, mapped to a concrete session.
SESSION_ALIASES: dict[str, str] = {
    "OCEANIA": "SYDNEY",
    "ASIA": "TOKYO",
}

_NY_DST_START = time(13, 30)


def _is_us_dst(month: int) -> bool:
    """Month-granular approximation of US daylight saving (March–November)."""
    return 3 <= month <= 11


def canonical_session(session: str) -> Optional[str]:
    """Return the concrete session name for *session*, or ``None`` if unknown."""
    name = SESSION_ALIASES.get(session.upper(), session.upper())
    return name if name in SESSION_START_TIMES else None


def session_start(session: str, month: int = 1) -> Optional[time]:
    """Opening time (UTC) of *session* in the given calendar *month*.

    Returns ``None`` for an unknown session name.
    """
    name = canonical_session(session)
    if name is None:
        return None
    if name == "NY" and _is_us_dst(month):
        return _NY_DST_START
    return SESSION_START_TIMES[name]


def resolve_session(utc_now: datetime) -> str:
    """Return the session active at *utc_now*.

    Windows (UTC): WELLINGTON 21:00–23:00, SYDNEY 23:00–24:00,
    TOKYO 00:00–01:00, SINGAPORE 01:00–01:30, HONG_KONG 01:30–08:00,
    LONDON 08:00 until the NY open, NY until 21:00.
    """
    minutes = utc_now.hour * 60 + utc_now.minute
    ny_open = session_start("NY", utc_now.month)
    ny_minutes = ny_open.hour * 60 + ny_open.minute

    if minutes >= 23 * 60:
        return "SYDNEY"
    if minutes >= 21 * 60:
        return "WELLINGTON"
    if minutes >= ny_minutes:
        return "NY"
    if minutes >= 8 * 60:
        return "LONDON"
    if minutes >= 90:
        return "HONG_KONG"
    if minutes >= 60:
        return "SINGAPORE"
    return "TOKYO"
