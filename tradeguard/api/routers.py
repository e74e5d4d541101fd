"""Internal API routers — /status and /decisions endpoints.

No business logic, no DB access. Reads shared state pushed by the engines.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query

logger = logging.getLogger("tradeguard")
router = APIRouter()

# ── Shared state (updated by engines) ────────────────────────────────────

_DEFAULT_ENGINE_STATUS: dict = {
    "asset": "",
    "profile": None,
    "running": False,
    "session": None,
    "cycle_count": 0,
    "last_cycle_at": None,
    "last_signal": None,
    "last_reason": None,
    "foundation": None,
    "open_positions": 0,
}

_MAX_DECISIONS = 100

# Keyed by asset → status dict
_engine_statuses: dict[str, dict] = {}
_decision_log: list[dict] = []  # Newest last, capped at _MAX_DECISIONS


def update_bot_status(asset: str, **fields) -> None:
    """Update individual fields of an engine's status dict."""
    if asset not in _engine_statuses:
        _engine_statuses[asset] = {**_DEFAULT_ENGINE_STATUS, "asset": asset}
    _engine_statuses[asset].update(fields)


def record_decision(entry: dict) -> None:
    """Append an entry or closure decision record to the decision log."""
    _decision_log.append(entry)
    if len(_decision_log) > _MAX_DECISIONS:
        del _decision_log[0]


def reset_state() -> None:
    """Clear all shared state."""
    _engine_statuses.clear()
    _decision_log.clear()


# ── Endpoints ────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Return status for all engines."""
    return {"engines": dict(_engine_statuses)}


@router.get("/status/{asset}")
async def get_asset_status(asset: str):
    """Return status for a single engine."""
    status = _engine_statuses.get(asset.upper())
    if status is None:
        return {"error": f"Unknown asset: {asset}"}
    return status


@router.get("/decisions")
async def get_decisions(
    limit: int = Query(default=20, ge=1, le=_MAX_DECISIONS),
    asset: Optional[str] = Query(default=None),
    kind: Optional[str] = Query(default=None, pattern="^(entry|closure)$"),
):
    """Return recent decisions, newest first."""
    entries = [
        d for d in _decision_log
        if (asset is None or d.get("asset") == asset.upper())
        and (kind is None or d.get("kind") == kind)
    ]
    recent = entries[-limit:]
    recent.reverse()
    return {"decisions": recent, "total": len(entries)}
