"""TradeGuard — application configuration.

Loads .env variables into a typed config object.
Validates numeric variables on startup.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


_DEFAULT_FEED_BASE_URL = "https://fapi.binance.com"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    trade_assets: tuple[str, ...]
    strategy_profile: str
    max_trades_per_session: int
    feed_base_url: str
    feed_timeout_seconds: float
    poll_interval_seconds: int
    db_path: str
    log_level: str
    health_port: int


def _int_var(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None


def _float_var(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got '{raw}'") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Every variable has a default.  Raises ``ValueError`` with a message
    naming the variable when a value cannot be parsed or is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    assets = tuple(
        a.strip().upper()
        for a in os.environ.get("TRADE_ASSETS", "BTCUSDT").split(",")
        if a.strip()
    )
    if not assets:
        raise ValueError("TRADE_ASSETS must name at least one asset")

    max_trades = _int_var("MAX_TRADES_PER_SESSION", "1")
    if max_trades < 0:
        raise ValueError(f"MAX_TRADES_PER_SESSION must be >= 0, got {max_trades}")

    timeout = _float_var("FEED_TIMEOUT_SECONDS", "10")
    if timeout <= 0:
        raise ValueError(f"FEED_TIMEOUT_SECONDS must be positive, got {timeout}")

    poll = _int_var("POLL_INTERVAL_SECONDS", "60")
    if poll <= 0:
        raise ValueError(f"POLL_INTERVAL_SECONDS must be positive, got {poll}")

    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(
            f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got '{log_level}'"
        )

    return Config(
        trade_assets=assets,
        strategy_profile=os.environ.get("STRATEGY_PROFILE", "sweep_2cr"),
        max_trades_per_session=max_trades,
        feed_base_url=os.environ.get("FEED_BASE_URL", _DEFAULT_FEED_BASE_URL).rstrip("/"),
        feed_timeout_seconds=timeout,
        poll_interval_seconds=poll,
        db_path=os.environ.get("DB_PATH", "data/tradeguard.db"),
        log_level=log_level,
        health_port=_int_var("HEALTH_PORT", "8080"),
    )
