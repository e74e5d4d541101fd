"""Strategy data models — typed representations for detection inputs and outputs."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Literal, Optional


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar. ``timestamp`` is the open time in epoch milliseconds (UTC)."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def dt(self) -> datetime:
        """Open time as an aware UTC datetime."""
        return datetime.fromtimestamp(self.timestamp / 1000, tz=timezone.utc)

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body_ratio(self) -> float:
        """Body as a fraction of the full range (0 for a zero-range bar)."""
        return self.body / self.range if self.range > 0 else 0.0

    @property
    def upper_wick(self) -> float:
        return self.high - max(self.open, self.close)

    @property
    def lower_wick(self) -> float:
        return min(self.open, self.close) - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open


@dataclass(frozen=True)
class Foundation:
    """Anchor high/low taken from the first candle of a trading session.

    Write-once per ``(asset, session, date)``. ``degraded`` marks a
    foundation built from the most recent candle because no candle near
    the session start was available.
    """

    asset: str
    session: str
    date: date
    high: float
    low: float
    anchor_timestamp: int
    degraded: bool = False


@dataclass(frozen=True)
class Gap:
    """A three-candle fair value gap with its quality breakdown."""

    gap_type: Literal["bullish", "bearish"]
    top: float
    bottom: float
    midpoint: float
    quality_score: int
    index: int  # index of the third candle in the scanned sequence
    timestamp: int
    volume_confirmed: bool
    unmitigated: bool
    significant: bool
    expressive: bool

    @property
    def size(self) -> float:
        return self.top - self.bottom


@dataclass(frozen=True)
class Sweep:
    """The most recent candle that closed beyond a foundation level."""

    direction: Literal["above", "below"]
    level: float
    candle: Candle


@dataclass(frozen=True)
class TwoCandleReversal:
    """A two-candle reversal: candle1 rejects, candle2 confirms.

    ``level`` is the pair's support (bullish) or resistance (bearish).
    """

    bias: Literal["bullish", "bearish"]
    candle1: Candle
    candle2: Candle
    level: float


@dataclass(frozen=True)
class TrendValidation:
    """Outcome of the strict five-criterion trend check."""

    is_trending: bool
    direction: Optional[str]  # "buy" / "sell" when trending, else None
    strength_pct: int
    sub_signals: dict[str, bool] = field(default_factory=dict)
    volume_trend: Literal["increasing", "decreasing", "flat"] = "flat"
    price_vs_ma: Literal["above", "below", "neutral"] = "neutral"
    ma10: float = 0.0
    current_price: float = 0.0
    notes: str = ""


@dataclass(frozen=True)
class Position:
    """An open position as reported by the position-tracking store."""

    asset: str
    direction: Literal["buy", "sell"]
    entry_price: float
    stop_loss: float
    take_profit: float
    current_price: Optional[float] = None
    position_id: str = ""

    @property
    def risk_reward(self) -> float:
        """Current favourable move divided by the initial risk distance."""
        if self.current_price is None:
            return 0.0
        risk = abs(self.entry_price - self.stop_loss)
        if risk == 0:
            return 0.0
        if self.direction == "buy":
            profit = self.current_price - self.entry_price
        else:
            profit = self.entry_price - self.current_price
        return profit / risk


def opposite(direction: str) -> str:
    """Return the opposite trade direction (``"buy"`` ↔ ``"sell"``)."""
    if direction == "buy":
        return "sell"
    if direction == "sell":
        return "buy"
    raise ValueError(f"direction must be 'buy' or 'sell', got '{direction}'")


_INTERVAL_UNIT_MS = {"m": 60_000, "h": 3_600_000, "d": 86_400_000}


def interval_ms(interval: str) -> int:
    """Length of a kline interval such as ``"5m"`` or ``"1h"`` in milliseconds."""
    unit = _INTERVAL_UNIT_MS.get(interval[-1:])
    if unit is None or not interval[:-1].isdigit():
        raise ValueError(f"Unsupported interval '{interval}'")
    return int(interval[:-1]) * unit
