"""Binance USDⓈ-M futures public market-data async client.

Fetches klines and mark prices.  Public endpoints only: nothing here
signs requests or routes orders.
"""

import asyncio
import logging
from typing import Optional

import httpx

from tradeguard.config import Config
from tradeguard.strategy.models import Candle

logger = logging.getLogger("tradeguard")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}
_MAX_KLINES = 1500


class BinanceFeedClient:
    """Async client wrapping the Binance futures public REST API.

    Args:
        base_url: API root, e.g. ``"https://fapi.binance.com"``.
        timeout: Per-request timeout in seconds.
        retry_base_delay: First backoff delay; doubles each attempt.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        retry_base_delay: float = _RETRY_BASE_DELAY,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._retry_base_delay = retry_base_delay

    @classmethod
    def from_config(cls, config: Config) -> "BinanceFeedClient":
        return cls(config.feed_base_url, timeout=config.feed_timeout_seconds)

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _get_with_retry(self, path: str, params: dict) -> httpx.Response:
        """GET with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504), rate-limits
        (429) and transport errors.  Other HTTP errors are raised immediately.
        """
        url = f"{self._base_url}{path}"
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            try:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(url, params=params, timeout=self._timeout)

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    delay = self._retry_base_delay * (2 ** attempt)
                    logger.warning(
                        "Binance GET %s returned %d — retry %d/%d in %.1fs",
                        path, resp.status_code, attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                delay = self._retry_base_delay * (2 ** attempt)
                logger.warning(
                    "Binance GET %s transport error (%s) — retry %d/%d in %.1fs",
                    path, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)

        # All retries exhausted; raise the last error
        raise last_exc  # type: ignore[misc]

    # ── Market data ──────────────────────────────────────────────────────

    async def fetch_candles(
        self,
        symbol: str,
        interval: str,
        limit: int = 100,
    ) -> list[Candle]:
        """Fetch klines for *symbol*.

        Args:
            symbol: e.g. ``"BTCUSDT"``
            interval: e.g. ``"1m"``, ``"5m"``
            limit: number of klines to request (max 1500)

        Returns:
            List of ``Candle`` objects ordered oldest-first.

        Raises:
            ValueError: If the response is not a list of well-formed klines.
        """
        params = {
            "symbol": symbol,
            "interval": interval,
            "limit": max(1, min(limit, _MAX_KLINES)),
        }
        resp = await self._get_with_retry("/fapi/v1/klines", params)

        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"Unexpected klines payload for {symbol}: {data!r}")

        candles: list[Candle] = []
        try:
            for k in data:
                candles.append(
                    Candle(
                        timestamp=int(k[0]),
                        open=float(k[1]),
                        high=float(k[2]),
                        low=float(k[3]),
                        close=float(k[4]),
                        volume=float(k[5]),
                    )
                )
        except (IndexError, TypeError, KeyError) as exc:
            raise ValueError(f"Malformed kline row for {symbol}: {exc}") from exc
        candles.sort(key=lambda c: c.timestamp)
        return candles

    async def fetch_mark_price(self, symbol: str) -> float:
        """Return the current mark price for *symbol*."""
        resp = await self._get_with_retry("/fapi/v1/premiumIndex", {"symbol": symbol})
        data = resp.json()
        try:
            return float(data["markPrice"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Unexpected premiumIndex payload for {symbol}: {data!r}") from exc
