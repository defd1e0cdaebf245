"""CoinDCX public market data client."""

import time
from typing import Any, Optional

import requests

from scalper.brokers.base import MarketDataClient
from scalper.errors import TransientFetchError
from scalper.log import get_logger
from scalper.models import Candle

logger = get_logger("coindcx")


def _to_float(value: Any) -> float:
    """Accept prices sent either as numbers or as numeric strings."""
    if isinstance(value, str):
        return float(value.strip())
    return float(value)


class CoinDCXMarketData(MarketDataClient):
    """Latest trade price and candles from CoinDCX's public endpoints.

    No API key is needed. Responses are never cached: every request carries
    no-cache headers and a cache-busting timestamp.
    """

    PUBLIC_BASE = "https://public.coindcx.com"
    NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}

    def __init__(
        self,
        pair: str = "B-BTC_USDT",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.pair = pair
        self.timeout = timeout
        self._session = session or requests.Session()

    def _get(self, path: str, params: dict) -> Any:
        url = f"{self.PUBLIC_BASE}{path}"
        try:
            resp = self._session.get(
                url, params=params, headers=self.NO_CACHE_HEADERS, timeout=self.timeout
            )
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as e:
            raise TransientFetchError(f"GET {path} failed: {e}") from e

    def fetch_latest_price(self) -> Optional[float]:
        """Price of the most recent public trade, or None if there is none."""
        trades = self._get("/market_data/trade_history", {"pair": self.pair, "limit": 1})
        if not isinstance(trades, list):
            # error replies arrive as a 200 with an object body
            raise TransientFetchError(f"Unexpected trade history payload: {trades!r}")
        if not trades:
            return None
        trade = trades[0]
        if not isinstance(trade, dict):
            raise TransientFetchError(f"Malformed trade entry: {trade!r}")
        raw = trade.get("p", trade.get("price"))
        if raw is None:
            raise TransientFetchError(f"Trade without price: {trade}")
        try:
            return _to_float(raw)
        except (TypeError, ValueError) as e:
            raise TransientFetchError(f"Unparseable trade price {raw!r}") from e

    def fetch_recent_bars(self, pair: str, interval: str) -> list[Candle]:
        """Recent candles for ``pair``, oldest first."""
        rows = self._get(
            "/market_data/candles",
            {"pair": pair, "interval": interval, "_t": int(time.time() * 1000)},
        )
        if not isinstance(rows, list):
            raise TransientFetchError(f"Unexpected candles payload: {rows!r}")
        try:
            bars = [
                Candle(
                    bucket_start=int(row["time"]),
                    open=_to_float(row["open"]),
                    high=_to_float(row["high"]),
                    low=_to_float(row["low"]),
                    close=_to_float(row["close"]),
                )
                for row in rows
            ]
        except (KeyError, TypeError, ValueError) as e:
            raise TransientFetchError(f"Malformed candle payload: {e}") from e

        # the venue returns newest first
        bars.sort(key=lambda c: c.bucket_start)
        logger.debug("Fetched %d %s bars for %s", len(bars), interval, pair)
        return bars
