"""Bitget public market-data REST client (async).

Fetches klines and last prices.  Every failure (transport, HTTP status,
unexpected payload) is logged and reported as ``None``: the caller treats
that as "skip this symbol this cycle".  Requests are unsigned; only public
endpoints are used.
"""

import logging
from typing import Any, Optional

import httpx

from signalforge.config import Config
from signalforge.errors import InsufficientData
from signalforge.market.models import BITGET_TIMEFRAMES, Candle
from signalforge.market.normalizer import normalize_klines

logger = logging.getLogger("signalforge.market.bitget")

_MIN_ADAPTER_ROWS = 10
_TIMEOUT_SECONDS = 10.0


class BitgetClient:
    """Async client wrapping the Bitget v2 public market endpoints."""

    def __init__(
        self,
        config: Config,
        market_type: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = config.exchange_base_url.rstrip("/")
        self._market_type = market_type or config.market_type
        self._transport = transport

    @property
    def market_type(self) -> str:
        return self._market_type

    # ── HTTP helper ──────────────────────────────────────────────────────

    async def get_json(self, url: str, params: Optional[dict] = None) -> Optional[Any]:
        """GET *url* and return the decoded JSON body, or ``None`` on failure."""
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=_TIMEOUT_SECONDS
            ) as client:
                resp = await client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "GET %s returned %d", url, exc.response.status_code,
            )
        except httpx.HTTPError as exc:
            logger.warning("GET %s failed: %s", url, exc)
        except ValueError as exc:
            logger.warning("GET %s returned invalid JSON: %s", url, exc)
        return None

    def _endpoint(self, name: str) -> tuple[str, dict]:
        if self._market_type == "futures":
            return (
                f"{self._base_url}/api/v2/mix/market/{name}",
                {"productType": "USDT-FUTURES"},
            )
        return f"{self._base_url}/api/v2/spot/market/{name}", {}

    # ── Candle data ──────────────────────────────────────────────────────

    async def fetch_candles(
        self,
        symbol: str,
        timeframe: str,
        limit: int = 200,
    ) -> Optional[list[Candle]]:
        """Fetch klines for *symbol* and normalise them oldest-first.

        Args:
            symbol: e.g. ``"BTCUSDT"``
            timeframe: e.g. ``"1h"``, ``"15m"`` (mapped to Bitget granularity)
            limit: number of candles to request

        Returns:
            Ordered ``Candle`` list, or ``None`` when unavailable.
        """
        url, params = self._endpoint("candles")
        params.update({
            "symbol": symbol,
            "granularity": BITGET_TIMEFRAMES.get(timeframe, timeframe),
            "limit": limit,
        })

        payload = await self.get_json(url, params=params)
        if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
            return None

        try:
            return normalize_klines(payload["data"], min_rows=_MIN_ADAPTER_ROWS)
        except InsufficientData as exc:
            logger.warning("Candles for %s %s unusable: %s", symbol, timeframe, exc)
            return None

    # ── Price ────────────────────────────────────────────────────────────

    async def fetch_price(self, symbol: str) -> Optional[float]:
        """Return the last traded price for *symbol*, or ``None``."""
        url, params = self._endpoint("ticker")
        params["symbol"] = symbol

        payload = await self.get_json(url, params=params)
        if not isinstance(payload, dict):
            return None

        data = payload.get("data")
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            return None

        raw = data.get("lastPr", data.get("last"))
        try:
            price = float(raw)
        except (TypeError, ValueError):
            logger.warning("Ticker for %s has no usable price: %r", symbol, raw)
            return None
        if price <= 0 or price != price:
            return None
        return price
